"""Application-level exception types for Subspace."""

from __future__ import annotations


class SubspaceError(Exception):
    """Base exception for Subspace."""


class ConfigurationError(SubspaceError):
    """Raised when settings cannot be resolved at startup."""
