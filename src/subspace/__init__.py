"""Subspace - resilient networking for the Subspace client."""

from subspace.cache import Cache
from subspace.config import Settings, get_settings
from subspace.errors import ConfigurationError, SubspaceError
from subspace.network import APIClient, ErrorKind, NetworkError, RealtimeChannel, RetryPolicy

__version__ = "0.1.0"

__all__ = [
    "APIClient",
    "Cache",
    "ConfigurationError",
    "ErrorKind",
    "NetworkError",
    "RealtimeChannel",
    "RetryPolicy",
    "Settings",
    "SubspaceError",
    "get_settings",
]
