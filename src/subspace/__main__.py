"""Subspace CLI bootstrap."""

from __future__ import annotations

from subspace.cli import app

if __name__ == "__main__":
    app()
