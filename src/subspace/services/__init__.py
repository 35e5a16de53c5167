"""Services built on the network layer."""

from subspace.services.users import UserService

__all__ = ["UserService"]
