"""Read-only access to the current authentication tokens."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class AuthTokens(BaseModel):
    """Snapshot of the tokens issued to the signed-in user."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    expires_at: datetime = Field(alias="expiresAt")

    def is_expired(self, now: datetime | None = None) -> bool:
        current = now or datetime.now(UTC)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return current >= expires_at


@runtime_checkable
class CredentialStore(Protocol):
    def get_tokens(self) -> AuthTokens | None:
        """Return the current snapshot, or None when nobody is signed in."""
        ...


class InMemoryCredentialStore:
    """Credential store holding tokens in process memory."""

    def __init__(self, tokens: AuthTokens | None = None) -> None:
        self._tokens = tokens

    def get_tokens(self) -> AuthTokens | None:
        return self._tokens

    def save_tokens(self, tokens: AuthTokens) -> None:
        self._tokens = tokens

    def delete_tokens(self) -> None:
        self._tokens = None
