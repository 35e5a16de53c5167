"""Response models returned by the backend."""

from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class User(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    email: str
    avatar_url: str | None = Field(default=None, alias="avatarUrl")
    created_at: datetime = Field(alias="createdAt")

    @property
    def initials(self) -> str:
        return "".join(word[0] for word in self.name.split()[:2])

    @property
    def display_name(self) -> str:
        return self.name or self.email


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    user_id: str = Field(alias="userId")
    content: str
    kind: str
    is_read: bool = Field(alias="isRead")
    created_at: str = Field(alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")


class ListResponse(BaseModel, Generic[T]):
    """Paginated list wrapper."""

    data: list[T]
    limit: int
    offset: int
    total: int | None = None
