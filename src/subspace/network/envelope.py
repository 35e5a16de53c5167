"""Realtime frame models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EnvelopeType(StrEnum):
    """Frame types that carry a message payload."""

    NEW_MESSAGE = "new_message"
    MESSAGE_UPDATED = "message_updated"
    MESSAGE_READ = "message_read"
    MESSAGE_DELETED = "message_deleted"


class MessagePayload(BaseModel):
    """The `data` object of a frame. Every field is optional."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    id: str | None = None
    user_id: str | None = Field(default=None, alias="userId")
    content: str | None = None
    kind: str | None = None
    is_read: bool | None = Field(default=None, alias="isRead")
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")


class InboundEnvelope(BaseModel):
    """Wire shape of one inbound frame: ``{"type": ..., "data": {...}}``."""

    model_config = ConfigDict(frozen=True)

    type: str
    data: dict[str, Any] | None = None


@dataclass(frozen=True)
class MessageEvent:
    type: EnvelopeType
    message: MessagePayload


@dataclass(frozen=True)
class UnknownEvent:
    """A frame whose type is not recognised; handlers may ignore it."""

    type: str
    payload: dict[str, Any]


Envelope = MessageEvent | UnknownEvent


def decode_envelope(frame: str | bytes) -> Envelope:
    """Decode one frame into a tagged envelope.

    Raises:
        pydantic.ValidationError: If the frame is not a JSON object with a
            string ``type``, or a known type carries a malformed payload
    """
    raw = InboundEnvelope.model_validate_json(frame)
    payload = raw.data or {}
    try:
        known = EnvelopeType(raw.type)
    except ValueError:
        return UnknownEvent(type=raw.type, payload=payload)
    return MessageEvent(type=known, message=MessagePayload.model_validate(payload))
