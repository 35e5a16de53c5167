"""Closed taxonomy of network failures."""

from __future__ import annotations

from enum import StrEnum

from subspace.errors import SubspaceError


class ErrorKind(StrEnum):
    NO_CONNECTION = "no_connection"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    INVALID_RESPONSE = "invalid_response"
    DECODING_FAILED = "decoding_failed"
    UNKNOWN = "unknown"


_DESCRIPTIONS: dict[ErrorKind, str] = {
    ErrorKind.NO_CONNECTION: "No internet connection available",
    ErrorKind.TIMEOUT: "Request timed out",
    ErrorKind.SERVER_ERROR: "Server error occurred",
    ErrorKind.INVALID_RESPONSE: "Invalid response received",
    ErrorKind.DECODING_FAILED: "Failed to process server response",
    ErrorKind.UNKNOWN: "An unknown error occurred",
}

_FAILURE_REASONS: dict[ErrorKind, str] = {
    ErrorKind.NO_CONNECTION: "The device is not connected to the internet",
    ErrorKind.TIMEOUT: "The server took too long to respond",
    ErrorKind.SERVER_ERROR: "The server encountered an internal error",
    ErrorKind.INVALID_RESPONSE: "The server response was malformed",
    ErrorKind.DECODING_FAILED: "The data format was unexpected",
    ErrorKind.UNKNOWN: "An unexpected error occurred",
}

_RECOVERY_SUGGESTIONS: dict[ErrorKind, str] = {
    ErrorKind.NO_CONNECTION: "Check your internet connection and try again",
    ErrorKind.TIMEOUT: "Try again in a moment",
    ErrorKind.SERVER_ERROR: "Try again later or contact support if the problem persists",
    ErrorKind.INVALID_RESPONSE: "Try again or contact support if the problem persists",
    ErrorKind.DECODING_FAILED: "Try again or contact support if the problem persists",
    ErrorKind.UNKNOWN: "Try restarting the app",
}


class NetworkError(SubspaceError):
    """A failure classified into exactly one `ErrorKind`.

    `status_code` is set only for `ErrorKind.SERVER_ERROR`.
    """

    def __init__(self, kind: ErrorKind, *, status_code: int | None = None) -> None:
        if (kind is ErrorKind.SERVER_ERROR) != (status_code is not None):
            raise ValueError("status_code is required for, and only for, server errors")
        self.kind = kind
        self.status_code = status_code
        super().__init__(self.description)

    @classmethod
    def server_error(cls, status_code: int) -> NetworkError:
        return cls(ErrorKind.SERVER_ERROR, status_code=status_code)

    @property
    def description(self) -> str:
        text = _DESCRIPTIONS[self.kind]
        if self.status_code is not None:
            return f"{text} (Code: {self.status_code})"
        return text

    @property
    def failure_reason(self) -> str:
        return _FAILURE_REASONS[self.kind]

    @property
    def recovery_suggestion(self) -> str:
        return _RECOVERY_SUGGESTIONS[self.kind]

    def __repr__(self) -> str:
        if self.status_code is not None:
            return f"NetworkError({self.kind.value}, status_code={self.status_code})"
        return f"NetworkError({self.kind.value})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NetworkError):
            return NotImplemented
        return (self.kind, self.status_code) == (other.kind, other.status_code)

    def __hash__(self) -> int:
        return hash((self.kind, self.status_code))
