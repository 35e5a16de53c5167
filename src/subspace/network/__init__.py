"""HTTP and realtime networking with classified errors and retries."""

from subspace.network.client import APIClient, HTTPMethod, RequestDescriptor
from subspace.network.credentials import AuthTokens, CredentialStore, InMemoryCredentialStore
from subspace.network.envelope import Envelope, EnvelopeType, MessageEvent, MessagePayload, UnknownEvent
from subspace.network.errors import ErrorKind, NetworkError
from subspace.network.realtime import ChannelState, RealtimeChannel
from subspace.network.retry import RetryPolicy

__all__ = [
    "APIClient",
    "AuthTokens",
    "ChannelState",
    "CredentialStore",
    "Envelope",
    "EnvelopeType",
    "ErrorKind",
    "HTTPMethod",
    "InMemoryCredentialStore",
    "MessageEvent",
    "MessagePayload",
    "NetworkError",
    "RealtimeChannel",
    "RequestDescriptor",
    "RetryPolicy",
    "UnknownEvent",
]
