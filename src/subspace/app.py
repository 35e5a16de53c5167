"""Explicitly constructed application dependencies."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from subspace.cache import Cache
from subspace.config import Settings
from subspace.models import User
from subspace.network.client import APIClient
from subspace.network.credentials import CredentialStore
from subspace.network.realtime import RealtimeChannel
from subspace.services.users import UserService


@dataclass
class AppDependencies:
    """Container for the network layer and the services built on it."""

    settings: Settings
    client: APIClient
    channel: RealtimeChannel
    users: UserService

    @classmethod
    def from_settings(cls, settings: Settings, credentials: CredentialStore | None = None) -> AppDependencies:
        client = APIClient(settings.api_endpoint, credentials=credentials, timeout=settings.request_timeout)
        channel = RealtimeChannel(
            settings.websocket_endpoint,
            ping_interval=settings.ws_ping_interval,
            reconnect_delay=settings.ws_reconnect_delay,
        )
        users = UserService(client, Cache[str, User](settings.cache_expiration))
        logger.debug("app.dependencies.ready environment={}", settings.environment)
        return cls(settings=settings, client=client, channel=channel, users=users)

    async def aclose(self) -> None:
        await self.channel.disconnect()
        await self.client.aclose()
