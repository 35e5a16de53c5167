"""Developer CLI for exercising the network layer."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from typing import Any

import typer

from subspace.config import Settings, get_settings
from subspace.errors import ConfigurationError
from subspace.logging_utils import LogProfile, configure_logging
from subspace.network.client import APIClient, HTTPMethod
from subspace.network.credentials import AuthTokens, InMemoryCredentialStore
from subspace.network.envelope import Envelope, MessageEvent
from subspace.network.errors import NetworkError
from subspace.network.realtime import RealtimeChannel
from subspace.network.retry import RetryPolicy

app = typer.Typer(name="subspace", help="Subspace network layer tools", add_completion=False)


def _load_settings(profile: LogProfile = "cli") -> Settings:
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        typer.echo(f"configuration error: {exc}", err=True)
        raise typer.Exit(2) from exc
    configure_logging(profile=profile, level=settings.log_level)
    return settings


def _credentials(settings: Settings) -> InMemoryCredentialStore:
    store = InMemoryCredentialStore()
    if settings.access_token:
        store.save_tokens(
            AuthTokens(
                access_token=settings.access_token,
                refresh_token="",
                expires_at=datetime.max.replace(tzinfo=UTC),
            )
        )
    return store


def render_envelope(envelope: Envelope) -> str:
    if isinstance(envelope, MessageEvent):
        data: dict[str, Any] = envelope.message.model_dump(by_alias=True, exclude_none=True)
    else:
        data = envelope.payload
    return json.dumps({"type": str(envelope.type), "data": data}, ensure_ascii=False)


@app.command("get")
def get(
    path: str = typer.Argument(..., help="Endpoint path relative to the API base URL"),
    retry: str = typer.Option("standard", "--retry", help="Retry policy: standard, aggressive, conservative, none"),
    no_auth: bool = typer.Option(False, "--no-auth", help="Do not attach the bearer token"),
) -> None:
    """Fetch one endpoint and print the JSON body."""

    settings = _load_settings()
    try:
        policy = RetryPolicy.named(retry)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--retry") from exc

    async def _run() -> Any:
        async with APIClient(
            settings.api_endpoint, credentials=_credentials(settings), timeout=settings.request_timeout
        ) as client:
            return await client.request_with_retry(
                path, HTTPMethod.GET, response_model=Any, policy=policy, include_auth=not no_auth
            )

    try:
        body = asyncio.run(_run())
    except NetworkError as exc:
        typer.echo(f"error: {exc.description}", err=True)
        typer.echo(exc.recovery_suggestion, err=True)
        raise typer.Exit(1) from exc
    typer.echo(json.dumps(body, indent=2, ensure_ascii=False, default=str))


@app.command("listen")
def listen(identity: str = typer.Argument(..., help="User id to subscribe as")) -> None:
    """Print realtime envelopes until interrupted."""

    settings = _load_settings("default")

    async def _run() -> None:
        channel = RealtimeChannel(
            settings.websocket_endpoint,
            ping_interval=settings.ws_ping_interval,
            reconnect_delay=settings.ws_reconnect_delay,
            on_message_received=lambda envelope: typer.echo(render_envelope(envelope)),
        )
        await channel.connect(identity)
        try:
            await asyncio.Event().wait()
        finally:
            await channel.disconnect()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        typer.echo("disconnected")


@app.command("config")
def show_config() -> None:
    """Print the resolved settings."""

    settings = _load_settings()
    values = settings.model_dump()
    if values.get("access_token"):
        values["access_token"] = "***"
    for key, value in values.items():
        typer.echo(f"{key}: {value}")
