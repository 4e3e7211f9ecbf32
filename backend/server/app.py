"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Configure logging from AppConfig
- Initialize shared resources (HTTP client, Discord voice backend,
  connection registry) for the app's lifetime
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncIterator

import httpx
from fastapi import FastAPI

from adapters.playback.discord_voice import DiscordVoiceBackend
from config import AppConfig
from connection.gateway import AgentGateway, VoiceBackendProtocol
from connection.registry import ConnectionRegistry
from observability.logger import configure as configure_logging, log_event

from server.routes import register_routes


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    configure_logging(level=config.log_level, json_output=config.enable_json_logs)

    app = FastAPI(title="Voice Relay API", lifespan=_lifespan)

    app.state.config = config
    app.state.registry = None

    register_routes(app)

    return app


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    config: AppConfig = app.state.config

    # Shared HTTP client ONCE per process
    http_client = build_http_client(config)

    voice_backend: DiscordVoiceBackend | None = None
    if config.discord_token:
        voice_backend = DiscordVoiceBackend(token=config.discord_token)
        await voice_backend.start()
    else:
        log_event({
            "level": "warning",
            "event_type": "VOICE_BACKEND_DISABLED",
            "reason": "DISCORD_TOKEN not set",
        })

    if voice_backend is not None:
        app.state.registry = build_registry(
            config=config,
            http_client=http_client,
            voice_backend=voice_backend,
        )

    try:
        yield
    finally:
        registry: ConnectionRegistry | None = app.state.registry
        if registry is not None:
            await registry.close_all()
        if voice_backend is not None:
            await voice_backend.close()
        await http_client.aclose()


def build_http_client(config: AppConfig) -> httpx.AsyncClient:
    """Build the process-wide client used for status reports."""
    return httpx.AsyncClient(timeout=config.status_timeout_s)


def build_registry(
    *,
    config: AppConfig,
    http_client: httpx.AsyncClient,
    voice_backend: VoiceBackendProtocol,
) -> ConnectionRegistry:
    """Registry whose gateways share the app's config, client and backend."""
    return ConnectionRegistry(
        gateway_factory=partial(
            AgentGateway,
            config=config,
            voice_backend=voice_backend,
            http_client=http_client,
        )
    )
