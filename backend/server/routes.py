"""
Route registration for the relay control API.

Responsibilities:
- Define HTTP endpoints
- Open and close agent connections through the registry
- Pull dependencies from app.state
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel, Field
from websockets.exceptions import WebSocketException

from adapters.playback.discord_voice import VoiceChannelUnavailable
from connection.registry import (
    AgentAlreadyConnected,
    AgentNotConnected,
    ConnectionRegistry,
)
from observability.logger import log_event


class ConnectRequest(BaseModel):
    """Body of POST /connections."""
    agent_id: str = Field(min_length=1)
    agent_secret: str = Field(min_length=1)
    channel_id: str = Field(min_length=1)


def _registry(app: FastAPI) -> ConnectionRegistry:
    registry: ConnectionRegistry | None = getattr(app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="voice backend not configured")
    return registry


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/connections")
    async def list_connections() -> list[dict[str, Any]]: # pyright: ignore[reportUnusedFunction]
        return _registry(app).summaries()

    @app.post("/connections", status_code=201)
    async def open_connection(body: ConnectRequest) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        registry = _registry(app)

        try:
            gateway = await registry.connect(
                agent_id=body.agent_id,
                agent_secret=body.agent_secret,
                channel_id=body.channel_id,
            )
        except AgentAlreadyConnected as exc:
            raise HTTPException(status_code=409, detail="agent already connected") from exc
        except VoiceChannelUnavailable as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        except (OSError, WebSocketException) as exc:
            log_event({
                "level": "error",
                "event_type": "AGENT_CONNECT_FAILED",
                "agent_id": body.agent_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            raise HTTPException(status_code=502, detail="agent socket unreachable") from exc

        return gateway.summary()

    @app.delete("/connections/{agent_id}", status_code=204)
    async def close_connection(agent_id: str) -> Response: # pyright: ignore[reportUnusedFunction]
        try:
            await _registry(app).disconnect(agent_id)
        except AgentNotConnected as exc:
            raise HTTPException(status_code=404, detail="agent not connected") from exc
        return Response(status_code=204)
