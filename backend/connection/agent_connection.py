"""
Agent connection container.

- One per agent instance
- Owns connection status (mutable, gateway-controlled)
- Holds the runtime, playback device and status reporter
- Owned and mutated by AgentGateway
- NOT a state machine
- Contains no sequencing logic
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any

from websockets.exceptions import ConnectionClosed as WebSocketClosed

from connection.connection_status import ConnectionStatus
from observability.logger import log_event
from sequencer.runtime import Runtime


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass
class AgentConnection:
    """Mutable runtime container for a single agent connection."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    agent_id: str
    agent_secret: str = field(repr=False)
    channel_id: str
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Gateway-controlled state
    # ------------------------------------------------------------------

    connection_status: ConnectionStatus = ConnectionStatus.DOWN
    websocket: Any = None  # Type: websockets ClientConnection in practice

    # ------------------------------------------------------------------
    # Runtime + collaborators
    # ------------------------------------------------------------------

    runtime: Runtime | None = None
    device: Any = None  # Type: PlaybackDeviceProtocol in practice
    status_reporter: Any = None  # Type: StatusReporterProtocol in practice

    # ------------------------------------------------------------------
    # Wiring helpers (called by AgentGateway)
    # ------------------------------------------------------------------

    def attach_device(self, device: Any) -> None:
        """Attach the playback device for this connection's channel."""
        self.device = device

    def attach_status_reporter(self, reporter: Any) -> None:
        """Attach the idle status reporter."""
        self.status_reporter = reporter

    def attach_runtime(self, runtime: Runtime) -> None:
        """
        Attach the runtime executor.

        Must be called after the device and reporter are attached.
        """
        self.runtime = runtime

    # ------------------------------------------------------------------
    # Transport (AgentTransportProtocol)
    # ------------------------------------------------------------------

    async def send_json(self, message: dict[str, Any]) -> None:
        """
        Send one JSON frame to the agent socket.

        A closed socket is logged and otherwise ignored; teardown is driven
        by the receive loop, not by senders.
        """
        ws = self.websocket
        if ws is None:
            log_event({
                "ts_ms": _now_ms(),
                "level": "warning",
                "event_type": "AGENT_SEND_WITHOUT_SOCKET",
                **self.log_context(),
                "message_type": message.get("type"),
            })
            return

        try:
            await ws.send(json.dumps(message))
        except WebSocketClosed as e:
            log_event({
                "ts_ms": _now_ms(),
                "level": "warning",
                "event_type": "AGENT_SEND_FAILED",
                **self.log_context(),
                "message_type": message.get("type"),
                "error": str(e),
            })

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this connection."""
        return {
            "agent_id": self.agent_id,
            "channel_id": self.channel_id,
            "connection_status": self.connection_status.value,
        }

    def summary(self) -> dict[str, Any]:
        """Read-only snapshot for the control API."""
        state = self.runtime.state if self.runtime is not None else None
        return {
            "agent_id": self.agent_id,
            "channel_id": self.channel_id,
            "connection_status": self.connection_status.value,
            "playback_state": state.state.value if state is not None else None,
            "active_message_id": state.active_message_id if state is not None else None,
            "authenticated": state.authenticated if state is not None else False,
        }
