"""
Agent gateway.

Responsibilities:
- Owns AgentConnection lifecycle (open, receive loop, ping loop, teardown)
- Tracks connection_status independently of sequencer state
- Routes inbound JSON frames -> sequencer events
- Logs and drops malformed or unrecognized frames
- Forwards events into the runtime queue

NOT responsible for:
- Executing commands
- Any sequencing decision
- Reconnecting after the socket closes
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Protocol, TYPE_CHECKING

import httpx
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed as WebSocketClosed

from adapters.status.http_status import HttpStatusReporter
from connection.agent_connection import AgentConnection
from connection.connection_status import ConnectionStatus
from constants import PING_INTERVAL_MS, agent_socket_url
from observability.logger import log_event
from protocol.agent_messages import (
    AgentProtocolError,
    decode_event,
    encode_ping,
    is_ignored_type,
    parse_agent_message,
)
from sequencer.events import AuthenticationSucceeded, Event
from sequencer.runtime import Runtime
from sequencer.runtime_context import PlaybackDeviceProtocol, RuntimeExecutionContext
from sequencer.state_dataclass import SequencerState

if TYPE_CHECKING:
    from config import AppConfig


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class VoiceBackendProtocol(Protocol):
    """Source of playback devices bound to a voice channel."""

    async def open_device(
        self,
        *,
        channel_id: str,
        emit_event: Callable[[Event], None],
    ) -> PlaybackDeviceProtocol: ...


SocketConnector = Callable[[str], Awaitable[Any]]


# ------------------------------------------------------------------
# AgentGateway
# ------------------------------------------------------------------

class AgentGateway:
    """
    One gateway == one agent connection == one sequencer.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        agent_id: str,
        agent_secret: str,
        channel_id: str,
        voice_backend: VoiceBackendProtocol,
        http_client: httpx.AsyncClient,
        on_closed: Callable[[AgentGateway], None] | None = None,
        socket_connector: SocketConnector | None = None,
    ) -> None:
        self._config = config
        self._voice_backend = voice_backend
        self._http_client = http_client
        self._on_closed = on_closed
        self._socket_connector: SocketConnector = socket_connector or ws_connect

        self.connection = AgentConnection(
            agent_id=agent_id,
            agent_secret=agent_secret,
            channel_id=channel_id,
        )

        self._recv_task: asyncio.Task[None] | None = None
        self._ping_task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def agent_id(self) -> str:
        return self.connection.agent_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """
        Open the agent socket and wire the sequencer.

        Raises on socket or device failure; nothing is left running.
        """
        conn = self.connection
        if not self._config.agent_socket_url:
            raise RuntimeError("AGENT_SOCKET_URL is not configured")
        if not self._config.agent_api_endpoint:
            raise RuntimeError("AGENT_API_ENDPOINT is not configured")

        url = agent_socket_url(self._config.agent_socket_url, conn.agent_id)
        conn.connection_status = ConnectionStatus.CONNECTING
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "AGENT_CONNECTING",
            **conn.log_context(),
        })

        runtime = Runtime(
            initial_state=SequencerState(),
            context=RuntimeExecutionContext(conn),
        )

        try:
            conn.websocket = await self._socket_connector(url)
            device = await self._voice_backend.open_device(
                channel_id=conn.channel_id,
                emit_event=runtime.emit_threadsafe,
            )
        except Exception:
            conn.connection_status = ConnectionStatus.DOWN
            if conn.websocket is not None:
                await conn.websocket.close()
                conn.websocket = None
            raise

        conn.attach_device(device)
        conn.attach_status_reporter(
            HttpStatusReporter(
                client=self._http_client,
                endpoint=self._config.agent_api_endpoint,
                agent_id=conn.agent_id,
                agent_secret=conn.agent_secret,
            )
        )
        conn.attach_runtime(runtime)
        conn.connection_status = ConnectionStatus.AUTHENTICATING

        runtime.start()
        self._recv_task = asyncio.create_task(self._receive_loop())
        self._ping_task = asyncio.create_task(self._ping_loop())

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "AGENT_CONNECTED",
            **conn.log_context(),
        })

    async def close(self, reason: str | None = None) -> None:
        """
        Tear the connection down. Idempotent.

        Order: stop pinging, interrupt and drain the sequencer, close the
        socket, release the device.
        """
        if self._closing:
            return
        self._closing = True

        conn = self.connection

        if self._ping_task is not None:
            self._ping_task.cancel()
            await asyncio.gather(self._ping_task, return_exceptions=True)

        if conn.runtime is not None:
            await conn.runtime.shutdown(reason=reason)

        if self._recv_task is not None and self._recv_task is not asyncio.current_task():
            self._recv_task.cancel()
            await asyncio.gather(self._recv_task, return_exceptions=True)

        if conn.websocket is not None:
            await conn.websocket.close()

        if conn.device is not None:
            await conn.device.close()

        conn.connection_status = ConnectionStatus.DOWN

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "AGENT_DISCONNECTED",
            **conn.log_context(),
            "reason": reason,
        })

        if self._on_closed is not None:
            self._on_closed(self)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def on_message(self, payload: str | bytes) -> None:
        """Route one inbound frame to the runtime queue."""
        conn = self.connection

        try:
            data = parse_agent_message(payload)
            event = decode_event(data, ts_ms=_now_ms())
        except AgentProtocolError as e:
            log_event({
                "ts_ms": _now_ms(),
                "level": "error",
                "event_type": "AGENT_MESSAGE_DECODE_ERROR",
                **conn.log_context(),
                "error": str(e),
                "payload_preview": _preview(payload),
            })
            return

        if event is None:
            msg_type = data["type"]
            if is_ignored_type(msg_type):
                log_event({
                    "ts_ms": _now_ms(),
                    "level": "debug",
                    "event_type": "AGENT_MESSAGE_IGNORED",
                    **conn.log_context(),
                    "msg_type": msg_type,
                })
            else:
                log_event({
                    "ts_ms": _now_ms(),
                    "level": "warning",
                    "event_type": "AGENT_MESSAGE_UNHANDLED",
                    **conn.log_context(),
                    "msg_type": msg_type,
                })
            return

        if isinstance(event, AuthenticationSucceeded):
            conn.connection_status = ConnectionStatus.UP

        runtime = conn.runtime
        assert runtime is not None, "Runtime must exist before dispatch"
        await runtime.submit(event)

    async def _receive_loop(self) -> None:
        ws = self.connection.websocket
        reason = "socket_closed"
        try:
            async for payload in ws:
                await self.on_message(payload)
        except WebSocketClosed as e:
            reason = f"socket_error: {e}"
        except asyncio.CancelledError:
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            # A dead receive loop must never leave the connection half-open
            log_event({
                "ts_ms": _now_ms(),
                "level": "error",
                "event_type": "AGENT_RECEIVE_FAILED",
                **self.connection.log_context(),
                "exception": type(e).__name__,
                "message": str(e)[:200],
            })
            reason = f"receive_error: {type(e).__name__}"

        await self.close(reason=reason)

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    async def _ping_loop(self) -> None:
        """Send PING on a fixed interval, independent of playback state."""
        try:
            while True:
                await asyncio.sleep(PING_INTERVAL_MS / 1000.0)
                await self.connection.send_json(encode_ping())
        except asyncio.CancelledError:
            return

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def summary(self) -> dict[str, Any]:
        return self.connection.summary()


def _preview(payload: str | bytes) -> str:
    if isinstance(payload, bytes):
        return payload[:100].decode("utf-8", errors="replace")
    return payload[:100]
