"""
Runtime execution shell for a single agent connection.

Responsibilities:
- Own sequencer state
- Serialize every event (socket, device, teardown) through one queue
- Call the pure reducer once per event
- Execute commands with side effects (device, transport, status)

Non-responsibilities:
- Socket lifecycle, pings, message decoding (AgentGateway)
- Any sequencing decision (reducer)
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from protocol.agent_messages import encode_authentication_response
from sequencer.commands import (
    Command,
    LogEvent,
    PlayAudio,
    ReportIdle,
    SendAuthenticationResponse,
    StopPlayback,
)
from sequencer.events import ConnectionClosed, DeviceIdle, Event, EventType
from sequencer.reducer import reduce
from sequencer.state_dataclass import SequencerState

from observability.logger import log_event


if TYPE_CHECKING:
    from sequencer.runtime_context import RuntimeExecutionContext


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class Runtime:
    """
    Runtime execution boundary for a single agent connection.

    Architectural role:
    Runtime is the bridge between the pure sequencing layer
    (reducer + immutable state) and the imperative world
    (playback device, agent socket, status endpoint, logging).

    Guarantees:
    - Events are consumed one at a time from a single queue
    - Reducer is called exactly once per dequeued event
    - All commands of an event complete before the next event is dequeued,
      so a StopPlayback is always visible before any later event
    - Play and status commands never block the queue
    """

    def __init__(
        self,
        *,
        initial_state: SequencerState,
        context: RuntimeExecutionContext,
    ) -> None:
        self._state = initial_state
        self._ctx = context
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def state(self) -> SequencerState:
        """
        Return the current immutable sequencer state.

        State is only replaced internally by Runtime via the reducer.
        Consumers must never modify this state directly.
        """
        return self._state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the single queue consumer. Must be called from the event loop."""
        if self._consumer is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._consumer = asyncio.create_task(self._consume())

    async def shutdown(self, reason: str | None = None) -> None:
        """
        Tear down the runtime.

        Enqueues ConnectionClosed (which interrupts playback), waits for the
        consumer to drain, then lets in-flight status reports finish.
        """
        if not self._closed:
            await self.submit(
                ConnectionClosed(
                    event_type=EventType.CONNECTION_CLOSED,
                    ts_ms=_now_ms(),
                    reason=reason,
                )
            )
            self._closed = True

        if self._consumer is not None:
            await asyncio.gather(self._consumer, return_exceptions=True)
            self._consumer = None

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ------------------------------------------------------------------
    # Event ingress
    # ------------------------------------------------------------------

    async def submit(self, event: Event) -> None:
        """Enqueue an event from the event loop thread."""
        if self._closed:
            log_event({
                "ts_ms": _now_ms(),
                "level": "debug",
                "event_type": "EVENT_AFTER_CLOSE_DROPPED",
                "agent_id": self._ctx.agent_id,
                "dropped_event": event.event_type.value,
            })
            return
        await self._queue.put(event)

    def submit_nowait(self, event: Event) -> None:
        """Enqueue an event without awaiting; event loop thread only."""
        if self._closed:
            return
        self._queue.put_nowait(event)

    def emit_threadsafe(self, event: Event) -> None:
        """
        Enqueue an event from any thread.

        Used by playback devices whose callbacks run on their own threads.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self.submit_nowait, event)

    async def drain(self) -> None:
        """Wait until every queued event has been processed."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Queue consumer
    # ------------------------------------------------------------------

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.handle_event(event)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "level": "error",
                    "event_type": "RUNTIME_EVENT_FAILED",
                    "agent_id": self._ctx.agent_id,
                    "failed_event": event.event_type.value,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
            finally:
                self._queue.task_done()

            if isinstance(event, ConnectionClosed):
                return

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the sequencing pipeline.

        1. Pass the current state and event to the pure reducer
        2. Swap in the new state
        3. Execute all emitted commands in order

        Only the queue consumer calls this, which is what serializes
        transitions for the connection.
        """
        new_state, commands = reduce(self._state, event)
        self._state = new_state

        for cmd in commands:
            await self._execute_command(cmd)

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "agent_id": self._ctx.agent_id,
                "connection_status": self._ctx.connection_status.value,
            })

        elif isinstance(cmd, SendAuthenticationResponse):
            await self._ctx.transport.send_json(
                encode_authentication_response(self._ctx.agent_secret)
            )

        elif isinstance(cmd, PlayAudio):
            device = self._ctx.device
            assert device is not None, "Playback device missing"
            try:
                device.play(playback_id=cmd.playback_id, src=cmd.src)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                # No lifecycle callback will follow a rejected play;
                # report it as an idle with error so the cursor moves on.
                error = f"{type(exc).__name__}: {exc}"
                log_event({
                    "ts_ms": _now_ms(),
                    "level": "error",
                    "event_type": "PLAYBACK_COMMAND_FAILED",
                    "agent_id": self._ctx.agent_id,
                    "playback_id": cmd.playback_id,
                    "message_id": cmd.message_id,
                    "sequence": cmd.sequence,
                    "error": error,
                })
                self.submit_nowait(
                    DeviceIdle(
                        event_type=EventType.DEVICE_IDLE,
                        ts_ms=_now_ms(),
                        playback_id=cmd.playback_id,
                        error=error,
                    )
                )

        elif isinstance(cmd, StopPlayback):
            device = self._ctx.device
            if device is not None:
                device.stop()

        elif isinstance(cmd, ReportIdle):
            reporter = self._ctx.status_reporter
            if reporter is None:
                log_event({
                    "ts_ms": _now_ms(),
                    "level": "warning",
                    "event_type": "STATUS_REPORTER_MISSING",
                    "agent_id": self._ctx.agent_id,
                    "message_id": cmd.message_id,
                })
                return

            task = asyncio.create_task(reporter.report_idle(message_id=cmd.message_id))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        else:
            log_event({
                "ts_ms": _now_ms(),
                "level": "warning",
                "event_type": "COMMAND_NOT_IMPLEMENTED",
                "agent_id": self._ctx.agent_id,
                "command_type": type(cmd).__name__,
            })
