"""
Runtime execution context.

Provides Runtime with live access to connection-owned imperative resources
needed for command execution and side effects (device, transport, status).

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero sequencing logic
- Zero state mutation
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from connection.connection_status import ConnectionStatus

if TYPE_CHECKING:
    from connection.agent_connection import AgentConnection


# ---------------------------------------------------------------------
# Collaborator Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class PlaybackDeviceProtocol(Protocol):
    """
    One-resource-at-a-time audio player.

    Contract:
    - play() returns immediately; the device later emits exactly one
      DeviceIdle(playback_id) for it (on finish, stop, or failure)
    - stop() is synchronous and safe to call while idle
    - lifecycle events are delivered through the emitter the device was
      built with, never by calling the reducer
    """

    def play(self, *, playback_id: int, src: str) -> None: ...

    def stop(self) -> None: ...

    def is_playing(self) -> bool: ...

    async def close(self) -> None: ...


@runtime_checkable
class AgentTransportProtocol(Protocol):
    """Outbound half of the agent socket."""

    async def send_json(self, message: dict[str, Any]) -> None: ...


@runtime_checkable
class StatusReporterProtocol(Protocol):
    """
    Fire-and-forget idle notification.

    Implementations must catch and log their own failures.
    """

    async def report_idle(self, *, message_id: str | None = None) -> None: ...


# ---------------------------------------------------------------------
# Runtime Execution Context
# ---------------------------------------------------------------------

class RuntimeExecutionContext:
    """
    Imperative execution context for Runtime.

    This object provides *live views* into connection-owned resources
    so Runtime does not need to synchronize or cache anything.

    Runtime is allowed to:
    - Command the device
    - Send over the transport
    - Trigger status reports
    - Observe connection state

    Runtime is NOT allowed to:
    - Mutate connection state directly
    - Own the socket's lifecycle
    """

    def __init__(self, connection: AgentConnection) -> None:
        self.connection = connection

    # ----------------------------
    # Connection metadata
    # ----------------------------

    @property
    def agent_id(self) -> str:
        return self.connection.agent_id

    @property
    def agent_secret(self) -> str:
        return self.connection.agent_secret

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.connection.connection_status

    # ----------------------------
    # Collaborators
    # ----------------------------

    @property
    def device(self) -> PlaybackDeviceProtocol | None:
        return self.connection.device

    @property
    def transport(self) -> AgentTransportProtocol:
        return self.connection

    @property
    def status_reporter(self) -> StatusReporterProtocol | None:
        return self.connection.status_reporter
