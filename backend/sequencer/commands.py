"""
Side-effect command definitions for the playback sequencer.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Agent socket
    SEND_AUTHENTICATION_RESPONSE = "SEND_AUTHENTICATION_RESPONSE"

    # Playback device
    PLAY_AUDIO = "PLAY_AUDIO"
    STOP_PLAYBACK = "STOP_PLAYBACK"

    # Remote status
    REPORT_IDLE = "REPORT_IDLE"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Agent Socket Commands
# =============================================================================

@dataclass(frozen=True)
class SendAuthenticationResponse(Command):
    """
    Answer the agent's authentication challenge.

    The secret is supplied by the runtime; it never enters reducer state.
    """
    command_type: CommandType = CommandType.SEND_AUTHENTICATION_RESPONSE


# =============================================================================
# Playback Commands
# =============================================================================

@dataclass(frozen=True)
class PlayAudio(Command):
    """
    Request that the device render one audio resource.

    Returns immediately; completion arrives later as DeviceIdle(playback_id).
    """
    playback_id: int
    message_id: str
    sequence: int
    src: str
    command_type: CommandType = CommandType.PLAY_AUDIO


@dataclass(frozen=True)
class StopPlayback(Command):
    """
    Stop the device synchronously, even mid-resource.

    Must take effect before the runtime processes the next event.
    """
    force: bool = True
    command_type: CommandType = CommandType.STOP_PLAYBACK


# =============================================================================
# Status Commands
# =============================================================================

@dataclass(frozen=True)
class ReportIdle(Command):
    """
    Notify the agent service that the agent has finished speaking.

    Fire-and-forget: outcome never re-enters the reducer.
    """
    message_id: str
    reason: str
    command_type: CommandType = CommandType.REPORT_IDLE


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
