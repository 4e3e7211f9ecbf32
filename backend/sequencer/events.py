"""
Unified event definitions for the playback sequencer reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Device lifecycle events carry the playback_id of the play command they
belong to, for stale gating.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Agent socket
    # ------------------------------------------------------------------
    AUTHENTICATION_REQUESTED = "AUTHENTICATION_REQUESTED"
    AUTHENTICATION_SUCCEEDED = "AUTHENTICATION_SUCCEEDED"
    INTERRUPT = "INTERRUPT"
    SAY_CHUNK = "SAY_CHUNK"
    CONNECTION_CLOSED = "CONNECTION_CLOSED"

    # ------------------------------------------------------------------
    # Playback device lifecycle
    # ------------------------------------------------------------------
    DEVICE_PLAYING = "DEVICE_PLAYING"
    DEVICE_IDLE = "DEVICE_IDLE"
    DEVICE_AUTO_PAUSED = "DEVICE_AUTO_PAUSED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class DeviceEvent(Event):
    """
    Base class for playback device lifecycle events.

    The reducer MUST ignore device events whose playback_id does not
    match the most recently issued play command.
    """

    playback_id: int


# =============================================================================
# Agent Socket Events
# =============================================================================

@dataclass(frozen=True)
class AuthenticationRequested(Event):
    """Agent service challenged the connection for its secret."""


@dataclass(frozen=True)
class AuthenticationSucceeded(Event):
    """Agent service accepted the secret."""


@dataclass(frozen=True)
class Interrupt(Event):
    """Agent requested that current speech stop immediately."""


@dataclass(frozen=True)
class SayChunk(Event):
    """
    One chunk of an utterance.

    audio_src is None for acknowledgement-only chunks.
    final marks the last chunk of the utterance, with or without audio.
    """
    message_id: str
    sequence: int
    audio_src: str | None = None
    final: bool = False


@dataclass(frozen=True)
class ConnectionClosed(Event):
    """Agent socket closed; the connection is being torn down."""
    reason: str | None = None


# =============================================================================
# Device Events
# =============================================================================

@dataclass(frozen=True)
class DevicePlaying(DeviceEvent):
    """Device started rendering a resource."""


@dataclass(frozen=True)
class DeviceIdle(DeviceEvent):
    """
    Device finished (or was stopped, or failed) rendering a resource.

    error carries the device-reported failure, if any.
    """
    error: str | None = None


@dataclass(frozen=True)
class DeviceAutoPaused(DeviceEvent):
    """Device paused itself (e.g. no listeners left in the channel)."""
