"""
Authoritative sequencer state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
- Secrets and sockets never live here.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from constants import INITIAL_CURSOR
from sequencer.buffer import UtteranceBuffer
from sequencer.enums.state import PlaybackState


@dataclass(frozen=True)
class CompletedUtterance:
    """Identity and final cursor of the most recently completed utterance."""
    message_id: str
    cursor: int


@dataclass(frozen=True)
class SequencerState:
    """Immutable snapshot of all sequencer-owned state for one connection."""

    # ------------------------------------------------------------------
    # Control state
    # ------------------------------------------------------------------
    state: PlaybackState = PlaybackState.IDLE
    authenticated: bool = False

    # ------------------------------------------------------------------
    # Active utterance
    # ------------------------------------------------------------------
    active_message_id: str | None = None

    # Next sequence number to play for the active utterance
    cursor: int = INITIAL_CURSOR

    # True once any chunk of the active utterance carried the final marker
    final_seen: bool = False

    buffer: UtteranceBuffer = field(default_factory=UtteranceBuffer)

    # Set on completion, cleared on interrupt. Lets late chunks of a
    # completed utterance continue at its cursor instead of restarting at 0.
    last_completed: CompletedUtterance | None = None

    # ------------------------------------------------------------------
    # Playback device
    # ------------------------------------------------------------------

    # True between PlayAudio and the matching DeviceIdle
    device_busy: bool = False

    # Monotonic tag of the most recent PlayAudio; 0 means none issued yet
    playback_id: int = 0
