"""
Authoritative playback state enumeration.

Rules:
- This enum defines ONLY the sequencer control states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class PlaybackState(str, Enum):
    """
    Control states of a single agent connection's sequencer.

    IDLE:
        No active utterance.

    BUFFERING:
        An utterance is active and the device is idle; waiting for the
        chunk at the cursor.

    PLAYING:
        The device is rendering the chunk just before the cursor.
    """

    IDLE = "IDLE"
    BUFFERING = "BUFFERING"
    PLAYING = "PLAYING"
