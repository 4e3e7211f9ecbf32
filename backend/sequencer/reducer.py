"""
Pure playback sequencer reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).
"""

# Invariants:
# - At most one utterance is active; chunks of any other message_id are dropped
#   on the next utterance switch or interrupt.
# - PlayAudio is emitted only while device_busy is False, and sets it True.
# - device_busy is cleared only by a DeviceIdle for the current playback_id,
#   or by the interrupt procedure (which also emits StopPlayback).
# - ReportIdle is emitted exactly once per completed utterance, never on interrupt.

from __future__ import annotations

from dataclasses import replace
from typing import Any

from constants import INITIAL_CURSOR
from sequencer.buffer import Chunk, UtteranceBuffer
from sequencer.commands import (
    Command,
    LogEvent,
    PlayAudio,
    ReportIdle,
    SendAuthenticationResponse,
    StopPlayback,
)
from sequencer.enums.state import PlaybackState
from sequencer.events import (
    AuthenticationRequested,
    AuthenticationSucceeded,
    ConnectionClosed,
    DeviceAutoPaused,
    DeviceIdle,
    DevicePlaying,
    Event,
    Interrupt,
    SayChunk,
)
from sequencer.state_dataclass import CompletedUtterance, SequencerState


Result = tuple[SequencerState, tuple[Command, ...]]


# =============================================================================
# Completion / interrupt reasons
# =============================================================================

REASON_FINAL_CHUNK = "final_chunk"
REASON_EXHAUSTED = "exhausted"

SOURCE_EXPLICIT = "explicit_interrupt"
SOURCE_NEW_MESSAGE = "new_message_id"
SOURCE_CONNECTION_CLOSED = "connection_closed"


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: SequencerState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
    *,
    level: str = "info",
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "level": level,
            "state": state.state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "message_id": state.active_message_id,
            "cursor": state.cursor,
            "playback_id": state.playback_id,
            "buffered": len(state.buffer),
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(state: SequencerState, event: Event, reason: str) -> Result:
    return state, (_log(state, event, "ignore", {"reason": reason}, level="debug"),)


def _chunk_from(event: SayChunk) -> Chunk:
    return Chunk(
        message_id=event.message_id,
        sequence=event.sequence,
        audio_src=event.audio_src or None,
        final=event.final,
    )


# =============================================================================
# Interrupt procedure
# =============================================================================

def _interrupt(
    state: SequencerState,
    event: Event,
    source: str,
) -> tuple[SequencerState, list[Command]]:
    """
    Drop the active utterance and every buffered chunk, reset the cursor,
    and force the device to stop.

    StopPlayback is always emitted; stopping an idle device is a no-op.
    playback_id is NOT bumped: a late DeviceIdle for the stopped resource
    finds device_busy False and is ignored.
    """
    new_state = replace(
        state,
        state=PlaybackState.IDLE,
        active_message_id=None,
        cursor=INITIAL_CURSOR,
        final_seen=False,
        buffer=UtteranceBuffer(),
        last_completed=None,
        device_busy=False,
    )
    cmds: list[Command] = [
        StopPlayback(force=True),
        _log(
            new_state,
            event,
            "interrupt",
            {
                "source": source,
                "interrupted_message_id": state.active_message_id,
                "dropped_chunks": len(state.buffer),
                "was_playing": state.device_busy,
            },
        ),
    ]
    return new_state, cmds


# =============================================================================
# Completion
# =============================================================================

def _complete(
    state: SequencerState,
    event: Event,
    reason: str,
) -> tuple[SequencerState, list[Command]]:
    """
    Finish the active utterance: notify once, destroy it, go IDLE.
    """
    message_id = state.active_message_id
    assert message_id is not None, "completion without an active utterance"

    new_state = replace(
        state,
        state=PlaybackState.IDLE,
        active_message_id=None,
        cursor=INITIAL_CURSOR,
        final_seen=False,
        buffer=UtteranceBuffer(),
        last_completed=CompletedUtterance(message_id=message_id, cursor=state.cursor),
    )
    return new_state, [
        ReportIdle(message_id=message_id, reason=reason),
        _log(
            new_state,
            event,
            "utterance_complete",
            {"completed_message_id": message_id, "reason": reason, "final_cursor": state.cursor},
        ),
    ]


# =============================================================================
# Advance algorithm
# =============================================================================

def _advance(
    state: SequencerState,
    event: Event,
) -> tuple[SequencerState, list[Command]]:
    """
    Decide what to do with the chunk at the cursor.

    Only runs while an utterance is active and the device is idle.
    Loops over acknowledgement-only chunks; stops at the first play,
    gap, or completion.
    """
    cmds: list[Command] = []

    while state.active_message_id is not None and not state.device_busy:
        message_id = state.active_message_id
        chunk = state.buffer.get(message_id, state.cursor)

        if chunk is None:
            if state.buffer.has_pending_after(message_id, state.cursor):
                state = replace(state, state=PlaybackState.BUFFERING)
                cmds.append(
                    _log(
                        state,
                        event,
                        "await_gap",
                        {"pending": list(state.buffer.sequences(message_id))},
                        level="debug",
                    )
                )
                return state, cmds

            state, more = _complete(state, event, REASON_EXHAUSTED)
            return state, cmds + more

        consumed = replace(
            state,
            cursor=state.cursor + 1,
            buffer=state.buffer.without(message_id, chunk.sequence),
        )

        if chunk.playable:
            assert chunk.audio_src is not None
            playback_id = state.playback_id + 1
            state = replace(
                consumed,
                state=PlaybackState.PLAYING,
                device_busy=True,
                playback_id=playback_id,
            )
            cmds.append(
                PlayAudio(
                    playback_id=playback_id,
                    message_id=message_id,
                    sequence=chunk.sequence,
                    src=chunk.audio_src,
                )
            )
            cmds.append(
                _log(state, event, "play_chunk", {"sequence": chunk.sequence})
            )
            return state, cmds

        if not chunk.final:
            state = consumed
            cmds.append(
                _log(
                    state,
                    event,
                    "skip_ack_chunk",
                    {"sequence": chunk.sequence},
                    level="debug",
                )
            )
            continue

        state, more = _complete(consumed, event, REASON_FINAL_CHUNK)
        return state, cmds + more

    return state, cmds


# =============================================================================
# Event handlers
# =============================================================================

def _adopt(state: SequencerState, event: SayChunk) -> SequencerState:
    """
    Make event.message_id the active utterance.

    A late chunk of the utterance that just completed continues at that
    utterance's final cursor; anything else starts at INITIAL_CURSOR.
    """
    cursor = INITIAL_CURSOR
    last = state.last_completed
    if last is not None and last.message_id == event.message_id:
        cursor = last.cursor

    return replace(
        state,
        state=PlaybackState.BUFFERING,
        active_message_id=event.message_id,
        cursor=cursor,
        final_seen=False,
        buffer=UtteranceBuffer(),
        last_completed=None,
    )


def _on_say_chunk(state: SequencerState, event: SayChunk) -> Result:
    cmds: list[Command] = []

    # Late chunk of an already completed utterance
    last = state.last_completed
    if (
        state.active_message_id is None
        and last is not None
        and last.message_id == event.message_id
        and event.sequence < last.cursor
    ):
        return state, (
            _log(
                state,
                event,
                "stale_chunk_dropped",
                {"sequence": event.sequence, "completed_cursor": last.cursor},
                level="debug",
            ),
        )

    # Implicit interrupt by replacement
    if (
        state.active_message_id is not None
        and state.active_message_id != event.message_id
    ):
        state, more = _interrupt(state, event, SOURCE_NEW_MESSAGE)
        cmds.extend(more)

    if state.active_message_id is None:
        state = _adopt(state, event)
        cmds.append(
            _log(
                state,
                event,
                "utterance_started",
                {"sequence": event.sequence},
            )
        )

    message_id = state.active_message_id
    assert message_id is not None

    if event.final and not state.final_seen:
        state = replace(state, final_seen=True)

    if event.sequence < state.cursor:
        cmds.append(
            _log(
                state,
                event,
                "stale_chunk_dropped",
                {"sequence": event.sequence},
                level="debug",
            )
        )
        return state, _logs_last(tuple(cmds))

    if state.buffer.contains(message_id, event.sequence):
        # First write wins
        cmds.append(
            _log(
                state,
                event,
                "duplicate_chunk_dropped",
                {"sequence": event.sequence, "final": event.final},
                level="warning",
            )
        )
        return state, _logs_last(tuple(cmds))

    state = replace(state, buffer=state.buffer.with_chunk(_chunk_from(event)))
    cmds.append(
        _log(
            state,
            event,
            "chunk_buffered",
            {
                "sequence": event.sequence,
                "has_audio": event.audio_src is not None,
                "final": event.final,
            },
            level="debug",
        )
    )

    if state.state is PlaybackState.BUFFERING:
        state, more = _advance(state, event)
        cmds.extend(more)

    return state, _logs_last(tuple(cmds))


def _on_device_idle(state: SequencerState, event: DeviceIdle) -> Result:
    if event.playback_id != state.playback_id:
        return _ignore(state, event, "device_idle_stale")

    if not state.device_busy:
        return _ignore(state, event, "device_not_busy")

    state = replace(
        state,
        device_busy=False,
        state=(
            PlaybackState.BUFFERING
            if state.active_message_id is not None
            else PlaybackState.IDLE
        ),
    )

    cmds: list[Command] = []
    if event.error:
        cmds.append(
            _log(state, event, "playback_error", {"error": event.error}, level="warning")
        )

    state, more = _advance(state, event)
    cmds.extend(more)
    return state, _logs_last(tuple(cmds))


# =============================================================================
# Reducer entrypoint
# =============================================================================

def _reduce(state: SequencerState, event: Event) -> Result:
    if isinstance(event, SayChunk):
        return _on_say_chunk(state, event)

    if isinstance(event, DeviceIdle):
        return _on_device_idle(state, event)

    if isinstance(event, Interrupt):
        new_state, cmds = _interrupt(state, event, SOURCE_EXPLICIT)
        return new_state, _logs_last(tuple(cmds))

    if isinstance(event, ConnectionClosed):
        new_state, cmds = _interrupt(state, event, SOURCE_CONNECTION_CLOSED)
        cmds.append(_log(new_state, event, "connection_closed", {"reason": event.reason}))
        return new_state, _logs_last(tuple(cmds))

    if isinstance(event, AuthenticationRequested):
        return state, (
            SendAuthenticationResponse(),
            _log(state, event, "authenticating"),
        )

    if isinstance(event, AuthenticationSucceeded):
        new_state = replace(state, authenticated=True)
        return new_state, (_log(new_state, event, "authenticated"),)

    if isinstance(event, DevicePlaying):
        return state, (
            _log(state, event, "device_playing", {"device_playback_id": event.playback_id}, level="debug"),
        )

    if isinstance(event, DeviceAutoPaused):
        return state, (
            _log(state, event, "device_auto_paused", {"device_playback_id": event.playback_id}),
        )

    return _ignore(state, event, "unhandled_event")


def reduce(state: SequencerState, event: Event) -> Result:
    """
    Pure reducer for the playback sequencer.

    Given the current sequencer state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (state, event) pair is handled or explicitly ignored
    - Stale-safe: ignores device events for superseded playback ids
    """
    new_state, cmds = _reduce(state, event)

    if new_state.state is not state.state:
        cmds = cmds + (
            _log(
                new_state,
                event,
                "state_changed",
                {
                    "from_state": state.state.value,
                    "to_state": new_state.state.value,
                },
            ),
        )

    return new_state, cmds
