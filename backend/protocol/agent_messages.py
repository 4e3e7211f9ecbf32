"""
JSON message codec for the agent event socket.

Inbound (agent → relay), `type` discriminator:
    {"type": "REQUEST_AUTHENTICATION"}
    {"type": "AUTHENTICATION_SUCCESS"}
    {"type": "INTERRUPT"}
    {"type": "SAY", "messageId": str, "sequence": int,
     "audio": {"src": str}?, "final": bool?}

Outbound (relay → agent):
    {"type": "AUTHENTICATION_RESPONSE", "authSecret": str}
    {"type": "PING"}

Usage example:

    data = parse_agent_message(raw)
    event = decode_event(data, ts_ms=now_ms)
    if event is None:
        # informational or unknown type; nothing for the sequencer
        ...
"""

from __future__ import annotations

import json
from typing import Any

from constants import (
    IGNORED_MESSAGE_TYPES,
    MSG_AUTHENTICATION_RESPONSE,
    MSG_AUTHENTICATION_SUCCESS,
    MSG_INTERRUPT,
    MSG_PING,
    MSG_REQUEST_AUTHENTICATION,
    MSG_SAY,
)
from sequencer.events import (
    AuthenticationRequested,
    AuthenticationSucceeded,
    Event,
    EventType,
    Interrupt,
    SayChunk,
)


# -------------------------
# Exceptions
# -------------------------

class AgentProtocolError(Exception):
    """Base class for agent socket protocol errors."""


class InvalidJSON(AgentProtocolError):
    """
    Raised when a frame is not valid UTF-8 JSON.

    The frame is unsafe to process and must be dropped.
    """


class InvalidMessageShape(AgentProtocolError):
    """Raised when a frame is JSON but not an object with a string `type`."""


class InvalidSayChunk(AgentProtocolError):
    """
    Raised when a SAY frame lacks a usable messageId or sequence, or
    carries ill-typed audio/final fields.

    Accepting it would break ordering or cursor advancement.
    """


# -------------------------
# Inbound
# -------------------------

def parse_agent_message(payload: str | bytes) -> dict[str, Any]:
    """
    Parse one raw socket frame into a message object.

    Raises AgentProtocolError subclasses on malformed input.
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidJSON(f"Frame is not UTF-8: {e}") from e

    try:
        data = json.loads(payload)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError, over-long integers and over-deep nesting
        raise InvalidJSON(f"Frame is not JSON: {e}") from e

    if not isinstance(data, dict):
        raise InvalidMessageShape(f"Expected JSON object, got {type(data).__name__}")

    if not isinstance(data.get("type"), str):
        raise InvalidMessageShape("Missing or non-string 'type'")

    return data


def is_ignored_type(msg_type: str) -> bool:
    """Known informational types that carry nothing for playback."""
    return msg_type in IGNORED_MESSAGE_TYPES


def decode_say_chunk(data: dict[str, Any], *, ts_ms: int) -> SayChunk:
    """Validate and convert a SAY message."""
    message_id = data.get("messageId")
    if not isinstance(message_id, str) or not message_id:
        raise InvalidSayChunk(f"Invalid messageId: {message_id!r}")

    sequence = data.get("sequence")
    # bool is an int subclass; reject it explicitly
    if not isinstance(sequence, int) or isinstance(sequence, bool) or sequence < 0:
        raise InvalidSayChunk(f"Invalid sequence: {sequence!r}")

    audio = data.get("audio")
    audio_src: str | None = None
    if audio is not None:
        if not isinstance(audio, dict):
            raise InvalidSayChunk(f"Invalid audio: {audio!r}")
        src = audio.get("src")
        if src is not None and not isinstance(src, str):
            raise InvalidSayChunk(f"Invalid audio.src: {src!r}")
        audio_src = src or None

    final = data.get("final", False)
    if final is None:
        final = False
    if not isinstance(final, bool):
        raise InvalidSayChunk(f"Invalid final: {final!r}")

    return SayChunk(
        event_type=EventType.SAY_CHUNK,
        ts_ms=ts_ms,
        message_id=message_id,
        sequence=sequence,
        audio_src=audio_src,
        final=final,
    )


def decode_event(data: dict[str, Any], *, ts_ms: int) -> Event | None:
    """
    Convert a parsed message into a sequencer event.

    Returns None for informational and unrecognized types.
    """
    msg_type = data["type"]

    if msg_type == MSG_REQUEST_AUTHENTICATION:
        return AuthenticationRequested(
            event_type=EventType.AUTHENTICATION_REQUESTED, ts_ms=ts_ms
        )
    if msg_type == MSG_AUTHENTICATION_SUCCESS:
        return AuthenticationSucceeded(
            event_type=EventType.AUTHENTICATION_SUCCEEDED, ts_ms=ts_ms
        )
    if msg_type == MSG_INTERRUPT:
        return Interrupt(event_type=EventType.INTERRUPT, ts_ms=ts_ms)
    if msg_type == MSG_SAY:
        return decode_say_chunk(data, ts_ms=ts_ms)

    return None


# -------------------------
# Outbound
# -------------------------

def encode_authentication_response(auth_secret: str) -> dict[str, Any]:
    return {"type": MSG_AUTHENTICATION_RESPONSE, "authSecret": auth_secret}


def encode_ping() -> dict[str, Any]:
    return {"type": MSG_PING}
