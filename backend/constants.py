"""
CONSTANTS
---------
Single source of truth for behavioral constants of the relay.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers or wire strings elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Agent socket protocol (inbound message types)
# =============================================================================

MSG_REQUEST_AUTHENTICATION: Final[str] = "REQUEST_AUTHENTICATION"
MSG_AUTHENTICATION_SUCCESS: Final[str] = "AUTHENTICATION_SUCCESS"
MSG_INTERRUPT: Final[str] = "INTERRUPT"
MSG_SAY: Final[str] = "SAY"

# Known informational types that carry nothing for playback
MSG_INPUT: Final[str] = "INPUT"
MSG_SAY_FILLER: Final[str] = "SAY_FILLER"

IGNORED_MESSAGE_TYPES: Final[frozenset[str]] = frozenset({MSG_INPUT, MSG_SAY_FILLER})

# =============================================================================
# Agent socket protocol (outbound message types)
# =============================================================================

MSG_AUTHENTICATION_RESPONSE: Final[str] = "AUTHENTICATION_RESPONSE"
MSG_PING: Final[str] = "PING"

# Liveness ping, independent of sequencer state
PING_INTERVAL_MS: Final[int] = 25_000

# =============================================================================
# Sequencing
# =============================================================================

# First sequence number expected for every new utterance
INITIAL_CURSOR: Final[int] = 0

# =============================================================================
# Status reporting
# =============================================================================

STATUS_IDLE: Final[str] = "IDLE"
STATUS_API_KEY_HEADER: Final[str] = "x-api-key"
STATUS_TIMEOUT_S_DEFAULT: Final[float] = 10.0

# =============================================================================
# Playback (Discord voice)
# =============================================================================

FFMPEG_BEFORE_OPTIONS: Final[str] = (
    "-loglevel error -reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5"
)
FFMPEG_OPTIONS: Final[str] = "-vn"

# =============================================================================
# Helpers
# =============================================================================

def agent_socket_url(base_url: str, agent_id: str) -> str:
    """Websocket URL of the per-agent event socket."""
    return f"{base_url.rstrip('/')}/agents/{agent_id}/sockets"


def agent_status_url(endpoint: str, agent_id: str) -> str:
    """HTTP URL of the per-agent status endpoint."""
    return f"{endpoint.rstrip('/')}/agents/{agent_id}/status"


def agent_api_key(agent_id: str, agent_secret: str) -> str:
    """API key derived from agent identity and secret."""
    return f"{agent_id}:{agent_secret}"
