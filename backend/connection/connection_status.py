"""
Connection status tracking for agent connections.

Connection lifecycle is tracked separately from the sequencer state machine.
connection_status: DOWN | CONNECTING | AUTHENTICATING | UP

This is pure data owned by AgentConnection, not by sequencer state.
"""
from enum import Enum

class ConnectionStatus(Enum):
    """
    Agent socket lifecycle status.

    Separate from and independent of PlaybackState.
    IDLE playback can occur with any ConnectionStatus.
    """
    DOWN = "DOWN"                      # Not connected, or torn down
    CONNECTING = "CONNECTING"          # Opening the websocket
    AUTHENTICATING = "AUTHENTICATING"  # Socket open, challenge not yet confirmed
    UP = "UP"                          # Authenticated and relaying
