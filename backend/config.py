"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No sequencing logic
- No protocol constants
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import STATUS_TIMEOUT_S_DEFAULT


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the registry and connection bootstrap code.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Remote agent service
    # ------------------------------------------------------------------

    agent_socket_url: str | None
    agent_api_endpoint: str | None
    status_timeout_s: float

    # ------------------------------------------------------------------
    # Voice platform
    # ------------------------------------------------------------------

    discord_token: str | None

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Missing agent service URLs are tolerated here; they are checked
        when a connection is actually requested.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            agent_socket_url=os.environ.get("AGENT_SOCKET_URL"),
            agent_api_endpoint=os.environ.get("AGENT_API_ENDPOINT"),
            status_timeout_s=float(
                os.environ.get("STATUS_TIMEOUT_S", STATUS_TIMEOUT_S_DEFAULT)
            ),

            discord_token=os.environ.get("DISCORD_TOKEN"),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
        )
