"""
HTTP status reporter.

Tells the agent service that the agent has finished speaking:

    POST {endpoint}/agents/{agent_id}/status
    x-api-key: {agent_id}:{agent_secret}
    {"status": "IDLE"}

Architectural constraints:
- Fire-and-forget: callers never await the outcome for control flow.
- Failures are caught and logged here; nothing is raised or retried.
- No knowledge of sequencer state.
"""

from __future__ import annotations

import time

import httpx

from constants import (
    STATUS_API_KEY_HEADER,
    STATUS_IDLE,
    agent_api_key,
    agent_status_url,
)
from observability.logger import log_event
from observability.metrics import timed


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class HttpStatusReporter:
    """
    Per-agent idle notifier over a shared httpx.AsyncClient.

    The client is process-scoped and owned by the app; this adapter
    never closes it.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        endpoint: str,
        agent_id: str,
        agent_secret: str,
    ) -> None:
        self._client = client
        self._url = agent_status_url(endpoint, agent_id)
        self._agent_id = agent_id
        self._headers = {
            STATUS_API_KEY_HEADER: agent_api_key(agent_id, agent_secret),
            "content-type": "application/json",
        }

    async def report_idle(self, *, message_id: str | None = None) -> None:
        try:
            with timed(
                "status_report_latency",
                agent_id=self._agent_id,
                details={"message_id": message_id},
            ):
                response = await self._client.post(
                    self._url,
                    headers=self._headers,
                    json={"status": STATUS_IDLE},
                )
            response.raise_for_status()

        except httpx.HTTPError as exc:
            log_event({
                "ts_ms": _now_ms(),
                "level": "warning",
                "event_type": "STATUS_REPORT_FAILED",
                "agent_id": self._agent_id,
                "message_id": message_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            return

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "STATUS_REPORTED",
            "agent_id": self._agent_id,
            "message_id": message_id,
            "status": STATUS_IDLE,
            "http_status": response.status_code,
        })
