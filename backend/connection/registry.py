"""
Connection registry.

Explicit store of live agent gateways, keyed by agent id.

Rules:
- At most one gateway per agent id.
- Owned by the app and injected; never module-global.
- Gateways remove themselves via on_closed when their socket closes.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from connection.gateway import AgentGateway


GatewayFactory = Callable[..., AgentGateway]


class AgentAlreadyConnected(Exception):
    """Raised when a connect request names an agent that is already live."""


class AgentNotConnected(Exception):
    """Raised when a disconnect request names an unknown agent."""


class ConnectionRegistry:
    """
    Live gateways by agent id.

    gateway_factory receives agent_id, agent_secret, channel_id and
    on_closed keyword arguments and returns an unopened gateway.
    """

    def __init__(self, *, gateway_factory: GatewayFactory) -> None:
        self._gateway_factory = gateway_factory
        self._gateways: dict[str, AgentGateway] = {}
        self._opening: set[str] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def connect(
        self,
        *,
        agent_id: str,
        agent_secret: str,
        channel_id: str,
    ) -> AgentGateway:
        """
        Create, open and register a gateway for agent_id.

        The id is reserved before open() so a second connect for the same
        agent fails fast while unrelated agents connect concurrently.

        Raises AgentAlreadyConnected, or whatever open() raised.
        """
        # No await between the check and the reservation
        if agent_id in self._gateways or agent_id in self._opening:
            raise AgentAlreadyConnected(agent_id)
        self._opening.add(agent_id)

        try:
            gateway = self._gateway_factory(
                agent_id=agent_id,
                agent_secret=agent_secret,
                channel_id=channel_id,
                on_closed=self._forget,
            )
            await gateway.open()
            self._gateways[agent_id] = gateway
            return gateway
        finally:
            self._opening.discard(agent_id)

    async def disconnect(self, agent_id: str, *, reason: str = "requested") -> None:
        gateway = self._gateways.get(agent_id)
        if gateway is None:
            raise AgentNotConnected(agent_id)
        await gateway.close(reason=reason)
        self._gateways.pop(agent_id, None)

    async def close_all(self, *, reason: str = "shutdown") -> None:
        gateways = list(self._gateways.values())
        await asyncio.gather(
            *(g.close(reason=reason) for g in gateways),
            return_exceptions=True,
        )
        self._gateways.clear()

    def get(self, agent_id: str) -> AgentGateway | None:
        return self._gateways.get(agent_id)

    def summaries(self) -> list[dict[str, Any]]:
        return [g.summary() for g in self._gateways.values()]

    def __len__(self) -> int:
        return len(self._gateways)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._gateways

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _forget(self, gateway: AgentGateway) -> None:
        if self._gateways.get(gateway.agent_id) is gateway:
            del self._gateways[gateway.agent_id]
