# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any, Callable

import pytest

from connection.registry import (
    AgentAlreadyConnected,
    AgentNotConnected,
    ConnectionRegistry,
)


class FakeGateway:
    def __init__(
        self,
        *,
        agent_id: str,
        agent_secret: str,
        channel_id: str,
        on_closed: Callable[["FakeGateway"], None],
        fail_open: bool = False,
    ) -> None:
        self.agent_id = agent_id
        self.agent_secret = agent_secret
        self.channel_id = channel_id
        self._on_closed = on_closed
        self._fail_open = fail_open
        self.opened = False
        self.close_reasons: list[str | None] = []

    async def open(self) -> None:
        if self._fail_open:
            raise OSError("connection refused")
        self.opened = True

    async def close(self, reason: str | None = None) -> None:
        self.close_reasons.append(reason)
        self._on_closed(self)

    def summary(self) -> dict[str, Any]:
        return {"agent_id": self.agent_id, "channel_id": self.channel_id}


def make_registry(fail_open: bool = False) -> tuple[ConnectionRegistry, list[FakeGateway]]:
    created: list[FakeGateway] = []

    def factory(**kwargs: Any) -> FakeGateway:
        gw = FakeGateway(fail_open=fail_open, **kwargs)
        created.append(gw)
        return gw

    return ConnectionRegistry(gateway_factory=factory), created


def test_connect_opens_and_registers():
    registry, created = make_registry()

    async def scenario() -> None:
        gw = await registry.connect(agent_id="a1", agent_secret="s", channel_id="42")
        assert gw is created[0]

    asyncio.run(scenario())

    assert created[0].opened
    assert "a1" in registry
    assert len(registry) == 1
    assert registry.summaries() == [{"agent_id": "a1", "channel_id": "42"}]


def test_second_connect_for_same_agent_is_rejected():
    registry, created = make_registry()

    async def scenario() -> None:
        await registry.connect(agent_id="a1", agent_secret="s", channel_id="42")
        with pytest.raises(AgentAlreadyConnected):
            await registry.connect(agent_id="a1", agent_secret="s", channel_id="43")

    asyncio.run(scenario())

    assert len(created) == 1


def test_failed_open_is_not_registered():
    registry, _ = make_registry(fail_open=True)

    async def scenario() -> None:
        with pytest.raises(OSError):
            await registry.connect(agent_id="a1", agent_secret="s", channel_id="42")

    asyncio.run(scenario())

    assert len(registry) == 0


def test_disconnect_closes_and_forgets():
    registry, created = make_registry()

    async def scenario() -> None:
        await registry.connect(agent_id="a1", agent_secret="s", channel_id="42")
        await registry.disconnect("a1")
        with pytest.raises(AgentNotConnected):
            await registry.disconnect("a1")

    asyncio.run(scenario())

    assert created[0].close_reasons == ["requested"]
    assert registry.get("a1") is None


def test_gateway_closing_itself_is_forgotten():
    registry, created = make_registry()

    async def scenario() -> None:
        await registry.connect(agent_id="a1", agent_secret="s", channel_id="42")
        await created[0].close(reason="socket_closed")

    asyncio.run(scenario())

    assert "a1" not in registry


def test_close_all():
    registry, created = make_registry()

    async def scenario() -> None:
        await registry.connect(agent_id="a1", agent_secret="s", channel_id="1")
        await registry.connect(agent_id="a2", agent_secret="s", channel_id="2")
        await registry.close_all()

    asyncio.run(scenario())

    assert len(registry) == 0
    assert [g.close_reasons for g in created] == [["shutdown"], ["shutdown"]]


class GatedGateway(FakeGateway):
    """open() blocks until the shared gate is set."""

    gate: asyncio.Event
    started: list[str]

    async def open(self) -> None:
        self.started.append(self.agent_id)
        await self.gate.wait()
        self.opened = True


def test_unrelated_agents_open_concurrently():
    async def scenario() -> tuple[ConnectionRegistry, list[str]]:
        GatedGateway.gate = asyncio.Event()
        GatedGateway.started = []
        registry = ConnectionRegistry(gateway_factory=GatedGateway)

        first = asyncio.create_task(
            registry.connect(agent_id="a1", agent_secret="s", channel_id="1")
        )
        second = asyncio.create_task(
            registry.connect(agent_id="a2", agent_secret="s", channel_id="2")
        )
        for _ in range(3):
            await asyncio.sleep(0)

        # Both opens are in flight before either completes
        started = list(GatedGateway.started)

        # The same agent is already reserved while its open is pending
        with pytest.raises(AgentAlreadyConnected):
            await registry.connect(agent_id="a1", agent_secret="s", channel_id="9")

        GatedGateway.gate.set()
        await asyncio.gather(first, second)
        return registry, started

    registry, started = asyncio.run(scenario())

    assert sorted(started) == ["a1", "a2"]
    assert len(registry) == 2


def test_failed_open_releases_reservation():
    registry, _ = make_registry(fail_open=True)

    async def scenario() -> None:
        for _ in range(2):
            with pytest.raises(OSError):
                await registry.connect(agent_id="a1", agent_secret="s", channel_id="42")

    asyncio.run(scenario())

    assert "a1" not in registry
