# pylint: disable=missing-module-docstring,missing-function-docstring,protected-access

import asyncio
import json
from typing import Any, Callable

import httpx
import pytest

import connection.gateway as gateway_mod
from adapters.playback.discord_voice import VoiceChannelUnavailable
from config import AppConfig
from connection.connection_status import ConnectionStatus
from connection.gateway import AgentGateway
from sequencer.events import Event, SayChunk


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

class FakeWebSocket:
    """Queue-backed stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue[str | Exception | None] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    async def send(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True
        self.incoming.put_nowait(None)

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str:
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class FakeDevice:
    def __init__(self) -> None:
        self.played: list[tuple[int, str]] = []
        self.stops = 0
        self.closed = False

    def play(self, *, playback_id: int, src: str) -> None:
        self.played.append((playback_id, src))

    def stop(self) -> None:
        self.stops += 1

    def is_playing(self) -> bool:
        return False

    async def close(self) -> None:
        self.closed = True


class FakeVoiceBackend:
    def __init__(self, fail: bool = False) -> None:
        self.device = FakeDevice()
        self.fail = fail
        self.opened: list[str] = []

    async def open_device(
        self,
        *,
        channel_id: str,
        emit_event: Callable[[Event], None],
    ) -> FakeDevice:
        if self.fail:
            raise VoiceChannelUnavailable(f"Channel {channel_id} not found")
        self.opened.append(channel_id)
        return self.device


class FakeRuntime:
    def __init__(self) -> None:
        self.submitted: list[Event] = []

    async def submit(self, event: Event) -> None:
        self.submitted.append(event)


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def make_config(**overrides: Any) -> AppConfig:
    fields: dict[str, Any] = {
        "env": "test",
        "log_level": "DEBUG",
        "agent_socket_url": "wss://agents.example",
        "agent_api_endpoint": "https://api.agents.example",
        "status_timeout_s": 1.0,
        "discord_token": None,
        "enable_json_logs": True,
    }
    fields.update(overrides)
    return AppConfig(**fields)


def make_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200))
    )


def make_gateway(
    *,
    config: AppConfig | None = None,
    backend: FakeVoiceBackend | None = None,
    socket: FakeWebSocket | None = None,
    client: httpx.AsyncClient | None = None,
    on_closed: Callable[[AgentGateway], None] | None = None,
    connected_urls: list[str] | None = None,
) -> AgentGateway:
    async def connector(url: str) -> FakeWebSocket:
        if connected_urls is not None:
            connected_urls.append(url)
        assert socket is not None
        return socket

    return AgentGateway(
        config=config or make_config(),
        agent_id="agent-1",
        agent_secret="s3cret",
        channel_id="42",
        voice_backend=backend or FakeVoiceBackend(),
        http_client=client or make_client(),
        on_closed=on_closed,
        socket_connector=connector,
    )


@pytest.fixture
def logs(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(gateway_mod, "log_event", emitted.append)
    return emitted


async def settle(gateway: AgentGateway) -> None:
    for _ in range(5):
        await asyncio.sleep(0)
    runtime = gateway.connection.runtime
    assert runtime is not None
    await runtime.drain()


# ---------------------------------------------------------------------
# Inbound routing
# ---------------------------------------------------------------------

def test_say_frame_is_submitted(logs: list[dict[str, Any]]):
    gw = make_gateway()
    runtime = FakeRuntime()
    gw.connection.runtime = runtime  # type: ignore[assignment]

    frame = json.dumps({"type": "SAY", "messageId": "m1", "sequence": 0, "audio": {"src": "a.mp3"}})
    asyncio.run(gw.on_message(frame))

    assert len(runtime.submitted) == 1
    event = runtime.submitted[0]
    assert isinstance(event, SayChunk)
    assert event.audio_src == "a.mp3"
    assert logs == []


def test_malformed_frame_is_logged_and_dropped(logs: list[dict[str, Any]]):
    gw = make_gateway()
    runtime = FakeRuntime()
    gw.connection.runtime = runtime  # type: ignore[assignment]

    asyncio.run(gw.on_message("{not json"))
    asyncio.run(gw.on_message(json.dumps({"type": "SAY", "sequence": 0})))

    assert runtime.submitted == []
    errors = [e for e in logs if e["event_type"] == "AGENT_MESSAGE_DECODE_ERROR"]
    assert len(errors) == 2
    assert errors[0]["level"] == "error"
    assert errors[0]["payload_preview"] == "{not json"
    assert errors[0]["agent_id"] == "agent-1"


def test_informational_and_unknown_frames(logs: list[dict[str, Any]]):
    gw = make_gateway()
    runtime = FakeRuntime()
    gw.connection.runtime = runtime  # type: ignore[assignment]

    asyncio.run(gw.on_message(json.dumps({"type": "INPUT", "text": "hello"})))
    asyncio.run(gw.on_message(json.dumps({"type": "MYSTERY"})))

    assert runtime.submitted == []
    assert [(e["event_type"], e["level"]) for e in logs] == [
        ("AGENT_MESSAGE_IGNORED", "debug"),
        ("AGENT_MESSAGE_UNHANDLED", "warning"),
    ]
    assert logs[1]["msg_type"] == "MYSTERY"


def test_authentication_success_marks_connection_up(logs: list[dict[str, Any]]):
    gw = make_gateway()
    gw.connection.runtime = FakeRuntime()  # type: ignore[assignment]
    gw.connection.connection_status = ConnectionStatus.AUTHENTICATING

    asyncio.run(gw.on_message(json.dumps({"type": "AUTHENTICATION_SUCCESS"})))

    assert gw.connection.connection_status is ConnectionStatus.UP


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------

def test_open_authenticate_play_and_close(logs: list[dict[str, Any]]):
    backend = FakeVoiceBackend()
    closed: list[AgentGateway] = []
    urls: list[str] = []

    async def scenario() -> tuple[AgentGateway, FakeWebSocket]:
        socket = FakeWebSocket()
        client = make_client()
        gw = make_gateway(
            backend=backend,
            socket=socket,
            client=client,
            on_closed=closed.append,
            connected_urls=urls,
        )

        await gw.open()
        assert gw.connection.connection_status is ConnectionStatus.AUTHENTICATING

        socket.incoming.put_nowait(json.dumps({"type": "REQUEST_AUTHENTICATION"}))
        await settle(gw)
        assert socket.sent == [{"type": "AUTHENTICATION_RESPONSE", "authSecret": "s3cret"}]

        socket.incoming.put_nowait(json.dumps({"type": "AUTHENTICATION_SUCCESS"}))
        socket.incoming.put_nowait(
            json.dumps({"type": "SAY", "messageId": "m1", "sequence": 0, "audio": {"src": "a.mp3"}})
        )
        await settle(gw)
        assert gw.connection.connection_status is ConnectionStatus.UP
        assert gw.summary()["playback_state"] == "PLAYING"

        await gw.close(reason="requested")
        await client.aclose()
        return gw, socket

    gw, socket = asyncio.run(scenario())

    assert urls == ["wss://agents.example/agents/agent-1/sockets"]
    assert backend.opened == ["42"]
    assert backend.device.played == [(1, "a.mp3")]
    assert backend.device.stops >= 1
    assert backend.device.closed
    assert socket.closed
    assert gw.connection.connection_status is ConnectionStatus.DOWN
    assert closed == [gw]
    assert [e["event_type"] for e in logs][-1] == "AGENT_DISCONNECTED"


def test_remote_close_tears_down(logs: list[dict[str, Any]]):
    closed: list[AgentGateway] = []

    async def scenario() -> AgentGateway:
        socket = FakeWebSocket()
        client = make_client()
        gw = make_gateway(socket=socket, client=client, on_closed=closed.append)
        await gw.open()

        socket.incoming.put_nowait(None)
        assert gw._recv_task is not None
        await asyncio.wait_for(gw._recv_task, timeout=1.0)

        # Closing again is a no-op
        await gw.close(reason="requested")
        await client.aclose()
        return gw

    gw = asyncio.run(scenario())

    assert closed == [gw]
    disconnects = [e for e in logs if e["event_type"] == "AGENT_DISCONNECTED"]
    assert len(disconnects) == 1
    assert disconnects[0]["reason"] == "socket_closed"


def test_open_failure_leaves_nothing_running(logs: list[dict[str, Any]]):
    async def scenario() -> tuple[AgentGateway, FakeWebSocket]:
        socket = FakeWebSocket()
        client = make_client()
        gw = make_gateway(backend=FakeVoiceBackend(fail=True), socket=socket, client=client)
        with pytest.raises(VoiceChannelUnavailable):
            await gw.open()
        await client.aclose()
        return gw, socket

    gw, socket = asyncio.run(scenario())

    assert socket.closed
    assert gw.connection.websocket is None
    assert gw.connection.runtime is None
    assert gw.connection.connection_status is ConnectionStatus.DOWN


def test_open_requires_agent_service_urls(logs: list[dict[str, Any]]):
    gw = make_gateway(config=make_config(agent_socket_url=None))

    with pytest.raises(RuntimeError):
        asyncio.run(gw.open())


def test_pathological_frame_does_not_stop_receiving(logs: list[dict[str, Any]]):
    backend = FakeVoiceBackend()

    async def scenario() -> AgentGateway:
        socket = FakeWebSocket()
        client = make_client()
        gw = make_gateway(backend=backend, socket=socket, client=client)
        await gw.open()

        socket.incoming.put_nowait("[" * 100_000 + "]" * 100_000)
        socket.incoming.put_nowait(
            json.dumps({"type": "SAY", "messageId": "m1", "sequence": 0, "audio": {"src": "a.mp3"}})
        )
        await settle(gw)

        assert gw._recv_task is not None
        assert not gw._recv_task.done()

        await gw.close(reason="requested")
        await client.aclose()
        return gw

    asyncio.run(scenario())

    assert backend.device.played == [(1, "a.mp3")]
    errors = [e for e in logs if e["event_type"] == "AGENT_MESSAGE_DECODE_ERROR"]
    assert len(errors) == 1
    assert errors[0]["payload_preview"] == "[" * 100


def test_receive_failure_tears_connection_down(logs: list[dict[str, Any]]):
    closed: list[AgentGateway] = []

    async def scenario() -> tuple[AgentGateway, FakeWebSocket]:
        socket = FakeWebSocket()
        client = make_client()
        gw = make_gateway(socket=socket, client=client, on_closed=closed.append)
        await gw.open()

        socket.incoming.put_nowait(RuntimeError("transport exploded"))
        assert gw._recv_task is not None
        await asyncio.wait_for(gw._recv_task, timeout=1.0)

        assert gw._ping_task is not None
        assert gw._ping_task.done()
        await client.aclose()
        return gw, socket

    gw, socket = asyncio.run(scenario())

    assert closed == [gw]
    assert socket.closed
    assert gw.connection.connection_status is ConnectionStatus.DOWN
    failures = [e for e in logs if e["event_type"] == "AGENT_RECEIVE_FAILED"]
    assert len(failures) == 1
    assert failures[0]["exception"] == "RuntimeError"
    disconnect = next(e for e in logs if e["event_type"] == "AGENT_DISCONNECTED")
    assert disconnect["reason"] == "receive_error: RuntimeError"


def test_ping_runs_on_interval_until_close(
    monkeypatch: pytest.MonkeyPatch,
    logs: list[dict[str, Any]],
):
    monkeypatch.setattr(gateway_mod, "PING_INTERVAL_MS", 10)

    def pings(socket: FakeWebSocket) -> int:
        return sum(1 for frame in socket.sent if frame == {"type": "PING"})

    async def scenario() -> tuple[int, int, bool]:
        socket = FakeWebSocket()
        client = make_client()
        gw = make_gateway(socket=socket, client=client)
        await gw.open()

        await asyncio.sleep(0.08)
        before_close = pings(socket)

        await gw.close(reason="requested")
        await asyncio.sleep(0.05)
        after_close = pings(socket)

        assert gw._ping_task is not None
        done = gw._ping_task.done()
        await client.aclose()
        return before_close, after_close, done

    before_close, after_close, done = asyncio.run(scenario())

    assert before_close >= 2
    assert after_close == before_close
    assert done
