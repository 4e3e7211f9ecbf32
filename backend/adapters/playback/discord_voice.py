"""
Discord voice playback adapter.

Role in the system:
- Joins one voice channel per agent connection.
- Plays one audio resource at a time through FFmpeg (decoding is FFmpeg's job).
- Reports lifecycle back as events:
    - DevicePlaying(playback_id) once play() has been accepted
    - DeviceIdle(playback_id, error) when the resource ends, is stopped,
      or fails

Architectural constraints:
- discord.py calls `after` on its audio thread; events are handed to the
  runtime's thread-safe emitter, never to the reducer.
- No queueing, ordering or retry logic lives here.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable

import discord

from constants import FFMPEG_BEFORE_OPTIONS, FFMPEG_OPTIONS
from observability.logger import log_event
from sequencer.events import DeviceIdle, DevicePlaying, Event, EventType


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class VoiceChannelUnavailable(Exception):
    """Raised when a channel id does not resolve to a joinable voice channel."""


class DiscordVoicePlayer:
    """
    PlaybackDeviceProtocol over a connected discord.VoiceClient.
    """

    def __init__(
        self,
        *,
        voice_client: discord.VoiceClient,
        emit_event: Callable[[Event], None],
    ) -> None:
        self._vc = voice_client
        self._emit_event = emit_event

    # ------------------------------------------------------------------
    # Public API (PlaybackDeviceProtocol)
    # ------------------------------------------------------------------

    def play(self, *, playback_id: int, src: str) -> None:
        source = discord.FFmpegPCMAudio(
            src,
            before_options=FFMPEG_BEFORE_OPTIONS,
            options=FFMPEG_OPTIONS,
        )

        def _after(error: Exception | None) -> None:
            self._emit_event(
                DeviceIdle(
                    event_type=EventType.DEVICE_IDLE,
                    ts_ms=_now_ms(),
                    playback_id=playback_id,
                    error=f"{type(error).__name__}: {error}" if error else None,
                )
            )

        self._vc.play(source, after=_after)

        self._emit_event(
            DevicePlaying(
                event_type=EventType.DEVICE_PLAYING,
                ts_ms=_now_ms(),
                playback_id=playback_id,
            )
        )

    def stop(self) -> None:
        if self._vc.is_playing() or self._vc.is_paused():
            self._vc.stop()

    def is_playing(self) -> bool:
        return self._vc.is_playing()

    async def close(self) -> None:
        self.stop()
        if self._vc.is_connected():
            await self._vc.disconnect()


class DiscordVoiceBackend:
    """
    Process-scoped Discord client that hands out voice players.

    Lifecycle:
    1. start(): log in, connect the gateway, wait until ready
    2. open_device(channel_id): join the channel, wrap the voice client
    3. close(): disconnect everything
    """

    def __init__(self, *, token: str) -> None:
        self._token = token
        self._client = discord.Client(intents=discord.Intents.default())
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        await self._client.login(self._token)
        self._task = asyncio.create_task(self._client.connect())
        await self._client.wait_until_ready()

        user = self._client.user
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "DISCORD_READY",
            "user": str(user) if user is not None else None,
        })

    async def close(self) -> None:
        await self._client.close()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def open_device(
        self,
        *,
        channel_id: str,
        emit_event: Callable[[Event], None],
    ) -> DiscordVoicePlayer:
        try:
            cid = int(channel_id)
        except ValueError as e:
            raise VoiceChannelUnavailable(f"Invalid channel id: {channel_id!r}") from e

        channel = self._client.get_channel(cid)
        if channel is None:
            try:
                channel = await self._client.fetch_channel(cid)
            except discord.DiscordException as e:
                raise VoiceChannelUnavailable(f"Channel {channel_id} not found") from e

        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            raise VoiceChannelUnavailable(f"Channel {channel_id} is not a voice channel")

        voice_client = await channel.connect()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "VOICE_CHANNEL_JOINED",
            "channel_id": channel_id,
        })

        return DiscordVoicePlayer(voice_client=voice_client, emit_event=emit_event)
