"""Discord voice signaling for Lavalink-backed playback.

Discord streams audio to whoever holds the voice session. With Lavalink that
is the node, so the bot only joins the channel, collects the voice state and
voice server credentials, and hands them over.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import discord

from guild_playback.application.interfaces.voice_gateway import (
    VoiceConnectionError,
    VoiceGateway,
    VoiceUpdateHandler,
)
from guild_playback.domain.music.entities import VoiceServerState
from guild_playback.domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT: float = 10.0


class LavalinkVoiceProtocol(discord.VoiceProtocol):
    """Voice "client" that never opens a UDP socket of its own.

    It records the two gateway payloads Discord sends on join and resolves
    ``wait_ready()`` once both are known. Credentials that change later (a
    voice server move) are passed to the update handler.
    """

    def __init__(self, client: discord.Client, channel: discord.abc.Connectable) -> None:
        super().__init__(client, channel)
        self.guild_id: int = channel.guild.id  # type: ignore[attr-defined]
        self._session_id: str | None = None
        self._token: str | None = None
        self._endpoint: str | None = None
        self._channel_id: int | None = None
        self._current: VoiceServerState | None = None
        self._on_update: VoiceUpdateHandler | None = None
        self._ready: asyncio.Future[VoiceServerState] = asyncio.get_running_loop().create_future()
        # Retrieve a failure even when nobody is waiting, so it is not logged as unhandled.
        self._ready.add_done_callback(lambda f: f.cancelled() or f.exception())

    @property
    def voice_state(self) -> VoiceServerState | None:
        return self._current

    def set_update_handler(self, handler: VoiceUpdateHandler | None) -> None:
        self._on_update = handler

    async def on_voice_state_update(self, data: Any) -> None:
        channel_id = data.get("channel_id")
        if channel_id is None:
            logger.info(LogTemplates.VOICE_DISCONNECTED, self.guild_id)
            self.cleanup()
            return
        self._channel_id = int(channel_id)
        self._session_id = data.get("session_id")
        await self._credentials_changed()

    async def on_voice_server_update(self, data: Any) -> None:
        self._token = data.get("token")
        # A null endpoint means Discord is still allocating a voice server.
        self._endpoint = data.get("endpoint")
        await self._credentials_changed()

    async def _credentials_changed(self) -> None:
        if not (self._session_id and self._token and self._endpoint):
            return
        state = VoiceServerState(
            session_id=self._session_id,
            token=self._token,
            endpoint=self._endpoint,
            channel_id=self._channel_id,
        )
        if state == self._current:
            return
        self._current = state

        if not self._ready.done():
            self._ready.set_result(state)
            return
        logger.info(LogTemplates.VOICE_SERVER_MOVED, self.guild_id, state.endpoint)
        if self._on_update is not None:
            await self._on_update(self.guild_id, state)

    async def wait_ready(self) -> VoiceServerState:
        return await asyncio.shield(self._ready)

    async def connect(
        self,
        *,
        timeout: float,
        reconnect: bool,
        self_deaf: bool = True,
        self_mute: bool = False,
    ) -> None:
        await self.channel.guild.change_voice_state(  # type: ignore[attr-defined]
            channel=self.channel, self_deaf=self_deaf, self_mute=self_mute
        )

    async def disconnect(self, *, force: bool = False) -> None:
        await self.channel.guild.change_voice_state(channel=None)  # type: ignore[attr-defined]
        self.cleanup()

    def cleanup(self) -> None:
        if not self._ready.done():
            self._ready.set_exception(
                VoiceConnectionError(self.guild_id, ErrorMessages.VOICE_CLOSED_EARLY)
            )
        super().cleanup()


class DiscordVoiceGateway(VoiceGateway):
    def __init__(self, bot: discord.Client, *, connect_timeout: float = CONNECT_TIMEOUT) -> None:
        self._bot = bot
        self._connect_timeout = connect_timeout
        self._on_update: VoiceUpdateHandler | None = None

    def set_voice_update_handler(self, handler: VoiceUpdateHandler) -> None:
        self._on_update = handler

    def _get_guild(self, guild_id: int) -> discord.Guild:
        guild = self._bot.get_guild(guild_id)
        if guild is None:
            raise VoiceConnectionError(
                guild_id, ErrorMessages.VOICE_GUILD_NOT_FOUND.format(guild_id=guild_id)
            )
        return guild

    async def open_voice_connection(self, guild_id: int, channel_id: int) -> VoiceServerState:
        guild = self._get_guild(guild_id)
        channel = guild.get_channel(channel_id)
        if not isinstance(channel, discord.VoiceChannel | discord.StageChannel):
            raise VoiceConnectionError(
                guild_id, ErrorMessages.VOICE_CHANNEL_NOT_FOUND.format(channel_id=channel_id)
            )

        existing = guild.voice_client
        if isinstance(existing, LavalinkVoiceProtocol):
            state = existing.voice_state
            if state is not None and state.channel_id == channel_id:
                existing.set_update_handler(self._on_update)
                return state
        if existing is not None:
            await existing.disconnect(force=True)

        try:
            async with asyncio.timeout(self._connect_timeout):
                protocol = await channel.connect(
                    cls=LavalinkVoiceProtocol, timeout=self._connect_timeout, self_deaf=True
                )
                protocol.set_update_handler(self._on_update)
                voice = await protocol.wait_ready()
        except TimeoutError as exc:
            await self._force_cleanup(guild)
            raise VoiceConnectionError(
                guild_id, ErrorMessages.VOICE_TIMEOUT.format(channel_id=channel_id)
            ) from exc
        except VoiceConnectionError:
            await self._force_cleanup(guild)
            raise
        except (discord.ClientException, discord.HTTPException) as exc:
            await self._force_cleanup(guild)
            raise VoiceConnectionError(guild_id, str(exc)) from exc

        logger.info(LogTemplates.VOICE_CONNECTED, guild_id, channel_id)
        return voice

    async def close_voice_connection(self, guild_id: int) -> None:
        guild = self._bot.get_guild(guild_id)
        if guild is None or guild.voice_client is None:
            return
        await guild.voice_client.disconnect(force=True)
        logger.info(LogTemplates.VOICE_DISCONNECTED, guild_id)

    async def _force_cleanup(self, guild: discord.Guild) -> None:
        if guild.voice_client is None:
            return
        try:
            await guild.voice_client.disconnect(force=True)
        except discord.HTTPException:
            logger.exception(LogTemplates.VOICE_CLEANUP_ERROR, guild.id)
