"""Text-command music cog: parses prefixed messages and renders coordinator events."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from guild_playback.application.commands.dispatcher import Command
from guild_playback.domain.music.value_objects import DestroyReason
from guild_playback.domain.shared.events import (
    PlaybackFailed,
    QueueExhausted,
    SessionFailed,
    TrackStartedPlaying,
)
from guild_playback.domain.shared.exceptions import NoActiveSessionError
from guild_playback.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ....config.container import Container

logger = logging.getLogger(__name__)


class MusicCog(commands.Cog):
    def __init__(self, bot: commands.Bot, container: Container) -> None:
        self.bot = bot
        self.container = container
        self._prefix = container.settings.discord.command_prefix

        self._event_bus = container.event_bus
        self._event_bus.subscribe(TrackStartedPlaying, self._on_track_started)
        self._event_bus.subscribe(QueueExhausted, self._on_queue_exhausted)
        self._event_bus.subscribe(PlaybackFailed, self._on_playback_failed)
        self._event_bus.subscribe(SessionFailed, self._on_session_failed)

    async def cog_unload(self) -> None:
        self._event_bus.unsubscribe(TrackStartedPlaying, self._on_track_started)
        self._event_bus.unsubscribe(QueueExhausted, self._on_queue_exhausted)
        self._event_bus.unsubscribe(PlaybackFailed, self._on_playback_failed)
        self._event_bus.unsubscribe(SessionFailed, self._on_session_failed)

    # ─────────────────────────────────────────────────────────────────
    # Commands
    # ─────────────────────────────────────────────────────────────────

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return

        voice = getattr(message.author, "voice", None)
        voice_channel_id = voice.channel.id if voice is not None and voice.channel else None

        command = Command.parse(
            message.content,
            self._prefix,
            guild_id=message.guild.id,
            text_channel_id=message.channel.id,
            requester_id=message.author.id,
            voice_channel_id=voice_channel_id,
        )
        if command is None:
            return

        result = await self.container.dispatcher.dispatch(command)
        presenter = self.container.presenter
        if result.error is not None:
            embed = presenter.error(result.error)
        elif result.feedback is not None:
            embed = presenter.feedback(result.feedback)
        else:
            return

        try:
            await message.channel.send(embed=embed)
        except discord.HTTPException:
            logger.warning(LogTemplates.FEEDBACK_SEND_FAILED, message.channel.id)

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        try:
            await self.container.playback_service.destroy(guild.id, DestroyReason.CLEANUP)
        except NoActiveSessionError:
            return

    # ─────────────────────────────────────────────────────────────────
    # Coordinator events
    # ─────────────────────────────────────────────────────────────────

    async def _send(self, channel_id: int | None, embed: discord.Embed) -> None:
        if channel_id is None:
            return
        channel = self.bot.get_channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            logger.warning(LogTemplates.FEEDBACK_SEND_FAILED, channel_id)
            return
        try:
            await channel.send(embed=embed)
        except discord.HTTPException:
            logger.warning(LogTemplates.FEEDBACK_SEND_FAILED, channel_id)

    async def _on_track_started(self, event: TrackStartedPlaying) -> None:
        await self._send(event.text_channel_id, self.container.presenter.now_playing(event.track))

    async def _on_queue_exhausted(self, event: QueueExhausted) -> None:
        await self._send(event.text_channel_id, self.container.presenter.queue_ended())

    async def _on_playback_failed(self, event: PlaybackFailed) -> None:
        await self._send(event.text_channel_id, self.container.presenter.fatal(event.message))

    async def _on_session_failed(self, event: SessionFailed) -> None:
        await self._send(event.text_channel_id, self.container.presenter.fatal(event.message))


async def setup(bot: commands.Bot) -> None:
    container = getattr(bot, "container", None)
    if container is None:
        raise RuntimeError("Container not found on bot instance")

    await bot.add_cog(MusicCog(bot, container))
