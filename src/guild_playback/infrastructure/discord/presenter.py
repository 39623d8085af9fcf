"""Renders dispatcher feedback and playback events as Discord embeds."""

from __future__ import annotations

import discord

from guild_playback.application.commands.dispatcher import CommandError, Feedback, FeedbackKind
from guild_playback.domain.music.entities import Track
from guild_playback.domain.music.value_objects import LoopMode
from guild_playback.domain.shared.messages import FeedbackMessages
from guild_playback.utils.formatting import format_duration, progress_bar, truncate

EMBED_DESCRIPTION_LIMIT = 4096
EMBED_FIELD_LIMIT = 1024
QUEUE_PREVIEW = 10
TITLE_LIMIT = 80

SUCCESS_COLOR = discord.Color.green()
ERROR_COLOR = discord.Color.red()
DEFAULT_ACCENT = "#0061ff"


def _track_line(track: Track) -> str:
    title = truncate(track.title, TITLE_LIMIT)
    link = f"[{title}]({track.source_uri})" if track.source_uri else title
    return f"{link} `{track.duration_formatted}`"


def _requester(track: Track) -> str:
    return f"<@{track.requester_id}>" if track.requester_id else "Unknown"


class EmbedPresenter:
    """Thin renderer; all wording comes from the feedback itself."""

    def __init__(self, *, prefix: str = "!", accent: str = DEFAULT_ACCENT) -> None:
        self._prefix = prefix
        self._accent = discord.Color.from_str(accent)

    def error(self, error: CommandError) -> discord.Embed:
        return discord.Embed(description=f"❌ {error.message}", color=ERROR_COLOR)

    def fatal(self, message: str) -> discord.Embed:
        return discord.Embed(title="⚠️ Playback stopped", description=message, color=ERROR_COLOR)

    def queue_ended(self) -> discord.Embed:
        return discord.Embed(description=f"⏹️ {FeedbackMessages.QUEUE_ENDED}", color=self._accent)

    def now_playing(self, track: Track, *, position_ms: int = 0) -> discord.Embed:
        embed = discord.Embed(
            title="🎵 Now Playing", description=_track_line(track), color=self._accent
        )
        embed.add_field(name="Artist", value=track.author, inline=True)
        embed.add_field(name="Requested by", value=_requester(track), inline=True)
        if not track.is_stream and track.duration_ms:
            bar = progress_bar(position_ms, track.duration_ms)
            embed.add_field(
                name="Progress",
                value=f"{bar} {format_duration(position_ms)} / {track.duration_formatted}",
                inline=False,
            )
        return embed

    def feedback(self, feedback: Feedback) -> discord.Embed:
        match feedback.kind:
            case FeedbackKind.QUEUE:
                return self._queue(feedback)
            case FeedbackKind.STATUS:
                return self._status(feedback)
            case FeedbackKind.HELP:
                return self._help(feedback)
            case FeedbackKind.NOW_PLAYING if feedback.track is not None:
                position = feedback.status.position_ms if feedback.status else 0
                return self.now_playing(feedback.track, position_ms=position)
            case FeedbackKind.ADDED_TO_QUEUE if feedback.track is not None:
                embed = discord.Embed(description=f"✅ {feedback.message}", color=SUCCESS_COLOR)
                embed.add_field(
                    name="Duration", value=feedback.track.duration_formatted, inline=True
                )
                embed.add_field(
                    name="Requested by", value=_requester(feedback.track), inline=True
                )
                return embed
            case _:
                return discord.Embed(description=f"✅ {feedback.message}", color=SUCCESS_COLOR)

    def _queue(self, feedback: Feedback) -> discord.Embed:
        embed = discord.Embed(title=f"📜 {FeedbackMessages.QUEUE}", color=self._accent)
        if feedback.track is not None:
            embed.add_field(name="Now Playing", value=_track_line(feedback.track), inline=False)

        upcoming = feedback.tracks
        if upcoming:
            lines = [
                f"`{index}.` {_track_line(track)}"
                for index, track in enumerate(upcoming[:QUEUE_PREVIEW], start=1)
            ]
            if len(upcoming) > QUEUE_PREVIEW:
                lines.append(f"…and {len(upcoming) - QUEUE_PREVIEW} more")
            embed.add_field(
                name="Up Next", value=truncate("\n".join(lines), EMBED_FIELD_LIMIT), inline=False
            )

        queue = feedback.queue
        if queue is not None:
            footer = f"{queue.total_length} track(s) • {format_duration(queue.total_duration_ms)}"
            if queue.loop_mode != LoopMode.NONE:
                footer += f" • loop: {queue.loop_mode.value}"
            embed.set_footer(text=footer)
        return embed

    def _status(self, feedback: Feedback) -> discord.Embed:
        embed = discord.Embed(title=f"🎛️ {FeedbackMessages.STATUS}", color=self._accent)
        status = feedback.status
        if status is None:
            return embed
        embed.add_field(name="State", value=status.state.value.title(), inline=True)
        embed.add_field(name="Volume", value=f"{status.volume}%", inline=True)
        embed.add_field(name="Loop", value=status.loop_mode.value.title(), inline=True)
        embed.add_field(name="Queue", value=f"{status.queue_length} track(s)", inline=True)
        embed.add_field(name="Node", value=status.node_id or "–", inline=True)
        if status.current_track is not None:
            embed.add_field(name="Current", value=_track_line(status.current_track), inline=False)
        return embed

    def _help(self, feedback: Feedback) -> discord.Embed:
        lines = [f"`{self._prefix}{usage}`: {description}" for usage, description in feedback.help]
        return discord.Embed(
            title=f"🎶 {FeedbackMessages.HELP}",
            description=truncate("\n".join(lines), EMBED_DESCRIPTION_LIMIT),
            color=self._accent,
        )
