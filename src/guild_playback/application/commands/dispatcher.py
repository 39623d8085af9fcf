"""
Command Dispatcher

Parses a chat command into playback operations and turns the outcome into
structured feedback. Every failure comes back as a CommandError; nothing
raised by a command escapes the dispatcher.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from ...domain.music.value_objects import DestroyReason, LoopMode, ResolveKind
from ...domain.shared.exceptions import (
    DomainError,
    EmptyQueueError,
    InvalidOperationError,
    InvalidVolumeError,
    LoadError,
    NoActiveSessionError,
    NoResultsError,
    NotInVoiceChannelError,
    OutOfRangeError,
    ValidationError,
)
from ...domain.shared.messages import COMMAND_HELP, ErrorMessages, FeedbackMessages, LogTemplates
from ...domain.shared.types import DiscordSnowflake, NonEmptyStr
from ..interfaces.audio_node import NodeRequestError
from ..interfaces.voice_gateway import VoiceConnectionError

if TYPE_CHECKING:
    from ...domain.music.entities import Track
    from ..services.playback_service import PlaybackApplicationService
    from ..services.queue_models import QueueInfo, SessionStatus
    from ..services.track_resolver import TrackResolver

logger = logging.getLogger(__name__)

# Commands that work without the caller being in a voice channel.
NON_VOICE_COMMANDS = frozenset({"help", "status"})


class Command(BaseModel):
    """A parsed chat command plus the context it was issued in."""

    model_config = ConfigDict(frozen=True)

    name: NonEmptyStr
    args: tuple[str, ...] = Field(default_factory=tuple)
    guild_id: DiscordSnowflake
    text_channel_id: DiscordSnowflake
    requester_id: DiscordSnowflake
    voice_channel_id: DiscordSnowflake | None = None

    @property
    def arg_text(self) -> str:
        return " ".join(self.args).strip()

    @classmethod
    def parse(
        cls,
        content: str,
        prefix: str,
        *,
        guild_id: int,
        text_channel_id: int,
        requester_id: int,
        voice_channel_id: int | None = None,
    ) -> Command | None:
        """Build a command from message text, or None if it is not addressed to us."""
        if not content.startswith(prefix):
            return None
        parts = content[len(prefix) :].split()
        if not parts:
            return None
        return cls(
            name=parts[0].lower(),
            args=tuple(parts[1:]),
            guild_id=guild_id,
            text_channel_id=text_channel_id,
            requester_id=requester_id,
            voice_channel_id=voice_channel_id,
        )


class FeedbackKind(Enum):
    NOW_PLAYING = "now_playing"
    ADDED_TO_QUEUE = "added_to_queue"
    ADDED_PLAYLIST = "added_playlist"
    SKIPPED = "skipped"
    STOPPED = "stopped"
    PAUSED = "paused"
    RESUMED = "resumed"
    VOLUME_SET = "volume_set"
    SHUFFLED = "shuffled"
    LOOP_SET = "loop_set"
    REMOVED = "removed"
    CLEARED = "cleared"
    QUEUE = "queue"
    STATUS = "status"
    HELP = "help"


@dataclass(frozen=True)
class Feedback:
    """What happened, in a shape the presentation layer can render."""

    kind: FeedbackKind
    message: str
    track: Track | None = None
    tracks: list[Track] = field(default_factory=list)
    position: int | None = None
    count: int | None = None
    playlist_name: str | None = None
    volume: int | None = None
    loop_mode: LoopMode | None = None
    queue: QueueInfo | None = None
    status: SessionStatus | None = None
    help: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class CommandError:
    code: str
    message: str


@dataclass(frozen=True)
class DispatchResult:
    """Either feedback or an error, never both."""

    feedback: Feedback | None = None
    error: CommandError | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, feedback: Feedback) -> DispatchResult:
        return cls(feedback=feedback)

    @classmethod
    def failure(cls, code: str, message: str) -> DispatchResult:
        return cls(error=CommandError(code=code, message=message))


Handler = Callable[[Command], Awaitable[Feedback]]


class CommandDispatcher:
    """Routes commands to the playback service and the resolver."""

    def __init__(
        self,
        *,
        playback_service: PlaybackApplicationService,
        track_resolver: TrackResolver,
    ) -> None:
        self._playback = playback_service
        self._resolver = track_resolver
        self._handlers: dict[str, Handler] = {
            "help": self._help,
            "play": self._play,
            "pause": self._pause,
            "resume": self._resume,
            "skip": self._skip,
            "stop": self._stop,
            "queue": self._queue,
            "nowplaying": self._now_playing,
            "volume": self._volume,
            "shuffle": self._shuffle,
            "loop": self._loop,
            "remove": self._remove,
            "clear": self._clear,
            "status": self._status,
        }

    @property
    def command_names(self) -> list[str]:
        return list(self._handlers)

    async def dispatch(self, command: Command) -> DispatchResult:
        logger.debug(
            LogTemplates.COMMAND_RECEIVED, command.name, command.requester_id, command.guild_id
        )
        handler = self._handlers.get(command.name)
        if handler is None:
            return DispatchResult.failure(
                "UNKNOWN_COMMAND", ErrorMessages.UNKNOWN_COMMAND.format(name=command.name)
            )

        try:
            if command.name not in NON_VOICE_COMMANDS and command.voice_channel_id is None:
                raise NotInVoiceChannelError()
            return DispatchResult.success(await handler(command))
        except DomainError as e:
            logger.info(LogTemplates.COMMAND_REJECTED, command.name, command.guild_id, e.code)
            return DispatchResult.failure(e.code, e.message)
        except VoiceConnectionError as e:
            logger.warning(LogTemplates.COMMAND_REJECTED, command.name, command.guild_id, e)
            return DispatchResult.failure("VOICE_CONNECTION_FAILED", str(e))
        except NodeRequestError as e:
            logger.warning(LogTemplates.COMMAND_REJECTED, command.name, command.guild_id, e)
            return DispatchResult.failure("NODE_ERROR", ErrorMessages.INTERNAL_ERROR)
        except Exception:
            logger.exception(LogTemplates.COMMAND_CRASHED, command.name, command.guild_id)
            return DispatchResult.failure("INTERNAL_ERROR", ErrorMessages.INTERNAL_ERROR)

    # ── Handlers ────────────────────────────────────────────────────

    async def _help(self, command: Command) -> Feedback:
        return Feedback(kind=FeedbackKind.HELP, message=FeedbackMessages.HELP, help=COMMAND_HELP)

    async def _play(self, command: Command) -> Feedback:
        query = command.arg_text
        if not query:
            raise ValidationError(ErrorMessages.EMPTY_QUERY, field="query")
        if command.voice_channel_id is None:
            raise NotInVoiceChannelError()

        session, created = await self._playback.create_session(
            command.guild_id, command.voice_channel_id, command.text_channel_id
        )
        result = await self._resolver.resolve(
            query, command.requester_id, node_id=session.assigned_node_id
        )

        if not result.is_playable:
            if created:
                await self._discard_session(command.guild_id)
            if result.kind == ResolveKind.LOAD_ERROR:
                raise LoadError(result.reason or "unknown error")
            raise NoResultsError(ErrorMessages.NO_RESULTS)

        if result.kind == ResolveKind.PLAYLIST:
            enqueued = await self._playback.enqueue_playlist(command.guild_id, result.tracks)
            name = result.playlist_name or "playlist"
            return Feedback(
                kind=FeedbackKind.ADDED_PLAYLIST,
                message=FeedbackMessages.ADDED_PLAYLIST.format(count=enqueued.added, name=name),
                tracks=result.tracks[: enqueued.added],
                count=enqueued.added,
                playlist_name=name,
                position=enqueued.position,
            )

        track = result.tracks[0]
        enqueued = await self._playback.enqueue(command.guild_id, track)
        return Feedback(
            kind=FeedbackKind.ADDED_TO_QUEUE,
            message=FeedbackMessages.ADDED_TO_QUEUE.format(
                title=track.title, position=enqueued.position
            ),
            track=track,
            position=enqueued.position,
        )

    async def _discard_session(self, guild_id: int) -> None:
        try:
            await self._playback.destroy(guild_id, DestroyReason.CLEANUP)
        except NoActiveSessionError:
            return

    async def _pause(self, command: Command) -> Feedback:
        await self._playback.pause(command.guild_id, True)
        return Feedback(kind=FeedbackKind.PAUSED, message=FeedbackMessages.PAUSED)

    async def _resume(self, command: Command) -> Feedback:
        await self._playback.resume(command.guild_id)
        return Feedback(kind=FeedbackKind.RESUMED, message=FeedbackMessages.RESUMED)

    async def _skip(self, command: Command) -> Feedback:
        skipped = await self._playback.skip(command.guild_id)
        return Feedback(kind=FeedbackKind.SKIPPED, message=FeedbackMessages.SKIPPED, track=skipped)

    async def _stop(self, command: Command) -> Feedback:
        await self._playback.stop(command.guild_id)
        return Feedback(kind=FeedbackKind.STOPPED, message=FeedbackMessages.STOPPED)

    async def _queue(self, command: Command) -> Feedback:
        info = await self._playback.get_queue_info(command.guild_id)
        if info is None:
            raise NoActiveSessionError(command.guild_id)
        if info.current_track is None and not info.upcoming_tracks:
            raise EmptyQueueError(ErrorMessages.QUEUE_EMPTY_SHOW)
        return Feedback(
            kind=FeedbackKind.QUEUE,
            message=FeedbackMessages.QUEUE,
            track=info.current_track,
            tracks=info.upcoming_tracks,
            queue=info,
            loop_mode=info.loop_mode,
        )

    async def _now_playing(self, command: Command) -> Feedback:
        status = await self._playback.get_status(command.guild_id)
        if status is None:
            raise NoActiveSessionError(command.guild_id)
        if status.current_track is None:
            raise InvalidOperationError(
                "nowplaying", status.state.value, ErrorMessages.NO_CURRENT_TRACK
            )
        return Feedback(
            kind=FeedbackKind.NOW_PLAYING,
            message=FeedbackMessages.NOW_PLAYING.format(title=status.current_track.title),
            track=status.current_track,
            status=status,
        )

    async def _volume(self, command: Command) -> Feedback:
        raw = command.args[0] if command.args else ""
        try:
            requested = int(raw)
        except ValueError:
            raise InvalidVolumeError(raw) from None
        volume = await self._playback.set_volume(command.guild_id, requested)
        return Feedback(
            kind=FeedbackKind.VOLUME_SET,
            message=FeedbackMessages.VOLUME_SET.format(volume=volume),
            volume=volume,
        )

    async def _shuffle(self, command: Command) -> Feedback:
        count = await self._playback.shuffle(command.guild_id)
        return Feedback(kind=FeedbackKind.SHUFFLED, message=FeedbackMessages.SHUFFLED, count=count)

    async def _loop(self, command: Command) -> Feedback:
        if not command.args:
            mode = await self._playback.toggle_loop(command.guild_id)
        else:
            try:
                requested = LoopMode.parse(command.args[0])
            except ValueError:
                raise ValidationError(ErrorMessages.INVALID_LOOP_MODE, field="mode") from None
            mode = await self._playback.set_loop_mode(command.guild_id, requested)

        if mode == LoopMode.TRACK:
            message = FeedbackMessages.LOOP_TRACK
        else:
            message = FeedbackMessages.LOOP_SET.format(
                state="Enabled" if mode == LoopMode.QUEUE else "Disabled"
            )
        return Feedback(kind=FeedbackKind.LOOP_SET, message=message, loop_mode=mode)

    async def _remove(self, command: Command) -> Feedback:
        raw = command.args[0] if command.args else ""
        try:
            position = int(raw)
        except ValueError:
            info = await self._playback.get_queue_info(command.guild_id)
            if info is None:
                raise NoActiveSessionError(command.guild_id) from None
            raise OutOfRangeError(0, len(info.upcoming_tracks)) from None
        removed = await self._playback.remove(command.guild_id, position)
        return Feedback(
            kind=FeedbackKind.REMOVED,
            message=FeedbackMessages.REMOVED.format(title=removed.title),
            track=removed,
            position=position,
        )

    async def _clear(self, command: Command) -> Feedback:
        count = await self._playback.clear(command.guild_id)
        return Feedback(kind=FeedbackKind.CLEARED, message=FeedbackMessages.CLEARED, count=count)

    async def _status(self, command: Command) -> Feedback:
        status = await self._playback.get_status(command.guild_id)
        if status is None:
            raise NoActiveSessionError(command.guild_id, ErrorMessages.NO_ACTIVE_PLAYER)
        return Feedback(
            kind=FeedbackKind.STATUS,
            message=FeedbackMessages.STATUS,
            track=status.current_track,
            status=status,
            volume=status.volume,
            loop_mode=status.loop_mode,
        )
