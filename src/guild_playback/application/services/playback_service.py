"""Playback Application Service - the per-guild session state machine.

Every mutating operation runs with the session's lock held for its whole
duration, including the awaits on the audio node. After acquiring the lock
the service re-checks that the registry still maps the guild to the same,
non-destroyed session; results for a session that lost ownership are thrown
away instead of being applied.

Events produced while the lock is held are collected and published once it is
released, so subscribers are free to call back into the service.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from ...domain.music.entities import PlaybackSession, Track
from ...domain.music.services import PlaybackDomainService
from ...domain.music.value_objects import DestroyReason, LoopMode, PlaybackState, TrackEndReason
from ...domain.shared.events import (
    DomainEvent,
    PlaybackFailed,
    QueueExhausted,
    SessionCreated,
    SessionDestroyed,
    SessionFailed,
    SessionMigrated,
    TrackFinishedPlaying,
    TrackQueued,
    TrackStartedPlaying,
)
from ...domain.shared.exceptions import (
    EmptyQueueError,
    InvalidOperationError,
    NoActiveSessionError,
    NoNodesAvailableError,
    ValidationError,
)
from ...domain.shared.messages import ErrorMessages, LogTemplates
from ...domain.shared.types import DiscordSnowflake
from ..interfaces.audio_node import (
    NodeRequestError,
    NodeUnavailableError,
    PlayerEvent,
    PlayerUpdate,
    TrackEnd,
    TrackException,
    TrackStart,
    TrackStuck,
    VoiceSocketClosed,
)
from .queue_models import EnqueueResult, QueueInfo, SessionStatus

if TYPE_CHECKING:
    from ...domain.music.entities import VoiceServerState
    from ...domain.music.repository import SessionRegistry
    from ...domain.shared.events import EventBus
    from ..interfaces.audio_node import AudioNodeClient
    from ..interfaces.voice_gateway import VoiceGateway
    from .node_pool import NodePoolManager

logger = logging.getLogger(__name__)

Outbox = list[DomainEvent]

# Discord voice close code for "disconnected from the channel" (kicked or moved out).
VOICE_CLOSE_DISCONNECTED = 4014


class PlaybackApplicationService:
    """Orchestrates playback sessions across the registry, node pool and voice gateway."""

    def __init__(
        self,
        *,
        registry: SessionRegistry,
        node_pool: NodePoolManager,
        voice_gateway: VoiceGateway,
        event_bus: EventBus,
        default_volume: int = 100,
        max_consecutive_failures: int = 3,
        max_queue_size: int | None = None,
        auto_destroy_on_queue_end: bool = True,
    ) -> None:
        self._registry = registry
        self._node_pool = node_pool
        self._voice_gateway = voice_gateway
        self._event_bus = event_bus
        self._default_volume = PlaybackDomainService.validate_volume(default_volume)
        self._max_failures = max_consecutive_failures
        self._max_queue_size = max_queue_size
        self._auto_destroy = auto_destroy_on_queue_end

        self._background_tasks: set[asyncio.Task[None]] = set()

        self._node_pool.set_player_event_handler(self.handle_node_event)
        self._node_pool.set_orphan_handler(self.handle_node_disconnected)
        self._voice_gateway.set_voice_update_handler(self.handle_voice_update)

    # ── Session locking ─────────────────────────────────────────────

    async def _require_session(self, guild_id: DiscordSnowflake) -> PlaybackSession:
        session = await self._registry.get(guild_id)
        if session is None or session.is_destroyed:
            raise NoActiveSessionError(guild_id)
        return session

    async def _owns(self, session: PlaybackSession) -> bool:
        return not session.is_destroyed and await self._registry.get(session.guild_id) is session

    @asynccontextmanager
    async def _lock_session(self, session: PlaybackSession) -> AsyncIterator[Outbox]:
        outbox: Outbox = []
        try:
            async with session.lock:
                if not await self._owns(session):
                    logger.debug(LogTemplates.SESSION_STALE_RESULT, session.guild_id)
                    raise NoActiveSessionError(session.guild_id)
                yield outbox
        finally:
            await self._publish(outbox)

    @asynccontextmanager
    async def _locked(
        self, guild_id: DiscordSnowflake
    ) -> AsyncIterator[tuple[PlaybackSession, Outbox]]:
        session = await self._require_session(guild_id)
        async with self._lock_session(session) as outbox:
            yield session, outbox

    async def _publish(self, outbox: Outbox) -> None:
        for event in outbox:
            await self._event_bus.publish(event)
        outbox.clear()

    # ── Node plumbing ───────────────────────────────────────────────

    def _client(self, session: PlaybackSession) -> AudioNodeClient:
        if session.assigned_node_id is None:
            raise NoNodesAvailableError()
        return self._node_pool.get_client(session.assigned_node_id)

    async def _send(
        self,
        session: PlaybackSession,
        directive: Callable[[AudioNodeClient], Awaitable[None]],
        operation: str,
    ) -> None:
        """Run a node directive; an unreachable node is reported as disconnected.

        The session state still reflects the caller's intent afterwards, so a
        migration replays it on the next node.
        """
        try:
            await directive(self._client(session))
        except NodeUnavailableError as exc:
            self._schedule_disconnect(exc.node_id, operation)

    def _schedule_disconnect(self, node_id: str, operation: str) -> None:
        # The caller holds a session lock that migration needs, so this cannot be awaited here.
        logger.warning(LogTemplates.NODE_UNREACHABLE, node_id, operation)
        task = asyncio.create_task(self._node_pool.report_disconnect(node_id))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # ── Session lifecycle ───────────────────────────────────────────

    async def create_session(
        self,
        guild_id: DiscordSnowflake,
        voice_channel_id: DiscordSnowflake,
        text_channel_id: DiscordSnowflake,
    ) -> tuple[PlaybackSession, bool]:
        """Return the guild's session, connecting a new one if there is none.

        Returns:
            The session and whether this call created it.

        Raises:
            NoNodesAvailableError: No connected node can take the guild.
            VoiceConnectionError: Joining the voice channel failed.
        """
        session, created = await self._registry.get_or_create(
            guild_id,
            lambda: PlaybackSession(
                guild_id=guild_id,
                voice_channel_id=voice_channel_id,
                text_channel_id=text_channel_id,
                volume=self._default_volume,
                state=PlaybackState.CONNECTING,
            ),
        )
        if not created:
            logger.debug(LogTemplates.SESSION_EXISTS, guild_id)
            return session, False

        # No await between registration and taking the lock: nobody else can
        # observe the session before it is connected.
        outbox: Outbox = []
        async with session.lock:
            try:
                node_id = await self._node_pool.assign_node(guild_id)
                session.assigned_node_id = node_id
                voice = await self._voice_gateway.open_voice_connection(guild_id, voice_channel_id)
                session.voice = voice
                await self._node_pool.get_client(node_id).update_voice(guild_id, voice)
            except Exception as exc:
                logger.warning(LogTemplates.SESSION_CREATE_FAILED, guild_id, exc)
                await self._rollback_create(session)
                if isinstance(exc, NodeUnavailableError):
                    self._schedule_disconnect(exc.node_id, "create_session")
                raise

            session.mark_connected()
            session.transition_to(PlaybackState.IDLE)
            outbox.append(
                SessionCreated(guild_id=guild_id, text_channel_id=text_channel_id, node_id=node_id)
            )
            logger.info(LogTemplates.SESSION_CREATED, guild_id, node_id)

        await self._publish(outbox)
        return session, True

    async def _rollback_create(self, session: PlaybackSession) -> None:
        try:
            await self._voice_gateway.close_voice_connection(session.guild_id)
        except Exception:
            logger.exception(LogTemplates.VOICE_CLEANUP_ERROR, session.guild_id)
        session.transition_to(PlaybackState.DESTROYED)
        await self._node_pool.release(session.guild_id)
        await self._registry.remove(session.guild_id, session)

    async def destroy(
        self, guild_id: DiscordSnowflake, reason: DestroyReason = DestroyReason.USER_REQUEST
    ) -> None:
        async with self._locked(guild_id) as (session, outbox):
            await self._teardown(session, reason, outbox)

    async def stop(self, guild_id: DiscordSnowflake) -> None:
        """Stop playback, clear the queue and leave voice."""
        await self.destroy(guild_id, DestroyReason.USER_REQUEST)

    async def destroy_all(self) -> int:
        destroyed = 0
        for session in await self._registry.all():
            try:
                await self.destroy(session.guild_id, DestroyReason.CLEANUP)
            except NoActiveSessionError:
                continue
            destroyed += 1
        return destroyed

    async def _teardown(
        self, session: PlaybackSession, reason: DestroyReason, outbox: Outbox
    ) -> None:
        """Release everything the session holds. Caller holds the session lock."""
        guild_id = session.guild_id
        session.queue.clear()
        session.queue.current = None

        if self._node_pool.is_connected(session.assigned_node_id):
            try:
                await self._client(session).destroy_player(guild_id)
            except NodeUnavailableError as exc:
                self._schedule_disconnect(exc.node_id, "destroy")
            except NodeRequestError as exc:
                logger.warning(LogTemplates.NODE_ERROR, exc.node_id, exc)

        try:
            await self._voice_gateway.close_voice_connection(guild_id)
        except Exception:
            logger.exception(LogTemplates.VOICE_CLEANUP_ERROR, guild_id)

        session.transition_to(PlaybackState.DESTROYED)
        await self._node_pool.release(guild_id)
        await self._registry.remove(guild_id, session)

        outbox.append(
            SessionDestroyed(
                guild_id=guild_id, text_channel_id=session.text_channel_id, reason=reason
            )
        )
        logger.info(LogTemplates.SESSION_DESTROYED, guild_id, reason.value)

    # ── Queueing ────────────────────────────────────────────────────

    def _capacity(self, session: PlaybackSession) -> int | None:
        if self._max_queue_size is None:
            return None
        remaining = self._max_queue_size - session.queue.length
        if remaining <= 0:
            raise ValidationError(ErrorMessages.QUEUE_FULL.format(limit=self._max_queue_size))
        return remaining

    async def enqueue(self, guild_id: DiscordSnowflake, track: Track) -> EnqueueResult:
        """Append a track, starting playback if the session is idle.

        Raises NoActiveSessionError when the session was destroyed while the
        caller was resolving the track.
        """
        async with self._locked(guild_id) as (session, outbox):
            self._capacity(session)
            position = session.queue.add(track)
            outbox.append(
                TrackQueued(
                    guild_id=guild_id,
                    text_channel_id=session.text_channel_id,
                    track=track,
                    position=position,
                )
            )
            logger.info(LogTemplates.QUEUE_ENQUEUED, track.title, position, guild_id)

            started = await self._start_if_idle(session, outbox)
            return EnqueueResult(
                track=track,
                added=1,
                position=position,
                queue_length=session.queue.length,
                started=started,
            )

    async def enqueue_playlist(
        self, guild_id: DiscordSnowflake, tracks: list[Track]
    ) -> EnqueueResult:
        async with self._locked(guild_id) as (session, outbox):
            capacity = self._capacity(session)
            if capacity is not None:
                tracks = tracks[:capacity]
            first_position = session.queue.length + 1
            added = session.queue.add_many(tracks)
            logger.info(LogTemplates.QUEUE_ENQUEUED_MANY, added, guild_id)

            started = await self._start_if_idle(session, outbox)
            return EnqueueResult(
                track=tracks[0] if tracks else None,
                added=added,
                position=first_position,
                queue_length=session.queue.length,
                started=started,
            )

    async def _start_if_idle(self, session: PlaybackSession, outbox: Outbox) -> bool:
        if session.state.can_start and session.current_track is None:
            return await self._advance(session, outbox) is not None
        return False

    # ── Playback control ────────────────────────────────────────────

    async def play(self, guild_id: DiscordSnowflake) -> Track | None:
        """Start the next queued track on an idle session."""
        async with self._locked(guild_id) as (session, outbox):
            if not session.state.can_start:
                raise InvalidOperationError("play", session.state.value)
            return await self._advance(session, outbox)

    async def pause(self, guild_id: DiscordSnowflake, paused: bool = True) -> None:
        async with self._locked(guild_id) as (session, _):
            PlaybackDomainService.ensure_can_pause(session, paused)
            await self._send(session, lambda c: c.set_paused(guild_id, paused), "pause")
            session.transition_to(PlaybackState.PAUSED if paused else PlaybackState.PLAYING)
            if paused:
                logger.info(LogTemplates.PLAYBACK_PAUSED, guild_id)
            else:
                logger.info(LogTemplates.PLAYBACK_RESUMED, guild_id)

    async def resume(self, guild_id: DiscordSnowflake) -> None:
        await self.pause(guild_id, False)

    async def skip(self, guild_id: DiscordSnowflake) -> Track | None:
        """Stop the current track so the node's end event advances the queue.

        If another advance happened while this call waited for the lock, the
        skip counts as already applied and nothing is stopped.

        Returns:
            The track that was skipped, or the track now playing when the skip
            was satisfied by a concurrent advance.
        """
        session = await self._require_session(guild_id)
        generation = session.play_generation

        async with self._lock_session(session):
            if session.play_generation != generation:
                logger.info(LogTemplates.PLAYBACK_SKIP_ALREADY_APPLIED, guild_id)
                return session.current_track

            PlaybackDomainService.ensure_can_skip(session)
            skipped = session.current_track
            if session.skip_pending:
                return skipped

            session.skip_pending = True
            await self._send(session, lambda c: c.stop(guild_id), "skip")
            return skipped

    async def set_volume(self, guild_id: DiscordSnowflake, volume: object) -> int:
        value = PlaybackDomainService.validate_volume(volume)
        async with self._locked(guild_id) as (session, _):
            await self._send(session, lambda c: c.set_volume(guild_id, value), "volume")
            session.volume = value
            logger.info(LogTemplates.PLAYBACK_VOLUME, value, guild_id)
            return value

    # ── Queue mutation ──────────────────────────────────────────────

    async def shuffle(self, guild_id: DiscordSnowflake) -> int:
        async with self._locked(guild_id) as (session, _):
            if session.queue.is_empty:
                raise EmptyQueueError(ErrorMessages.QUEUE_EMPTY_SHUFFLE)
            session.queue.shuffle()
            logger.info(LogTemplates.QUEUE_SHUFFLED, guild_id)
            return session.queue.length

    async def clear(self, guild_id: DiscordSnowflake) -> int:
        async with self._locked(guild_id) as (session, _):
            if session.queue.is_empty:
                raise EmptyQueueError(ErrorMessages.QUEUE_ALREADY_EMPTY)
            count = session.queue.clear()
            logger.info(LogTemplates.QUEUE_CLEARED, count, guild_id)
            return count

    async def remove(self, guild_id: DiscordSnowflake, position: int) -> Track:
        async with self._locked(guild_id) as (session, _):
            track = session.queue.remove(position)
            logger.info(LogTemplates.QUEUE_REMOVED, track.title, guild_id)
            return track

    async def set_loop_mode(self, guild_id: DiscordSnowflake, mode: LoopMode) -> LoopMode:
        async with self._locked(guild_id) as (session, _):
            session.queue.set_loop_mode(mode)
            logger.info(LogTemplates.LOOP_MODE_CHANGED, mode.value, guild_id)
            return mode

    async def toggle_loop(self, guild_id: DiscordSnowflake) -> LoopMode:
        """Flip between no looping and looping the whole queue."""
        async with self._locked(guild_id) as (session, _):
            mode = LoopMode.QUEUE if session.queue.loop_mode == LoopMode.NONE else LoopMode.NONE
            session.queue.set_loop_mode(mode)
            logger.info(LogTemplates.LOOP_MODE_CHANGED, mode.value, guild_id)
            return mode

    # ── Snapshots (no lock) ─────────────────────────────────────────

    async def get_queue_info(self, guild_id: DiscordSnowflake) -> QueueInfo | None:
        session = await self._registry.get(guild_id)
        if session is None or session.is_destroyed:
            return None
        return QueueInfo(
            current_track=session.current_track,
            upcoming_tracks=list(session.queue.items),
            total_length=session.queue.total_length,
            total_duration_ms=session.queue.duration_ms,
            loop_mode=session.queue.loop_mode,
        )

    async def get_status(self, guild_id: DiscordSnowflake) -> SessionStatus | None:
        session = await self._registry.get(guild_id)
        if session is None or session.is_destroyed:
            return None
        return SessionStatus(
            guild_id=guild_id,
            state=session.state,
            volume=session.volume,
            loop_mode=session.queue.loop_mode,
            node_id=session.assigned_node_id,
            current_track=session.current_track,
            position_ms=session.position_ms,
            queue_length=session.queue.length,
            connected_at=session.connected_at,
        )

    # ── Advancing ───────────────────────────────────────────────────

    async def _advance(
        self, session: PlaybackSession, outbox: Outbox, *, force_next: bool = False
    ) -> Track | None:
        """Move the queue forward and hand the new current track to the node.

        Caller holds the session lock. A node that rejects the play request
        counts as a track failure and the next track is tried, until the
        failure cap halts the session.
        """
        guild_id = session.guild_id
        while True:
            previous = session.current_track
            track = session.queue.advance(force_next=force_next)
            if track is None:
                await self._queue_exhausted(session, previous, outbox)
                return None

            session.begin_play(track)
            try:
                await self._client(session).play(guild_id, track, volume=session.volume)
            except NodeUnavailableError as exc:
                # Migration replays the current track on the next node.
                self._schedule_disconnect(exc.node_id, "play")
                return track
            except NodeRequestError as exc:
                logger.warning(LogTemplates.PLAYBACK_PLAY_REJECTED, track.title, guild_id, exc)
                if self._record_failure(session, outbox):
                    return None
                force_next = True
                continue

            logger.info(LogTemplates.PLAYBACK_STARTED, track.title, guild_id)
            return track

    async def _queue_exhausted(
        self, session: PlaybackSession, last_track: Track | None, outbox: Outbox
    ) -> None:
        session.position_ms = 0
        session.skip_pending = False
        session.transition_to(PlaybackState.IDLE)
        outbox.append(
            QueueExhausted(
                guild_id=session.guild_id,
                text_channel_id=session.text_channel_id,
                last_track=last_track,
            )
        )
        logger.info(LogTemplates.QUEUE_EMPTY, session.guild_id)
        if self._auto_destroy:
            await self._teardown(session, DestroyReason.QUEUE_ENDED, outbox)

    def _record_failure(self, session: PlaybackSession, outbox: Outbox) -> bool:
        """Count a failed track; returns True when the session was halted."""
        session.consecutive_failures += 1
        failures = session.consecutive_failures
        if failures <= self._max_failures:
            return False

        logger.error(LogTemplates.PLAYBACK_FAILURE_CAP, session.guild_id, failures)
        session.queue.current = None
        session.consecutive_failures = 0
        session.skip_pending = False
        session.transition_to(PlaybackState.IDLE)
        outbox.append(
            PlaybackFailed(
                guild_id=session.guild_id,
                text_channel_id=session.text_channel_id,
                failures=failures,
                message=ErrorMessages.TOO_MANY_FAILURES.format(count=failures),
            )
        )
        return True

    # ── Node events ─────────────────────────────────────────────────

    async def handle_node_event(self, event: PlayerEvent) -> None:
        match event:
            case TrackStart():
                await self.handle_track_start(event.guild_id, event.encoded)
            case TrackEnd():
                await self.handle_track_end(event.guild_id, event.encoded, event.reason)
            case PlayerUpdate():
                await self.handle_player_update(event.guild_id, event.position_ms)
            case TrackException():
                logger.warning(
                    LogTemplates.TRACK_EXCEPTION, event.guild_id, event.message, event.severity
                )
            case TrackStuck():
                await self._handle_track_stuck(event)
            case VoiceSocketClosed():
                await self._handle_voice_closed(event)
            case _:
                logger.debug("Unhandled player event %s", type(event).__name__)

    async def _event_session(self, guild_id: DiscordSnowflake) -> PlaybackSession | None:
        session = await self._registry.get(guild_id)
        if session is None or session.is_destroyed:
            logger.debug(LogTemplates.SESSION_NOT_FOUND, guild_id)
            return None
        return session

    async def handle_track_start(self, guild_id: DiscordSnowflake, encoded: str | None = None) -> None:
        session = await self._event_session(guild_id)
        if session is None:
            return
        try:
            async with self._lock_session(session) as outbox:
                track = session.current_track
                if track is None or (encoded is not None and track.encoded != encoded):
                    return
                session.consecutive_failures = 0
                outbox.append(
                    TrackStartedPlaying(
                        guild_id=guild_id, text_channel_id=session.text_channel_id, track=track
                    )
                )
                logger.debug(LogTemplates.TRACK_STARTED, track.title, guild_id)
        except NoActiveSessionError:
            return

    async def handle_track_end(
        self,
        guild_id: DiscordSnowflake,
        encoded: str | None,
        reason: TrackEndReason,
    ) -> None:
        """Advance on FINISHED/STOPPED/LOAD_FAILED ends of the current track.

        Ends for a track that is no longer current (or a session that is gone)
        are stale and ignored.
        """
        session = await self._event_session(guild_id)
        if session is None:
            return
        try:
            async with self._lock_session(session) as outbox:
                track = session.current_track
                if track is None or (encoded is not None and track.encoded != encoded):
                    logger.debug(LogTemplates.TRACK_END_STALE, guild_id, reason.value)
                    return

                logger.debug(LogTemplates.TRACK_ENDED, guild_id, reason.value)
                if not reason.should_advance:
                    return

                outbox.append(
                    TrackFinishedPlaying(
                        guild_id=guild_id,
                        text_channel_id=session.text_channel_id,
                        track=track,
                        reason=reason,
                    )
                )

                if reason.is_error:
                    logger.warning(
                        LogTemplates.TRACK_FAILED,
                        track.title,
                        guild_id,
                        session.consecutive_failures + 1,
                    )
                    if self._record_failure(session, outbox):
                        return

                force_next = reason.is_error or (
                    reason == TrackEndReason.STOPPED and session.skip_pending
                )
                await self._advance(session, outbox, force_next=force_next)
        except NoActiveSessionError:
            return

    async def handle_player_update(self, guild_id: DiscordSnowflake, position_ms: int) -> None:
        session = await self._event_session(guild_id)
        if session is not None and session.current_track is not None:
            session.position_ms = max(0, position_ms)

    async def handle_voice_update(
        self, guild_id: DiscordSnowflake, voice: VoiceServerState
    ) -> None:
        """Forward voice credentials that changed after the session connected."""
        session = await self._event_session(guild_id)
        if session is None:
            return
        try:
            async with self._lock_session(session):
                if voice == session.voice:
                    return
                session.voice = voice
                if voice.channel_id is not None:
                    session.voice_channel_id = voice.channel_id
                if session.state == PlaybackState.CONNECTING:
                    return
                logger.info(LogTemplates.VOICE_SERVER_MOVED, guild_id, voice.endpoint)
                await self._send(session, lambda c: c.update_voice(guild_id, voice), "voice")
        except NoActiveSessionError:
            return

    async def _handle_track_stuck(self, event: TrackStuck) -> None:
        logger.warning(LogTemplates.TRACK_STUCK, event.guild_id, event.threshold_ms)
        session = await self._event_session(event.guild_id)
        if session is None:
            return
        try:
            async with self._lock_session(session):
                track = session.current_track
                if track is None or (event.encoded is not None and track.encoded != event.encoded):
                    return
                # The resulting STOPPED end moves past the stuck track even in TRACK loop.
                session.skip_pending = True
                await self._send(session, lambda c: c.stop(event.guild_id), "stuck")
        except NoActiveSessionError:
            return

    async def _handle_voice_closed(self, event: VoiceSocketClosed) -> None:
        logger.warning(LogTemplates.LAVALINK_VOICE_CLOSED, event.guild_id, event.code, event.reason)
        if event.code != VOICE_CLOSE_DISCONNECTED:
            return
        try:
            await self.destroy(event.guild_id, DestroyReason.CLEANUP)
        except NoActiveSessionError:
            return

    # ── Node failover ───────────────────────────────────────────────

    async def handle_node_disconnected(
        self, node_id: str, guild_ids: list[DiscordSnowflake]
    ) -> None:
        """Move every orphaned session to a healthy node, or destroy it."""

        async def safe_migrate(guild_id: DiscordSnowflake) -> None:
            session = await self._event_session(guild_id)
            if session is None:
                return
            try:
                async with self._lock_session(session) as outbox:
                    await self._migrate(session, node_id, outbox)
            except NoActiveSessionError:
                return
            except Exception:
                logger.exception(LogTemplates.SESSION_MIGRATION_FAILED, guild_id, node_id)

        async with asyncio.TaskGroup() as tg:
            for guild_id in guild_ids:
                tg.create_task(safe_migrate(guild_id))

    async def _migrate(self, session: PlaybackSession, lost_node_id: str, outbox: Outbox) -> None:
        guild_id = session.guild_id
        if session.assigned_node_id != lost_node_id:
            return

        try:
            new_node_id = await self._node_pool.assign_node(guild_id)
        except NoNodesAvailableError:
            logger.error(LogTemplates.SESSION_MIGRATION_FAILED, guild_id, lost_node_id)
            outbox.append(
                SessionFailed(
                    guild_id=guild_id,
                    text_channel_id=session.text_channel_id,
                    message=ErrorMessages.NODE_LOST,
                )
            )
            await self._teardown(session, DestroyReason.NODE_LOST, outbox)
            return

        session.assigned_node_id = new_node_id
        client = self._node_pool.get_client(new_node_id)
        outbox.append(
            SessionMigrated(
                guild_id=guild_id,
                text_channel_id=session.text_channel_id,
                from_node_id=lost_node_id,
                to_node_id=new_node_id,
            )
        )
        logger.info(LogTemplates.SESSION_MIGRATED, guild_id, lost_node_id, new_node_id)

        try:
            if session.voice is not None:
                await client.update_voice(guild_id, session.voice)
            track = session.current_track
            if track is not None and session.state.is_active and session.skip_pending:
                # The stop never reached the lost node; finish the skip here.
                outbox.append(
                    TrackFinishedPlaying(
                        guild_id=guild_id,
                        text_channel_id=session.text_channel_id,
                        track=track,
                        reason=TrackEndReason.STOPPED,
                    )
                )
                await self._advance(session, outbox, force_next=True)
            elif track is not None and session.state.is_active:
                await client.play(
                    guild_id,
                    track,
                    volume=session.volume,
                    paused=session.is_paused,
                    position_ms=session.position_ms,
                )
        except NodeUnavailableError as exc:
            # Reporting this node too re-orphans the guild and retries elsewhere.
            self._schedule_disconnect(exc.node_id, "migrate")
        except NodeRequestError as exc:
            logger.warning(LogTemplates.NODE_ERROR, exc.node_id, exc)

    async def shutdown(self) -> None:
        await self.destroy_all()
        for task in list(self._background_tasks):
            task.cancel()
        self._background_tasks.clear()
