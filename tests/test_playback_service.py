"""
Unit Tests for PlaybackApplicationService

Tests for:
- Session lifecycle (create, rollback, destroy)
- Queueing and auto-start
- Track-end advancement, stale ends, skip races
- Consecutive failure cap
- Node failover and migration

Runs the real service against fake nodes and a fake voice gateway.
"""

import asyncio

import pytest
from conftest import (
    GUILD_ID,
    TEXT_CHANNEL_ID,
    VOICE_CHANNEL_ID,
    build_harness,
    make_track,
)

from guild_playback.application.interfaces.audio_node import (
    NodeReady,
    NodeRequestError,
    NodeUnavailableError,
    PlayerUpdate,
    TrackStart,
    TrackStuck,
    VoiceSocketClosed,
)
from guild_playback.application.interfaces.voice_gateway import VoiceConnectionError
from guild_playback.domain.music.entities import VoiceServerState
from guild_playback.domain.music.value_objects import (
    DestroyReason,
    LoopMode,
    PlaybackState,
    TrackEndReason,
)
from guild_playback.domain.shared.events import (
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
from guild_playback.domain.shared.exceptions import (
    AlreadyInStateError,
    EmptyQueueError,
    InvalidOperationError,
    InvalidVolumeError,
    NoActiveSessionError,
    NoNodesAvailableError,
    NothingToSkipError,
    ValidationError,
)

FINISHED = TrackEndReason.FINISHED
STOPPED = TrackEndReason.STOPPED
LOAD_FAILED = TrackEndReason.LOAD_FAILED


# =============================================================================
# Session lifecycle
# =============================================================================


class TestCreateSession:
    """Tests for create_session."""

    @pytest.mark.asyncio
    async def test_new_session_is_connected_and_idle(self, harness):
        session, created = await harness.service.create_session(
            GUILD_ID, VOICE_CHANNEL_ID, TEXT_CHANNEL_ID
        )

        assert created is True
        assert session.state == PlaybackState.IDLE
        assert session.assigned_node_id == "node-a"
        assert session.connected_at is not None
        assert harness.gateway.opened == [(GUILD_ID, VOICE_CHANNEL_ID)]
        assert harness.nodes["node-a"].calls_named("update_voice") == [
            ("update_voice", GUILD_ID, f"voice-{GUILD_ID}")
        ]
        assert len(harness.events_of(SessionCreated)) == 1

    @pytest.mark.asyncio
    async def test_create_is_idempotent(self, harness, session):
        again, created = await harness.service.create_session(
            GUILD_ID, VOICE_CHANNEL_ID, TEXT_CHANNEL_ID
        )

        assert created is False
        assert again is session
        assert len(harness.gateway.opened) == 1

    @pytest.mark.asyncio
    async def test_default_volume_applied(self):
        harness = build_harness(default_volume=40)
        session = await harness.start_session()
        assert session.volume == 40

    @pytest.mark.asyncio
    async def test_no_connected_nodes(self, harness):
        harness.nodes["node-a"].node.is_connected = False

        with pytest.raises(NoNodesAvailableError):
            await harness.start_session()

        assert await harness.registry.get(GUILD_ID) is None
        assert harness.gateway.closed == [GUILD_ID]

    @pytest.mark.asyncio
    async def test_voice_failure_rolls_back(self, harness):
        harness.gateway.error = VoiceConnectionError(GUILD_ID, "timed out")

        with pytest.raises(VoiceConnectionError):
            await harness.start_session()

        assert await harness.registry.get(GUILD_ID) is None
        assert harness.pool.assigned_node(GUILD_ID) is None
        assert harness.nodes["node-a"].node.session_count == 0
        assert harness.events_of(SessionCreated) == []

    @pytest.mark.asyncio
    async def test_concurrent_creates_share_one_session(self, harness):
        results = await asyncio.gather(
            *(
                harness.service.create_session(GUILD_ID, VOICE_CHANNEL_ID, TEXT_CHANNEL_ID)
                for _ in range(5)
            )
        )

        assert sum(created for _, created in results) == 1
        assert len({id(session) for session, _ in results}) == 1
        assert len(harness.gateway.opened) == 1


class TestDestroy:
    """Tests for destroy/stop."""

    @pytest.mark.asyncio
    async def test_stop_tears_everything_down(self, harness, session, sample_tracks):
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)

        await harness.service.stop(GUILD_ID)

        node = harness.nodes["node-a"]
        assert session.state == PlaybackState.DESTROYED
        assert session.queue.current is None
        assert session.queue.is_empty
        assert node.calls_named("destroy_player") == [("destroy_player", GUILD_ID)]
        assert harness.gateway.closed == [GUILD_ID]
        assert await harness.registry.get(GUILD_ID) is None
        assert node.node.session_count == 0
        (destroyed,) = harness.events_of(SessionDestroyed)
        assert destroyed.reason == DestroyReason.USER_REQUEST

    @pytest.mark.asyncio
    async def test_destroy_without_session(self, harness):
        with pytest.raises(NoActiveSessionError):
            await harness.service.destroy(GUILD_ID)

    @pytest.mark.asyncio
    async def test_enqueue_after_destroy_is_discarded(self, harness, session, sample_track):
        """A resolve that finishes after stop must not resurrect the session."""
        await harness.service.stop(GUILD_ID)

        with pytest.raises(NoActiveSessionError):
            await harness.service.enqueue(GUILD_ID, sample_track)

        assert harness.nodes["node-a"].calls_named("play") == []

    @pytest.mark.asyncio
    async def test_stale_holder_cannot_act_on_new_session(self, harness, session):
        await harness.service.stop(GUILD_ID)
        fresh = await harness.start_session()

        await harness.service.handle_track_end(GUILD_ID, "enc-1", FINISHED)

        assert fresh is not session
        assert fresh.state == PlaybackState.IDLE

    @pytest.mark.asyncio
    async def test_destroy_all(self):
        harness = build_harness()
        await harness.service.create_session(1, 2, 3)
        await harness.service.create_session(4, 5, 6)

        assert await harness.service.destroy_all() == 2
        assert await harness.registry.count() == 0

    @pytest.mark.asyncio
    async def test_voice_socket_closed_by_kick_destroys(self, harness, session):
        await harness.emit(
            VoiceSocketClosed(node_id="node-a", guild_id=GUILD_ID, code=4014, reason="kicked")
        )

        assert session.state == PlaybackState.DESTROYED
        (destroyed,) = harness.events_of(SessionDestroyed)
        assert destroyed.reason == DestroyReason.CLEANUP

    @pytest.mark.asyncio
    async def test_other_voice_close_codes_ignored(self, harness, session):
        await harness.emit(
            VoiceSocketClosed(node_id="node-a", guild_id=GUILD_ID, code=4006, reason="resume")
        )
        assert session.state == PlaybackState.IDLE

    @pytest.mark.asyncio
    async def test_voice_server_move_is_forwarded(self, harness, session):
        moved = VoiceServerState(
            session_id="voice-moved",
            token="new-token",
            endpoint="voice2.example.com",
            channel_id=VOICE_CHANNEL_ID + 1,
        )

        await harness.gateway.update_handler(GUILD_ID, moved)

        assert session.voice == moved
        assert session.voice_channel_id == VOICE_CHANNEL_ID + 1
        assert harness.nodes["node-a"].calls_named("update_voice")[-1] == (
            "update_voice",
            GUILD_ID,
            "voice-moved",
        )

    @pytest.mark.asyncio
    async def test_unchanged_voice_credentials_not_resent(self, harness, session):
        await harness.service.handle_voice_update(GUILD_ID, session.voice)
        await harness.service.handle_voice_update(999, session.voice)

        assert len(harness.nodes["node-a"].calls_named("update_voice")) == 1


# =============================================================================
# Queueing
# =============================================================================


class TestEnqueue:
    """Tests for enqueue and enqueue_playlist."""

    @pytest.mark.asyncio
    async def test_first_track_starts_playing(self, harness, session, sample_track):
        result = await harness.service.enqueue(GUILD_ID, sample_track)

        assert result.started is True
        assert result.position == 1
        assert session.state == PlaybackState.PLAYING
        assert session.current_track == sample_track
        assert harness.nodes["node-a"].calls_named("play") == [
            ("play", GUILD_ID, "enc-1", 100, False, 0)
        ]
        assert len(harness.events_of(TrackQueued)) == 1

    @pytest.mark.asyncio
    async def test_second_track_waits(self, harness, session):
        await harness.service.enqueue(GUILD_ID, make_track(1))
        result = await harness.service.enqueue(GUILD_ID, make_track(2))

        assert result.started is False
        assert result.position == 1
        assert session.current_track.id == "track-1"
        assert len(harness.nodes["node-a"].calls_named("play")) == 1

    @pytest.mark.asyncio
    async def test_playlist_into_idle_session(self, harness, session, sample_tracks):
        result = await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)
        info = await harness.service.get_queue_info(GUILD_ID)

        assert result.added == 3
        assert result.started is True
        assert info.current_track.id == "track-1"
        assert [t.id for t in info.upcoming_tracks] == ["track-2", "track-3"]
        assert info.total_length == 3

    @pytest.mark.asyncio
    async def test_queue_full(self):
        harness = build_harness(max_queue_size=1)
        await harness.start_session()
        await harness.service.enqueue(GUILD_ID, make_track(1))
        await harness.service.enqueue(GUILD_ID, make_track(2))

        with pytest.raises(ValidationError):
            await harness.service.enqueue(GUILD_ID, make_track(3))

    @pytest.mark.asyncio
    async def test_playlist_truncated_to_capacity(self):
        harness = build_harness(max_queue_size=2)
        await harness.start_session()

        result = await harness.service.enqueue_playlist(
            GUILD_ID, [make_track(n) for n in range(1, 6)]
        )

        assert result.added == 2

    @pytest.mark.asyncio
    async def test_enqueue_without_session(self, harness, sample_track):
        with pytest.raises(NoActiveSessionError):
            await harness.service.enqueue(GUILD_ID, sample_track)


class TestQueueCommands:
    """Tests for shuffle/clear/remove/loop."""

    @pytest.mark.asyncio
    async def test_shuffle_empty_queue(self, harness, session):
        with pytest.raises(EmptyQueueError):
            await harness.service.shuffle(GUILD_ID)

    @pytest.mark.asyncio
    async def test_clear_keeps_current(self, harness, session, sample_tracks):
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)

        assert await harness.service.clear(GUILD_ID) == 2
        assert session.current_track.id == "track-1"

    @pytest.mark.asyncio
    async def test_clear_empty_queue(self, harness, session):
        with pytest.raises(EmptyQueueError):
            await harness.service.clear(GUILD_ID)

    @pytest.mark.asyncio
    async def test_remove(self, harness, session, sample_tracks):
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)

        removed = await harness.service.remove(GUILD_ID, 2)

        assert removed.id == "track-3"

    @pytest.mark.asyncio
    async def test_toggle_loop(self, harness, session):
        assert await harness.service.toggle_loop(GUILD_ID) == LoopMode.QUEUE
        assert await harness.service.toggle_loop(GUILD_ID) == LoopMode.NONE

    @pytest.mark.asyncio
    async def test_toggle_from_track_loop_turns_off(self, harness, session):
        await harness.service.set_loop_mode(GUILD_ID, LoopMode.TRACK)
        assert await harness.service.toggle_loop(GUILD_ID) == LoopMode.NONE


# =============================================================================
# Playback control
# =============================================================================


class TestPlaybackControl:
    """Tests for play/pause/resume/volume."""

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, harness, session, sample_track):
        await harness.service.enqueue(GUILD_ID, sample_track)

        await harness.service.pause(GUILD_ID)
        assert session.state == PlaybackState.PAUSED

        await harness.service.resume(GUILD_ID)
        assert session.state == PlaybackState.PLAYING
        assert harness.nodes["node-a"].calls_named("set_paused") == [
            ("set_paused", GUILD_ID, True),
            ("set_paused", GUILD_ID, False),
        ]

    @pytest.mark.asyncio
    async def test_pause_twice(self, harness, session, sample_track):
        await harness.service.enqueue(GUILD_ID, sample_track)
        await harness.service.pause(GUILD_ID)

        with pytest.raises(AlreadyInStateError):
            await harness.service.pause(GUILD_ID)

    @pytest.mark.asyncio
    async def test_pause_while_idle(self, harness, session):
        with pytest.raises(InvalidOperationError):
            await harness.service.pause(GUILD_ID)

    @pytest.mark.asyncio
    async def test_play_requires_idle(self, harness, session, sample_track):
        await harness.service.enqueue(GUILD_ID, sample_track)

        with pytest.raises(InvalidOperationError):
            await harness.service.play(GUILD_ID)

    @pytest.mark.asyncio
    async def test_set_volume(self, harness, session):
        assert await harness.service.set_volume(GUILD_ID, 35) == 35
        assert session.volume == 35
        assert harness.nodes["node-a"].calls_named("set_volume") == [
            ("set_volume", GUILD_ID, 35)
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("volume", [-1, 101, 1000])
    async def test_volume_out_of_bounds(self, harness, session, volume):
        with pytest.raises(InvalidVolumeError):
            await harness.service.set_volume(GUILD_ID, volume)

        assert session.volume == 100
        assert harness.nodes["node-a"].calls_named("set_volume") == []

    @pytest.mark.asyncio
    async def test_volume_used_for_next_play(self, harness, session):
        await harness.service.set_volume(GUILD_ID, 20)
        await harness.service.enqueue(GUILD_ID, make_track(1))

        assert harness.nodes["node-a"].calls_named("play")[0][3] == 20

    @pytest.mark.asyncio
    async def test_status_snapshot(self, harness, session, sample_track):
        await harness.service.enqueue(GUILD_ID, sample_track)
        await harness.service.handle_player_update(GUILD_ID, 12_000)

        status = await harness.service.get_status(GUILD_ID)

        assert status.state == PlaybackState.PLAYING
        assert status.node_id == "node-a"
        assert status.current_track == sample_track
        assert status.position_ms == 12_000

    @pytest.mark.asyncio
    async def test_snapshots_without_session(self, harness):
        assert await harness.service.get_status(GUILD_ID) is None
        assert await harness.service.get_queue_info(GUILD_ID) is None


# =============================================================================
# Track end / skip
# =============================================================================


class TestTrackEnd:
    """Tests for node track-end events."""

    @pytest.mark.asyncio
    async def test_finished_advances(self, harness, session, sample_tracks):
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)

        await harness.service.handle_track_end(GUILD_ID, "enc-1", FINISHED)

        assert session.current_track.id == "track-2"
        assert session.state == PlaybackState.PLAYING
        (finished,) = harness.events_of(TrackFinishedPlaying)
        assert finished.track.id == "track-1"

    @pytest.mark.asyncio
    async def test_stale_end_ignored(self, harness, session, sample_tracks):
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)

        await harness.service.handle_track_end(GUILD_ID, "enc-3", FINISHED)

        assert session.current_track.id == "track-1"
        assert len(harness.nodes["node-a"].calls_named("play")) == 1

    @pytest.mark.asyncio
    async def test_replaced_and_cleanup_ignored(self, harness, session, sample_tracks):
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)

        await harness.service.handle_track_end(GUILD_ID, "enc-1", TrackEndReason.REPLACED)
        await harness.service.handle_track_end(GUILD_ID, "enc-1", TrackEndReason.CLEANUP)

        assert session.current_track.id == "track-1"

    @pytest.mark.asyncio
    async def test_end_for_unknown_guild_ignored(self, harness):
        await harness.service.handle_track_end(GUILD_ID, "enc-1", FINISHED)

    @pytest.mark.asyncio
    async def test_track_loop_repeats_on_finish(self, harness, session, sample_tracks):
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)
        await harness.service.set_loop_mode(GUILD_ID, LoopMode.TRACK)

        await harness.service.handle_track_end(GUILD_ID, "enc-1", FINISHED)

        assert session.current_track.id == "track-1"
        assert len(harness.nodes["node-a"].calls_named("play")) == 2

    @pytest.mark.asyncio
    async def test_queue_exhausted_goes_idle(self, harness, session, sample_track):
        await harness.service.enqueue(GUILD_ID, sample_track)

        await harness.service.handle_track_end(GUILD_ID, "enc-1", FINISHED)

        assert session.state == PlaybackState.IDLE
        assert session.current_track is None
        (exhausted,) = harness.events_of(QueueExhausted)
        assert exhausted.last_track.id == "track-1"
        assert exhausted.text_channel_id == TEXT_CHANNEL_ID
        assert await harness.registry.get(GUILD_ID) is session

    @pytest.mark.asyncio
    async def test_queue_exhausted_auto_destroys(self, sample_track):
        harness = build_harness(auto_destroy_on_queue_end=True)
        session = await harness.start_session()
        await harness.service.enqueue(GUILD_ID, sample_track)

        await harness.service.handle_track_end(GUILD_ID, "enc-1", FINISHED)

        assert session.state == PlaybackState.DESTROYED
        assert len(harness.events_of(QueueExhausted)) == 1
        (destroyed,) = harness.events_of(SessionDestroyed)
        assert destroyed.reason == DestroyReason.QUEUE_ENDED

    @pytest.mark.asyncio
    async def test_track_start_publishes_and_resets_failures(
        self, harness, session, sample_tracks
    ):
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)
        await harness.service.handle_track_end(GUILD_ID, "enc-1", LOAD_FAILED)
        assert session.consecutive_failures == 1

        await harness.emit(
            TrackStart(node_id="node-a", guild_id=GUILD_ID, encoded="enc-2")
        )

        assert session.consecutive_failures == 0
        (started,) = harness.events_of(TrackStartedPlaying)
        assert started.track.id == "track-2"

    @pytest.mark.asyncio
    async def test_player_update_routed_through_pool(self, harness, session, sample_track):
        await harness.service.enqueue(GUILD_ID, sample_track)

        await harness.emit(
            PlayerUpdate(node_id="node-a", guild_id=GUILD_ID, position_ms=90_000)
        )

        assert session.position_ms == 90_000


class TestSkip:
    """Tests for skip and its interaction with track-end events."""

    @pytest.mark.asyncio
    async def test_skip_sends_stop_then_end_advances(self, harness, session, sample_tracks):
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)

        skipped = await harness.service.skip(GUILD_ID)

        assert skipped.id == "track-1"
        assert session.skip_pending is True
        assert harness.nodes["node-a"].calls_named("stop") == [("stop", GUILD_ID)]
        assert session.current_track.id == "track-1"

        await harness.service.handle_track_end(GUILD_ID, "enc-1", STOPPED)

        assert session.current_track.id == "track-2"
        assert session.skip_pending is False

    @pytest.mark.asyncio
    async def test_skip_overrides_track_loop(self, harness, session, sample_tracks):
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)
        await harness.service.set_loop_mode(GUILD_ID, LoopMode.TRACK)

        await harness.service.skip(GUILD_ID)
        await harness.service.handle_track_end(GUILD_ID, "enc-1", STOPPED)

        assert session.current_track.id == "track-2"

    @pytest.mark.asyncio
    async def test_skip_with_nothing_pending(self, harness, session, sample_track):
        await harness.service.enqueue(GUILD_ID, sample_track)

        with pytest.raises(NothingToSkipError):
            await harness.service.skip(GUILD_ID)

    @pytest.mark.asyncio
    async def test_double_skip_sends_one_stop(self, harness, session, sample_tracks):
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)

        await harness.service.skip(GUILD_ID)
        await harness.service.skip(GUILD_ID)

        assert len(harness.nodes["node-a"].calls_named("stop")) == 1

    @pytest.mark.asyncio
    async def test_skip_racing_track_end_advances_once(self, harness, session, sample_tracks):
        """A skip queued behind a natural track end must not skip the next track too."""
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)

        async with session.lock:
            end_task = asyncio.create_task(
                harness.service.handle_track_end(GUILD_ID, "enc-1", FINISHED)
            )
            await asyncio.sleep(0)
            skip_task = asyncio.create_task(harness.service.skip(GUILD_ID))
            await asyncio.sleep(0)

        await end_task
        skipped = await skip_task

        assert session.current_track.id == "track-2"
        assert skipped.id == "track-2"
        assert [t.id for t in session.queue.items] == ["track-3"]
        assert harness.nodes["node-a"].calls_named("stop") == []

    @pytest.mark.asyncio
    async def test_duplicate_track_end_advances_once(self, harness, session, sample_tracks):
        """The lock is held across the slow play call, so the second end is stale."""
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)
        harness.nodes["node-a"].delay = 0.01

        await asyncio.gather(
            harness.service.handle_track_end(GUILD_ID, "enc-1", FINISHED),
            harness.service.handle_track_end(GUILD_ID, "enc-1", FINISHED),
        )

        assert session.current_track.id == "track-2"
        assert len(harness.nodes["node-a"].calls_named("play")) == 2

    @pytest.mark.asyncio
    async def test_stuck_track_is_skipped(self, harness, session, sample_tracks):
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)
        await harness.service.set_loop_mode(GUILD_ID, LoopMode.TRACK)

        await harness.emit(
            TrackStuck(node_id="node-a", guild_id=GUILD_ID, encoded="enc-1", threshold_ms=10_000)
        )
        await harness.service.handle_track_end(GUILD_ID, "enc-1", STOPPED)

        assert session.current_track.id == "track-2"


# =============================================================================
# Failure cap
# =============================================================================


class TestFailureCap:
    """Tests for the consecutive failure cap."""

    @pytest.mark.asyncio
    async def test_load_failures_halt_after_cap(self):
        harness = build_harness(max_consecutive_failures=2)
        session = await harness.start_session()
        await harness.service.enqueue_playlist(GUILD_ID, [make_track(n) for n in range(1, 5)])

        await harness.service.handle_track_end(GUILD_ID, "enc-1", LOAD_FAILED)
        await harness.service.handle_track_end(GUILD_ID, "enc-2", LOAD_FAILED)
        assert session.current_track.id == "track-3"
        assert harness.events_of(PlaybackFailed) == []

        await harness.service.handle_track_end(GUILD_ID, "enc-3", LOAD_FAILED)

        assert session.state == PlaybackState.IDLE
        assert session.current_track is None
        assert [t.id for t in session.queue.items] == ["track-4"]
        (failed,) = harness.events_of(PlaybackFailed)
        assert failed.failures == 3
        assert len(harness.nodes["node-a"].calls_named("play")) == 3

    @pytest.mark.asyncio
    async def test_rejected_play_tries_next_track(self, harness, session, sample_tracks):
        harness.nodes["node-a"].play_errors = [NodeRequestError("node-a", "bad track", 400)]

        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)

        assert session.current_track.id == "track-2"
        assert session.consecutive_failures == 1
        assert session.state == PlaybackState.PLAYING

    @pytest.mark.asyncio
    async def test_every_play_rejected_halts(self):
        harness = build_harness(max_consecutive_failures=1)
        session = await harness.start_session()
        harness.nodes["node-a"].play_errors = [
            NodeRequestError("node-a", "bad track", 400) for _ in range(5)
        ]

        await harness.service.enqueue_playlist(GUILD_ID, [make_track(n) for n in range(1, 5)])

        assert session.state == PlaybackState.IDLE
        assert session.current_track is None
        assert len(harness.events_of(PlaybackFailed)) == 1
        assert len(harness.nodes["node-a"].calls_named("play")) == 2


# =============================================================================
# Node failover
# =============================================================================


class TestNodeFailover:
    """Tests for migration when a node goes away."""

    @pytest.mark.asyncio
    async def test_migrates_and_replays_position(self, two_node_harness):
        harness = two_node_harness
        session = await harness.start_session()
        assert session.assigned_node_id == "node-a"
        await harness.service.enqueue(GUILD_ID, make_track(1))
        await harness.service.set_volume(GUILD_ID, 70)
        await harness.service.pause(GUILD_ID)
        await harness.service.handle_player_update(GUILD_ID, 42_000)

        await harness.pool.report_disconnect("node-a")

        node_b = harness.nodes["node-b"]
        assert session.assigned_node_id == "node-b"
        assert session.state == PlaybackState.PAUSED
        assert node_b.calls_named("update_voice") == [
            ("update_voice", GUILD_ID, f"voice-{GUILD_ID}")
        ]
        assert node_b.calls_named("play") == [("play", GUILD_ID, "enc-1", 70, True, 42_000)]
        (migrated,) = harness.events_of(SessionMigrated)
        assert (migrated.from_node_id, migrated.to_node_id) == ("node-a", "node-b")

    @pytest.mark.asyncio
    async def test_idle_session_migrates_without_play(self, two_node_harness):
        harness = two_node_harness
        session = await harness.start_session()

        await harness.pool.report_disconnect("node-a")

        assert session.assigned_node_id == "node-b"
        assert harness.nodes["node-b"].calls_named("play") == []

    @pytest.mark.asyncio
    async def test_no_node_left_destroys_sessions(self, harness):
        first, _ = await harness.service.create_session(1, 2, 3)
        second, _ = await harness.service.create_session(4, 5, 6)

        await harness.pool.report_disconnect("node-a")

        assert first.state == PlaybackState.DESTROYED
        assert second.state == PlaybackState.DESTROYED
        assert await harness.registry.count() == 0
        assert len(harness.events_of(SessionFailed)) == 2
        assert {e.reason for e in harness.events_of(SessionDestroyed)} == {DestroyReason.NODE_LOST}
        assert harness.nodes["node-a"].calls_named("destroy_player") == []

    @pytest.mark.asyncio
    async def test_unreachable_node_during_play_triggers_migration(self, two_node_harness):
        harness = two_node_harness
        session = await harness.start_session()
        harness.nodes["node-a"].play_errors = [NodeUnavailableError("node-a", "timed out")]

        await harness.service.enqueue(GUILD_ID, make_track(1))
        await harness.drain_background()

        assert session.assigned_node_id == "node-b"
        assert session.current_track.id == "track-1"
        assert harness.nodes["node-b"].calls_named("play") == [
            ("play", GUILD_ID, "enc-1", 100, False, 0)
        ]
        assert harness.pool.is_connected("node-a") is False

    @pytest.mark.asyncio
    async def test_single_node_recovers_after_request_timeout(self, harness):
        session = await harness.start_session()
        node_a = harness.nodes["node-a"]
        node_a.play_errors = [NodeUnavailableError("node-a", "timed out")]

        await harness.service.enqueue(GUILD_ID, make_track(1))
        await harness.drain_background()

        assert session.state == PlaybackState.DESTROYED
        assert node_a.calls_named("reconnect") == [("reconnect",)]
        with pytest.raises(NoNodesAvailableError):
            await harness.service.create_session(999, 2, 3)

        await harness.emit(NodeReady(node_id="node-a", session_id="fresh"))

        fresh, created = await harness.service.create_session(999, 2, 3)
        assert created is True
        assert fresh.assigned_node_id == "node-a"

    @pytest.mark.asyncio
    async def test_unreachable_node_during_skip(self, two_node_harness, sample_tracks):
        harness = two_node_harness
        session = await harness.start_session()
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)
        harness.nodes["node-a"].stop_error = NodeUnavailableError("node-a", "refused")

        await harness.service.skip(GUILD_ID)
        await harness.drain_background()

        node_b = harness.nodes["node-b"]
        assert session.assigned_node_id == "node-b"
        assert session.current_track.id == "track-2"
        assert session.skip_pending is False
        assert node_b.calls_named("play") == [("play", GUILD_ID, "enc-2", 100, False, 0)]
        (finished,) = harness.events_of(TrackFinishedPlaying)
        assert finished.track.id == "track-1"
        assert finished.reason == TrackEndReason.STOPPED

    @pytest.mark.asyncio
    async def test_skip_works_again_after_failed_stop(self, two_node_harness, sample_tracks):
        harness = two_node_harness
        await harness.start_session()
        await harness.service.enqueue_playlist(GUILD_ID, sample_tracks)
        harness.nodes["node-a"].stop_error = NodeUnavailableError("node-a", "refused")
        await harness.service.skip(GUILD_ID)
        await harness.drain_background()

        skipped = await harness.service.skip(GUILD_ID)

        assert skipped.id == "track-2"
        assert harness.nodes["node-b"].calls_named("stop") == [("stop", GUILD_ID)]

    @pytest.mark.asyncio
    async def test_disconnect_of_other_node_leaves_session(self, two_node_harness):
        harness = two_node_harness
        session = await harness.start_session()

        await harness.pool.report_disconnect("node-b")

        assert session.assigned_node_id == "node-a"
        assert harness.events_of(SessionMigrated) == []

    @pytest.mark.asyncio
    async def test_shutdown_destroys_sessions(self, harness, session):
        await harness.service.shutdown()

        assert session.state == PlaybackState.DESTROYED
        assert await harness.registry.count() == 0
