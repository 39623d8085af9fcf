from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest
import pytest_asyncio

from guild_playback.application.interfaces.audio_node import (
    AudioNodeClient,
    LoadResult,
    LoadType,
    NodeEvent,
    NodeEventHandler,
)
from guild_playback.application.interfaces.voice_gateway import VoiceGateway
from guild_playback.domain.music.entities import AudioNode, Track, VoiceServerState
from guild_playback.domain.shared.events import (
    DomainEvent,
    EventBus,
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

GUILD_ID = 111111111111
VOICE_CHANNEL_ID = 222222222222
TEXT_CHANNEL_ID = 333333333333
USER_ID = 444444444444

# ============================================================================
# Fakes
# ============================================================================


class FakeNodeClient(AudioNodeClient):
    """In-memory audio node that records every directive it receives.

    ``play_errors`` is consumed one entry per ``play`` call; ``None`` entries
    mean the call succeeds.
    """

    def __init__(self, node_id: str = "node-a", *, connected: bool = True) -> None:
        self._node = AudioNode(id=node_id, host="localhost", port=2333, is_connected=connected)
        self.calls: list[tuple] = []
        self.play_errors: list[Exception | None] = []
        self.stop_error: Exception | None = None
        self.load_result = LoadResult(load_type=LoadType.EMPTY)
        self.load_error: Exception | None = None
        self.delay: float = 0.0
        self.handler: NodeEventHandler | None = None
        self.closed = False

    @property
    def node(self) -> AudioNode:
        return self._node

    def set_event_handler(self, handler: NodeEventHandler) -> None:
        self.handler = handler

    async def emit(self, event: NodeEvent) -> None:
        assert self.handler is not None
        await self.handler(event)

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def connect(self) -> None:
        self.calls.append(("connect",))

    async def close(self) -> None:
        self.closed = True

    async def reconnect(self) -> None:
        self.calls.append(("reconnect",))

    async def load_tracks(self, identifier: str) -> LoadResult:
        self.calls.append(("load_tracks", identifier))
        if self.load_error is not None:
            raise self.load_error
        return self.load_result

    async def play(
        self,
        guild_id: int,
        track: Track,
        *,
        volume: int,
        paused: bool = False,
        position_ms: int = 0,
    ) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.calls.append(("play", guild_id, track.encoded, volume, paused, position_ms))
        if self.play_errors:
            error = self.play_errors.pop(0)
            if error is not None:
                raise error

    async def stop(self, guild_id: int) -> None:
        self.calls.append(("stop", guild_id))
        if self.stop_error is not None:
            raise self.stop_error

    async def set_paused(self, guild_id: int, paused: bool) -> None:
        self.calls.append(("set_paused", guild_id, paused))

    async def set_volume(self, guild_id: int, volume: int) -> None:
        self.calls.append(("set_volume", guild_id, volume))

    async def update_voice(self, guild_id: int, voice: VoiceServerState) -> None:
        self.calls.append(("update_voice", guild_id, voice.session_id))

    async def destroy_player(self, guild_id: int) -> None:
        self.calls.append(("destroy_player", guild_id))


class FakeVoiceGateway(VoiceGateway):
    def __init__(self) -> None:
        self.opened: list[tuple[int, int]] = []
        self.closed: list[int] = []
        self.error: Exception | None = None
        self.update_handler = None

    def set_voice_update_handler(self, handler) -> None:
        self.update_handler = handler

    async def open_voice_connection(self, guild_id: int, channel_id: int) -> VoiceServerState:
        self.opened.append((guild_id, channel_id))
        if self.error is not None:
            raise self.error
        return VoiceServerState(
            session_id=f"voice-{guild_id}",
            token="voice-token",
            endpoint="voice.example.com",
            channel_id=channel_id,
        )

    async def close_voice_connection(self, guild_id: int) -> None:
        self.closed.append(guild_id)


# ============================================================================
# Domain Entity Fixtures
# ============================================================================


def make_track(n: int, **overrides) -> Track:
    data = {
        "id": f"track-{n}",
        "title": f"Track {n}",
        "author": "Test Artist",
        "duration_ms": 180_000,
        "source_uri": f"https://example.com/watch?v={n}",
        "encoded": f"enc-{n}",
    }
    data.update(overrides)
    return Track(**data)


@pytest.fixture
def sample_track():
    """Create a sample track for testing."""
    return make_track(1)


@pytest.fixture
def sample_tracks():
    return [make_track(n) for n in range(1, 4)]


# ============================================================================
# Playback Harness
# ============================================================================

RECORDED_EVENTS: tuple[type[DomainEvent], ...] = (
    SessionCreated,
    SessionDestroyed,
    SessionMigrated,
    SessionFailed,
    TrackQueued,
    TrackStartedPlaying,
    TrackFinishedPlaying,
    QueueExhausted,
    PlaybackFailed,
)


@dataclass
class PlaybackHarness:
    """A playback service wired to fakes, plus everything it published."""

    service: object
    registry: object
    pool: object
    gateway: FakeVoiceGateway
    bus: EventBus
    nodes: dict[str, FakeNodeClient]
    events: list[DomainEvent] = field(default_factory=list)

    def events_of(self, event_type: type[DomainEvent]) -> list[DomainEvent]:
        return [event for event in self.events if isinstance(event, event_type)]

    async def start_session(self):
        session, _ = await self.service.create_session(
            GUILD_ID, VOICE_CHANNEL_ID, TEXT_CHANNEL_ID
        )
        return session

    async def drain_background(self) -> None:
        """Wait for scheduled node-disconnect reports to finish."""
        while self.service._background_tasks:
            await asyncio.gather(*list(self.service._background_tasks))

    async def emit(self, event: NodeEvent, node_id: str = "node-a") -> None:
        """Push an event through a node's read loop and wait until it was handled."""
        await self.nodes[node_id].emit(event)
        await self.pool.drain_events()


def build_harness(node_ids: tuple[str, ...] = ("node-a",), **service_kwargs) -> PlaybackHarness:
    from guild_playback.application.services.node_pool import NodePoolManager
    from guild_playback.application.services.playback_service import PlaybackApplicationService
    from guild_playback.infrastructure.persistence.repositories.session_registry import (
        InMemorySessionRegistry,
    )

    registry = InMemorySessionRegistry()
    pool = NodePoolManager()
    nodes = {node_id: FakeNodeClient(node_id) for node_id in node_ids}
    for client in nodes.values():
        pool.add_node(client)
    gateway = FakeVoiceGateway()
    bus = EventBus()

    service_kwargs.setdefault("auto_destroy_on_queue_end", False)
    service = PlaybackApplicationService(
        registry=registry,
        node_pool=pool,
        voice_gateway=gateway,
        event_bus=bus,
        **service_kwargs,
    )
    harness = PlaybackHarness(
        service=service, registry=registry, pool=pool, gateway=gateway, bus=bus, nodes=nodes
    )

    async def record(event: DomainEvent) -> None:
        harness.events.append(event)

    for event_type in RECORDED_EVENTS:
        bus.subscribe(event_type, record)
    return harness


@pytest.fixture
def harness():
    return build_harness()


@pytest.fixture
def two_node_harness():
    return build_harness(("node-a", "node-b"))


@pytest_asyncio.fixture
async def session(harness):
    """A connected, idle session for ``GUILD_ID``."""
    return await harness.start_session()
