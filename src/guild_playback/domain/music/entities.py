"""Core domain entities for the music bounded context."""

from __future__ import annotations

import asyncio
import random
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, SecretStr

from guild_playback.domain.music.value_objects import LoopMode, PlaybackState
from guild_playback.domain.shared.datetime_utils import utcnow
from guild_playback.domain.shared.exceptions import InvalidOperationError, OutOfRangeError
from guild_playback.domain.shared.types import (
    DiscordSnowflake,
    DurationMs,
    NonEmptyStr,
    NonNegativeInt,
    PortNumber,
    TrackTitleStr,
    UtcDatetimeField,
    VolumePercent,
)


class Track(BaseModel):
    """Immutable value object representing a playable track."""

    model_config = ConfigDict(frozen=True, strict=True)

    id: NonEmptyStr
    title: TrackTitleStr
    author: str = "Unknown"
    duration_ms: DurationMs = 0
    source_uri: str | None = None
    is_stream: bool = False

    # Opaque handle the audio node plays from (Lavalink "encoded" track).
    encoded: str | None = None

    # Request metadata (set when queued)
    requester_id: DiscordSnowflake | None = None

    @property
    def duration_formatted(self) -> str:
        """Format duration as MM:SS or HH:MM:SS."""
        if self.is_stream:
            return "LIVE"

        hours, remainder = divmod(self.duration_ms // 1000, 3600)
        minutes, seconds = divmod(remainder, 60)

        if hours > 0:
            return f"{hours}:{minutes:02d}:{seconds:02d}"
        return f"{minutes}:{seconds:02d}"

    @property
    def display_title(self) -> str:
        """Get display title with duration if available."""
        if self.is_stream or self.duration_ms:
            return f"{self.title} [{self.duration_formatted}]"
        return self.title

    def with_requester(self, requester_id: DiscordSnowflake) -> Track:
        """Return a copy of this track with requester metadata populated."""
        return self.model_copy(update={"requester_id": requester_id})


class Queue(BaseModel):
    """Ordered pending tracks plus the track currently handed to the node.

    ``current`` is never also a member of ``items``: advancing moves a track
    out of ``items`` rather than copying it.
    """

    model_config = ConfigDict(strict=True)

    items: list[Track] = Field(default_factory=list)
    current: Track | None = None
    loop_mode: LoopMode = LoopMode.NONE

    @property
    def length(self) -> int:
        return len(self.items)

    @property
    def total_length(self) -> int:
        """Pending tracks plus the current one."""
        return len(self.items) + (1 if self.current is not None else 0)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def duration_ms(self) -> int | None:
        """Total pending duration, or None when a live stream is queued."""
        total = 0
        for track in self.items:
            if track.is_stream:
                return None
            total += track.duration_ms
        return total

    def add(self, track: Track) -> int:
        """Append a track and return its 1-based position."""
        self.items.append(track)
        return len(self.items)

    def add_many(self, tracks: list[Track]) -> int:
        self.items.extend(tracks)
        return len(tracks)

    def remove(self, position: int) -> Track:
        """Remove and return the track at 1-based ``position``."""
        if position < 1 or position > len(self.items):
            raise OutOfRangeError(position, len(self.items))
        return self.items.pop(position - 1)

    def shuffle(self) -> None:
        random.shuffle(self.items)

    def clear(self) -> int:
        """Empty pending items, leaving ``current`` alone. Returns the count removed."""
        count = len(self.items)
        self.items.clear()
        return count

    def set_loop_mode(self, mode: LoopMode) -> None:
        self.loop_mode = mode

    def advance(self, *, force_next: bool = False) -> Track | None:
        """Move the next track into ``current`` according to the loop mode.

        ``force_next`` is used for user skips: TRACK loop is ignored so the
        queue actually moves on. Returns the new current track, or None when
        the queue is exhausted.
        """
        if self.loop_mode == LoopMode.TRACK and self.current is not None and not force_next:
            return self.current

        if self.loop_mode == LoopMode.QUEUE and self.current is not None:
            self.items.append(self.current)

        self.current = self.items.pop(0) if self.items else None
        return self.current


class VoiceServerState(BaseModel):
    """Credentials the chat platform hands out for a voice connection."""

    model_config = ConfigDict(frozen=True)

    session_id: NonEmptyStr
    token: NonEmptyStr
    endpoint: NonEmptyStr
    channel_id: DiscordSnowflake | None = None


class PlaybackSession(BaseModel):
    """Aggregate root holding playback state for a single guild."""

    model_config = ConfigDict(strict=True)

    guild_id: DiscordSnowflake
    voice_channel_id: DiscordSnowflake
    text_channel_id: DiscordSnowflake
    queue: Queue = Field(default_factory=Queue)
    assigned_node_id: NonEmptyStr | None = None
    state: PlaybackState = PlaybackState.IDLE
    volume: VolumePercent = 100
    connected_at: UtcDatetimeField | None = None
    created_at: UtcDatetimeField = Field(default_factory=utcnow)

    # Runtime bookkeeping
    voice: VoiceServerState | None = None
    position_ms: DurationMs = 0
    consecutive_failures: NonNegativeInt = 0
    play_generation: NonNegativeInt = 0
    skip_pending: bool = False

    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    @property
    def lock(self) -> asyncio.Lock:
        """Serializes every state-mutating operation on this session."""
        return self._lock

    @property
    def current_track(self) -> Track | None:
        return self.queue.current

    @property
    def is_playing(self) -> bool:
        return self.state == PlaybackState.PLAYING

    @property
    def is_paused(self) -> bool:
        return self.state == PlaybackState.PAUSED

    @property
    def is_destroyed(self) -> bool:
        return self.state == PlaybackState.DESTROYED

    @property
    def has_tracks(self) -> bool:
        return self.queue.current is not None or bool(self.queue.items)

    def transition_to(self, new_state: PlaybackState) -> None:
        """Transition to a new playback state."""
        if new_state == self.state:
            return
        if not self.state.can_transition_to(new_state):
            raise InvalidOperationError(
                operation=f"transition to {new_state.value}",
                current_state=self.state.value,
                message=f"Cannot transition from {self.state.value} to {new_state.value}",
            )
        self.state = new_state

    def mark_connected(self, at: datetime | None = None) -> None:
        self.connected_at = at or utcnow()

    def begin_play(self, track: Track) -> int:
        """Record that ``track`` was handed to the node; returns the new generation."""
        self.play_generation += 1
        self.position_ms = 0
        self.skip_pending = False
        self.transition_to(PlaybackState.PLAYING)
        return self.play_generation


class AudioNode(BaseModel):
    """An audio rendering node and its live health/load."""

    model_config = ConfigDict(strict=True)

    id: NonEmptyStr
    host: NonEmptyStr
    port: PortNumber
    password: SecretStr = SecretStr("youshallnotpass")
    secure: bool = False
    is_connected: bool = False
    session_count: NonNegativeInt = 0

    @property
    def rest_url(self) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.host}:{self.port}"

    @property
    def ws_url(self) -> str:
        scheme = "wss" if self.secure else "ws"
        return f"{scheme}://{self.host}:{self.port}/v4/websocket"
