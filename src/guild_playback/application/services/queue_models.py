"""DTOs for the playback and resolver application services."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ...domain.music.entities import Track
from ...domain.music.value_objects import LoopMode, PlaybackState, ResolveKind
from ...domain.shared.types import DiscordSnowflake, NonNegativeInt


class ResolveResult(BaseModel):
    """Outcome of turning a user query into playable tracks."""

    model_config = ConfigDict(frozen=True)

    kind: ResolveKind
    tracks: list[Track] = Field(default_factory=list)
    playlist_name: str | None = None
    reason: str | None = None

    @property
    def track(self) -> Track | None:
        return self.tracks[0] if self.tracks else None

    @property
    def is_playable(self) -> bool:
        return self.kind in {ResolveKind.SINGLE, ResolveKind.PLAYLIST} and bool(self.tracks)


class EnqueueResult(BaseModel):
    track: Track | None = None
    added: NonNegativeInt = 0
    position: NonNegativeInt = 0
    queue_length: NonNegativeInt = 0
    started: bool = False


class QueueInfo(BaseModel):

    current_track: Track | None
    upcoming_tracks: list[Track]
    total_length: NonNegativeInt
    total_duration_ms: NonNegativeInt | None
    loop_mode: LoopMode = LoopMode.NONE

    @property
    def tracks(self) -> list[Track]:
        return self.upcoming_tracks


class SessionStatus(BaseModel):
    """Read-only view of a session for the ``status`` command."""

    guild_id: DiscordSnowflake
    state: PlaybackState
    volume: NonNegativeInt
    loop_mode: LoopMode
    node_id: str | None
    current_track: Track | None
    position_ms: NonNegativeInt = 0
    queue_length: NonNegativeInt = 0
    connected_at: datetime | None = None
