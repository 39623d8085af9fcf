"""Port interface for an audio rendering node (control channel + event stream)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from guild_playback.domain.music.entities import Track
from guild_playback.domain.music.value_objects import TrackEndReason
from guild_playback.domain.shared.types import DiscordSnowflake, DurationMs, NonEmptyStr

if TYPE_CHECKING:
    from ...domain.music.entities import AudioNode, VoiceServerState


class NodeRequestError(Exception):
    """The node answered a control request with an HTTP error."""

    def __init__(self, node_id: str, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.node_id = node_id
        self.status = status


class NodeUnavailableError(NodeRequestError):
    """The node could not be reached (timeout or transport failure)."""


class LoadType(Enum):
    """How the node classified a load request."""

    TRACK = "track"
    SEARCH = "search"
    PLAYLIST = "playlist"
    EMPTY = "empty"
    ERROR = "error"


class LoadResult(BaseModel):
    """Normalized answer to a node search/load request."""

    model_config = ConfigDict(frozen=True)

    load_type: LoadType
    tracks: list[Track] = Field(default_factory=list)
    playlist_name: str | None = None
    error_message: str | None = None


# ── Node events ─────────────────────────────────────────────────────


class NodeEvent(BaseModel):
    """Base for everything a node pushes over its event stream."""

    model_config = ConfigDict(frozen=True)

    node_id: NonEmptyStr


class NodeReady(NodeEvent):
    session_id: NonEmptyStr
    resumed: bool = False


class NodeDisconnected(NodeEvent):
    code: int | None = None
    reason: str = ""


class PlayerEvent(NodeEvent):
    guild_id: DiscordSnowflake


class TrackStart(PlayerEvent):
    encoded: str | None = None


class TrackEnd(PlayerEvent):
    encoded: str | None = None
    reason: TrackEndReason = TrackEndReason.FINISHED


class TrackException(PlayerEvent):
    encoded: str | None = None
    message: str = ""
    severity: str = "common"


class TrackStuck(PlayerEvent):
    encoded: str | None = None
    threshold_ms: DurationMs = 0


class PlayerUpdate(PlayerEvent):
    position_ms: DurationMs = 0
    connected: bool = True


class VoiceSocketClosed(PlayerEvent):
    code: int = 0
    reason: str = ""
    by_remote: bool = False


NodeEventHandler = Callable[[NodeEvent], Awaitable[None]]


class AudioNodeClient(ABC):
    """Control channel and event stream for one audio node."""

    @property
    @abstractmethod
    def node(self) -> AudioNode:
        """Static description and live health of the node."""
        ...

    @abstractmethod
    def set_event_handler(self, handler: NodeEventHandler) -> None:
        """Register the single consumer of this node's events."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Open the event stream. NodeReady is emitted once the node accepts us."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def reconnect(self) -> None:
        """Re-open the event stream after the node was declared unavailable.

        The node must announce itself with a fresh NodeReady before it is
        used again. Does nothing while a reconnect is already under way.
        """
        ...

    @abstractmethod
    async def load_tracks(self, identifier: NonEmptyStr) -> LoadResult:
        """Search or load ``identifier`` (a URL or ``platform:terms``)."""
        ...

    @abstractmethod
    async def play(
        self,
        guild_id: DiscordSnowflake,
        track: Track,
        *,
        volume: int,
        paused: bool = False,
        position_ms: int = 0,
    ) -> None:
        """Start ``track`` on the guild's player, replacing whatever was playing."""
        ...

    @abstractmethod
    async def stop(self, guild_id: DiscordSnowflake) -> None:
        """Stop the current track; the node reports a STOPPED track end."""
        ...

    @abstractmethod
    async def set_paused(self, guild_id: DiscordSnowflake, paused: bool) -> None:
        ...

    @abstractmethod
    async def set_volume(self, guild_id: DiscordSnowflake, volume: int) -> None:
        ...

    @abstractmethod
    async def update_voice(self, guild_id: DiscordSnowflake, voice: VoiceServerState) -> None:
        """Hand the guild's voice credentials to the node."""
        ...

    @abstractmethod
    async def destroy_player(self, guild_id: DiscordSnowflake) -> None:
        ...
