"""Pydantic models for Lavalink v4 REST and WebSocket payloads.

Lavalink speaks camelCase JSON; the models alias it to snake_case and ignore
any fields we do not use so newer server versions keep parsing.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from guild_playback.application.interfaces.audio_node import LoadResult, LoadType
from guild_playback.domain.music.entities import Track

MAX_TITLE_LENGTH = 500


class LavalinkModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ── Tracks ──────────────────────────────────────────────────────────


class TrackInfo(LavalinkModel):
    identifier: str = ""
    is_seekable: bool = False
    author: str = ""
    length: int = 0
    is_stream: bool = False
    position: int = 0
    title: str = ""
    uri: str | None = None
    artwork_url: str | None = None
    source_name: str | None = None


class LavalinkTrack(LavalinkModel):
    encoded: str = Field(min_length=1)
    info: TrackInfo = Field(default_factory=TrackInfo)

    def to_domain(self) -> Track:
        info = self.info
        title = (info.title or "Unknown title")[:MAX_TITLE_LENGTH]
        return Track(
            id=info.identifier or self.encoded[:64],
            title=title,
            author=info.author or "Unknown",
            duration_ms=0 if info.is_stream else max(0, info.length),
            source_uri=info.uri,
            is_stream=info.is_stream,
            encoded=self.encoded,
        )


class PlaylistInfo(LavalinkModel):
    name: str = ""
    selected_track: int = -1


class PlaylistData(LavalinkModel):
    info: PlaylistInfo = Field(default_factory=PlaylistInfo)
    tracks: list[LavalinkTrack] = Field(default_factory=list)


class ExceptionData(LavalinkModel):
    message: str | None = None
    severity: str = "common"
    cause: str | None = None


class LoadTracksResponse(LavalinkModel):
    """``GET /v4/loadtracks``; the shape of ``data`` depends on ``load_type``."""

    load_type: str
    data: Any = None

    def to_load_result(self) -> LoadResult:
        match self.load_type:
            case "track":
                track = LavalinkTrack.model_validate(self.data)
                return LoadResult(load_type=LoadType.TRACK, tracks=[track.to_domain()])
            case "search":
                hits = [LavalinkTrack.model_validate(item) for item in self.data or []]
                return LoadResult(load_type=LoadType.SEARCH, tracks=[t.to_domain() for t in hits])
            case "playlist":
                playlist = PlaylistData.model_validate(self.data or {})
                return LoadResult(
                    load_type=LoadType.PLAYLIST,
                    tracks=[t.to_domain() for t in playlist.tracks],
                    playlist_name=playlist.info.name or None,
                )
            case "error":
                error = ExceptionData.model_validate(self.data or {})
                return LoadResult(
                    load_type=LoadType.ERROR,
                    error_message=error.message or error.cause or "unknown error",
                )
            case _:
                return LoadResult(load_type=LoadType.EMPTY)


# ── WebSocket ops ───────────────────────────────────────────────────


class ReadyOp(LavalinkModel):
    op: Literal["ready"]
    resumed: bool = False
    session_id: str


class PlayerState(LavalinkModel):
    time: int = 0
    position: int = 0
    connected: bool = False
    ping: int = -1


class PlayerUpdateOp(LavalinkModel):
    op: Literal["playerUpdate"]
    guild_id: int
    state: PlayerState = Field(default_factory=PlayerState)


class StatsOp(LavalinkModel):
    op: Literal["stats"]
    players: int = 0
    playing_players: int = 0
    uptime: int = 0


class EventOp(LavalinkModel):
    """Any ``op: event`` message; only the fields for ``type`` are populated."""

    op: Literal["event"]
    type: str
    guild_id: int
    track: LavalinkTrack | None = None
    reason: str = ""
    exception: ExceptionData | None = None
    threshold_ms: int = 0
    code: int = 0
    by_remote: bool = False

    @field_validator("reason", mode="before")
    @classmethod
    def _reason_as_text(cls, value: object) -> str:
        return "" if value is None else str(value)


# ── REST request bodies ─────────────────────────────────────────────


class VoiceStatePayload(LavalinkModel):
    token: str
    endpoint: str
    session_id: str


class PlayerUpdatePayload(LavalinkModel):
    """Body of ``PATCH /v4/sessions/{session}/players/{guild}``.

    Only explicitly set fields are sent, so a pause request does not also
    reset the volume. ``track`` is sent as ``{"encoded": null}`` to stop.
    """

    track: dict[str, str | None] | None = None
    position: int | None = None
    volume: int | None = None
    paused: bool | None = None
    voice: VoiceStatePayload | None = None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)
