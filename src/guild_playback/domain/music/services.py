"""Domain service for playback-related business rules."""

from __future__ import annotations

from guild_playback.domain.music.entities import PlaybackSession
from guild_playback.domain.music.value_objects import PlaybackState
from guild_playback.domain.shared.exceptions import (
    AlreadyInStateError,
    InvalidOperationError,
    InvalidVolumeError,
    NothingToSkipError,
)
from guild_playback.domain.shared.messages import ErrorMessages

MIN_VOLUME = 0
MAX_VOLUME = 100


class PlaybackDomainService:
    """Precondition checks shared by the playback service and the dispatcher."""

    @staticmethod
    def validate_volume(volume: object) -> int:
        """Return ``volume`` as an int in 0..100 or raise InvalidVolumeError."""
        if isinstance(volume, bool) or not isinstance(volume, int):
            raise InvalidVolumeError(volume)
        if volume < MIN_VOLUME or volume > MAX_VOLUME:
            raise InvalidVolumeError(volume)
        return volume

    @staticmethod
    def ensure_can_pause(session: PlaybackSession, paused: bool) -> None:
        if paused and session.state == PlaybackState.PAUSED:
            raise AlreadyInStateError("paused", ErrorMessages.ALREADY_PAUSED)
        if not paused and session.state == PlaybackState.PLAYING:
            raise AlreadyInStateError("playing", ErrorMessages.ALREADY_PLAYING)
        if not session.state.is_active:
            raise InvalidOperationError(
                operation="pause" if paused else "resume",
                current_state=session.state.value,
                message=ErrorMessages.NOTHING_PLAYING,
            )

    @staticmethod
    def ensure_can_skip(session: PlaybackSession) -> None:
        if session.queue.is_empty:
            raise NothingToSkipError()
        if session.current_track is None or not session.state.is_active:
            raise InvalidOperationError(
                operation="skip",
                current_state=session.state.value,
                message=ErrorMessages.NOTHING_PLAYING,
            )
