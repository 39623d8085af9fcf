"""Immutable value objects for the music bounded context."""

from __future__ import annotations

from enum import Enum


class PlaybackState(Enum):
    """Playback state with enforced transitions.

    State transitions:
    - CONNECTING -> IDLE (voice connected), PLAYING (first track)
    - IDLE -> PLAYING (start playback), CONNECTING (reconnect)
    - PLAYING -> PAUSED (pause), IDLE (track ended)
    - PAUSED -> PLAYING (resume), IDLE (track ended)
    - Any -> DESTROYED (stop/cleanup); DESTROYED is terminal
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    PLAYING = "playing"
    PAUSED = "paused"
    DESTROYED = "destroyed"

    def can_transition_to(self, target: PlaybackState) -> bool:
        """Check if transition to target state is valid."""
        valid_transitions = {
            PlaybackState.CONNECTING: {
                PlaybackState.IDLE,
                PlaybackState.PLAYING,
                PlaybackState.DESTROYED,
            },
            PlaybackState.IDLE: {
                PlaybackState.CONNECTING,
                PlaybackState.PLAYING,
                PlaybackState.DESTROYED,
            },
            PlaybackState.PLAYING: {
                PlaybackState.PAUSED,
                PlaybackState.IDLE,
                PlaybackState.DESTROYED,
            },
            PlaybackState.PAUSED: {
                PlaybackState.PLAYING,
                PlaybackState.IDLE,
                PlaybackState.DESTROYED,
            },
            PlaybackState.DESTROYED: set(),
        }
        return target in valid_transitions.get(self, set())

    @property
    def is_active(self) -> bool:
        return self in {PlaybackState.PLAYING, PlaybackState.PAUSED}

    @property
    def can_start(self) -> bool:
        return self in {PlaybackState.IDLE, PlaybackState.CONNECTING}


class LoopMode(Enum):
    """Loop mode settings for queue playback."""

    NONE = "none"
    TRACK = "track"  # Loop current track
    QUEUE = "queue"  # Loop entire queue

    def next_mode(self) -> LoopMode:
        """Cycle to next loop mode."""
        modes = list(LoopMode)
        current_index = modes.index(self)
        next_index = (current_index + 1) % len(modes)
        return modes[next_index]

    @classmethod
    def parse(cls, value: str) -> LoopMode:
        """Parse a user-supplied mode name (``off`` is an alias for ``none``)."""
        normalized = value.strip().lower()
        if normalized in {"off", "disable", "disabled"}:
            return cls.NONE
        return cls(normalized)


class TrackEndReason(Enum):
    """Why the audio node stopped playing a track."""

    FINISHED = "finished"
    LOAD_FAILED = "loadFailed"
    STOPPED = "stopped"
    REPLACED = "replaced"
    CLEANUP = "cleanup"

    @property
    def is_error(self) -> bool:
        return self is TrackEndReason.LOAD_FAILED

    @property
    def should_advance(self) -> bool:
        return self in {
            TrackEndReason.FINISHED,
            TrackEndReason.LOAD_FAILED,
            TrackEndReason.STOPPED,
        }


class ResolveKind(Enum):
    """Classification of a resolver result."""

    SINGLE = "single"
    PLAYLIST = "playlist"
    EMPTY = "empty"
    LOAD_ERROR = "load_error"


class DestroyReason(Enum):
    """Reasons a session can be destroyed."""

    USER_REQUEST = "user_request"
    QUEUE_ENDED = "queue_ended"
    NODE_LOST = "node_lost"
    CLEANUP = "cleanup"
