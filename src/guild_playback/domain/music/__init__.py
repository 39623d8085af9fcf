"""
Music Bounded Context

Domain logic for track queues, playback session state and audio nodes.
"""

from guild_playback.domain.music.entities import (
    AudioNode,
    PlaybackSession,
    Queue,
    Track,
    VoiceServerState,
)
from guild_playback.domain.music.repository import SessionRegistry
from guild_playback.domain.music.services import PlaybackDomainService
from guild_playback.domain.music.value_objects import (
    DestroyReason,
    LoopMode,
    PlaybackState,
    ResolveKind,
    TrackEndReason,
)

__all__ = [
    # Entities
    "Track",
    "Queue",
    "PlaybackSession",
    "AudioNode",
    "VoiceServerState",
    # Value Objects
    "LoopMode",
    "PlaybackState",
    "TrackEndReason",
    "ResolveKind",
    "DestroyReason",
    # Repository
    "SessionRegistry",
    # Services
    "PlaybackDomainService",
]
