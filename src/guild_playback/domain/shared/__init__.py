"""
Shared Domain Kernel

Contains constrained types, exceptions and events shared across the package.
"""

from guild_playback.domain.shared.exceptions import (
    AlreadyInStateError,
    DomainError,
    EmptyQueueError,
    InvalidOperationError,
    InvalidVolumeError,
    LoadError,
    NoActiveSessionError,
    NoNodesAvailableError,
    NoResultsError,
    NothingToSkipError,
    NotInVoiceChannelError,
    OutOfRangeError,
    ValidationError,
)

__all__ = [
    "DomainError",
    "ValidationError",
    "InvalidOperationError",
    "NotInVoiceChannelError",
    "NoActiveSessionError",
    "EmptyQueueError",
    "OutOfRangeError",
    "InvalidVolumeError",
    "NothingToSkipError",
    "AlreadyInStateError",
    "NoNodesAvailableError",
    "NoResultsError",
    "LoadError",
]
