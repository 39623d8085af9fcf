"""Base exception classes for domain-level errors.

Every error carries a stable ``code`` that the command dispatcher hands back to
the presentation layer unchanged.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base exception for all domain-level errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class ValidationError(DomainError):
    """Raised when domain validation fails."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field


class InvalidOperationError(DomainError):
    """Raised when an operation is invalid in the current state."""

    def __init__(self, operation: str, current_state: str, message: str | None = None) -> None:
        msg = message or f"Cannot perform '{operation}' in state '{current_state}'"
        super().__init__(msg, code="INVALID_OPERATION")
        self.operation = operation
        self.current_state = current_state


class NotInVoiceChannelError(DomainError):
    """Raised when a music command is issued by someone outside a voice channel."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "You must be in a voice channel!", code="NOT_IN_VOICE_CHANNEL")


class NoActiveSessionError(DomainError):
    """Raised when a guild has no playback session."""

    def __init__(self, guild_id: int, message: str | None = None) -> None:
        super().__init__(message or "Nothing is playing!", code="NO_ACTIVE_SESSION")
        self.guild_id = guild_id


class EmptyQueueError(DomainError):
    """Raised when an operation needs queued tracks and there are none."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "The queue is empty!", code="EMPTY_QUEUE")


class OutOfRangeError(DomainError):
    """Raised when a queue position is outside ``1..length``."""

    def __init__(self, position: int, length: int, message: str | None = None) -> None:
        if message is None:
            if length == 0:
                message = "The queue is empty!"
            else:
                message = f"Please provide a valid track position between 1 and {length}!"
        super().__init__(message, code="OUT_OF_RANGE")
        self.position = position
        self.length = length


class InvalidVolumeError(DomainError):
    """Raised when a volume outside ``0..100`` is requested."""

    def __init__(self, volume: object, message: str | None = None) -> None:
        super().__init__(
            message or "Please provide a valid volume between 0 and 100!",
            code="INVALID_VOLUME",
        )
        self.volume = volume


class NothingToSkipError(DomainError):
    """Raised when skip is requested with no pending track after the current one."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "No more tracks in queue to skip to!", code="NOTHING_TO_SKIP"
        )


class AlreadyInStateError(DomainError):
    """Raised when pause/resume would not change anything."""

    def __init__(self, state: str, message: str | None = None) -> None:
        super().__init__(message or f"The player is already {state}!", code="ALREADY_IN_STATE")
        self.state = state


class NoNodesAvailableError(DomainError):
    """Raised when no connected audio node can take a session."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "No audio nodes are available right now.", code="NO_NODES_AVAILABLE"
        )


class LoadError(DomainError):
    """Raised when track resolution fails at the backend."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message or f"Failed to load tracks: {reason}", code="LOAD_ERROR")
        self.reason = reason


class NoResultsError(DomainError):
    """Raised when a query resolved fine but matched nothing."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "No results found! Try with a different search term.", code="NO_RESULTS"
        )
