"""
Music Domain Repository Interfaces

Abstract base classes defining the contracts for session ownership.
Implementations live in the infrastructure layer.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

from guild_playback.domain.music.entities import PlaybackSession


class SessionRegistry(ABC):
    """Mapping from guild ID to its playback session.

    The registry is the sole owner of session lifetime and the single source
    of truth for "is anything playing in guild G". Everyone else looks
    sessions up by guild ID and must not keep them past a destroy.
    """

    @abstractmethod
    async def get(self, guild_id: int) -> PlaybackSession | None:
        """Retrieve a session by guild ID.

        Args:
            guild_id: The Discord guild ID.

        Returns:
            The session if found, None otherwise.
        """
        ...

    @abstractmethod
    async def get_or_create(
        self, guild_id: int, factory: Callable[[], PlaybackSession]
    ) -> tuple[PlaybackSession, bool]:
        """Get the existing session or register one built by ``factory``.

        Args:
            guild_id: The Discord guild ID.
            factory: Called (under the registry lock) only when no session exists.

        Returns:
            The session and whether it was created by this call.
        """
        ...

    @abstractmethod
    async def remove(self, guild_id: int, session: PlaybackSession | None = None) -> bool:
        """Remove a guild's session.

        Args:
            guild_id: The Discord guild ID.
            session: When given, only remove if it is still the registered session.

        Returns:
            True if a session was removed.
        """
        ...

    @abstractmethod
    async def exists(self, guild_id: int) -> bool:
        ...

    @abstractmethod
    async def all(self) -> list[PlaybackSession]:
        """Snapshot of every registered session."""
        ...

    @abstractmethod
    async def count(self) -> int:
        ...
