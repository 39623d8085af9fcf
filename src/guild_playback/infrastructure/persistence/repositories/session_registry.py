"""In-memory implementation of the session registry."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from guild_playback.domain.music.entities import PlaybackSession
from guild_playback.domain.music.repository import SessionRegistry

logger = logging.getLogger(__name__)


class InMemorySessionRegistry(SessionRegistry):
    """Live sessions keyed by guild.

    Sessions hold locks and node assignments that only make sense inside this
    process, so there is nothing to persist across restarts.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, PlaybackSession] = {}
        self._lock = asyncio.Lock()

    async def get(self, guild_id: int) -> PlaybackSession | None:
        return self._sessions.get(guild_id)

    async def get_or_create(
        self, guild_id: int, factory: Callable[[], PlaybackSession]
    ) -> tuple[PlaybackSession, bool]:
        async with self._lock:
            existing = self._sessions.get(guild_id)
            if existing is not None:
                return existing, False
            session = factory()
            self._sessions[guild_id] = session
            logger.debug("Registered session for guild %s", guild_id)
            return session, True

    async def remove(self, guild_id: int, session: PlaybackSession | None = None) -> bool:
        async with self._lock:
            existing = self._sessions.get(guild_id)
            if existing is None:
                return False
            if session is not None and existing is not session:
                return False
            del self._sessions[guild_id]
            logger.debug("Removed session for guild %s", guild_id)
            return True

    async def exists(self, guild_id: int) -> bool:
        return guild_id in self._sessions

    async def all(self) -> list[PlaybackSession]:
        return list(self._sessions.values())

    async def count(self) -> int:
        return len(self._sessions)
