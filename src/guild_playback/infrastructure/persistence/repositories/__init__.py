from guild_playback.infrastructure.persistence.repositories.session_registry import (
    InMemorySessionRegistry,
)

__all__ = ["InMemorySessionRegistry"]
