"""Port interface for chat-platform voice signaling."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from guild_playback.domain.shared.types import DiscordSnowflake

if TYPE_CHECKING:
    from ...domain.music.entities import VoiceServerState


VoiceUpdateHandler = Callable[[int, "VoiceServerState"], Awaitable[None]]


class VoiceConnectionError(Exception):
    """Joining or negotiating a voice channel failed."""

    def __init__(self, guild_id: int, message: str) -> None:
        super().__init__(message)
        self.guild_id = guild_id


class VoiceGateway(ABC):
    """Opens and closes the platform side of a guild's voice connection.

    The audio itself is streamed by the node; the gateway only negotiates the
    credentials that the node needs to join the call.
    """

    @abstractmethod
    async def open_voice_connection(
        self, guild_id: DiscordSnowflake, channel_id: DiscordSnowflake
    ) -> VoiceServerState:
        """Join ``channel_id`` and return the voice server credentials."""
        ...

    @abstractmethod
    async def close_voice_connection(self, guild_id: DiscordSnowflake) -> None:
        """Leave voice in the guild. Must be safe to call when not connected."""
        ...

    @abstractmethod
    def set_voice_update_handler(self, handler: VoiceUpdateHandler) -> None:
        """Register the consumer of credentials that change after the initial join."""
        ...
