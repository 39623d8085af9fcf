"""Domain event bus for publishing and subscribing to events."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from guild_playback.domain.music.entities import Track
from guild_playback.domain.music.value_objects import DestroyReason, TrackEndReason
from guild_playback.domain.shared.datetime_utils import utcnow
from guild_playback.domain.shared.messages import LogTemplates
from guild_playback.domain.shared.types import (
    DiscordSnowflake,
    NonEmptyStr,
    NonNegativeInt,
    UtcDatetimeField,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="DomainEvent")
EventHandler = Callable[[T], Awaitable[None]]


class DomainEvent(BaseModel):
    """Base class for all domain events."""

    model_config = ConfigDict(frozen=True)

    event_id: NonEmptyStr = Field(default_factory=lambda: str(uuid4()))
    occurred_at: UtcDatetimeField = Field(default_factory=utcnow)


class GuildEvent(DomainEvent):
    guild_id: DiscordSnowflake
    text_channel_id: DiscordSnowflake | None = None


# === Session Events ===


class SessionCreated(GuildEvent):
    node_id: str = ""


class SessionDestroyed(GuildEvent):
    reason: DestroyReason = DestroyReason.USER_REQUEST


class SessionMigrated(GuildEvent):
    from_node_id: str = ""
    to_node_id: str = ""


class SessionFailed(GuildEvent):
    """Fatal: the session was torn down because the backend is gone."""

    message: str = ""


# === Playback Events ===


class TrackQueued(GuildEvent):
    track: Track
    position: NonNegativeInt = 0


class TrackStartedPlaying(GuildEvent):
    track: Track


class TrackFinishedPlaying(GuildEvent):
    track: Track
    reason: TrackEndReason = TrackEndReason.FINISHED


class QueueExhausted(GuildEvent):
    last_track: Track | None = None


class PlaybackFailed(GuildEvent):
    """Fatal: auto-advance halted after repeated track failures."""

    failures: NonNegativeInt = 0
    message: str = ""


# === Event Bus ===


class EventBus:
    """In-memory pub/sub event bus for domain events.

    Handlers are called concurrently. Exceptions in handlers are logged
    but do not prevent other handlers from running.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[EventHandler[Any]]] = defaultdict(list)

    def subscribe(self, event_type: type[T], handler: EventHandler[T]) -> None:
        self._handlers[event_type].append(handler)
        logger.debug("Subscribed handler to: %s", event_type.__name__)

    def unsubscribe(self, event_type: type[T], handler: EventHandler[T]) -> None:
        handlers = self._handlers[event_type]
        if handler in handlers:
            handlers.remove(handler)
            logger.debug("Unsubscribed handler from %s", event_type.__name__)

    async def publish(self, event: DomainEvent) -> None:
        event_type = type(event)
        handlers = list(self._handlers.get(event_type, []))

        if not handlers:
            logger.debug("No handlers for %s", event_type.__name__)
            return

        logger.debug("Publishing %s to %d handlers", event_type.__name__, len(handlers))

        async def safe_call(handler: EventHandler[Any]) -> None:
            try:
                await handler(event)
            except Exception as e:
                logger.exception(LogTemplates.EVENT_HANDLER_ERROR, event_type.__name__, e)

        async with asyncio.TaskGroup() as tg:
            for handler in handlers:
                tg.create_task(safe_call(handler))

    def clear(self) -> None:
        """Remove all handlers."""
        self._handlers.clear()
        logger.debug("Cleared all event handlers")
