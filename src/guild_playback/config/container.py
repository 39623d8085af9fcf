"""Dependency Injection Container

Manages the application's dependency graph, providing lazy initialization
and lifecycle management for the registry, node pool, adapters and services.
Components are created on-demand and cached for reuse throughout the application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from discord.ext.commands import Bot

    from ..application.commands.dispatcher import CommandDispatcher
    from ..application.interfaces.voice_gateway import VoiceGateway
    from ..application.services.node_pool import NodePoolManager
    from ..application.services.playback_service import PlaybackApplicationService
    from ..application.services.track_resolver import TrackResolver
    from ..domain.music.repository import SessionRegistry
    from ..domain.shared.events import EventBus
    from ..infrastructure.discord.presenter import EmbedPresenter
    from .settings import Settings


@dataclass
class Container:
    """Dependency injection container.

    Components are lazily initialized when first accessed. Node clients
    need the bot's user id, so the node pool is only populated in
    :meth:`initialize`, after the bot has logged in.
    """

    settings: Settings
    _bot: Bot | None = None

    _registry: SessionRegistry | None = None
    _event_bus: EventBus | None = None
    _node_pool: NodePoolManager | None = None
    _voice_gateway: VoiceGateway | None = None

    _playback_service: PlaybackApplicationService | None = None
    _track_resolver: TrackResolver | None = None
    _dispatcher: CommandDispatcher | None = None
    _presenter: EmbedPresenter | None = None

    _nodes_added: bool = False

    def set_bot(self, bot: Bot) -> None:
        """Set the Discord bot instance."""
        self._bot = bot

    @property
    def bot(self) -> Bot:
        """Get the Discord bot instance."""
        if self._bot is None:
            raise RuntimeError("Bot not initialized. Call set_bot() first.")
        return self._bot

    # === Core ===

    @property
    def registry(self) -> SessionRegistry:
        """Get the session registry."""
        if self._registry is None:
            from ..infrastructure.persistence.repositories.session_registry import (
                InMemorySessionRegistry,
            )

            self._registry = InMemorySessionRegistry()
        return self._registry

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            from ..domain.shared.events import EventBus

            self._event_bus = EventBus()
        return self._event_bus

    @property
    def node_pool(self) -> NodePoolManager:
        """Get the audio node pool."""
        if self._node_pool is None:
            from ..application.services.node_pool import NodePoolManager

            self._node_pool = NodePoolManager()
        return self._node_pool

    # === Infrastructure Adapters ===

    @property
    def voice_gateway(self) -> VoiceGateway:
        """Get the Discord voice gateway."""
        if self._voice_gateway is None:
            from ..infrastructure.discord.adapters.voice_gateway import DiscordVoiceGateway

            self._voice_gateway = DiscordVoiceGateway(
                self.bot, connect_timeout=self.settings.playback.voice_connect_timeout_s
            )
        return self._voice_gateway

    @property
    def presenter(self) -> EmbedPresenter:
        if self._presenter is None:
            from ..infrastructure.discord.presenter import EmbedPresenter

            self._presenter = EmbedPresenter(
                prefix=self.settings.discord.command_prefix,
                accent=self.settings.discord.embed_color,
            )
        return self._presenter

    # === Application Services ===

    @property
    def playback_service(self) -> PlaybackApplicationService:
        """Get the playback coordinator."""
        if self._playback_service is None:
            from ..application.services.playback_service import PlaybackApplicationService

            playback = self.settings.playback
            self._playback_service = PlaybackApplicationService(
                registry=self.registry,
                node_pool=self.node_pool,
                voice_gateway=self.voice_gateway,
                event_bus=self.event_bus,
                default_volume=playback.default_volume,
                max_consecutive_failures=playback.max_consecutive_failures,
                max_queue_size=playback.max_queue_size,
                auto_destroy_on_queue_end=playback.auto_destroy_on_queue_end,
            )
        return self._playback_service

    @property
    def track_resolver(self) -> TrackResolver:
        """Get the track resolver."""
        if self._track_resolver is None:
            from ..application.services.track_resolver import TrackResolver

            self._track_resolver = TrackResolver(
                node_pool=self.node_pool,
                search_platform=self.settings.lavalink.default_search_platform,
            )
        return self._track_resolver

    @property
    def dispatcher(self) -> CommandDispatcher:
        """Get the text command dispatcher."""
        if self._dispatcher is None:
            from ..application.commands.dispatcher import CommandDispatcher

            self._dispatcher = CommandDispatcher(
                playback_service=self.playback_service,
                track_resolver=self.track_resolver,
            )
        return self._dispatcher

    # === Lifecycle ===

    def _add_nodes(self) -> None:
        from ..infrastructure.lavalink.client import LavalinkNodeClient

        user = self.bot.user
        if user is None:
            raise RuntimeError("Bot user unavailable; log in before initializing nodes.")

        lavalink = self.settings.lavalink
        for node_settings in lavalink.nodes:
            self.node_pool.add_node(
                LavalinkNodeClient(
                    node_settings.to_domain(),
                    user_id=user.id,
                    client_name=self.settings.discord.client_name,
                    request_timeout=lavalink.request_timeout_s,
                    reconnect_attempts=lavalink.reconnect_attempts,
                    reconnect_base_delay=lavalink.reconnect_base_delay_s,
                )
            )
        self._nodes_added = True

    async def initialize(self) -> None:
        """Register the configured nodes and open their event streams."""
        # Build the coordinator first so it owns the pool callbacks.
        _ = self.playback_service
        if not self._nodes_added:
            self._add_nodes()
        await self.node_pool.connect_all()

    async def shutdown(self) -> None:
        """Shutdown and cleanup all resources."""
        if self._playback_service is not None:
            try:
                await self._playback_service.shutdown()
            except Exception as exc:
                logger.warning("Failed tearing down sessions: %r", exc)

        if self._node_pool is not None:
            await self._node_pool.close()

        if self._event_bus is not None:
            self._event_bus.clear()


def create_container(settings: Settings) -> Container:
    """Create a new dependency injection container."""
    return Container(settings)
