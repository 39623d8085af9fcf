"""Node Pool Manager - tracks audio node health, load and guild assignments."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import partial
from typing import TYPE_CHECKING

from ...domain.shared.exceptions import NoNodesAvailableError
from ...domain.shared.messages import ErrorMessages, LogTemplates
from ...domain.shared.types import DiscordSnowflake
from ..interfaces.audio_node import NodeDisconnected, NodeEvent, NodeReady, PlayerEvent

if TYPE_CHECKING:
    from ...domain.music.entities import AudioNode
    from ..interfaces.audio_node import AudioNodeClient

logger = logging.getLogger(__name__)

OrphanHandler = Callable[[str, list[DiscordSnowflake]], Awaitable[None]]
PlayerEventHandler = Callable[[PlayerEvent], Awaitable[None]]


class NodePoolManager:
    """Owns the set of audio nodes and which guild is served by which node.

    Mutations of the assignment map and node load happen under one lock.
    Callbacks (orphan migration, player events) always run outside it so a
    callback may come back into the pool.
    """

    def __init__(self) -> None:
        self._clients: dict[str, AudioNodeClient] = {}
        self._assignments: dict[DiscordSnowflake, str] = {}
        self._lock = asyncio.Lock()
        self._orphan_handler: OrphanHandler | None = None
        self._player_event_handler: PlayerEventHandler | None = None
        self._guild_event_tasks: dict[DiscordSnowflake, asyncio.Task[None]] = {}

    # ── Wiring ──────────────────────────────────────────────────────

    def set_orphan_handler(self, handler: OrphanHandler) -> None:
        """Called with ``(node_id, guild_ids)`` whenever a node drops its guilds."""
        self._orphan_handler = handler

    def set_player_event_handler(self, handler: PlayerEventHandler) -> None:
        self._player_event_handler = handler

    def add_node(self, client: AudioNodeClient) -> None:
        node = client.node
        self._clients[node.id] = client
        client.set_event_handler(self.handle_node_event)
        logger.info(LogTemplates.NODE_REGISTERED, node.id, node.rest_url)

    async def remove_node(self, node_id: str) -> None:
        """Deregister a node; its guilds are migrated like on a disconnect."""
        await self.report_disconnect(node_id, reconnect=False)
        client = self._clients.pop(node_id, None)
        if client is not None:
            await client.close()
            logger.info(LogTemplates.NODE_DEREGISTERED, node_id)

    async def connect_all(self) -> None:
        async def safe_connect(client: AudioNodeClient) -> None:
            try:
                await client.connect()
            except Exception as e:
                logger.error(LogTemplates.NODE_ERROR, client.node.id, e)

        async with asyncio.TaskGroup() as tg:
            for client in self._clients.values():
                tg.create_task(safe_connect(client))

    async def close(self) -> None:
        for client in list(self._clients.values()):
            await client.close()
        for task in list(self._guild_event_tasks.values()):
            task.cancel()
        self._guild_event_tasks.clear()
        async with self._lock:
            self._assignments.clear()
            for client in self._clients.values():
                client.node.is_connected = False
                client.node.session_count = 0

    # ── Queries ─────────────────────────────────────────────────────

    def nodes(self) -> list[AudioNode]:
        """Snapshot of every registered node, in registration order."""
        return [client.node.model_copy() for client in self._clients.values()]

    def get_client(self, node_id: str) -> AudioNodeClient:
        client = self._clients.get(node_id)
        if client is None:
            raise NoNodesAvailableError(ErrorMessages.NODE_UNKNOWN.format(node_id=node_id))
        return client

    def is_connected(self, node_id: str | None) -> bool:
        client = self._clients.get(node_id) if node_id else None
        return client is not None and client.node.is_connected

    def assigned_node(self, guild_id: DiscordSnowflake) -> str | None:
        return self._assignments.get(guild_id)

    def pick_node(self) -> AudioNode:
        """Least-loaded connected node; earlier registration wins ties."""
        best: AudioNode | None = None
        for client in self._clients.values():
            node = client.node
            if not node.is_connected:
                continue
            if best is None or node.session_count < best.session_count:
                best = node
        if best is None:
            raise NoNodesAvailableError()
        return best

    def client_for_resolve(self, node_id: str | None = None) -> AudioNodeClient:
        """Prefer the guild's own node for lookups, else the least-loaded one."""
        if node_id is not None and self.is_connected(node_id):
            return self._clients[node_id]
        return self._clients[self.pick_node().id]

    # ── Assignment ──────────────────────────────────────────────────

    async def assign_node(self, guild_id: DiscordSnowflake) -> str:
        async with self._lock:
            current = self._assignments.get(guild_id)
            if current is not None and self.is_connected(current):
                return current
            if current is not None:
                self._unassign(guild_id)

            node = self.pick_node()
            node.session_count += 1
            self._assignments[guild_id] = node.id
            logger.info(LogTemplates.NODE_ASSIGNED, guild_id, node.id, node.session_count)
            return node.id

    async def release(self, guild_id: DiscordSnowflake) -> None:
        async with self._lock:
            self._unassign(guild_id)

    def _unassign(self, guild_id: DiscordSnowflake) -> None:
        node_id = self._assignments.pop(guild_id, None)
        client = self._clients.get(node_id) if node_id else None
        if client is not None and client.node.session_count > 0:
            client.node.session_count -= 1

    # ── Health ──────────────────────────────────────────────────────

    async def report_connect(self, node_id: str) -> None:
        async with self._lock:
            client = self._clients.get(node_id)
            if client is None:
                return
            client.node.is_connected = True
        logger.info(LogTemplates.NODE_CONNECTED, node_id)

    async def report_disconnect(self, node_id: str, *, reconnect: bool = True) -> None:
        """Mark a node unavailable and hand its guilds to the orphan handler.

        The client is asked to reconnect; the node is only eligible again after
        its next NodeReady. A second report for a node that is already down
        does nothing.
        """
        async with self._lock:
            client = self._clients.get(node_id)
            if client is None or not client.node.is_connected:
                return
            client.node.is_connected = False
            client.node.session_count = 0
            orphans = [guild for guild, owner in self._assignments.items() if owner == node_id]
            for guild_id in orphans:
                del self._assignments[guild_id]

        logger.warning(LogTemplates.NODE_DISCONNECTED, node_id, len(orphans))
        if reconnect:
            try:
                await client.reconnect()
            except Exception as e:
                logger.error(LogTemplates.NODE_ERROR, node_id, e)

        if orphans and self._orphan_handler is not None:
            await self._orphan_handler(node_id, orphans)

    # ── Event routing ───────────────────────────────────────────────

    async def handle_node_event(self, event: NodeEvent) -> None:
        """Route one event from a node's read loop.

        Health events are applied before returning. Player events run in a
        per-guild task chain: guilds are handled concurrently and each guild
        sees its own events in order.
        """
        match event:
            case NodeReady():
                await self.report_connect(event.node_id)
            case NodeDisconnected():
                await self.report_disconnect(event.node_id)
            case PlayerEvent():
                self._dispatch_player_event(event)
            case _:
                logger.debug("Unhandled node event %s", type(event).__name__)

    def _dispatch_player_event(self, event: PlayerEvent) -> None:
        handler = self._player_event_handler
        if handler is None:
            return
        previous = self._guild_event_tasks.get(event.guild_id)
        task = asyncio.create_task(self._run_player_event(handler, event, previous))
        self._guild_event_tasks[event.guild_id] = task
        task.add_done_callback(partial(self._forget_event_task, event.guild_id))

    async def _run_player_event(
        self,
        handler: PlayerEventHandler,
        event: PlayerEvent,
        previous: asyncio.Task[None] | None,
    ) -> None:
        if previous is not None:
            await asyncio.wait([previous])
        try:
            await handler(event)
        except Exception as e:
            logger.exception(LogTemplates.EVENT_HANDLER_ERROR, type(event).__name__, e)

    def _forget_event_task(self, guild_id: DiscordSnowflake, task: asyncio.Task[None]) -> None:
        if self._guild_event_tasks.get(guild_id) is task:
            del self._guild_event_tasks[guild_id]

    async def drain_events(self) -> None:
        """Wait until every dispatched player event has been handled."""
        while self._guild_event_tasks:
            await asyncio.gather(*self._guild_event_tasks.values(), return_exceptions=True)
