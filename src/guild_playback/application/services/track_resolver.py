"""Turns user queries into tracks by asking an audio node to search or load them."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from ...domain.music.value_objects import ResolveKind
from ...domain.shared.exceptions import NoNodesAvailableError
from ...domain.shared.messages import LogTemplates
from ...domain.shared.types import DiscordSnowflake
from ..interfaces.audio_node import LoadType, NodeRequestError
from .queue_models import ResolveResult

if TYPE_CHECKING:
    from .node_pool import NodePoolManager

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_PLATFORM_PREFIX_RE = re.compile(r"^[a-z]{2,}search:", re.IGNORECASE)

DEFAULT_SEARCH_PLATFORM = "ytmsearch"


def is_url(query: str) -> bool:
    return bool(_URL_RE.match(query.strip()))


class TrackResolver:
    """Classifies a query, builds the node identifier and maps the load result.

    Never raises for backend trouble: network errors and missing nodes come
    back as ``LOAD_ERROR`` so the caller can tell them apart from an honest
    "no results".
    """

    def __init__(
        self, *, node_pool: NodePoolManager, search_platform: str = DEFAULT_SEARCH_PLATFORM
    ) -> None:
        self._node_pool = node_pool
        self._search_platform = search_platform.rstrip(":")

    def build_identifier(self, query: str) -> str:
        """URLs and already-prefixed searches pass through; bare terms get the platform prefix."""
        query = query.strip()
        if is_url(query) or _PLATFORM_PREFIX_RE.match(query):
            return query
        return f"{self._search_platform}:{query}"

    async def resolve(
        self,
        query: str,
        requester_id: DiscordSnowflake,
        *,
        node_id: str | None = None,
    ) -> ResolveResult:
        if not query or not query.strip():
            return ResolveResult(kind=ResolveKind.EMPTY)

        identifier = self.build_identifier(query)

        try:
            client = self._node_pool.client_for_resolve(node_id)
        except NoNodesAvailableError as exc:
            logger.warning(LogTemplates.RESOLVE_NO_NODE, query)
            return ResolveResult(kind=ResolveKind.LOAD_ERROR, reason=exc.message)

        logger.debug(LogTemplates.RESOLVE_STARTED, identifier, client.node.id)
        try:
            result = await client.load_tracks(identifier)
        except NodeRequestError as exc:
            logger.warning(LogTemplates.RESOLVE_FAILED, query, exc)
            return ResolveResult(kind=ResolveKind.LOAD_ERROR, reason=str(exc))

        tracks = [track.with_requester(requester_id) for track in result.tracks]

        match result.load_type:
            case LoadType.TRACK | LoadType.SEARCH if tracks:
                return ResolveResult(kind=ResolveKind.SINGLE, tracks=tracks[:1])
            case LoadType.PLAYLIST if tracks:
                return ResolveResult(
                    kind=ResolveKind.PLAYLIST,
                    tracks=tracks,
                    playlist_name=result.playlist_name,
                )
            case LoadType.ERROR:
                reason = result.error_message or "unknown error"
                logger.warning(LogTemplates.RESOLVE_FAILED, query, reason)
                return ResolveResult(kind=ResolveKind.LOAD_ERROR, reason=reason)
            case _:
                return ResolveResult(kind=ResolveKind.EMPTY)
