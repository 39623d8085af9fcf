"""Lavalink v4 node client: REST control channel plus WebSocket event stream."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp
import httpx
from pydantic import ValidationError

from guild_playback.application.interfaces.audio_node import (
    AudioNodeClient,
    LoadResult,
    LoadType,
    NodeDisconnected,
    NodeEvent,
    NodeEventHandler,
    NodeReady,
    NodeRequestError,
    NodeUnavailableError,
    PlayerUpdate,
    TrackEnd,
    TrackException,
    TrackStart,
    TrackStuck,
    VoiceSocketClosed,
)
from guild_playback.domain.music.entities import AudioNode, Track, VoiceServerState
from guild_playback.domain.music.value_objects import TrackEndReason
from guild_playback.domain.shared.messages import ErrorMessages, LogTemplates
from guild_playback.infrastructure.lavalink.models import (
    EventOp,
    LoadTracksResponse,
    PlayerUpdateOp,
    PlayerUpdatePayload,
    ReadyOp,
    StatsOp,
    VoiceStatePayload,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT: float = 10.0
HEARTBEAT_SECONDS: float = 30.0
MAX_BACKOFF_SECONDS: float = 60.0


class LavalinkNodeClient(AudioNodeClient):
    """Talks to one Lavalink v4 server.

    REST calls go through ``httpx``; the event stream is an ``aiohttp``
    WebSocket kept alive by a background task that reconnects with
    exponential backoff after the socket drops.
    """

    def __init__(
        self,
        node: AudioNode,
        *,
        user_id: int,
        client_name: str = "guild-playback",
        request_timeout: float = REQUEST_TIMEOUT,
        reconnect_attempts: int = 5,
        reconnect_base_delay: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._node = node
        self._user_id = user_id
        self._client_name = client_name
        self._request_timeout = request_timeout
        self._reconnect_attempts = reconnect_attempts
        self._reconnect_base_delay = reconnect_base_delay

        self._http = http_client
        self._ws_session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._ws_task: asyncio.Task[None] | None = None

        self._handler: NodeEventHandler | None = None
        self._session_id: str | None = None
        self._closing = False

    @property
    def node(self) -> AudioNode:
        return self._node

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def set_event_handler(self, handler: NodeEventHandler) -> None:
        self._handler = handler

    # ── REST ────────────────────────────────────────────────────────

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._node.rest_url,
                headers={"Authorization": self._node.password.get_secret_value()},
                timeout=httpx.Timeout(self._request_timeout),
            )
        return self._http

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._get_http().request(method, path, params=params, json=json_body)
        except httpx.TransportError as exc:
            raise NodeUnavailableError(
                self._node.id,
                ErrorMessages.NODE_UNREACHABLE.format(node_id=self._node.id, error=exc),
            ) from exc

        if response.is_error:
            raise NodeRequestError(
                self._node.id,
                ErrorMessages.NODE_REQUEST_FAILED.format(
                    node_id=self._node.id,
                    method=method,
                    path=path,
                    status=response.status_code,
                ),
                status=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _player_path(self, guild_id: int) -> str:
        if self._session_id is None:
            raise NodeUnavailableError(
                self._node.id, ErrorMessages.NODE_NOT_READY.format(node_id=self._node.id)
            )
        return f"/v4/sessions/{self._session_id}/players/{guild_id}"

    async def _update_player(self, guild_id: int, payload: PlayerUpdatePayload) -> None:
        await self._request(
            "PATCH",
            self._player_path(guild_id),
            params={"noReplace": "false"},
            json_body=payload.to_json(),
        )

    async def load_tracks(self, identifier: str) -> LoadResult:
        data = await self._request("GET", "/v4/loadtracks", params={"identifier": identifier})
        try:
            return LoadTracksResponse.model_validate(data).to_load_result()
        except ValidationError:
            logger.warning(LogTemplates.LAVALINK_BAD_PAYLOAD, self._node.id)
            return LoadResult(load_type=LoadType.ERROR, error_message="malformed load response")

    async def play(
        self,
        guild_id: int,
        track: Track,
        *,
        volume: int,
        paused: bool = False,
        position_ms: int = 0,
    ) -> None:
        if not track.encoded:
            raise NodeRequestError(self._node.id, f"Track {track.id} has no playable handle")
        fields: dict[str, Any] = {
            "track": {"encoded": track.encoded},
            "volume": volume,
            "paused": paused,
        }
        if position_ms:
            fields["position"] = position_ms
        await self._update_player(guild_id, PlayerUpdatePayload(**fields))

    async def stop(self, guild_id: int) -> None:
        await self._update_player(guild_id, PlayerUpdatePayload(track={"encoded": None}))

    async def set_paused(self, guild_id: int, paused: bool) -> None:
        await self._update_player(guild_id, PlayerUpdatePayload(paused=paused))

    async def set_volume(self, guild_id: int, volume: int) -> None:
        await self._update_player(guild_id, PlayerUpdatePayload(volume=volume))

    async def update_voice(self, guild_id: int, voice: VoiceServerState) -> None:
        payload = PlayerUpdatePayload(
            voice=VoiceStatePayload(
                token=voice.token, endpoint=voice.endpoint, session_id=voice.session_id
            )
        )
        await self._update_player(guild_id, payload)

    async def destroy_player(self, guild_id: int) -> None:
        await self._request("DELETE", self._player_path(guild_id))

    # ── WebSocket ───────────────────────────────────────────────────

    async def connect(self) -> None:
        if self._ws_task is not None and not self._ws_task.done():
            return
        self._closing = False
        self._ws_task = asyncio.create_task(self._run(), name=f"lavalink-{self._node.id}")

    async def close(self) -> None:
        self._closing = True
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._ws_task is not None:
            self._ws_task.cancel()
            try:
                await self._ws_task
            except asyncio.CancelledError:
                pass
            self._ws_task = None
        if self._ws_session is not None:
            await self._ws_session.close()
            self._ws_session = None
        if self._http is not None:
            await self._http.aclose()
            self._http = None
        self._session_id = None

    async def reconnect(self) -> None:
        """Drop a still-open socket so ``_run`` reconnects and the node sends ``ready`` again."""
        if self._closing:
            return
        if self._ws_task is None or self._ws_task.done():
            logger.info(LogTemplates.LAVALINK_RESTART, self._node.id)
            await self.connect()
            return
        if self._ws is not None and not self._ws.closed:
            logger.info(LogTemplates.LAVALINK_RESTART, self._node.id)
            await self._ws.close()

    def _ws_headers(self) -> dict[str, str]:
        return {
            "Authorization": self._node.password.get_secret_value(),
            "User-Id": str(self._user_id),
            "Client-Name": self._client_name,
        }

    async def _run(self) -> None:
        attempt = 0
        while not self._closing:
            was_ready = False
            try:
                was_ready = await self._listen()
            except (aiohttp.ClientError, TimeoutError) as exc:
                logger.warning(LogTemplates.NODE_ERROR, self._node.id, exc)

            if self._closing:
                break

            self._session_id = None
            await self._emit(NodeDisconnected(node_id=self._node.id, reason="socket closed"))

            attempt = 1 if was_ready else attempt + 1
            if attempt > self._reconnect_attempts:
                logger.error(LogTemplates.LAVALINK_RECONNECT_GAVE_UP, self._node.id, attempt - 1)
                break

            delay = min(self._reconnect_base_delay * 2 ** (attempt - 1), MAX_BACKOFF_SECONDS)
            logger.info(
                LogTemplates.LAVALINK_RECONNECT,
                self._node.id,
                delay,
                attempt,
                self._reconnect_attempts,
            )
            await asyncio.sleep(delay)

    async def _listen(self) -> bool:
        """Hold one socket open until it closes; returns whether ``ready`` was seen."""
        if self._ws_session is None or self._ws_session.closed:
            self._ws_session = aiohttp.ClientSession()

        logger.info(LogTemplates.LAVALINK_CONNECTING, self._node.id, self._node.ws_url)
        was_ready = False
        try:
            async with self._ws_session.ws_connect(
                self._node.ws_url, headers=self._ws_headers(), heartbeat=HEARTBEAT_SECONDS
            ) as ws:
                self._ws = ws
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        if await self._handle_message(msg.data):
                            was_ready = True
                    elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                        break
                logger.warning(LogTemplates.LAVALINK_SOCKET_CLOSED, self._node.id, ws.close_code)
        finally:
            self._ws = None
        return was_ready

    async def _handle_message(self, raw: str) -> bool:
        """Decode one op and forward it; returns True for ``ready``."""
        try:
            data = json.loads(raw)
            op = data.get("op")
            match op:
                case "ready":
                    ready = ReadyOp.model_validate(data)
                    self._session_id = ready.session_id
                    logger.info(
                        LogTemplates.LAVALINK_READY, self._node.id, ready.session_id, ready.resumed
                    )
                    await self._emit(
                        NodeReady(
                            node_id=self._node.id,
                            session_id=ready.session_id,
                            resumed=ready.resumed,
                        )
                    )
                    return True
                case "playerUpdate":
                    update = PlayerUpdateOp.model_validate(data)
                    await self._emit(
                        PlayerUpdate(
                            node_id=self._node.id,
                            guild_id=update.guild_id,
                            position_ms=max(0, update.state.position),
                            connected=update.state.connected,
                        )
                    )
                case "stats":
                    stats = StatsOp.model_validate(data)
                    logger.debug(
                        "Node %s stats: %s players (%s playing)",
                        self._node.id,
                        stats.players,
                        stats.playing_players,
                    )
                case "event":
                    event = self._to_node_event(EventOp.model_validate(data))
                    if event is not None:
                        await self._emit(event)
                case _:
                    logger.debug(LogTemplates.LAVALINK_UNKNOWN_OP, self._node.id, op)
        except (json.JSONDecodeError, AttributeError, ValidationError):
            logger.warning(LogTemplates.LAVALINK_BAD_PAYLOAD, self._node.id)
        return False

    def _to_node_event(self, op: EventOp) -> NodeEvent | None:
        encoded = op.track.encoded if op.track is not None else None
        match op.type:
            case "TrackStartEvent":
                return TrackStart(node_id=self._node.id, guild_id=op.guild_id, encoded=encoded)
            case "TrackEndEvent":
                try:
                    reason = TrackEndReason(op.reason)
                except ValueError:
                    logger.warning(LogTemplates.LAVALINK_BAD_PAYLOAD, self._node.id)
                    return None
                return TrackEnd(
                    node_id=self._node.id, guild_id=op.guild_id, encoded=encoded, reason=reason
                )
            case "TrackExceptionEvent":
                exception = op.exception
                return TrackException(
                    node_id=self._node.id,
                    guild_id=op.guild_id,
                    encoded=encoded,
                    message=(exception.message or "") if exception else "",
                    severity=exception.severity if exception else "common",
                )
            case "TrackStuckEvent":
                return TrackStuck(
                    node_id=self._node.id,
                    guild_id=op.guild_id,
                    encoded=encoded,
                    threshold_ms=max(0, op.threshold_ms),
                )
            case "WebSocketClosedEvent":
                return VoiceSocketClosed(
                    node_id=self._node.id,
                    guild_id=op.guild_id,
                    code=op.code,
                    reason=op.reason,
                    by_remote=op.by_remote,
                )
            case _:
                logger.debug(LogTemplates.LAVALINK_UNKNOWN_OP, self._node.id, op.type)
                return None

    async def _emit(self, event: NodeEvent) -> None:
        if self._handler is None:
            return
        try:
            await self._handler(event)
        except Exception as e:
            logger.exception(LogTemplates.EVENT_HANDLER_ERROR, type(event).__name__, e)
