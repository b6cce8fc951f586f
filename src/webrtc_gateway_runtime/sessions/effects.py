"""Performs the actions session transitions request.

GatewayEffects is the only place where sessions reach the gateway and the
supervisor. Failures of remote calls propagate as GatewayError and abort the
fold that requested them, except for status queries and PLI, which are
reported and swallowed.

Connection setup follows the gateway's flow:
- outgoing data: open a data socket, POST /data/connections, spawn
- incoming data: open a data socket, PUT /data/connections/{id}, spawn
- outgoing media: open media + RTCP sockets per kind, POST /media/connections, spawn
- incoming media: same sockets, POST /media/connections/{id}/answer, spawn
Sockets opened for a connection that could not be established are released.
A connection the supervisor refuses to spawn is deleted again.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from functools import partial
from typing import TYPE_CHECKING, Any

from ..errors import GatewayError, InvalidState
from ..gateway.formats import (
    AnswerQuery,
    CallQuery,
    ConnectDataQuery,
    Constraints,
    DataIdParams,
    MediaRedirectParams,
    RedirectDataQuery,
    SocketInfo,
)
from ..identifiers import DataConnectionId, DataId, MediaConnectionId, MediaId, RtcpId
from ..longpoll import LongPollEventSource
from ..protocol.events import EntityKind
from .actions import (
    AcceptDataConnection,
    Action,
    AnswerMediaConnection,
    Broadcast,
    CallMediaConnection,
    ConnectDataConnection,
    DeleteDataConnection,
    DeleteMediaConnection,
    DeletePeer,
    QueryDataConnectionStatus,
    QueryMediaConnectionStatus,
    QueryPeerStatus,
    SendPli,
)
from .data import DataConnectionState
from .media import MediaConnectionState

if TYPE_CHECKING:
    from ..config import MediaSettings
    from ..gateway.client import GatewayClient
    from ..supervisor import SessionSupervisor

logger = logging.getLogger(__name__)

Reporter = Callable[[str], None]


class GatewayEffects:
    """Interprets actions against a GatewayClient and a SessionSupervisor."""

    def __init__(
        self,
        client: GatewayClient,
        supervisor: SessionSupervisor,
        report: Reporter | None = None,
    ):
        self._client = client
        self._supervisor = supervisor
        self._report = report or logger.info

    async def perform(self, action: Action) -> None:
        match action:
            case DeletePeer(peer_info=peer_info):
                await self._client.delete_peer(peer_info)
            case QueryPeerStatus(peer_info=peer_info):
                try:
                    status = await self._client.peer_status(peer_info)
                except GatewayError as e:
                    logger.warning(f"Peer status query failed: {e}")
                    return
                state = "disconnected" if status.disconnected else "connected"
                self._report(f"peer {status.peer_id}: {state}")
            case Broadcast(command=command):
                delivered = await self._supervisor.broadcast(command)
                logger.debug(f"Broadcast {command.type.value} to {delivered} session(s)")
            case ConnectDataConnection():
                await self._connect_data(action)
            case AcceptDataConnection():
                await self._accept_data(action)
            case CallMediaConnection():
                await self._call_media(action)
            case AnswerMediaConnection():
                await self._answer_media(action)
            case DeleteDataConnection(connection_id=connection_id):
                await self._client.delete_data_connection(connection_id)
            case DeleteMediaConnection(connection_id=connection_id):
                await self._client.delete_media_connection(connection_id)
            case QueryDataConnectionStatus(connection_id=connection_id):
                await self._data_status(connection_id)
            case QueryMediaConnectionStatus(connection_id=connection_id):
                await self._media_status(connection_id)
            case SendPli(connection_id=connection_id, target=target):
                try:
                    await self._client.pli(connection_id, target)
                except GatewayError as e:
                    logger.warning(f"PLI on {connection_id} failed: {e}")
                    return
                self._report(f"media connection {connection_id}: PLI sent to {target.address}")
            case _:
                raise TypeError(f"unknown action {action!r}")

    # -------------------------------------------------------------------------
    # Data connections
    # -------------------------------------------------------------------------

    async def _connect_data(self, action: ConnectDataConnection) -> None:
        feed = await self._client.open_data_socket()
        query = ConnectDataQuery(
            peer_id=str(action.peer_info.peer_id),
            token=str(action.peer_info.token),
            target_id=str(action.target),
            params=DataIdParams(data_id=feed.id or ""),
            redirect_params=action.redirect.to_redirect() if action.redirect else None,
        )
        try:
            connection_id = await self._client.connect_data(query)
        except GatewayError:
            await self._release((feed,))
            raise
        logger.info(f"Connecting data connection {connection_id} to {action.target}")
        await self._spawn_data(connection_id, feed, action.redirect)

    async def _accept_data(self, action: AcceptDataConnection) -> None:
        feed = await self._client.open_data_socket()
        query = RedirectDataQuery(
            feed_params=DataIdParams(data_id=feed.id or ""),
            redirect_params=action.redirect.to_redirect() if action.redirect else None,
        )
        try:
            await self._client.redirect_data(action.connection_id, query)
        except GatewayError:
            await self._release((feed,))
            raise
        await self._spawn_data(action.connection_id, feed, action.redirect)

    async def _spawn_data(
        self, connection_id: DataConnectionId, feed: SocketInfo, redirect: SocketInfo | None
    ) -> None:
        source = LongPollEventSource(
            partial(self._client.data_connection_event, connection_id),
            cancelled=self._supervisor.cancelled,
            label=f"data connection {connection_id}",
        )
        state = DataConnectionState(connection_id, feed=feed, redirect=redirect)
        try:
            await self._supervisor.spawn(EntityKind.DATA, state, source, effects=self)
        except InvalidState:
            await self._abandon(self._client.delete_data_connection, connection_id, (feed,))
            raise

    async def _data_status(self, connection_id: DataConnectionId) -> None:
        try:
            status = await self._client.data_connection_status(connection_id)
        except GatewayError as e:
            logger.warning(f"Status query for {connection_id} failed: {e}")
            return
        self._report(
            f"data connection {connection_id}: remote={status.remote_id} "
            f"open={status.open} label={status.label!r}"
        )

    # -------------------------------------------------------------------------
    # Media connections
    # -------------------------------------------------------------------------

    async def _open_media(
        self, media: MediaSettings
    ) -> tuple[Constraints, MediaRedirectParams, tuple[SocketInfo, ...]]:
        """Open the gateway sockets a media configuration needs.

        Returns:
            Constraints and redirect params for call/answer, plus the opened
            sockets so they can be released on failure
        """
        feeds: list[SocketInfo] = []
        params: dict[str, Any] = {}
        redirects: dict[str, Any] = {}

        try:
            for kind, enabled, redirect, codec in (
                ("video", media.video, media.video_redirect, media.video_params),
                ("audio", media.audio, media.audio_redirect, media.audio_params),
            ):
                if not enabled or codec is None:
                    continue
                socket = await self._client.open_media_socket(is_video=kind == "video")
                feeds.append(socket)
                rtcp = await self._client.open_rtcp_socket()
                feeds.append(rtcp)
                params[f"{kind}_params"] = codec.model_copy(
                    update={"media_id": socket.id, "rtcp_id": rtcp.id}
                )
                params[f"{kind}_receive_enabled"] = redirect is not None
                if redirect is not None:
                    redirects[kind] = redirect.media_socket().to_redirect()
                    redirects[f"{kind}_rtcp"] = redirect.rtcp_socket().to_redirect()
        except GatewayError:
            await self._release(tuple(feeds))
            raise

        constraints = Constraints(video=media.video, audio=media.audio, **params)
        return constraints, MediaRedirectParams(**redirects), tuple(feeds)

    async def _call_media(self, action: CallMediaConnection) -> None:
        constraints, redirects, feeds = await self._open_media(action.media)
        query = CallQuery(
            peer_id=str(action.peer_info.peer_id),
            token=str(action.peer_info.token),
            target_id=str(action.target),
            constraints=constraints,
            redirect_params=redirects,
        )
        try:
            connection_id = await self._client.call(query)
        except GatewayError:
            await self._release(feeds)
            raise
        logger.info(f"Calling {action.target} on media connection {connection_id}")
        await self._spawn_media(connection_id, action.media, feeds)

    async def _answer_media(self, action: AnswerMediaConnection) -> None:
        constraints, redirects, feeds = await self._open_media(action.media)
        query = AnswerQuery(constraints=constraints, redirect_params=redirects)
        try:
            await self._client.answer(action.connection_id, query)
        except GatewayError:
            await self._release(feeds)
            raise
        await self._spawn_media(action.connection_id, action.media, feeds)

    async def _spawn_media(
        self,
        connection_id: MediaConnectionId,
        media: MediaSettings,
        feeds: tuple[SocketInfo, ...],
    ) -> None:
        source = LongPollEventSource(
            partial(self._client.media_connection_event, connection_id),
            cancelled=self._supervisor.cancelled,
            label=f"media connection {connection_id}",
        )
        state = MediaConnectionState(connection_id, media=media, feeds=feeds)
        try:
            await self._supervisor.spawn(EntityKind.MEDIA, state, source, effects=self)
        except InvalidState:
            await self._abandon(self._client.delete_media_connection, connection_id, feeds)
            raise

    async def _media_status(self, connection_id: MediaConnectionId) -> None:
        try:
            status = await self._client.media_connection_status(connection_id)
        except GatewayError as e:
            logger.warning(f"Status query for {connection_id} failed: {e}")
            return
        ssrc = ", ".join(f"{pair.media_id}={pair.ssrc}" for pair in status.ssrc) or "none"
        self._report(
            f"media connection {connection_id}: remote={status.remote_id} "
            f"open={status.open} ssrc={ssrc}"
        )

    # -------------------------------------------------------------------------

    async def _release(self, feeds: tuple[SocketInfo, ...]) -> None:
        """Close gateway sockets of a connection that was never established."""
        for feed in feeds:
            if not feed.id:
                continue
            try:
                if feed.id.startswith(DataId.PREFIXES):
                    await self._client.close_data_socket(DataId(feed.id))
                elif feed.id.startswith(RtcpId.PREFIXES):
                    await self._client.close_rtcp_socket(RtcpId(feed.id))
                else:
                    await self._client.close_media_socket(MediaId(feed.id))
            except GatewayError as e:
                logger.warning(f"Could not release socket {feed.id}: {e}")

    async def _abandon(
        self,
        delete: Callable[[Any], Awaitable[None]],
        connection_id: DataConnectionId | MediaConnectionId,
        feeds: tuple[SocketInfo, ...],
    ) -> None:
        """Remove an established connection that no session will supervise."""
        logger.warning(f"No session for {connection_id}, closing it")
        try:
            await delete(connection_id)
        except GatewayError as e:
            logger.warning(f"Could not delete {connection_id}: {e}")
        await self._release(feeds)
