"""HTTP client for the WebRTC gateway REST API.

Wraps an ``httpx.AsyncClient`` bound to one gateway base URL. Every remote
operation the runtime needs is a method here; sessions never build URLs.

Status mapping:
- the expected status for the endpoint: success
- 400: RemoteRejected carrying the joined field error messages
- 403, 404, 405, 406: RemoteRejected with the status phrase
- 408: GatewayTimeout (the long-poll "no event yet" answer)
- anything else, connection failures, undecodable bodies: TransportError

Long-poll requests are held open by the gateway, so the read timeout must be
longer than the gateway's hold time. A client-side read timeout is treated
like a 408 so event sources simply poll again. Connect, write and pool
timeouts mean the gateway is unreachable and are TransportError.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..errors import GatewayTimeout, RemoteRejected, TransportError
from ..identifiers import (
    DataConnectionId,
    DataId,
    GatewayId,
    MediaConnectionId,
    MediaId,
    PeerInfo,
    RtcpId,
)
from ..protocol.events import EntityKind, RemoteEvent, parse_event
from .formats import (
    AnswerQuery,
    Answered,
    CallQuery,
    ConnectDataQuery,
    CreatePeerRequest,
    DataConnectionCreated,
    DataConnectionStatus,
    DataRedirected,
    DataSocketCreated,
    ErrorResponse,
    MediaConnectionCreated,
    MediaConnectionStatus,
    MediaSocketCreated,
    PeerCreated,
    PeerStatus,
    RedirectDataQuery,
    RtcpSocketCreated,
    SocketInfo,
    dump,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_TIMEOUT = 60.0

_REJECTION_PHRASES = {
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    406: "Not Acceptable",
}


class GatewayClient:
    """Async client for one gateway instance.

    Usage:
        async with GatewayClient("http://127.0.0.1:8000") as client:
            peer_info = await client.create_peer(key, "localhost", "peer-a", True)
            event = await client.peer_event(peer_info)
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Request plumbing
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        expected: int,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            response = await self._http.request(method, path, json=json, params=params)
        except httpx.ReadTimeout as e:
            raise GatewayTimeout(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        status = response.status_code
        if status == expected:
            return response
        if status == 408:
            raise GatewayTimeout(f"{method} {path} timed out on the gateway")
        if status == 400:
            raise RemoteRejected(400, self._bad_request_reason(response))
        if status in _REJECTION_PHRASES:
            raise RemoteRejected(status, _REJECTION_PHRASES[status])
        raise TransportError(f"{method} {path} returned unexpected status {status}")

    @staticmethod
    def _bad_request_reason(response: httpx.Response) -> str:
        try:
            return ErrorResponse.model_validate(response.json()).reason
        except (ValueError, ValidationError):
            return response.text or "bad request"

    @staticmethod
    def _decode(response: httpx.Response, model: type[M]) -> M:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TransportError(f"undecodable {model.__name__} response: {e}") from e

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"undecodable event body: {e}") from e

    async def _event(
        self, kind: EntityKind, path: str, params: dict[str, str] | None = None
    ) -> RemoteEvent:
        response = await self._request("GET", path, 200, params=params)
        return parse_event(kind, self._json(response))

    # -------------------------------------------------------------------------
    # Peer
    # -------------------------------------------------------------------------

    async def create_peer(self, api_key: str, domain: str, peer_id: str, turn: bool) -> PeerInfo:
        """Register a peer object on the gateway.

        Returns:
            The peer's id and the token that authorizes later calls

        Raises:
            RemoteRejected: If the gateway refuses the key, domain or id
            InvalidIdentifier: If the returned token is malformed
        """
        body = CreatePeerRequest(key=api_key, domain=domain, peer_id=peer_id, turn=turn)
        response = await self._request("POST", "/peers", 201, json=dump(body))
        created = self._decode(response, PeerCreated)
        peer_info = PeerInfo.try_create(created.params.peer_id, created.params.token)
        logger.info(f"Peer created: {peer_info.peer_id}")
        return peer_info

    async def peer_event(self, peer_info: PeerInfo) -> RemoteEvent:
        """Long-poll the peer's event feed once."""
        return await self._event(
            EntityKind.PEER,
            f"/peers/{peer_info.peer_id}/events",
            {"token": str(peer_info.token)},
        )

    async def delete_peer(self, peer_info: PeerInfo) -> None:
        await self._request(
            "DELETE", f"/peers/{peer_info.peer_id}", 204, params={"token": str(peer_info.token)}
        )
        logger.info(f"Peer deleted: {peer_info.peer_id}")

    async def peer_status(self, peer_info: PeerInfo) -> PeerStatus:
        response = await self._request(
            "GET",
            f"/peers/{peer_info.peer_id}/status",
            200,
            params={"token": str(peer_info.token)},
        )
        return self._decode(response, PeerStatus)

    # -------------------------------------------------------------------------
    # Data
    # -------------------------------------------------------------------------

    async def open_data_socket(self) -> SocketInfo:
        """Allocate a gateway-side UDP socket that feeds a data connection."""
        response = await self._request("POST", "/data", 201, json={})
        socket = self._decode(response, DataSocketCreated).to_socket()
        _checked(DataId, socket.id)
        return socket

    async def close_data_socket(self, data_id: DataId) -> None:
        await self._request("DELETE", f"/data/{data_id}", 204)

    async def connect_data(self, query: ConnectDataQuery) -> DataConnectionId:
        response = await self._request("POST", "/data/connections", 202, json=dump(query))
        created = self._decode(response, DataConnectionCreated)
        return _checked(DataConnectionId, created.params.data_connection_id)

    async def redirect_data(
        self, data_connection_id: DataConnectionId, query: RedirectDataQuery
    ) -> DataRedirected:
        response = await self._request(
            "PUT", f"/data/connections/{data_connection_id}", 200, json=dump(query)
        )
        return self._decode(response, DataRedirected)

    async def delete_data_connection(self, data_connection_id: DataConnectionId) -> None:
        await self._request("DELETE", f"/data/connections/{data_connection_id}", 204)

    async def data_connection_event(self, data_connection_id: DataConnectionId) -> RemoteEvent:
        return await self._event(EntityKind.DATA, f"/data/connections/{data_connection_id}/events")

    async def data_connection_status(
        self, data_connection_id: DataConnectionId
    ) -> DataConnectionStatus:
        response = await self._request("GET", f"/data/connections/{data_connection_id}/status", 200)
        return self._decode(response, DataConnectionStatus)

    # -------------------------------------------------------------------------
    # Media
    # -------------------------------------------------------------------------

    async def open_media_socket(self, is_video: bool) -> SocketInfo:
        """Allocate a gateway-side RTP socket for video or audio."""
        response = await self._request("POST", "/media", 201, json={"is_video": is_video})
        socket = self._decode(response, MediaSocketCreated).to_socket()
        _checked(MediaId, socket.id)
        return socket

    async def close_media_socket(self, media_id: MediaId) -> None:
        await self._request("DELETE", f"/media/{media_id}", 204)

    async def open_rtcp_socket(self) -> SocketInfo:
        response = await self._request("POST", "/media/rtcp", 201, json={})
        socket = self._decode(response, RtcpSocketCreated).to_socket()
        _checked(RtcpId, socket.id)
        return socket

    async def close_rtcp_socket(self, rtcp_id: RtcpId) -> None:
        await self._request("DELETE", f"/media/rtcp/{rtcp_id}", 204)

    async def call(self, query: CallQuery) -> MediaConnectionId:
        response = await self._request("POST", "/media/connections", 202, json=dump(query))
        created = self._decode(response, MediaConnectionCreated)
        return _checked(MediaConnectionId, created.params.media_connection_id)

    async def answer(self, media_connection_id: MediaConnectionId, query: AnswerQuery) -> Answered:
        response = await self._request(
            "POST", f"/media/connections/{media_connection_id}/answer", 202, json=dump(query)
        )
        return self._decode(response, Answered)

    async def delete_media_connection(self, media_connection_id: MediaConnectionId) -> None:
        await self._request("DELETE", f"/media/connections/{media_connection_id}", 204)

    async def media_connection_event(self, media_connection_id: MediaConnectionId) -> RemoteEvent:
        return await self._event(
            EntityKind.MEDIA, f"/media/connections/{media_connection_id}/events"
        )

    async def media_connection_status(
        self, media_connection_id: MediaConnectionId
    ) -> MediaConnectionStatus:
        response = await self._request(
            "GET", f"/media/connections/{media_connection_id}/status", 200
        )
        return self._decode(response, MediaConnectionStatus)

    async def pli(self, media_connection_id: MediaConnectionId, target: SocketInfo) -> None:
        """Ask the remote sender for a key frame, answered on `target`."""
        await self._request(
            "POST",
            f"/media/connections/{media_connection_id}/pli",
            201,
            json=target.to_redirect(),
        )


IdT = TypeVar("IdT", bound=GatewayId)


def _checked(id_type: type[IdT], value: str | None) -> IdT:
    return id_type.try_create(value or "")
