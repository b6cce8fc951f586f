"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from collections.abc import Callable
from typing import Any

import pytest

from webrtc_gateway_runtime.config import RuntimeConfig
from webrtc_gateway_runtime.errors import GatewayError
from webrtc_gateway_runtime.gateway.formats import (
    Answered,
    AnswerPorts,
    DataConnectionStatus,
    DataRedirected,
    MediaConnectionStatus,
    PeerStatus,
    SocketInfo,
)
from webrtc_gateway_runtime.identifiers import (
    DataConnectionId,
    MediaConnectionId,
    PeerInfo,
)
from webrtc_gateway_runtime.protocol.events import EntityKind, RemoteEvent, parse_event


def make_id(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4()}"


@pytest.fixture
def new_id() -> Callable[[str], str]:
    """Factory for well-formed gateway identifiers, e.g. new_id("dc-")."""
    return make_id


@pytest.fixture
def peer_info() -> PeerInfo:
    return PeerInfo.try_create("peer-a", make_id("pt-"))


@pytest.fixture
def config_data() -> dict[str, Any]:
    return {
        "gateway": {"base_url": "http://gateway.test"},
        "peer": {"peer_id": "peer-a", "domain": "localhost", "api_key": "secret"},
        "data": {"redirects": [{"ip": "127.0.0.1", "port": 10001}]},
        "media": [
            {
                "video": True,
                "video_redirect": {
                    "media_ip": "127.0.0.1",
                    "media_port": 20000,
                    "rtcp_ip": "127.0.0.1",
                    "rtcp_port": 20001,
                },
                "video_params": {
                    "band_width": 1500,
                    "codec": "H264",
                    "payload_type": 96,
                    "sampling_rate": 90000,
                },
            }
        ],
        "runtime": {"shutdown_grace": 0.5},
    }


@pytest.fixture
def runtime_config(config_data: dict[str, Any]) -> RuntimeConfig:
    return RuntimeConfig.model_validate(config_data)


# =============================================================================
# In-memory gateway
# =============================================================================


class StubGateway:
    """In-memory stand-in for GatewayClient.

    Event feeds are queues: push an event body to deliver it, or an exception
    instance to make the next poll raise it. Every call is recorded in
    ``calls`` as (method, argument).

    Usage:
        gateway = StubGateway()
        gateway.push_peer({"event": "OPEN", "params": {...}})
        gateway.fail["connect_data"] = RemoteRejected(400, "bad target")
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.fail: dict[str, GatewayError] = {}
        self.peer_info: PeerInfo | None = None
        self.peer_events: asyncio.Queue[Any] = asyncio.Queue()
        self.data_events: dict[str, asyncio.Queue[Any]] = defaultdict(asyncio.Queue)
        self.media_events: dict[str, asyncio.Queue[Any]] = defaultdict(asyncio.Queue)

    def called(self, method: str) -> list[Any]:
        return [arg for name, arg in self.calls if name == method]

    def _record(self, method: str, arg: Any = None) -> None:
        self.calls.append((method, arg))
        if method in self.fail:
            raise self.fail[method]

    @staticmethod
    async def _next(queue: asyncio.Queue[Any]) -> RemoteEvent:
        item = await queue.get()
        if isinstance(item, BaseException):
            raise item
        return item

    # Event injection ---------------------------------------------------------

    def push_peer(self, item: dict[str, Any] | BaseException) -> None:
        self.peer_events.put_nowait(self._event(EntityKind.PEER, item))

    def push_data(self, connection_id: Any, item: dict[str, Any] | BaseException) -> None:
        self.data_events[str(connection_id)].put_nowait(self._event(EntityKind.DATA, item))

    def push_media(self, connection_id: Any, item: dict[str, Any] | BaseException) -> None:
        self.media_events[str(connection_id)].put_nowait(self._event(EntityKind.MEDIA, item))

    @staticmethod
    def _event(kind: EntityKind, item: dict[str, Any] | BaseException) -> Any:
        return item if isinstance(item, BaseException) else parse_event(kind, item)

    def open_peer(self) -> None:
        """Deliver OPEN for the created peer."""
        assert self.peer_info is not None
        self.push_peer(
            {
                "event": "OPEN",
                "params": {
                    "peer_id": str(self.peer_info.peer_id),
                    "token": str(self.peer_info.token),
                },
            }
        )

    # Peer --------------------------------------------------------------------

    async def create_peer(self, api_key: str, domain: str, peer_id: str, turn: bool) -> PeerInfo:
        self._record("create_peer", peer_id)
        self.peer_info = PeerInfo.try_create(peer_id, make_id("pt-"))
        return self.peer_info

    async def peer_event(self, peer_info: PeerInfo) -> RemoteEvent:
        self._record("peer_event")
        return await self._next(self.peer_events)

    async def delete_peer(self, peer_info: PeerInfo) -> None:
        self._record("delete_peer", peer_info)

    async def peer_status(self, peer_info: PeerInfo) -> PeerStatus:
        self._record("peer_status", peer_info)
        return PeerStatus(peer_id=str(peer_info.peer_id), disconnected=False)

    # Data --------------------------------------------------------------------

    async def open_data_socket(self) -> SocketInfo:
        self._record("open_data_socket")
        return SocketInfo(id=make_id("da-"), ip_v4="10.0.0.1", port=50001)

    async def close_data_socket(self, data_id: Any) -> None:
        self._record("close_data_socket", data_id)

    async def connect_data(self, query: Any) -> DataConnectionId:
        self._record("connect_data", query)
        return DataConnectionId.try_create(make_id("dc-"))

    async def redirect_data(self, connection_id: Any, query: Any) -> DataRedirected:
        self._record("redirect_data", (connection_id, query))
        return DataRedirected(command_type="DATA_CONNECTION_PUT_REDIRECT")

    async def delete_data_connection(self, connection_id: Any) -> None:
        self._record("delete_data_connection", connection_id)

    async def data_connection_event(self, connection_id: Any) -> RemoteEvent:
        self._record("data_connection_event", connection_id)
        return await self._next(self.data_events[str(connection_id)])

    async def data_connection_status(self, connection_id: Any) -> DataConnectionStatus:
        self._record("data_connection_status", connection_id)
        return DataConnectionStatus(remote_id="peer-b", open=True)

    # Media -------------------------------------------------------------------

    async def open_media_socket(self, is_video: bool) -> SocketInfo:
        self._record("open_media_socket", is_video)
        return SocketInfo(id=make_id("vi-" if is_video else "au-"), ip_v4="10.0.0.1", port=50002)

    async def close_media_socket(self, media_id: Any) -> None:
        self._record("close_media_socket", media_id)

    async def open_rtcp_socket(self) -> SocketInfo:
        self._record("open_rtcp_socket")
        return SocketInfo(id=make_id("rc-"), ip_v4="10.0.0.1", port=50003)

    async def close_rtcp_socket(self, rtcp_id: Any) -> None:
        self._record("close_rtcp_socket", rtcp_id)

    async def call(self, query: Any) -> MediaConnectionId:
        self._record("call", query)
        return MediaConnectionId.try_create(make_id("mc-"))

    async def answer(self, connection_id: Any, query: Any) -> Answered:
        self._record("answer", (connection_id, query))
        return Answered(command_type="MEDIA_CONNECTION_ANSWER", params=AnswerPorts())

    async def delete_media_connection(self, connection_id: Any) -> None:
        self._record("delete_media_connection", connection_id)

    async def media_connection_event(self, connection_id: Any) -> RemoteEvent:
        self._record("media_connection_event", connection_id)
        return await self._next(self.media_events[str(connection_id)])

    async def media_connection_status(self, connection_id: Any) -> MediaConnectionStatus:
        self._record("media_connection_status", connection_id)
        return MediaConnectionStatus(open=True, remote_id="peer-b")

    async def pli(self, connection_id: Any, target: SocketInfo) -> None:
        self._record("pli", (connection_id, target))

    async def aclose(self) -> None:
        pass


@pytest.fixture
def stub_gateway() -> StubGateway:
    return StubGateway()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll a condition while letting other tasks run."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def eventually() -> Callable[..., Any]:
    """Await a predicate becoming true, e.g. ``await eventually(lambda: ...)``."""
    return wait_until
