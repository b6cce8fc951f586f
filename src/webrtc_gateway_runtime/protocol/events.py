"""Remote events delivered by the gateway's long-poll feeds.

Each entity kind has its own feed:
- Peer: OPEN, CLOSE, CONNECTION, CALL, ERROR
- DataConnection: OPEN, CLOSE, ERROR
- MediaConnection: READY, STREAM, CLOSE, ERROR

Wire format (peer CONNECTION):
    {"event": "CONNECTION",
     "params": {"peer_id": "peer-a", "token": "pt-..."},
     "data_params": {"data_connection_id": "dc-..."}}

Identifiers inside events stay raw strings here; sessions validate them
when they act on them. A feed answering {"event": "TIMEOUT"} is the same
as a 408 and raises GatewayTimeout.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import GatewayTimeout, TransportError


class EntityKind(str, Enum):
    """Kinds of remote entities tracked by sessions."""

    PEER = "peer"
    DATA = "data"
    MEDIA = "media"


class RemoteEvent(BaseModel):
    """Base for all events read from a gateway feed."""

    model_config = ConfigDict(frozen=True)

    event: str


class PeerParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    peer_id: str
    token: str


class DataParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    data_connection_id: str


class CallParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    media_connection_id: str


# -----------------------------------------------------------------------------
# Peer feed
# -----------------------------------------------------------------------------


class PeerOpen(RemoteEvent):
    """The peer is registered with the signalling server."""

    params: PeerParams


class PeerClose(RemoteEvent):
    params: PeerParams | None = None


class PeerConnection(RemoteEvent):
    """A remote peer opened a data connection to us."""

    params: PeerParams | None = None
    data_params: DataParams


class PeerCall(RemoteEvent):
    """A remote peer is calling us."""

    params: PeerParams | None = None
    call_params: CallParams


class PeerError(RemoteEvent):
    params: PeerParams | None = None
    error_message: str = ""


# -----------------------------------------------------------------------------
# Connection feeds
# -----------------------------------------------------------------------------


class DataConnectionOpen(RemoteEvent):
    pass


class DataConnectionClose(RemoteEvent):
    pass


class DataConnectionError(RemoteEvent):
    error_message: str = ""


class MediaConnectionReady(RemoteEvent):
    pass


class MediaConnectionStream(RemoteEvent):
    """Remote media started flowing. Informational only."""

    pass


class MediaConnectionClose(RemoteEvent):
    pass


class MediaConnectionError(RemoteEvent):
    error_message: str = ""


class UnrecognizedEvent(RemoteEvent):
    """Any event tag this runtime doesn't know. Logged and ignored."""

    kind: EntityKind
    payload: dict[str, Any]


_EVENT_TYPES: dict[EntityKind, dict[str, type[RemoteEvent]]] = {
    EntityKind.PEER: {
        "OPEN": PeerOpen,
        "CLOSE": PeerClose,
        "CONNECTION": PeerConnection,
        "CALL": PeerCall,
        "ERROR": PeerError,
    },
    EntityKind.DATA: {
        "OPEN": DataConnectionOpen,
        "CLOSE": DataConnectionClose,
        "ERROR": DataConnectionError,
    },
    EntityKind.MEDIA: {
        "READY": MediaConnectionReady,
        "STREAM": MediaConnectionStream,
        "CLOSE": MediaConnectionClose,
        "ERROR": MediaConnectionError,
    },
}


def parse_event(kind: EntityKind, payload: Any) -> RemoteEvent:
    """Decode a feed response body into a typed event.

    Args:
        kind: Which feed the body came from
        payload: Decoded JSON body

    Returns:
        The typed event, or UnrecognizedEvent for unknown tags

    Raises:
        GatewayTimeout: If the body is a TIMEOUT marker
        TransportError: If the body does not match the event's shape
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("event"), str):
        raise TransportError(f"malformed {kind.value} event: {payload!r}")

    tag = payload["event"]
    if tag == "TIMEOUT":
        raise GatewayTimeout(f"{kind.value} event feed timed out")

    event_type = _EVENT_TYPES[kind].get(tag)
    if event_type is None:
        return UnrecognizedEvent(event=tag, kind=kind, payload=payload)

    try:
        return event_type.model_validate(payload)
    except ValidationError as e:
        raise TransportError(f"malformed {kind.value} {tag} event: {e}") from e
