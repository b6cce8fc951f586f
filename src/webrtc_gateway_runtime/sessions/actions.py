"""Side effects requested by session transitions.

Transitions never touch the network. They return these values and the fold
engine hands each one to GatewayEffects, awaiting it before the next input.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..config import MediaSettings
from ..gateway.formats import SocketInfo
from ..identifiers import DataConnectionId, MediaConnectionId, PeerId, PeerInfo
from ..protocol.commands import Command

# =============================================================================
# Peer
# =============================================================================


@dataclass(frozen=True)
class DeletePeer:
    peer_info: PeerInfo


@dataclass(frozen=True)
class QueryPeerStatus:
    peer_info: PeerInfo


@dataclass(frozen=True)
class Broadcast:
    """Forward a command to every live connection session."""

    command: Command


@dataclass(frozen=True)
class ConnectDataConnection:
    """Open a feed socket, connect to `target`, then spawn a data session."""

    peer_info: PeerInfo
    target: PeerId
    redirect: SocketInfo | None


@dataclass(frozen=True)
class AcceptDataConnection:
    """Open a feed socket, redirect an incoming connection, spawn a data session."""

    connection_id: DataConnectionId
    redirect: SocketInfo | None


@dataclass(frozen=True)
class CallMediaConnection:
    peer_info: PeerInfo
    target: PeerId
    media: MediaSettings


@dataclass(frozen=True)
class AnswerMediaConnection:
    connection_id: MediaConnectionId
    media: MediaSettings


# =============================================================================
# Connections
# =============================================================================


@dataclass(frozen=True)
class DeleteDataConnection:
    connection_id: DataConnectionId


@dataclass(frozen=True)
class QueryDataConnectionStatus:
    connection_id: DataConnectionId


@dataclass(frozen=True)
class DeleteMediaConnection:
    connection_id: MediaConnectionId


@dataclass(frozen=True)
class QueryMediaConnectionStatus:
    connection_id: MediaConnectionId


@dataclass(frozen=True)
class SendPli:
    connection_id: MediaConnectionId
    target: SocketInfo


Action = (
    DeletePeer
    | QueryPeerStatus
    | Broadcast
    | ConnectDataConnection
    | AcceptDataConnection
    | CallMediaConnection
    | AnswerMediaConnection
    | DeleteDataConnection
    | QueryDataConnectionStatus
    | DeleteMediaConnection
    | QueryMediaConnectionStatus
    | SendPli
)
