"""Peer session: the root of the session tree.

Reacts to the peer's event feed and to operator commands:

    OPEN        record PeerInfo, accept commands
    CLOSE       clear PeerInfo, end the session
    CONNECTION  redirect the incoming data connection, spawn its session
    CALL        answer with the next media configuration, spawn its session
    ERROR       log and continue

    exit        disconnect every connection, delete the peer, end the session
    status      peer status, then ask every connection for its status
    disconnect  forwarded to connections
    connect     open a data connection, spawn its session
    call        open a media connection, spawn its session
    pli         forwarded to connections

Spare redirect targets and media configurations are queues consumed in
order, one per connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum

from ..config import MediaSettings, RuntimeConfig
from ..errors import ConfigurationExhausted, GatewayError, InvalidState
from ..fold import Inbound, Step
from ..gateway.formats import SocketInfo
from ..identifiers import DataConnectionId, MediaConnectionId, PeerId, PeerInfo
from ..protocol.commands import Command, CommandType
from ..protocol.events import (
    PeerCall,
    PeerClose,
    PeerConnection,
    PeerError,
    PeerOpen,
    UnrecognizedEvent,
)
from .actions import (
    AcceptDataConnection,
    AnswerMediaConnection,
    Broadcast,
    CallMediaConnection,
    ConnectDataConnection,
    DeletePeer,
    QueryPeerStatus,
)

logger = logging.getLogger(__name__)


class PeerPhase(str, Enum):
    CREATED = "created"  # registered on the gateway, OPEN not seen yet
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class PeerState:
    peer_info: PeerInfo | None
    phase: PeerPhase = PeerPhase.CREATED
    data_redirects: tuple[SocketInfo, ...] = ()
    media_configs: tuple[MediaSettings, ...] = ()

    @classmethod
    def initial(cls, peer_info: PeerInfo, config: RuntimeConfig) -> PeerState:
        return cls(
            peer_info=peer_info,
            data_redirects=config.data_redirects(),
            media_configs=tuple(config.media),
        )

    @property
    def is_open(self) -> bool:
        return self.phase == PeerPhase.OPEN

    def pop_redirect(self) -> tuple[SocketInfo | None, PeerState]:
        """Take the next data redirect target. None means send-only."""
        if not self.data_redirects:
            return None, self
        return self.data_redirects[0], replace(self, data_redirects=self.data_redirects[1:])

    def pop_media(self) -> tuple[MediaSettings, PeerState]:
        if not self.media_configs:
            raise ConfigurationExhausted("no media configuration left")
        return self.media_configs[0], replace(self, media_configs=self.media_configs[1:])


def transition(state: PeerState, item: Inbound) -> Step[PeerState]:
    if isinstance(item, Command):
        return _on_command(state, item)
    return _on_event(state, item)


def _on_event(state: PeerState, event: object) -> Step[PeerState]:
    match event:
        case PeerOpen(params=params):
            info = state.peer_info
            if info is None or str(info.peer_id) != params.peer_id:
                # The feed is authoritative for the credentials.
                try:
                    info = PeerInfo.try_create(params.peer_id, params.token)
                except GatewayError as e:
                    return Step(state, rejection=e)
            logger.info(f"Peer {info.peer_id} is open")
            return Step(replace(state, peer_info=info, phase=PeerPhase.OPEN))

        case PeerClose():
            logger.info("Peer closed by the gateway")
            return Step(
                replace(state, peer_info=None, phase=PeerPhase.CLOSED),
                terminal=True,
                reason="closed by remote",
            )

        case PeerConnection(data_params=data_params):
            try:
                connection_id = DataConnectionId.try_create(data_params.data_connection_id)
            except GatewayError as e:
                return Step(state, rejection=e)
            redirect, state = state.pop_redirect()
            logger.info(f"Incoming data connection {connection_id}")
            return Step(state, actions=(AcceptDataConnection(connection_id, redirect),))

        case PeerCall(call_params=call_params):
            try:
                connection_id = MediaConnectionId.try_create(call_params.media_connection_id)
                media, state = state.pop_media()
            except GatewayError as e:
                return Step(state, rejection=e)
            logger.info(f"Incoming call {connection_id}")
            return Step(state, actions=(AnswerMediaConnection(connection_id, media),))

        case PeerError(error_message=message):
            logger.error(f"Peer error: {message}")
            return Step(state)

        case UnrecognizedEvent(event=tag):
            logger.debug(f"Ignoring peer event {tag}")
            return Step(state)

    logger.debug(f"Ignoring unexpected peer input {event!r}")
    return Step(state)


def _on_command(state: PeerState, command: Command) -> Step[PeerState]:
    match command.type:
        case CommandType.EXIT:
            actions = [Broadcast(Command.disconnect())]
            if state.peer_info is not None:
                actions.append(DeletePeer(state.peer_info))
            return Step(
                replace(state, peer_info=None, phase=PeerPhase.CLOSED),
                actions=tuple(actions),
                terminal=True,
                reason="exit requested",
            )

        case CommandType.DISCONNECT | CommandType.PLI:
            return Step(state, actions=(Broadcast(command),))

    if not state.is_open or state.peer_info is None:
        return Step(state, rejection=InvalidState(f"peer is {state.phase.value}, not open"))
    peer_info = state.peer_info

    match command.type:
        case CommandType.STATUS_QUERY:
            return Step(state, actions=(QueryPeerStatus(peer_info), Broadcast(command)))

        case CommandType.CONNECT_TO:
            try:
                target = PeerId.try_create(command.target or "")
            except GatewayError as e:
                return Step(state, rejection=e)
            redirect, state = state.pop_redirect()
            return Step(state, actions=(ConnectDataConnection(peer_info, target, redirect),))

        case CommandType.CALL_TO:
            try:
                target = PeerId.try_create(command.target or "")
                media, state = state.pop_media()
            except GatewayError as e:
                return Step(state, rejection=e)
            return Step(state, actions=(CallMediaConnection(peer_info, target, media),))

    return Step(state)
