"""DataConnection session.

Tracks one data connection from its event feed and the commands the Peer
session broadcasts. An ERROR from the gateway is recorded and reported but
does not close the session; only CLOSE or a disconnect does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum

from ..fold import Inbound, Step
from ..gateway.formats import SocketInfo
from ..identifiers import DataConnectionId
from ..protocol.commands import Command, CommandType
from ..protocol.events import (
    DataConnectionClose,
    DataConnectionError,
    DataConnectionOpen,
    UnrecognizedEvent,
)
from .actions import DeleteDataConnection, QueryDataConnectionStatus

logger = logging.getLogger(__name__)


class ConnectionPhase(str, Enum):
    """Lifecycle shared by data and media connections."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class DataConnectionState:
    connection_id: DataConnectionId
    feed: SocketInfo | None = None
    redirect: SocketInfo | None = None
    phase: ConnectionPhase = ConnectionPhase.CONNECTING
    last_error: str | None = None

    @property
    def is_open(self) -> bool:
        return self.phase == ConnectionPhase.OPEN


def transition(state: DataConnectionState, item: Inbound) -> Step[DataConnectionState]:
    connection_id = state.connection_id

    if isinstance(item, Command):
        if item.type == CommandType.STATUS_QUERY:
            return Step(state, actions=(QueryDataConnectionStatus(connection_id),))
        if item.type == CommandType.DISCONNECT and item.applies_to(connection_id):
            return Step(
                replace(state, phase=ConnectionPhase.CLOSED),
                actions=(DeleteDataConnection(connection_id),),
                terminal=True,
                reason="disconnect requested",
            )
        return Step(state)

    match item:
        case DataConnectionOpen():
            logger.info(f"Data connection {connection_id} is open")
            return Step(replace(state, phase=ConnectionPhase.OPEN))
        case DataConnectionClose():
            return Step(
                replace(state, phase=ConnectionPhase.CLOSED),
                terminal=True,
                reason="closed by remote",
            )
        case DataConnectionError(error_message=message):
            logger.error(f"Data connection {connection_id} error: {message}")
            return Step(replace(state, last_error=message))
        case UnrecognizedEvent(event=tag):
            logger.debug(f"Ignoring data connection event {tag}")
    return Step(state)
