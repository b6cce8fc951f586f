"""MediaConnection session.

Same shape as the data session, with READY marking the connection usable,
STREAM as an informational event and PLI requests sent to the video RTCP
redirect target.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from ..config import MediaSettings
from ..fold import Inbound, Step
from ..gateway.formats import SocketInfo
from ..identifiers import MediaConnectionId
from ..protocol.commands import Command, CommandType
from ..protocol.events import (
    MediaConnectionClose,
    MediaConnectionError,
    MediaConnectionReady,
    MediaConnectionStream,
    UnrecognizedEvent,
)
from .actions import DeleteMediaConnection, QueryMediaConnectionStatus, SendPli
from .data import ConnectionPhase

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaConnectionState:
    connection_id: MediaConnectionId
    media: MediaSettings | None = None
    feeds: tuple[SocketInfo, ...] = ()
    phase: ConnectionPhase = ConnectionPhase.CONNECTING
    streaming: bool = False
    last_error: str | None = None

    @property
    def is_open(self) -> bool:
        return self.phase == ConnectionPhase.OPEN

    @property
    def pli_target(self) -> SocketInfo | None:
        if self.media is None or self.media.video_redirect is None:
            return None
        return self.media.video_redirect.rtcp_socket()


def transition(state: MediaConnectionState, item: Inbound) -> Step[MediaConnectionState]:
    if isinstance(item, Command):
        return _on_command(state, item)

    connection_id = state.connection_id
    match item:
        case MediaConnectionReady():
            logger.info(f"Media connection {connection_id} is ready")
            return Step(replace(state, phase=ConnectionPhase.OPEN))
        case MediaConnectionStream():
            logger.info(f"Media connection {connection_id} is streaming")
            return Step(replace(state, streaming=True))
        case MediaConnectionClose():
            return Step(
                replace(state, phase=ConnectionPhase.CLOSED, streaming=False),
                terminal=True,
                reason="closed by remote",
            )
        case MediaConnectionError(error_message=message):
            logger.error(f"Media connection {connection_id} error: {message}")
            return Step(replace(state, last_error=message))
        case UnrecognizedEvent(event=tag):
            logger.debug(f"Ignoring media connection event {tag}")
    return Step(state)


def _on_command(state: MediaConnectionState, command: Command) -> Step[MediaConnectionState]:
    connection_id = state.connection_id
    match command.type:
        case CommandType.STATUS_QUERY:
            return Step(state, actions=(QueryMediaConnectionStatus(connection_id),))
        case CommandType.DISCONNECT if command.applies_to(connection_id):
            return Step(
                replace(state, phase=ConnectionPhase.CLOSED, streaming=False),
                actions=(DeleteMediaConnection(connection_id),),
                terminal=True,
                reason="disconnect requested",
            )
        case CommandType.PLI if command.applies_to(connection_id):
            target = state.pli_target
            if target is None:
                logger.debug(f"Media connection {connection_id} has no video redirect for PLI")
                return Step(state)
            return Step(state, actions=(SendPli(connection_id, target),))
    return Step(state)
