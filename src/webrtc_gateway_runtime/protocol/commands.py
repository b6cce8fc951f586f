"""Operator commands.

Commands are local intents fed into a session's command channel, either typed
on the terminal or injected programmatically. The Peer session acts on all of
them; connection sessions receive the ones it broadcasts.

Terminal syntax:
    exit                        delete the peer and shut down
    status                      query peer and connection status
    disconnect [id]             close one connection, or all of them
    connect <peer_id>           open a data connection to a remote peer
    call <peer_id>              open a media connection to a remote peer
    pli [media_connection_id]   request a key frame on media connections
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from ..identifiers import PeerId


class CommandType(str, Enum):
    """All supported operator commands."""

    EXIT = "exit"
    STATUS_QUERY = "status"
    DISCONNECT = "disconnect"
    CONNECT_TO = "connect"
    CALL_TO = "call"
    PLI = "pli"


USAGE = """\
commands:
  exit                        delete the peer and shut down
  status                      show peer and connection status
  disconnect [id]             close one connection, or all of them
  connect <peer_id>           open a data connection
  call <peer_id>              open a media connection
  pli [media_connection_id]   request a key frame"""

_TARGET_REQUIRED = {CommandType.CONNECT_TO, CommandType.CALL_TO}
_TARGET_FORBIDDEN = {CommandType.EXIT, CommandType.STATUS_QUERY}


class Command(BaseModel):
    """A local command for a session.

    `target` is the remote peer for connect/call, and an optional entity
    filter for disconnect/pli: when absent the command applies to every
    connection that receives it.

    Example:
        {"type": "connect", "target": "peer-b"}
    """

    model_config = ConfigDict(frozen=True)

    type: CommandType
    target: str | None = None

    def applies_to(self, entity_id: object) -> bool:
        """Check whether a broadcast command addresses the given entity."""
        return self.target is None or self.target == str(entity_id)

    @classmethod
    def exit(cls) -> Command:
        return cls(type=CommandType.EXIT)

    @classmethod
    def status(cls) -> Command:
        return cls(type=CommandType.STATUS_QUERY)

    @classmethod
    def disconnect(cls, target: str | None = None) -> Command:
        return cls(type=CommandType.DISCONNECT, target=target)

    @classmethod
    def connect_to(cls, peer_id: str | PeerId) -> Command:
        return cls(type=CommandType.CONNECT_TO, target=str(peer_id))

    @classmethod
    def call_to(cls, peer_id: str | PeerId) -> Command:
        return cls(type=CommandType.CALL_TO, target=str(peer_id))

    @classmethod
    def pli(cls, target: str | None = None) -> Command:
        return cls(type=CommandType.PLI, target=target)


def parse_command(line: str) -> Command:
    """Parse one terminal line into a Command.

    Args:
        line: Raw operator input, e.g. "connect peer-b"

    Returns:
        The parsed command

    Raises:
        ValueError: If the verb is unknown or the arguments don't fit it
        InvalidIdentifier: If a connect/call target is not a usable peer id
    """
    words = line.split()
    if not words:
        raise ValueError(f"empty command\n{USAGE}")

    verb, args = words[0].lower(), words[1:]
    try:
        command_type = CommandType(verb)
    except ValueError:
        raise ValueError(f"unknown command: {verb}\n{USAGE}") from None

    if len(args) > 1:
        raise ValueError(f"{verb} takes at most one argument\n{USAGE}")
    target = args[0] if args else None

    if command_type in _TARGET_REQUIRED:
        if target is None:
            raise ValueError(f"{verb} requires a peer id\n{USAGE}")
        target = PeerId.try_create(target).value
    elif command_type in _TARGET_FORBIDDEN and target is not None:
        raise ValueError(f"{verb} takes no argument\n{USAGE}")

    return Command(type=command_type, target=target)
