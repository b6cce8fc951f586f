"""Protocol layer: what flows into a session.

Two sources feed every session:
- Remote events: decoded from the gateway's long-poll feeds
- Commands: local operator intents

Sessions tell them apart by type, so both can share one merged stream.
"""

from .commands import USAGE, Command, CommandType, parse_command
from .events import (
    DataConnectionClose,
    DataConnectionError,
    DataConnectionOpen,
    EntityKind,
    MediaConnectionClose,
    MediaConnectionError,
    MediaConnectionReady,
    MediaConnectionStream,
    PeerCall,
    PeerClose,
    PeerConnection,
    PeerError,
    PeerOpen,
    RemoteEvent,
    UnrecognizedEvent,
    parse_event,
)

__all__ = [
    "USAGE",
    "Command",
    "CommandType",
    "parse_command",
    "EntityKind",
    "RemoteEvent",
    "PeerOpen",
    "PeerClose",
    "PeerConnection",
    "PeerCall",
    "PeerError",
    "DataConnectionOpen",
    "DataConnectionClose",
    "DataConnectionError",
    "MediaConnectionReady",
    "MediaConnectionStream",
    "MediaConnectionClose",
    "MediaConnectionError",
    "UnrecognizedEvent",
    "parse_event",
]
