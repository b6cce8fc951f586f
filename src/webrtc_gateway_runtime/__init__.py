"""WebRTC gateway runtime.

Keeps a local view of the sessions a WebRTC gateway exposes over HTTP: one
Peer and the DataConnections and MediaConnections opened through it. Each
session folds its long-poll event feed together with operator commands.

Public API:
- start / GatewayRuntime: run a peer and its session tree
- GatewayClient: the gateway REST API
- Command / parse_command: operator intents
- load_config / RuntimeConfig: configuration
"""

from .config import RuntimeConfig, load_config
from .errors import (
    ChannelClosed,
    ConfigurationError,
    ConfigurationExhausted,
    GatewayError,
    GatewayTimeout,
    InvalidIdentifier,
    InvalidState,
    RemoteRejected,
    TransportError,
)
from .gateway import GatewayClient
from .protocol import Command, CommandType, parse_command
from .runtime import FinalStatus, GatewayRuntime, start

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "start",
    "GatewayRuntime",
    "FinalStatus",
    "GatewayClient",
    "Command",
    "CommandType",
    "parse_command",
    "RuntimeConfig",
    "load_config",
    "GatewayError",
    "TransportError",
    "GatewayTimeout",
    "RemoteRejected",
    "InvalidIdentifier",
    "ConfigurationExhausted",
    "ChannelClosed",
    "InvalidState",
    "ConfigurationError",
]
