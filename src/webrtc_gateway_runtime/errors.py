"""Error taxonomy for the gateway runtime.

Every failure the runtime raises derives from GatewayError so callers can
catch the whole family at a session boundary:

- TransportError: network failure, unexpected status, undecodable body
- GatewayTimeout: the long-poll "no event yet" signal
- RemoteRejected: structured 4xx refusal from the gateway
- InvalidIdentifier: malformed entity identifier
- ConfigurationExhausted: no spare media configuration left
- ChannelClosed: command sent to a channel nobody reads anymore
- InvalidState: command not valid in the current session phase
- ConfigurationError: unusable configuration file or environment
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for all runtime errors."""

    pass


class TransportError(GatewayError):
    """The gateway could not be reached or answered with something unusable."""

    pass


class GatewayTimeout(GatewayError):
    """A long-poll request ended without an event.

    Not a failure at the session level: event sources absorb it and poll again.
    """

    pass


class RemoteRejected(GatewayError):
    """The gateway refused the request."""

    def __init__(self, status: int, reason: str):
        self.status = status
        self.reason = reason
        super().__init__(f"gateway rejected request ({status}): {reason}")


class InvalidIdentifier(GatewayError):
    """An identifier does not have the expected prefix or length."""

    def __init__(self, kind: str, value: str):
        self.kind = kind
        self.value = value
        super().__init__(f"invalid {kind}: {value!r}")


class ConfigurationExhausted(GatewayError):
    """No spare configuration is left for a new connection."""

    pass


class ChannelClosed(GatewayError):
    """The command channel was closed by its consumer."""

    pass


class InvalidState(GatewayError):
    """The command is not valid in the current session phase."""

    pass


class ConfigurationError(GatewayError):
    """The runtime configuration is missing or malformed."""

    pass
