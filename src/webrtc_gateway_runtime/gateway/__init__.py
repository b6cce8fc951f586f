"""Gateway REST API: wire formats and the async HTTP client."""

from .client import GatewayClient
from .formats import (
    AnswerQuery,
    CallQuery,
    ConnectDataQuery,
    Constraints,
    MediaParams,
    MediaRedirectParams,
    RedirectDataQuery,
    SocketInfo,
)

__all__ = [
    "GatewayClient",
    "AnswerQuery",
    "CallQuery",
    "ConnectDataQuery",
    "Constraints",
    "MediaParams",
    "MediaRedirectParams",
    "RedirectDataQuery",
    "SocketInfo",
]
