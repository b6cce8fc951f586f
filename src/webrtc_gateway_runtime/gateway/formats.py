"""Wire formats of the gateway REST API.

Request bodies are serialized with ``model_dump(exclude_none=True)``;
response bodies are validated with ``model_validate``. Identifiers stay raw
strings at this layer and are checked by the client before they reach a
session.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class SocketInfo(WireModel):
    """An address on the gateway host or a redirect target.

    Gateway-allocated feed sockets carry their id (``da-``, ``vi-``, ``au-``,
    ``rc-``); redirect targets from configuration have none.
    """

    id: str | None = None
    ip_v4: str | None = None
    ip_v6: str | None = None
    port: int

    @property
    def address(self) -> str:
        return f"{self.ip_v4 or self.ip_v6}:{self.port}"

    def to_redirect(self) -> dict[str, Any]:
        """Render as the ``redirect_params`` shape the gateway expects."""
        params: dict[str, Any] = {"port": self.port}
        if self.ip_v4:
            params["ip_v4"] = self.ip_v4
        if self.ip_v6:
            params["ip_v6"] = self.ip_v6
        return params


# =============================================================================
# Peer
# =============================================================================


class CreatePeerRequest(WireModel):
    key: str
    domain: str
    peer_id: str
    turn: bool


class PeerCredentials(WireModel):
    peer_id: str
    token: str


class PeerCreated(WireModel):
    command_type: str
    params: PeerCredentials


class PeerStatus(WireModel):
    peer_id: str
    disconnected: bool


# =============================================================================
# Data
# =============================================================================


class DataSocketCreated(WireModel):
    data_id: str
    port: int
    ip_v4: str | None = None
    ip_v6: str | None = None

    def to_socket(self) -> SocketInfo:
        return SocketInfo(id=self.data_id, ip_v4=self.ip_v4, ip_v6=self.ip_v6, port=self.port)


class DataIdParams(WireModel):
    data_id: str


class ConnectDataQuery(WireModel):
    """Body of ``POST /data/connections``."""

    peer_id: str
    token: str
    target_id: str
    options: dict[str, Any] | None = None
    params: DataIdParams | None = None
    redirect_params: dict[str, Any] | None = None


class DataConnectionIdParams(WireModel):
    data_connection_id: str


class DataConnectionCreated(WireModel):
    command_type: str
    params: DataConnectionIdParams


class RedirectDataQuery(WireModel):
    """Body of ``PUT /data/connections/{id}``."""

    feed_params: DataIdParams | None = None
    redirect_params: dict[str, Any] | None = None


class DataRedirected(WireModel):
    command_type: str
    data_id: str | None = None


class DataConnectionStatus(WireModel):
    remote_id: str
    buffersize: int = 0
    label: str = ""
    metadata: str = ""
    open: bool
    reliable: bool = False
    serialization: str = ""
    type: str = ""


# =============================================================================
# Media
# =============================================================================


class MediaSocketCreated(WireModel):
    media_id: str
    port: int
    ip_v4: str | None = None
    ip_v6: str | None = None

    def to_socket(self) -> SocketInfo:
        return SocketInfo(id=self.media_id, ip_v4=self.ip_v4, ip_v6=self.ip_v6, port=self.port)


class RtcpSocketCreated(WireModel):
    rtcp_id: str
    port: int
    ip_v4: str | None = None
    ip_v6: str | None = None

    def to_socket(self) -> SocketInfo:
        return SocketInfo(id=self.rtcp_id, ip_v4=self.ip_v4, ip_v6=self.ip_v6, port=self.port)


class MediaParams(WireModel):
    """Codec parameters for one media kind."""

    band_width: int
    codec: str
    media_id: str | None = None
    rtcp_id: str | None = None
    payload_type: int | None = None
    sampling_rate: int | None = None


class Constraints(WireModel):
    video: bool
    video_receive_enabled: bool | None = Field(default=None, alias="videoReceiveEnabled")
    audio: bool
    audio_receive_enabled: bool | None = Field(default=None, alias="audioReceiveEnabled")
    video_params: MediaParams | None = None
    audio_params: MediaParams | None = None
    metadata: str | None = None


class MediaRedirectParams(WireModel):
    video: dict[str, Any] | None = None
    video_rtcp: dict[str, Any] | None = None
    audio: dict[str, Any] | None = None
    audio_rtcp: dict[str, Any] | None = None


class CallQuery(WireModel):
    """Body of ``POST /media/connections``."""

    peer_id: str
    token: str
    target_id: str
    constraints: Constraints | None = None
    redirect_params: MediaRedirectParams | None = None


class AnswerQuery(WireModel):
    """Body of ``POST /media/connections/{id}/answer``."""

    constraints: Constraints
    redirect_params: MediaRedirectParams | None = None


class MediaConnectionIdParams(WireModel):
    media_connection_id: str


class MediaConnectionCreated(WireModel):
    command_type: str
    params: MediaConnectionIdParams


class AnswerPorts(WireModel):
    video_port: int | None = None
    video_id: str | None = None
    audio_port: int | None = None
    audio_id: str | None = None


class Answered(WireModel):
    command_type: str
    params: AnswerPorts


class SsrcPair(WireModel):
    media_id: str
    ssrc: int


class MediaConnectionStatus(WireModel):
    metadata: str = ""
    open: bool
    remote_id: str
    ssrc: list[SsrcPair] = Field(default_factory=list)


# =============================================================================
# Errors
# =============================================================================


class FieldError(WireModel):
    field: str = ""
    message: str


class ErrorParams(WireModel):
    errors: list[FieldError] = Field(default_factory=list)


class ErrorResponse(WireModel):
    """Body of a 400 answer."""

    command_type: str = ""
    params: ErrorParams

    @property
    def reason(self) -> str:
        return ", ".join(error.message for error in self.params.errors) or "bad request"


def dump(model: BaseModel) -> dict[str, Any]:
    """Serialize a request body the way the gateway expects it."""
    return model.model_dump(by_alias=True, exclude_none=True)
