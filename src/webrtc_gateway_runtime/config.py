"""Runtime configuration.

Loaded from a YAML file, with environment variables taking precedence for the
values that usually differ per deployment:

    GATEWAY_API_KEY (or API_KEY)   signalling server API key
    GATEWAY_BASE_URL               gateway REST endpoint
    GATEWAY_PEER_ID                peer id to register
    GATEWAY_DOMAIN                 domain the API key is bound to

Example file:

    gateway:
      base_url: http://127.0.0.1:8000
    peer:
      peer_id: my-peer
      domain: localhost
    data:
      redirects:
        - {ip: 127.0.0.1, port: 10001}
    media:
      - video: true
        video_redirect: {media_ip: 127.0.0.1, media_port: 20000,
                         rtcp_ip: 127.0.0.1, rtcp_port: 20001}
        video_params: {band_width: 1500, codec: H264, payload_type: 96,
                       sampling_rate: 90000}
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from ipaddress import IPv4Address
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress, ValidationError, model_validator

from .errors import ConfigurationError
from .gateway.formats import MediaParams, SocketInfo

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8000"

ENV_API_KEY = "GATEWAY_API_KEY"
ENV_API_KEY_FALLBACK = "API_KEY"
ENV_BASE_URL = "GATEWAY_BASE_URL"
ENV_PEER_ID = "GATEWAY_PEER_ID"
ENV_DOMAIN = "GATEWAY_DOMAIN"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


def _socket(ip: IPvAnyAddress, port: int) -> SocketInfo:
    if isinstance(ip, IPv4Address):
        return SocketInfo(ip_v4=str(ip), port=port)
    return SocketInfo(ip_v6=str(ip), port=port)


class GatewaySettings(Settings):
    """Where the gateway listens. Either base_url or ip + port."""

    base_url: str | None = None
    ip: str | None = None
    port: int | None = None
    timeout: float = Field(default=60.0, gt=0)

    @property
    def url(self) -> str:
        if self.base_url:
            return self.base_url
        if self.ip:
            return f"http://{self.ip}:{self.port or 8000}"
        return DEFAULT_BASE_URL


class PeerSettings(Settings):
    peer_id: str
    domain: str = "localhost"
    turn: bool = True
    api_key: str | None = None


class RedirectSettings(Settings):
    """A local address that receives data redirected by the gateway."""

    ip: IPvAnyAddress
    port: int = Field(ge=1, le=65535)

    def to_socket(self) -> SocketInfo:
        return _socket(self.ip, self.port)


class DataSettings(Settings):
    redirects: list[RedirectSettings] = Field(default_factory=list)


class MediaRedirectSettings(Settings):
    media_ip: IPvAnyAddress
    media_port: int = Field(ge=1, le=65535)
    rtcp_ip: IPvAnyAddress
    rtcp_port: int = Field(ge=1, le=65535)

    def media_socket(self) -> SocketInfo:
        return _socket(self.media_ip, self.media_port)

    def rtcp_socket(self) -> SocketInfo:
        return _socket(self.rtcp_ip, self.rtcp_port)


class MediaSettings(Settings):
    """One media configuration, consumed by exactly one call or answer.

    A missing redirect makes that media kind send-only.
    """

    video: bool = False
    audio: bool = False
    video_redirect: MediaRedirectSettings | None = None
    audio_redirect: MediaRedirectSettings | None = None
    video_params: MediaParams | None = None
    audio_params: MediaParams | None = None

    @model_validator(mode="after")
    def _params_for_enabled_kinds(self) -> Self:
        if self.video and self.video_params is None:
            raise ValueError("video is enabled but video_params is missing")
        if self.audio and self.audio_params is None:
            raise ValueError("audio is enabled but audio_params is missing")
        return self


class RuntimeSettings(Settings):
    shutdown_grace: float = Field(default=5.0, ge=0)


class RuntimeConfig(Settings):
    """Everything the runtime needs, read once at startup."""

    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    peer: PeerSettings
    data: DataSettings = Field(default_factory=DataSettings)
    media: list[MediaSettings] = Field(default_factory=list)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)

    @property
    def api_key(self) -> str | None:
        return self.peer.api_key

    def data_redirects(self) -> tuple[SocketInfo, ...]:
        return tuple(redirect.to_socket() for redirect in self.data.redirects)

    def to_display(self) -> dict[str, Any]:
        """Render for humans, with the API key masked."""
        data = self.model_dump(mode="json")
        if data["peer"].get("api_key"):
            data["peer"]["api_key"] = "****"
        data["gateway"]["url"] = self.gateway.url
        return data


def load_config(
    path: str | Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    require_api_key: bool = True,
) -> RuntimeConfig:
    """Load configuration from YAML and the environment.

    Args:
        path: YAML file; optional when the environment provides the peer id
        env: Environment to read overrides from (default: os.environ)
        require_api_key: Fail if no API key is configured anywhere

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If the file is unreadable or the result is invalid
    """
    env = os.environ if env is None else env
    raw: dict[str, Any] = {}

    if path is not None:
        try:
            with open(path) as f:
                loaded = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationError(f"cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML in {path}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigurationError(f"{path} must contain a mapping at top level")
        raw = loaded or {}
        logger.debug(f"Loaded config from {path}")

    _apply_env(raw, env)

    try:
        config = RuntimeConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e

    if require_api_key and not config.api_key:
        raise ConfigurationError(
            f"no API key configured; set {ENV_API_KEY} or peer.api_key in the config file"
        )
    return config


def _apply_env(raw: dict[str, Any], env: Mapping[str, str]) -> None:
    peer = raw.setdefault("peer", {})
    gateway = raw.setdefault("gateway", {})
    if not isinstance(peer, dict) or not isinstance(gateway, dict):
        raise ConfigurationError("peer and gateway sections must be mappings")

    api_key = env.get(ENV_API_KEY) or env.get(ENV_API_KEY_FALLBACK)
    if api_key:
        peer["api_key"] = api_key
    if env.get(ENV_PEER_ID):
        peer["peer_id"] = env[ENV_PEER_ID]
    if env.get(ENV_DOMAIN):
        peer["domain"] = env[ENV_DOMAIN]
    if env.get(ENV_BASE_URL):
        gateway["base_url"] = env[ENV_BASE_URL]
