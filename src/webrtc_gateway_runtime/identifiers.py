"""Validated identifiers for gateway entities.

The gateway hands out identifiers as a three character prefix followed by a
UUID, for example ``dc-9749250e-d157-4f80-9ee2-359ce8524308``. Each kind gets
its own immutable value type so a media connection id can never be passed
where a data connection id is expected.

Identifiers are only built through ``try_create``, which raises
InvalidIdentifier on a wrong prefix or length.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Self

from .errors import InvalidIdentifier

ID_LENGTH = 39


@dataclass(frozen=True, order=True)
class GatewayId:
    """Base for prefixed gateway identifiers."""

    value: str

    KIND: ClassVar[str] = "identifier"
    PREFIXES: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def try_create(cls, value: str) -> Self:
        """Validate and wrap a raw identifier string.

        Args:
            value: Raw identifier as received from the gateway or the operator

        Returns:
            The typed identifier

        Raises:
            InvalidIdentifier: If the prefix or the length is wrong
        """
        if not isinstance(value, str) or not cls.is_valid(value):
            raise InvalidIdentifier(cls.KIND, str(value))
        return cls(value)

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return len(value) == ID_LENGTH and value.startswith(cls.PREFIXES)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, order=True)
class PeerId:
    """Operator chosen peer name. Free text without whitespace."""

    value: str

    @classmethod
    def try_create(cls, value: str) -> PeerId:
        if not isinstance(value, str) or not value or any(c.isspace() for c in value):
            raise InvalidIdentifier("peer id", str(value))
        return cls(value)

    def __str__(self) -> str:
        return self.value


class Token(GatewayId):
    KIND = "token"
    PREFIXES = ("pt-",)


class DataId(GatewayId):
    KIND = "data id"
    PREFIXES = ("da-",)


class DataConnectionId(GatewayId):
    KIND = "data connection id"
    PREFIXES = ("dc-",)


class MediaId(GatewayId):
    """Media socket id, ``vi-`` for video and ``au-`` for audio."""

    KIND = "media id"
    PREFIXES = ("vi-", "au-")

    @property
    def is_video(self) -> bool:
        return self.value.startswith("vi-")


class RtcpId(GatewayId):
    KIND = "rtcp id"
    PREFIXES = ("rc-",)


class MediaConnectionId(GatewayId):
    KIND = "media connection id"
    PREFIXES = ("mc-",)


@dataclass(frozen=True)
class PeerInfo:
    """Credentials of a peer object created on the gateway."""

    peer_id: PeerId
    token: Token

    @classmethod
    def try_create(cls, peer_id: str, token: str) -> PeerInfo:
        return cls(PeerId.try_create(peer_id), Token.try_create(token))
