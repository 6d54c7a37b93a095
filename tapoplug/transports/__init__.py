"""Package containing the handshake strategies of both protocol generations."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..crypto import KeyPair
from ..deviceconfig import DeviceEncryptionType
from .aestransport import AesEncryptionSession, LegacyRSAHandshake
from .basetransport import HandshakeStrategy
from .klaptransport import KlapEncryptionSession, SeedKlapHandshake

if TYPE_CHECKING:
    from ..deviceconfig import DeviceConfig

_STRATEGIES: dict[DeviceEncryptionType, type[HandshakeStrategy]] = {
    DeviceEncryptionType.Klap: SeedKlapHandshake,
    DeviceEncryptionType.Aes: LegacyRSAHandshake,
}


def get_handshake_strategy(config: DeviceConfig) -> HandshakeStrategy:
    """Return the handshake strategy for the configured encryption type."""
    return _STRATEGIES[config.encryption_type](config=config)


__all__ = [
    "AesEncryptionSession",
    "HandshakeStrategy",
    "KeyPair",
    "KlapEncryptionSession",
    "LegacyRSAHandshake",
    "SeedKlapHandshake",
    "get_handshake_strategy",
]
