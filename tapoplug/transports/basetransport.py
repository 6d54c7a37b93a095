"""Base class for the handshake strategies.

Each protocol generation implements this interface. The strategy is picked
once from the configuration and never changes for a device.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from ..httpclient import HttpClient

if TYPE_CHECKING:
    from ..deviceconfig import DeviceConfig
    from ..session import Session


class HandshakeStrategy(ABC):
    """Base class for all Tapo handshake and envelope implementations."""

    DEFAULT_PORT: int = 80

    def __init__(
        self,
        *,
        config: DeviceConfig,
    ) -> None:
        """Create a handshake strategy."""
        self._config = config
        self._host = config.host
        self._port = config.port_override or self.DEFAULT_PORT
        self._http_client = HttpClient(config)

    @property
    def config(self) -> DeviceConfig:
        """Return the connection parameters the strategy is using."""
        return self._config

    @abstractmethod
    async def perform_handshake(self) -> Session:
        """Run the key exchange and return an authenticated session."""

    @abstractmethod
    async def send(self, session: Session, request: str) -> dict[str, Any]:
        """Encrypt the request, post it and return the decrypted reply."""

    async def close(self) -> None:
        """Close the http client."""
        await self._http_client.close()
