"""Configuration for connecting directly to a Tapo plug.

All tunables live on one immutable :class:`DeviceConfig` which is handed to
the session manager at construction time:

>>> from tapoplug import Credentials, DeviceConfig
>>> config = DeviceConfig(
>>>     "192.168.0.110",
>>>     credentials=Credentials("john@doe.com", "Secret"),
>>>     power_measurement=True,
>>> )
>>> config_dict = config.to_dict()
>>> # DeviceConfig.to_dict() can be used to store for later
>>> print(config_dict)
{'host': '192.168.0.110', 'credentials': {'username': 'john@doe.com', \
'password': 'Secret'}, 'encryption_type': 'KLAP', 'timeout': 5, \
'poll_interval': 300, 'power_measurement': True, 'persistent_fault_threshold': 3}

>>> later_config = DeviceConfig.from_dict(config_dict)

"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Self, TypedDict

from aiohttp import ClientSession
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.types import SerializationStrategy

from .credentials import Credentials
from .exceptions import TapoException

_LOGGER = logging.getLogger(__name__)


class KeyPairDict(TypedDict):
    """Class to represent a public/private key pair."""

    private: str
    public: str


class DeviceEncryptionType(Enum):
    """Encrypt type enum."""

    Klap = "KLAP"
    Aes = "AES"


class _DoNotSerialize(SerializationStrategy):
    def serialize(self, value: Any) -> None:
        return None

    def deserialize(self, value: Any) -> None:
        return None


@dataclass(frozen=True)
class DeviceConfig(DataClassDictMixin):
    """Class to represent paramaters that determine how to talk to a plug."""

    DEFAULT_TIMEOUT = 5
    MIN_TIMEOUT = 5
    DEFAULT_POLL_INTERVAL = 300
    MIN_POLL_INTERVAL = 15
    DEFAULT_PERSISTENT_FAULT_THRESHOLD = 3

    class Config(BaseConfig):
        """Serialization config."""

        omit_none = True

    #: IP address or hostname
    host: str
    #: Credentials of the Tapo account the plug is bound to
    credentials: Credentials | None = None
    #: Protocol generation used for the handshake
    encryption_type: DeviceEncryptionType = DeviceEncryptionType.Klap
    #: Timeout in seconds for a single http request
    timeout: int = DEFAULT_TIMEOUT
    #: Seconds between two polls of the host scheduler
    poll_interval: int = DEFAULT_POLL_INTERVAL
    #: Fetch energy usage while polling, only used by metering models
    power_measurement: bool = False
    #: Override the default http port
    port_override: int | None = None
    #: Identical failures in a row before they are reported as persistent
    persistent_fault_threshold: int = DEFAULT_PERSISTENT_FAULT_THRESHOLD
    #: RSA key pair to reuse for the legacy handshake
    aes_keys: KeyPairDict | None = None

    # compare=False will be excluded from object comparison.
    #: Set a custom http_client for the device to use.
    http_client: ClientSession | None = field(
        default=None,
        compare=False,
        metadata=field_options(serialization_strategy=_DoNotSerialize()),
    )

    def __post_init__(self) -> None:
        if not self.host:
            raise TapoException("A host is required")
        if self.timeout < self.MIN_TIMEOUT:
            raise TapoException(
                f"timeout too small, please use a value >= {self.MIN_TIMEOUT}s, "
                f"default is {self.DEFAULT_TIMEOUT}s"
            )
        if self.poll_interval < self.MIN_POLL_INTERVAL:
            raise TapoException(
                "poll_interval too small, please use a value >= "
                f"{self.MIN_POLL_INTERVAL}s, default is {self.DEFAULT_POLL_INTERVAL}s"
            )
        if self.persistent_fault_threshold < 1:
            raise TapoException("persistent_fault_threshold must be at least 1")

    def __pre_serialize__(self) -> Self:
        return replace(self, http_client=None)

    def to_dict_without_credentials(self) -> dict[str, Any]:
        """Convert deviceconfig to a dict that can be stored without secrets."""
        return replace(self, credentials=None).to_dict()
