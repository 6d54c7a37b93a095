"""Python interface for TP-Link Tapo smart plugs.

All operations are available through the :class:`TapoPlug` class::

>>> from tapoplug import Credentials, DeviceConfig, TapoPlug
>>> plug = TapoPlug(DeviceConfig("192.168.0.110", credentials=Credentials(u, p)))
>>> result = await plug.update()
>>> print(plug.model)

Operations on :class:`TapoPlug` report failures through
:class:`CommandResult`. The lower level :class:`SessionManager` raises
:class:`TapoException` subclasses instead.
"""

from tapoplug.credentials import Credentials
from tapoplug.deviceconfig import DeviceConfig, DeviceEncryptionType
from tapoplug.exceptions import (
    AuthenticationError,
    DeviceError,
    PersistentFaultError,
    TapoErrorCode,
    TapoException,
    TimeoutError,
    UnsupportedDeviceError,
)
from tapoplug.plug import CommandResult, TapoPlug
from tapoplug.session import Session, SessionState
from tapoplug.sessionmanager import SessionManager
from tapoplug.transports import (
    HandshakeStrategy,
    LegacyRSAHandshake,
    SeedKlapHandshake,
)
from tapoplug.version import __version__

__all__ = [
    "TapoPlug",
    "CommandResult",
    "SessionManager",
    "Session",
    "SessionState",
    "HandshakeStrategy",
    "SeedKlapHandshake",
    "LegacyRSAHandshake",
    "DeviceConfig",
    "DeviceEncryptionType",
    "Credentials",
    "TapoException",
    "AuthenticationError",
    "DeviceError",
    "PersistentFaultError",
    "TapoErrorCode",
    "TimeoutError",
    "UnsupportedDeviceError",
    "__version__",
]
