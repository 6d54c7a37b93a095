"""Authentication state of a single device connection."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from .exceptions import AuthenticationError

if TYPE_CHECKING:
    from .transports.aestransport import AesEncryptionSession
    from .transports.klaptransport import KlapEncryptionSession

_LOGGER = logging.getLogger(__name__)

_SET_COOKIE_TIMEOUT = re.compile(r"^(.+);TIMEOUT=(\d+)$")


class SessionState(Enum):
    """Enum for the session life cycle."""

    UNAUTHENTICATED = auto()  # No key material
    HANDSHAKING = auto()  # Handshake in progress
    AUTHENTICATED = auto()  # Ready to send requests
    EXPIRED = auto()  # Cookie lifetime is over


def parse_session_cookie(header: str | None) -> tuple[str, int]:
    """Split a ``<cookie>;TIMEOUT=<seconds>`` Set-Cookie header.

    Raises :class:`AuthenticationError` if the header is missing or does
    not have that shape.
    """
    if not header:
        raise AuthenticationError("Device did not send a session cookie")
    if not (match := _SET_COOKIE_TIMEOUT.match(header.strip())):
        raise AuthenticationError(f"Malformed session cookie header: {header}")
    return match.group(1), int(match.group(2))


@dataclass
class Session:
    """Key material and cookie obtained by a handshake."""

    state: SessionState = SessionState.UNAUTHENTICATED
    encryption_session: KlapEncryptionSession | AesEncryptionSession | None = None
    #: Value sent in the Cookie header
    cookie: str | None = None
    #: Absolute wall clock expiry, None if the device sent no lifetime
    expire_at: float | None = None
    #: Login token of the legacy protocol
    token: str | None = None

    def is_authenticated(self, now: float | None = None) -> bool:
        """Return true if the session can be used for requests."""
        if self.state is not SessionState.AUTHENTICATED:
            return False
        if self.expire_at is not None:
            now = time.time() if now is None else now
            if now >= self.expire_at:
                _LOGGER.debug("Session expired at %s", self.expire_at)
                self.state = SessionState.EXPIRED
                return False
        return True

    def invalidate(self) -> None:
        """Drop all key material so that the next use re-handshakes."""
        self.state = SessionState.UNAUTHENTICATED
        self.encryption_session = None
        self.cookie = None
        self.expire_at = None
        self.token = None
