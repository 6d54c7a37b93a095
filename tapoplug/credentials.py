"""Credentials class for username / passwords."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Credentials:
    """Credentials for authentication."""

    #: Username (email address) of the Tapo account
    username: str = field(default="", repr=False)
    #: Password of the Tapo account
    password: str = field(default="", repr=False)
