"""python-tapoplug exceptions."""

from __future__ import annotations

from asyncio import TimeoutError as _asyncioTimeoutError
from enum import IntEnum
from functools import cache
from typing import Any


class TapoException(Exception):
    """Base exception for library errors."""


class TimeoutError(TapoException, _asyncioTimeoutError):
    """Timeout exception for device errors."""

    def __repr__(self) -> str:
        return TapoException.__repr__(self)

    def __str__(self) -> str:
        return TapoException.__str__(self)


class _ConnectionError(TapoException):
    """Connection exception for device errors."""


class UnsupportedDeviceError(TapoException):
    """Exception for commands the device model does not support."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.model = kwargs.get("model")
        self.host = kwargs.get("host")
        super().__init__(*args)


class DeviceError(TapoException):
    """Base exception for device errors."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.error_code: TapoErrorCode | None = kwargs.get("error_code")
        super().__init__(*args)

    def __repr__(self) -> str:
        err_code = self.error_code.__repr__() if self.error_code else ""
        return f"{self.__class__.__name__}({err_code})"

    def __str__(self) -> str:
        err_code = f" (error_code={self.error_code.name})" if self.error_code else ""
        return super().__str__() + err_code


class AuthenticationError(DeviceError):
    """Base exception for device authentication errors."""


class PersistentFaultError(DeviceError):
    """The device keeps failing with the same error after re-authenticating.

    Known cause: P110 units that lost power answer every request with
    MALFORMED_JSON until they are factory reset.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.failure_count: int = kwargs.get("failure_count", 0)
        super().__init__(*args, **kwargs)


class TapoErrorCode(IntEnum):
    """Enum for device reported error codes."""

    def __str__(self) -> str:
        return f"{self.name}({self.value})"

    @staticmethod
    @cache
    def from_int(value: int) -> TapoErrorCode:
        """Convert an integer to a TapoErrorCode.

        Firmware reports some codes as negative numbers, so the absolute
        value is tried as well.
        """
        for candidate in (value, abs(value)):
            try:
                return TapoErrorCode(candidate)
            except ValueError:
                continue
        raise ValueError(f"{value} is not a valid TapoErrorCode")

    SUCCESS = 0

    DEVICE_UNREACHABLE = 404
    INTERNAL_ERROR = 500
    INCORRECT_REQUEST = 1002
    MALFORMED_JSON = 1003
    VARIABLE_TYPE_ERROR = 1008
    PUBLIC_KEY_LENGTH_ERROR = 1010
    INVALID_TERMINAL_UUID = 1012
    INVALID_REQUEST_OR_LOGIN = 1015
    LOGIN_ERROR = 1501
    SESSION_TIMEOUT = 9999

    # Library internal for unknown error codes
    INTERNAL_UNKNOWN_ERROR = -100_000


TAPO_AUTHENTICATION_ERRORS = [
    TapoErrorCode.PUBLIC_KEY_LENGTH_ERROR,
    TapoErrorCode.INVALID_TERMINAL_UUID,
    TapoErrorCode.INVALID_REQUEST_OR_LOGIN,
    TapoErrorCode.LOGIN_ERROR,
]
