"""Session handling for a single Tapo device.

The :class:`SessionManager` owns the :class:`~tapoplug.session.Session` of one
device. It runs the configured handshake strategy whenever there is no usable
session, serializes all traffic so that the sequence number of the seed
protocol is never used twice, and turns device error codes into exceptions.

Any failure invalidates the session. The next call will perform a full
handshake again. Nothing is retried here, retrying is left to the caller's
next poll.
"""

from __future__ import annotations

import asyncio
import logging
from pprint import pformat as pf
from typing import Any, Callable, NoReturn, TypeVar, cast

from .deviceconfig import DeviceConfig
from .exceptions import (
    TAPO_AUTHENTICATION_ERRORS,
    AuthenticationError,
    DeviceError,
    PersistentFaultError,
    TapoErrorCode,
    TapoException,
)
from .json import dumps as json_dumps
from .session import Session, SessionState
from .transports import HandshakeStrategy, get_handshake_strategy

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")


def redact_data(data: _T, redactors: dict[str, Callable[[Any], Any] | None]) -> _T:
    """Redact sensitive data for logging."""
    if not isinstance(data, (dict, list)):
        return data

    if isinstance(data, list):
        return cast(_T, [redact_data(val, redactors) for val in data])

    redacted = {**data}

    for key, value in redacted.items():
        if value is None:
            continue
        if isinstance(value, str) and not value:
            continue
        if key in redactors:
            if redactor := redactors[key]:
                try:
                    redacted[key] = redactor(value)
                except Exception:
                    redacted[key] = "**REDACTEX**"
            else:
                redacted[key] = "**REDACTED**"
        elif isinstance(value, dict):
            redacted[key] = redact_data(value, redactors)
        elif isinstance(value, list):
            redacted[key] = [redact_data(item, redactors) for item in value]

    return cast(_T, redacted)


def mask_mac(mac: str) -> str:
    """Return mac address with last two octects blanked."""
    delim = ":" if ":" in mac else "-"
    rest = delim.join(format(s, "02x") for s in bytes.fromhex("000000"))
    return f"{mac[:8]}{delim}{rest}"


REDACTORS: dict[str, Callable[[Any], Any] | None] = {
    "username": None,
    "password": None,
    "password2": None,
    "token": None,
    "ip": lambda x: "127.0.0." + x.split(".")[3],
    "ssid": None,
    "nickname": None,
    "latitude": lambda x: 0,
    "longitude": lambda x: 0,
    "mac": mask_mac,
}


class SessionManager:
    """Authenticated command execution for one device."""

    def __init__(
        self,
        config: DeviceConfig,
        *,
        strategy: HandshakeStrategy | None = None,
    ) -> None:
        self._config = config
        self._strategy = strategy or get_handshake_strategy(config)
        self._session = Session()
        self._lock = asyncio.Lock()
        self._consecutive_failures = 0
        self._last_error_code: TapoErrorCode | None = None

    @property
    def host(self) -> str:
        """The host of the device."""
        return self._config.host

    @property
    def config(self) -> DeviceConfig:
        """Return the connection parameters the device is using."""
        return self._config

    @property
    def session(self) -> Session:
        """The current session."""
        return self._session

    @property
    def consecutive_failures(self) -> int:
        """Number of identical device errors received in a row."""
        return self._consecutive_failures

    @property
    def last_error_code(self) -> TapoErrorCode | None:
        """The error code of the last failed command, None after a success."""
        return self._last_error_code

    @property
    def persistent_fault(self) -> bool:
        """Return true if the device is stuck returning the same error."""
        return (
            self._last_error_code is not None
            and self._consecutive_failures >= self._config.persistent_fault_threshold
        )

    def is_authenticated(self) -> bool:
        """Return true if a session is established and not expired."""
        return self._session.is_authenticated()

    def invalidate(self) -> None:
        """Forget the session, the next command will handshake again."""
        self._session.invalidate()

    async def ensure_authenticated(self) -> None:
        """Handshake unless an unexpired session exists."""
        async with self._lock:
            await self._ensure_authenticated()

    async def _ensure_authenticated(self) -> None:
        if self._session.is_authenticated():
            return

        self._session.invalidate()
        self._session.state = SessionState.HANDSHAKING
        try:
            self._session = await self._strategy.perform_handshake()
        except TapoException as ex:
            self._session.invalidate()
            _LOGGER.debug("Unable to authenticate with %s: %s", self.host, ex)
            raise
        except Exception as ex:
            self._session.invalidate()
            raise TapoException(
                f"Unable to authenticate with {self.host}: {ex}", ex
            ) from ex

    def get_request(self, method: str, params: dict | None = None) -> str:
        """Get a request message as a string."""
        request: dict[str, Any] = {"method": method}
        if params is not None:
            request["params"] = params
        return json_dumps(request)

    async def execute_command(
        self, method: str, params: dict | None = None
    ) -> dict[str, Any]:
        """Send a command to the device and return its result.

        Raises a :class:`TapoException` subclass on any failure.
        """
        async with self._lock:
            return await self._execute_command(method, params)

    async def _execute_command(
        self, method: str, params: dict | None
    ) -> dict[str, Any]:
        debug_enabled = _LOGGER.isEnabledFor(logging.DEBUG)

        await self._ensure_authenticated()

        request = self.get_request(method, params)
        if debug_enabled:
            _LOGGER.debug(
                "%s >> %s",
                self.host,
                pf(redact_data({"method": method, "params": params}, REDACTORS)),
            )

        try:
            response = await self._strategy.send(self._session, request)
        except DeviceError as ex:
            self._raise_device_error(ex)
        except TapoException:
            self._session.invalidate()
            raise
        except Exception as ex:
            self._session.invalidate()
            raise TapoException(
                f"Unable to query the device: {self.host}: {ex}", ex
            ) from ex

        if debug_enabled:
            _LOGGER.debug("%s << %s", self.host, pf(redact_data(response, REDACTORS)))

        if not isinstance(response, dict):
            self._session.invalidate()
            raise TapoException(
                f"Unexpected response from {self.host} to {method}: {response!r}"
            )

        self._handle_response_error_code(response, method)

        result = response.get("result") or {}
        if not isinstance(result, dict):
            self._session.invalidate()
            raise TapoException(
                f"Unexpected result from {self.host} to {method}: {result!r}"
            )

        self._consecutive_failures = 0
        self._last_error_code = None
        return result

    def _handle_response_error_code(self, resp_dict: dict, method: str) -> None:
        error_code_raw = resp_dict.get("error_code", 0)
        try:
            error_code = TapoErrorCode.from_int(error_code_raw)
        except (TypeError, ValueError):
            _LOGGER.warning(
                "Device %s received unknown error code: %s", self.host, error_code_raw
            )
            error_code = TapoErrorCode.INTERNAL_UNKNOWN_ERROR
        if error_code is TapoErrorCode.SUCCESS:
            return

        msg = (
            f"Error querying device: {self.host}: "
            + f"{error_code.name}({error_code_raw}) for {method}"
        )
        if error_code in TAPO_AUTHENTICATION_ERRORS:
            self._raise_device_error(AuthenticationError(msg, error_code=error_code))
        self._raise_device_error(DeviceError(msg, error_code=error_code))

    def _raise_device_error(self, ex: DeviceError) -> NoReturn:
        """Invalidate the session and raise, escalating repeated failures."""
        self._session.invalidate()
        if isinstance(ex, AuthenticationError):
            raise ex

        if ex.error_code is not None and ex.error_code == self._last_error_code:
            self._consecutive_failures += 1
        else:
            self._consecutive_failures = 1
        self._last_error_code = ex.error_code

        threshold = self._config.persistent_fault_threshold
        if self._consecutive_failures < threshold:
            raise ex

        if self._consecutive_failures == threshold:
            _LOGGER.error(
                "Device %s keeps failing with %s after re-authenticating, "
                + "it may need a factory reset",
                self.host,
                ex.error_code,
            )
        raise PersistentFaultError(
            f"{ex.args[0]} (failed {self._consecutive_failures} times in a row)",
            error_code=ex.error_code,
            failure_count=self._consecutive_failures,
        ) from ex

    async def close(self) -> None:
        """Drop the session and close the http client."""
        self._session.invalidate()
        await self._strategy.close()
