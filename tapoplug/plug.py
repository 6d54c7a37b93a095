"""Module for Tapo smart plugs (P100, P110, P115).

The plug is the surface a home automation host talks to. Every call returns a
:class:`CommandResult`, failures included, so a polling loop never has to
guard against exceptions:

>>> plug = TapoPlug(DeviceConfig("192.168.0.110", credentials=creds))
>>> result = await plug.switch_on()
>>> result.ok
True
>>> result.data["status"]
'on'

Energy usage is only available on the metering models and only reported
while the outlet is on.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any

from .deviceconfig import DeviceConfig
from .exceptions import PersistentFaultError, TapoException, UnsupportedDeviceError
from .sessionmanager import SessionManager

_LOGGER = logging.getLogger(__name__)

METERING_MODELS = ("P110", "P115")
BASE64_FIELDS = ("ssid", "nickname")


@dataclass
class CommandResult:
    """Outcome of a single device operation."""

    method: str
    data: dict[str, Any] | None = None
    error: TapoException | None = None

    @property
    def ok(self) -> bool:
        """Return true if the operation succeeded."""
        return self.error is None

    @property
    def persistent_fault(self) -> bool:
        """Return true if the device is stuck in a state retries won't fix."""
        return isinstance(self.error, PersistentFaultError)


def _decode_base64_field(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return base64.b64decode(value, validate=True).decode()
    except (binascii.Error, UnicodeDecodeError):
        return value


class TapoPlug:
    """Represents a Tapo smart plug."""

    def __init__(
        self,
        config: DeviceConfig | None = None,
        *,
        session_manager: SessionManager | None = None,
    ) -> None:
        if session_manager is None:
            if config is None:
                raise TypeError("TapoPlug requires a config or a session_manager")
            session_manager = SessionManager(config)
        self._session_manager = session_manager
        self._info: dict[str, Any] = {}

    def __repr__(self) -> str:
        if not self._info:
            return f"<TapoPlug at {self.host} - update() needed>"
        return f"<TapoPlug {self.model} at {self.host} - {self.alias} ({self.status})>"

    @property
    def host(self) -> str:
        """The host of the plug."""
        return self._session_manager.host

    @property
    def config(self) -> DeviceConfig:
        """Return the connection parameters the plug is using."""
        return self._session_manager.config

    @property
    def session_manager(self) -> SessionManager:
        """The session manager talking to the plug."""
        return self._session_manager

    @property
    def info(self) -> dict[str, Any]:
        """The decoded device info of the last successful query."""
        return self._info

    @property
    def is_on(self) -> bool:
        """Return true if the outlet was on at the last query."""
        return bool(self._info.get("device_on"))

    @property
    def status(self) -> str | None:
        """Return 'on' or 'off', None before the first query."""
        return self._info.get("status")

    @property
    def model(self) -> str | None:
        """The model name, None before the first query."""
        return self._info.get("model")

    @property
    def alias(self) -> str | None:
        """The decoded nickname."""
        return self._info.get("nickname")

    @property
    def has_emeter(self) -> bool:
        """Return true if the model measures power."""
        return bool(self.model) and self.model.upper().startswith(METERING_MODELS)  # type: ignore[union-attr]

    async def _call(self, method: str, params: dict | None = None) -> CommandResult:
        try:
            data = await self._session_manager.execute_command(method, params)
        except TapoException as ex:
            _LOGGER.debug("%s failed on %s: %s", method, self.host, ex)
            return CommandResult(method, error=ex)
        return CommandResult(method, data=data)

    async def connect(self) -> CommandResult:
        """Authenticate with the plug."""
        try:
            await self._session_manager.ensure_authenticated()
        except TapoException as ex:
            _LOGGER.debug("Unable to connect to %s: %s", self.host, ex)
            return CommandResult("handshake", error=ex)
        return CommandResult("handshake", data={})

    async def switch_on(self) -> CommandResult:
        """Turn the outlet on and return the refreshed device info."""
        return await self._set_device_on(True)

    async def switch_off(self) -> CommandResult:
        """Turn the outlet off and return the refreshed device info."""
        return await self._set_device_on(False)

    async def _set_device_on(self, on: bool) -> CommandResult:
        result = await self._call("set_device_info", {"device_on": on})
        if not result.ok:
            return result
        return await self.get_info()

    async def get_info(self) -> CommandResult:
        """Query the device info."""
        result = await self._call("get_device_info")
        if result.ok:
            result.data = self._parse_device_info(result.data or {})
            self._info = result.data
        return result

    @staticmethod
    def _parse_device_info(info: dict[str, Any]) -> dict[str, Any]:
        parsed = dict(info)
        for key in BASE64_FIELDS:
            if key in parsed:
                parsed[key] = _decode_base64_field(parsed[key])
        parsed["status"] = "on" if parsed.get("device_on") else "off"
        return parsed

    async def get_energy(self) -> CommandResult:
        """Query the energy usage of a metering plug."""
        if self.model and not self.has_emeter:
            return CommandResult(
                "get_energy_usage",
                error=UnsupportedDeviceError(
                    f"{self.model} at {self.host} does not measure power",
                    model=self.model,
                    host=self.host,
                ),
            )
        return await self._call("get_energy_usage")

    async def update(self) -> dict[str, CommandResult | None]:
        """Poll the plug once.

        Energy usage is fetched only if power measurement is enabled, the
        model supports it and the outlet is on.
        """
        info = await self.get_info()
        energy = None
        if (
            info.ok
            and self.config.power_measurement
            and self.has_emeter
            and self.is_on
        ):
            energy = await self.get_energy()
        return {"info": info, "energy": energy}

    async def close(self) -> None:
        """Close the connection to the plug."""
        await self._session_manager.close()
