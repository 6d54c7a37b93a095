from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

import aiohttp
import pytest

from tapoplug.credentials import Credentials
from tapoplug.deviceconfig import DeviceConfig
from tapoplug.exceptions import (
    AuthenticationError,
    DeviceError,
    PersistentFaultError,
    TapoErrorCode,
    TapoException,
    TimeoutError,
    _ConnectionError,
)
from tapoplug.session import SessionState
from tapoplug.sessionmanager import REDACTORS, SessionManager, mask_mac, redact_data
from tapoplug.transports import LegacyRSAHandshake, SeedKlapHandshake

from .conftest import CREDENTIALS, HOST


async def test_single_handshake_for_many_commands(klap_device, klap_manager):
    for _ in range(5):
        result = await klap_manager.execute_command("get_device_info")
        assert result["model"] == "P110"

    assert klap_device.handshake1_count == 1
    assert klap_device.handshake2_count == 1
    assert len(klap_device.sequences) == 5
    assert klap_manager.session.state is SessionState.AUTHENTICATED


async def test_ensure_authenticated(klap_device, klap_manager):
    assert not klap_manager.is_authenticated()

    await klap_manager.ensure_authenticated()
    await klap_manager.ensure_authenticated()

    assert klap_manager.is_authenticated()
    assert klap_device.handshake1_count == 1


async def test_session_expiry(klap_device, klap_manager, freezer):
    await klap_manager.execute_command("get_device_info")

    freezer.tick(timedelta(seconds=86399))
    await klap_manager.execute_command("get_device_info")
    assert klap_device.handshake1_count == 1

    freezer.tick(timedelta(seconds=1))
    assert not klap_manager.is_authenticated()
    assert klap_manager.session.state is SessionState.EXPIRED

    await klap_manager.execute_command("get_device_info")
    assert klap_device.handshake1_count == 2


async def test_invalidate(klap_device, klap_manager):
    await klap_manager.execute_command("get_device_info")
    klap_manager.invalidate()

    assert klap_manager.session.state is SessionState.UNAUTHENTICATED
    assert klap_manager.session.cookie is None
    await klap_manager.execute_command("get_device_info")
    assert klap_device.handshake1_count == 2


async def test_params_are_sent(klap_device, klap_manager):
    await klap_manager.execute_command("set_device_info", {"device_on": True})
    await klap_manager.execute_command("get_device_info")

    assert klap_device.commands == [
        {"method": "set_device_info", "params": {"device_on": True}},
        {"method": "get_device_info"},
    ]


def test_get_request(klap_config):
    manager = SessionManager(klap_config)

    assert manager.get_request("get_device_info") == '{"method":"get_device_info"}'
    assert (
        manager.get_request("set_device_info", {"device_on": False})
        == '{"method":"set_device_info","params":{"device_on":false}}'
    )


@pytest.mark.parametrize(
    ("error_code", "expected_code"),
    [
        pytest.param(-1003, TapoErrorCode.MALFORMED_JSON, id="malformed_json"),
        pytest.param(-1002, TapoErrorCode.INCORRECT_REQUEST, id="incorrect_request"),
        pytest.param(-1008, TapoErrorCode.VARIABLE_TYPE_ERROR, id="variable_type"),
        pytest.param(9999, TapoErrorCode.SESSION_TIMEOUT, id="session_timeout"),
        pytest.param(-40401, TapoErrorCode.INTERNAL_UNKNOWN_ERROR, id="unknown"),
    ],
)
async def test_device_error_invalidates_session(
    klap_device, klap_manager, error_code, expected_code
):
    await klap_manager.execute_command("get_device_info")
    klap_device.error_code = error_code

    with pytest.raises(DeviceError) as ex:
        await klap_manager.execute_command("get_device_info")

    assert not isinstance(ex.value, AuthenticationError)
    assert ex.value.error_code is expected_code
    assert klap_manager.session.state is SessionState.UNAUTHENTICATED
    assert klap_manager.last_error_code is expected_code

    klap_device.error_code = 0
    await klap_manager.execute_command("get_device_info")
    assert klap_device.handshake1_count == 2


@pytest.mark.parametrize(
    "error_code",
    [
        pytest.param(-1010, id="public_key_length"),
        pytest.param(-1012, id="invalid_terminal_uuid"),
        pytest.param(-1015, id="invalid_request_or_login"),
        pytest.param(1015, id="positive"),
    ],
)
async def test_authentication_error_codes(klap_device, klap_manager, error_code):
    klap_device.error_code = error_code

    with pytest.raises(AuthenticationError) as ex:
        await klap_manager.execute_command("get_device_info")

    assert ex.value.error_code in (
        TapoErrorCode.PUBLIC_KEY_LENGTH_ERROR,
        TapoErrorCode.INVALID_TERMINAL_UUID,
        TapoErrorCode.INVALID_REQUEST_OR_LOGIN,
    )
    assert klap_manager.session.state is SessionState.UNAUTHENTICATED
    assert klap_manager.consecutive_failures == 0


@pytest.mark.parametrize(
    ("side_effect", "expected"),
    [
        pytest.param(
            aiohttp.ServerDisconnectedError(), _ConnectionError, id="disconnected"
        ),
        pytest.param(aiohttp.ClientOSError(), _ConnectionError, id="os_error"),
        pytest.param(asyncio.TimeoutError(), TimeoutError, id="timeout"),
        pytest.param(Exception("boom"), TapoException, id="other"),
    ],
)
async def test_transport_errors_invalidate_session(
    mocker, klap_device, klap_manager, side_effect, expected
):
    await klap_manager.execute_command("get_device_info")
    mocker.patch.object(aiohttp.ClientSession, "post", side_effect=side_effect)

    with pytest.raises(expected):
        await klap_manager.execute_command("get_device_info")

    assert klap_manager.session.state is SessionState.UNAUTHENTICATED
    assert klap_manager.consecutive_failures == 0


async def test_handshake_failure(klap_device, klap_manager):
    klap_device.server_hash = b"\x00" * 32

    with pytest.raises(AuthenticationError):
        await klap_manager.execute_command("get_device_info")

    assert klap_manager.session.state is SessionState.UNAUTHENTICATED
    assert klap_device.commands == []


async def test_handshake_unexpected_error_is_wrapped(klap_manager, mocker):
    mocker.patch.object(
        klap_manager._strategy, "perform_handshake", side_effect=ValueError("boom")
    )

    with pytest.raises(TapoException, match="Unable to authenticate with") as ex:
        await klap_manager.ensure_authenticated()

    assert isinstance(ex.value.__cause__, ValueError)
    assert klap_manager.session.state is SessionState.UNAUTHENTICATED


async def test_persistent_fault(klap_device, klap_manager):
    klap_device.error_code = -1003

    for failure_count in (1, 2):
        with pytest.raises(DeviceError) as ex:
            await klap_manager.execute_command("get_device_info")
        assert not isinstance(ex.value, PersistentFaultError)
        assert klap_manager.consecutive_failures == failure_count
        assert not klap_manager.persistent_fault

    for failure_count in (3, 4):
        with pytest.raises(PersistentFaultError) as ex:
            await klap_manager.execute_command("get_device_info")
        assert ex.value.failure_count == failure_count
        assert ex.value.error_code is TapoErrorCode.MALFORMED_JSON
        assert klap_manager.persistent_fault

    # Every failure is followed by a fresh handshake
    assert klap_device.handshake1_count == 4

    klap_device.error_code = 0
    await klap_manager.execute_command("get_device_info")
    assert klap_manager.consecutive_failures == 0
    assert klap_manager.last_error_code is None
    assert not klap_manager.persistent_fault


async def test_persistent_fault_streak(klap_device, klap_manager):
    klap_device.error_code = [-1003, -1002, -1003, -1010, -1003, -1003]

    for _ in range(5):
        with pytest.raises(DeviceError) as ex:
            await klap_manager.execute_command("get_device_info")
        assert not isinstance(ex.value, PersistentFaultError)

    with pytest.raises(PersistentFaultError):
        await klap_manager.execute_command("get_device_info")


async def test_persistent_fault_threshold(klap_device):
    config = DeviceConfig(HOST, credentials=CREDENTIALS, persistent_fault_threshold=1)
    manager = SessionManager(config)
    klap_device.error_code = -1003

    with pytest.raises(PersistentFaultError):
        await manager.execute_command("get_device_info")

    await manager.close()


async def test_concurrent_commands(klap_device, klap_manager):
    results = await asyncio.gather(
        *[klap_manager.execute_command("get_device_info") for _ in range(10)]
    )

    assert all(result["model"] == "P110" for result in results)
    assert klap_device.handshake1_count == 1
    first = klap_device.sequences[0]
    assert klap_device.sequences == list(range(first, first + 10))


async def test_legacy_commands(aes_device, aes_manager):
    for _ in range(3):
        result = await aes_manager.execute_command("get_device_info")
        assert result["model"] == "P100"

    assert aes_device.handshake_count == 1
    assert aes_device.login_count == 1


async def test_legacy_wrong_credentials(aes_device, aes_config):
    config = DeviceConfig(
        HOST,
        credentials=Credentials("foo", "wrong"),
        encryption_type=aes_config.encryption_type,
    )
    manager = SessionManager(config)

    with pytest.raises(AuthenticationError):
        await manager.execute_command("get_device_info")

    assert manager.session.state is SessionState.UNAUTHENTICATED
    assert aes_device.methods == []
    await manager.close()


def test_strategy_selection(klap_config, aes_config):
    assert isinstance(SessionManager(klap_config)._strategy, SeedKlapHandshake)
    assert isinstance(SessionManager(aes_config)._strategy, LegacyRSAHandshake)


async def test_commands_are_logged_redacted(klap_device, klap_manager, caplog):
    caplog.set_level(logging.DEBUG)

    await klap_manager.execute_command("get_device_info")

    assert "get_device_info" in caplog.text
    assert klap_device.info["nickname"] not in caplog.text
    assert klap_device.info["ssid"] not in caplog.text
    assert "**REDACTED**" in caplog.text


def test_redact_data():
    data = {
        "nickname": "T2ZmaWNlIExhbXA=",
        "mac": "9C-53-22-12-34-56",
        "ip": "192.168.0.110",
        "empty": "",
        "params": {"password": "Secret", "device_on": True},
        "list": [{"token": "abc"}],
    }

    assert redact_data(data, REDACTORS) == {
        "nickname": "**REDACTED**",
        "mac": "9C-53-22-00-00-00",
        "ip": "127.0.0.110",
        "empty": "",
        "params": {"password": "**REDACTED**", "device_on": True},
        "list": [{"token": "**REDACTED**"}],
    }


def test_mask_mac():
    assert mask_mac("9c:53:22:12:34:56") == "9c:53:22:00:00:00"


@pytest.mark.parametrize(
    ("reply", "message"),
    [
        pytest.param(None, "Unexpected response", id="null"),
        pytest.param([{"error_code": 0}], "Unexpected response", id="list"),
        pytest.param(
            {"error_code": 0, "result": [1]}, "Unexpected result", id="result"
        ),
    ],
)
async def test_malformed_reply(mocker, klap_device, klap_manager, reply, message):
    await klap_manager.execute_command("get_device_info")
    mocker.patch.object(klap_device, "handle_command", return_value=reply)

    with pytest.raises(TapoException, match=message):
        await klap_manager.execute_command("get_device_info")

    assert klap_manager.session.state is SessionState.UNAUTHENTICATED
