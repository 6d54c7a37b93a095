import json
import os

import pytest
from asyncclick.testing import CliRunner

from tapoplug.cli import cli, energy, off, on, poll, state

from .conftest import HOST

CONNECT_ARGS = ["--host", HOST, "--username", "foo", "--password", "bar"]


@pytest.fixture()
def runner():
    """Runner fixture that unsets the TAPO_ environment variables for tests."""
    TAPO_VARS = {k: None for k, v in os.environ.items() if k.startswith("TAPO_")}
    runner = CliRunner(env=TAPO_VARS)

    return runner


async def test_help(runner):
    res = await runner.invoke(cli, ["--help"])
    assert res.exit_code == 0
    assert "Raised error" not in res.output
    for command in (state, on, off, energy, poll):
        assert command.name in res.output


async def test_state(klap_device, runner):
    res = await runner.invoke(cli, CONNECT_ARGS, catch_exceptions=False)

    assert res.exit_code == 0, res.output
    assert "== Office Lamp - P110 ==" in res.output
    assert f"Host: {HOST}" in res.output
    assert "Device state: off" in res.output
    assert klap_device.methods == ["get_device_info"]


@pytest.mark.parametrize(
    ("command", "device_on", "status"),
    [
        pytest.param("on", True, "on", id="on"),
        pytest.param("off", False, "off", id="off"),
    ],
)
async def test_switch(klap_device, runner, command, device_on, status):
    klap_device.info["device_on"] = not device_on

    res = await runner.invoke(cli, [*CONNECT_ARGS, command], catch_exceptions=False)

    assert res.exit_code == 0, res.output
    assert f"Device state: {status}" in res.output
    assert klap_device.info["device_on"] is device_on


async def test_energy(klap_device, runner):
    res = await runner.invoke(cli, [*CONNECT_ARGS, "energy"], catch_exceptions=False)

    assert res.exit_code == 0, res.output
    assert "== Energy usage ==" in res.output
    assert "'current_power': 4217" in res.output
    assert klap_device.methods == ["get_device_info", "get_energy_usage"]


async def test_json_output(klap_device, runner):
    res = await runner.invoke(cli, [*CONNECT_ARGS, "--json", "state"])

    assert res.exit_code == 0, res.output
    output = json.loads(res.output)
    assert output["method"] == "get_device_info"
    assert output["error"] is None
    assert output["data"]["nickname"] == "Office Lamp"


async def test_poll(mocker, klap_device, runner):
    sleep = mocker.patch("asyncio.sleep")
    klap_device.info["device_on"] = True

    res = await runner.invoke(
        cli,
        [
            *CONNECT_ARGS,
            "--power-measurement",
            "poll",
            "--count",
            "2",
            "--interval",
            "15",
        ],
        catch_exceptions=False,
    )

    assert res.exit_code == 0, res.output
    assert klap_device.methods == ["get_device_info", "get_energy_usage"] * 2
    assert klap_device.handshake1_count == 1
    assert sleep.await_args_list.count(mocker.call(15)) == 1


async def test_poll_reports_persistent_fault(mocker, klap_device, runner):
    sleep = mocker.patch("asyncio.sleep")
    klap_device.error_code = -1003

    res = await runner.invoke(
        cli,
        [*CONNECT_ARGS, "poll", "--count", "3"],
        catch_exceptions=False,
    )

    assert res.exit_code == 0, res.output
    assert res.output.count("info: failed:") == 3
    assert "it may need a factory reset" in res.output
    # Defaults to the configured poll interval
    assert sleep.await_args_list.count(mocker.call(300)) == 2


async def test_device_error(klap_device, runner):
    klap_device.error_code = -1002

    res = await runner.invoke(cli, CONNECT_ARGS)

    assert res.exit_code == 1
    assert "get_device_info failed" in res.output


async def test_authentication_failure(klap_device, runner):
    res = await runner.invoke(
        cli, ["--host", HOST, "--username", "foo", "--password", "wrong"]
    )

    assert res.exit_code == 1
    assert "doesn't match our challenge" in res.output


async def test_legacy_encrypt_type(aes_device, runner):
    res = await runner.invoke(
        cli, [*CONNECT_ARGS, "--encrypt-type", "aes"], catch_exceptions=False
    )

    assert res.exit_code == 0, res.output
    assert "P100" in res.output
    assert aes_device.login_count == 1


async def test_host_required(runner):
    res = await runner.invoke(cli, ["state"])

    assert res.exit_code == 2
    assert "A --host is required" in res.output


async def test_credentials_incomplete(runner):
    res = await runner.invoke(cli, ["--host", HOST, "--username", "foo"])

    assert res.exit_code == 2
    assert "requires both --username and --password" in res.output


@pytest.mark.parametrize("interval", ["0", "14"])
async def test_poll_interval_minimum(klap_device, runner, interval):
    res = await runner.invoke(
        cli, [*CONNECT_ARGS, "poll", "--count", "2", "--interval", interval]
    )

    assert res.exit_code == 2
    assert "--interval" in res.output
    assert klap_device.methods == []


async def test_poll_json_output(mocker, klap_device, runner):
    mocker.patch("asyncio.sleep")

    res = await runner.invoke(
        cli, [*CONNECT_ARGS, "--json", "poll", "--count", "3"], catch_exceptions=False
    )

    assert res.exit_code == 0, res.output
    output = json.loads(res.output)
    assert output["info"]["method"] == "get_device_info"
    assert output["energy"] is None
    assert klap_device.methods == ["get_device_info"] * 3


async def test_version(runner):
    res = await runner.invoke(cli, ["--version"])

    assert res.exit_code == 0
    assert "version" in res.output
    assert "Raised error" not in res.output
