from __future__ import annotations

import aiohttp
import pytest

from tapoplug import (
    Credentials,
    DeviceConfig,
    DeviceEncryptionType,
    SessionManager,
    TapoPlug,
)

from .fakedevice import MockAesDevice, MockKlapDevice

HOST = "127.0.0.1"
CREDENTIALS = Credentials("foo", "bar")


@pytest.fixture()
def klap_config():
    return DeviceConfig(HOST, credentials=CREDENTIALS)


@pytest.fixture()
def aes_config():
    return DeviceConfig(
        HOST, credentials=CREDENTIALS, encryption_type=DeviceEncryptionType.Aes
    )


@pytest.fixture()
def klap_device(mocker):
    """Return a fake KLAP plug answering all http posts."""
    device = MockKlapDevice(HOST, CREDENTIALS)
    mocker.patch.object(aiohttp.ClientSession, "post", side_effect=device.post)
    return device


@pytest.fixture()
def aes_device(mocker):
    """Return a fake legacy plug answering all http posts."""
    device = MockAesDevice(HOST, CREDENTIALS)
    mocker.patch.object(aiohttp.ClientSession, "post", side_effect=device.post)
    return device


@pytest.fixture()
async def klap_manager(klap_config):
    manager = SessionManager(klap_config)
    yield manager
    await manager.close()


@pytest.fixture()
async def aes_manager(aes_config):
    manager = SessionManager(aes_config)
    yield manager
    await manager.close()


@pytest.fixture()
async def plug(klap_config):
    plug = TapoPlug(klap_config)
    yield plug
    await plug.close()
