import pytest

from node_agent.providers.adb import AdbProvider
from node_agent.providers.factory import create_provider
from node_agent.tests.fakes import make_settings


def test_adb_provider_is_default():
    provider = create_provider(make_settings(adb_serial="emulator-5554"))

    assert isinstance(provider, AdbProvider)
    assert provider.serial == "emulator-5554"


def test_unknown_provider_rejected():
    with pytest.raises(ValueError):
        create_provider(make_settings(provider="carrier-pigeon"))
