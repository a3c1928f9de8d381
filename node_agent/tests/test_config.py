from pathlib import Path

import pytest

from node_agent import config


@pytest.fixture
def clean_env(monkeypatch):
    for var in (
        "NODE_GATEWAY",
        "NODE_PROVIDER",
        "NODE_ADB_SERIAL",
        "NODE_CAPABILITY_LEVEL",
        "NODE_APP_ID",
        "NODE_PING_INTERVAL",
        "NODE_LOG_DIR",
        "NODE_TEST_MODE",
    ):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = config.load_settings()

    assert settings.gateway_address is None
    assert settings.provider == "adb"
    assert settings.adb_serial is None
    assert settings.capability_level == config.DEFAULT_CAPABILITY_LEVEL
    assert settings.app_id == config.DEFAULT_APP_ID
    assert settings.ping_interval == config.DEFAULT_PING_INTERVAL
    assert settings.log_dir == (config.ROOT / "logs").resolve()


def test_env_overrides(clean_env, tmp_path):
    clean_env.setenv("NODE_GATEWAY", " 10.0.0.2:8080 ")
    clean_env.setenv("NODE_PROVIDER", "UIA")
    clean_env.setenv("NODE_ADB_SERIAL", "emulator-5554")
    clean_env.setenv("NODE_CAPABILITY_LEVEL", "28")
    clean_env.setenv("NODE_PING_INTERVAL", "15")
    clean_env.setenv("NODE_LOG_DIR", str(tmp_path))

    settings = config.load_settings()

    assert settings.gateway_address == "10.0.0.2:8080"
    assert settings.provider == "uia"
    assert settings.adb_serial == "emulator-5554"
    assert settings.capability_level == 28
    assert settings.ping_interval == 15.0
    assert settings.log_dir == Path(tmp_path).resolve()


def test_bad_numbers_fall_back_to_defaults(clean_env):
    clean_env.setenv("NODE_CAPABILITY_LEVEL", "eleven")
    clean_env.setenv("NODE_PING_INTERVAL", "-5")

    settings = config.load_settings()

    assert settings.capability_level == config.DEFAULT_CAPABILITY_LEVEL
    assert settings.ping_interval == config.DEFAULT_PING_INTERVAL


def test_unknown_provider_rejected(clean_env):
    clean_env.setenv("NODE_PROVIDER", "carrier-pigeon")

    with pytest.raises(ValueError):
        config.load_settings()


def test_resolve_host_port_uses_test_port_under_pytest(clean_env):
    host, port = config.resolve_host_port()

    assert port == config.TEST_PORT
    assert host == config.TEST_HOST


def test_resolve_host_port_honors_explicit_values(clean_env):
    assert config.resolve_host_port("0.0.0.0", 6000) == ("0.0.0.0", 6000)
