"""Shared configuration for the node agent (gateway, provider, control API)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parent.parent

load_dotenv(ROOT / ".env")

# Dedicated ports for the local control API so dev and test runs never clash.
CONTROL_HOST = os.getenv("NODE_CONTROL_HOST", "127.0.0.1")
CONTROL_PORT = int(os.getenv("NODE_CONTROL_PORT", "5020"))
TEST_HOST = os.getenv("NODE_TEST_HOST", CONTROL_HOST)
TEST_PORT = int(os.getenv("NODE_TEST_PORT", "5021"))

DEFAULT_APP_ID = "com.openclaw.node"
DEFAULT_CAPABILITY_LEVEL = 34
DEFAULT_PING_INTERVAL = 30.0
PROVIDERS = ("adb", "uia")


def is_test_mode() -> bool:
    """Detect pytest/NODE_TEST_MODE runs."""
    return os.getenv("NODE_TEST_MODE") == "1" or bool(os.getenv("PYTEST_CURRENT_TEST"))


def resolve_host_port(host: str | None = None, port: int | None = None) -> Tuple[str, int]:
    """Return the control API host/port for the current mode, honoring overrides."""
    if host and port:
        return host, int(port)

    if is_test_mode():
        resolved_host = host or TEST_HOST
        resolved_port = int(port or TEST_PORT)
    else:
        resolved_host = host or CONTROL_HOST
        resolved_port = int(port or CONTROL_PORT)

    return resolved_host, resolved_port


def _int_from_env(var: str, default: int) -> int:
    raw = (os.getenv(var) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_from_env(var: str, default: float) -> float:
    raw = (os.getenv(var) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class AgentSettings:
    gateway_address: Optional[str]
    provider: str
    adb_serial: Optional[str]
    capability_level: int
    app_id: str
    ping_interval: float
    log_dir: Path


def load_settings() -> AgentSettings:
    """Read the agent settings from the environment (and .env)."""
    gateway = (os.getenv("NODE_GATEWAY") or "").strip()
    provider = (os.getenv("NODE_PROVIDER") or "adb").strip().lower()
    if provider not in PROVIDERS:
        raise ValueError(f"Unknown provider '{provider}'; expected one of {', '.join(PROVIDERS)}")
    serial = (os.getenv("NODE_ADB_SERIAL") or "").strip()
    log_dir_raw = (os.getenv("NODE_LOG_DIR") or "").strip()
    log_dir = Path(log_dir_raw).expanduser() if log_dir_raw else ROOT / "logs"

    return AgentSettings(
        gateway_address=gateway or None,
        provider=provider,
        adb_serial=serial or None,
        capability_level=_int_from_env("NODE_CAPABILITY_LEVEL", DEFAULT_CAPABILITY_LEVEL),
        app_id=(os.getenv("NODE_APP_ID") or DEFAULT_APP_ID).strip(),
        ping_interval=_float_from_env("NODE_PING_INTERVAL", DEFAULT_PING_INTERVAL),
        log_dir=log_dir.resolve(),
    )
