"""Entrypoint for running the node agent.

This script:
- Builds the platform provider and the shared runtime context.
- Connects to the configured gateway (NODE_GATEWAY or --gateway), if any.
- Serves the local control API with uvicorn once its port can be bound,
  stopping an earlier node-agent that still holds it but never other programs.
"""

from __future__ import annotations

import argparse
import contextlib
import socket
import sys
import time
from typing import List, Optional

import psutil
import uvicorn

from node_agent.app import create_app
from node_agent.config import CONTROL_HOST, CONTROL_PORT, is_test_mode, load_settings, resolve_host_port
from node_agent.connection.gateway import GatewayConnection
from node_agent.executor.runtime_context import AgentContext
from node_agent.logging_setup import setup_logging
from node_agent.providers.factory import create_provider

AGENT_MARKERS = ("node_agent.launch_agent", "launch_agent.py", "node-agent")


def log(message: str) -> None:
    print(f"[node-agent] {message}", flush=True)


def _port_available(host: str, port: int) -> bool:
    try:
        with socket.create_server((host, port)):
            return True
    except OSError:
        return False


def _stale_agents(port: int) -> List[psutil.Process]:
    """Earlier node-agent processes listening on port."""
    try:
        conns = psutil.net_connections(kind="tcp")
    except psutil.AccessDenied:
        return []
    stale: List[psutil.Process] = []
    for conn in conns:
        if conn.status != psutil.CONN_LISTEN or conn.laddr.port != port or not conn.pid:
            continue
        try:
            proc = psutil.Process(conn.pid)
            cmdline = " ".join(proc.cmdline())
        except psutil.Error:
            continue
        if any(marker in cmdline for marker in AGENT_MARKERS):
            stale.append(proc)
    return stale


def ensure_port_free(host: str, port: int, timeout: float = 3.0) -> bool:
    """True when the control port can be bound, after stopping stale agents if needed."""
    if _port_available(host, port):
        return True
    stale = _stale_agents(port)
    if not stale:
        log(f"Port {port} on {host} is held by another program; free it or pass --port.")
        return False
    for proc in stale:
        log(f"Stopping stale agent pid={proc.pid}")
        with contextlib.suppress(psutil.NoSuchProcess):
            proc.terminate()
    _, alive = psutil.wait_procs(stale, timeout=timeout)
    for proc in alive:
        with contextlib.suppress(psutil.NoSuchProcess):
            proc.kill()
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if _port_available(host, port):
            return True
        time.sleep(0.2)
    return _port_available(host, port)


def main(
    host: Optional[str] = None,
    port: Optional[int] = None,
    gateway: Optional[str] = None,
) -> int:
    settings = load_settings()
    setup_logging(settings.log_dir)
    resolved_host, resolved_port = resolve_host_port(host=host, port=port)
    profile = "test" if is_test_mode() else "dev"

    if not ensure_port_free(resolved_host, resolved_port):
        return 1

    provider = create_provider(settings)
    context = AgentContext(provider, settings=settings)
    context.start_provider()
    connection = GatewayConnection(context)

    target = (gateway or settings.gateway_address or "").strip()
    if target:
        connection.connect(target)
    else:
        log("No gateway configured; use POST /api/connect to connect.")

    log(f"Control API on http://{resolved_host}:{resolved_port} [{profile}] provider={settings.provider}")
    try:
        uvicorn.run(create_app(connection), host=resolved_host, port=resolved_port, log_level="info")
    finally:
        connection.disconnect()
        context.stop_provider()
    return 0


def cli(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run the node agent and its local control API.")
    parser.add_argument("--host", help=f"Control API host (default: {CONTROL_HOST})")
    parser.add_argument("--port", type=int, help=f"Control API port (default: {CONTROL_PORT})")
    parser.add_argument("--gateway", help="Gateway address to connect to at startup (ws:// optional)")
    args = parser.parse_args(argv)

    sys.exit(main(host=args.host, port=args.port, gateway=args.gateway))


if __name__ == "__main__":
    cli()
