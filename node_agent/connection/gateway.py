"""
Persistent connection to the gateway.

State machine: disconnected -> connecting -> connected -> failed/disconnected.
One connection attempt is live at a time; a closed or failed socket stays
failed until the next explicit connect() (no automatic reconnection).

The websocket-client run loop delivers frames on a single thread, so a
command's execution blocks the next inbound frame and responses leave in
request order.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Dict, Optional

import websocket

from node_agent.connection.state import ConnectionState, ConnectionStateStore, ConnectionStatus
from node_agent.contracts.envelopes import PING, PONG, CommandEnvelope, CommandResult, ResponseEnvelope
from node_agent.executor.dispatch import CommandDispatcher
from node_agent.executor.runtime_context import AgentContext
from node_agent.logging_utils import log_event

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
USER_DISCONNECT_REASON = b"User disconnect"

AppFactory = Callable[..., Any]


def normalize_address(address: str) -> str:
    """Prefix ws:// unless the address already carries a ws:// or wss:// scheme."""
    address = (address or "").strip()
    if address.startswith("ws://") or address.startswith("wss://"):
        return address
    return f"ws://{address}"


def _close_reason(code: Optional[int], reason: Any) -> str:
    if isinstance(reason, bytes):
        reason = reason.decode("utf-8", errors="replace")
    parts = [str(p) for p in (code, reason) if p not in (None, "")]
    if not parts:
        return "Connection closed"
    return f"Connection closed: {' '.join(parts)}"


class GatewayConnection:
    def __init__(
        self,
        context: AgentContext,
        dispatcher: Optional[CommandDispatcher] = None,
        *,
        app_factory: AppFactory = websocket.WebSocketApp,
        ping_interval: Optional[float] = None,
    ) -> None:
        self.context = context
        self.dispatcher = dispatcher or CommandDispatcher(context)
        self.state = ConnectionStateStore()
        self.ping_interval = float(ping_interval or context.settings.ping_interval)
        self._app_factory = app_factory
        self._lock = threading.RLock()
        self._app: Any = None
        self._thread: Optional[threading.Thread] = None

    # Public API ---------------------------------------------------------

    def connect(self, address: str) -> None:
        with self._lock:
            current = self.state.value
            if current.is_busy:
                logger.debug("connect(%r) ignored; already %s", address, current.status.value)
                return

            url = normalize_address(address)
            self.state.set(ConnectionState.connecting(address))
            try:
                app = self._app_factory(
                    url,
                    on_open=self._on_open,
                    on_message=self._on_message,
                    on_error=self._on_error,
                    on_close=self._on_close,
                )
            except Exception as exc:  # noqa: BLE001
                logger.error("Connect error: %s", exc)
                self.state.set(ConnectionState.failed(address, str(exc) or "Connection error"))
                return

            self._app = app
            self._thread = threading.Thread(
                target=self._run,
                args=(app, address),
                name="gateway-connection",
                daemon=True,
            )
            self._thread.start()
        logger.info("Connecting to %s", url)

    def disconnect(self) -> None:
        with self._lock:
            app, self._app = self._app, None
            self._thread = None
            if app is None and self.state.value == ConnectionState.disconnected():
                return
            self.state.set(ConnectionState.disconnected())
        if app is not None:
            try:
                app.close(status=NORMAL_CLOSURE, reason=USER_DISCONNECT_REASON)
            except Exception as exc:  # noqa: BLE001
                logger.debug("Close after disconnect failed: %s", exc)

    def send_ping(self) -> bool:
        """Send an application-level ping; True if it was handed to the socket."""
        with self._lock:
            app = self._app
            connected = self.state.value.is_connected
        if app is None or not connected:
            return False
        return self._send(app, PING)

    # Transport loop -----------------------------------------------------

    def _run(self, app: Any, address: str) -> None:
        try:
            app.run_forever(ping_interval=self.ping_interval, reconnect=0)
        except Exception as exc:  # noqa: BLE001
            logger.error("WebSocket loop crashed: %s", exc)
            self._fail(app, str(exc) or "Connection error")

    def _is_current(self, app: Any) -> bool:
        with self._lock:
            return app is not None and app is self._app

    def _fail(self, app: Any, reason: str) -> None:
        with self._lock:
            if not self._is_current(app):
                return
            address = self.state.value.gateway_address
            self.state.set(ConnectionState.failed(address, reason))

    def _send(self, app: Any, payload: Dict[str, Any]) -> bool:
        text = json.dumps(payload, ensure_ascii=False, default=str)
        try:
            app.send(text)
            return True
        except Exception as exc:  # noqa: BLE001
            logger.warning("Send failed (%s): %s", payload.get("type"), exc)
            return False

    # Transport callbacks ------------------------------------------------

    def _on_open(self, app: Any) -> None:
        with self._lock:
            if not self._is_current(app):
                return
            address = self.state.value.gateway_address
            self.state.set(ConnectionState.connected(address))
        logger.info("WebSocket connected")
        try:
            info = self.context.device_info().to_wire()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Device descriptor unavailable: %s", exc)
            info = {"type": "device_info", "packageName": self.context.settings.app_id, "appId": self.context.settings.app_id}
        self._send(app, info)

    def _on_message(self, app: Any, message: Any) -> None:
        if not self._is_current(app):
            return
        if isinstance(message, (bytes, bytearray)):
            logger.warning("Dropping binary frame (%s bytes)", len(message))
            return
        logger.debug("Received: %s", message)
        try:
            payload = json.loads(message)
        except (TypeError, ValueError) as exc:
            logger.warning("Parse message error: %s", exc)
            return
        if not isinstance(payload, dict):
            logger.warning("Dropping non-object frame: %s", type(payload).__name__)
            return

        kind = payload.get("type")
        if kind == "command":
            self._handle_command(app, payload)
        elif kind == "ping":
            self._send(app, PONG)
        elif kind == "pong":
            logger.debug("Pong received")
        else:
            logger.debug("Ignoring message type %r", kind)

    def _handle_command(self, app: Any, payload: Dict[str, Any]) -> None:
        try:
            envelope = CommandEnvelope.model_validate(payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Dropping malformed command envelope: %s", exc)
            return
        try:
            response = self.dispatcher.dispatch(envelope)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Dispatch failed for %s", envelope.command)
            response = ResponseEnvelope.for_result(
                envelope.request_id, CommandResult.fail(f"{envelope.command} error: {exc}")
            )
        if not self._send(app, response.to_wire()):
            log_event("response_dropped", envelope.request_id, {"command": envelope.command})

    def _on_error(self, app: Any, error: Any) -> None:
        logger.error("WebSocket failure: %s", error)
        self._fail(app, str(error) or "Connection failed")

    def _on_close(self, app: Any, close_status_code: Optional[int] = None, close_msg: Any = None) -> None:
        logger.info("WebSocket closed: %s %s", close_status_code, close_msg)
        with self._lock:
            if not self._is_current(app):
                return
            current = self.state.value
            if current.status == ConnectionStatus.FAILED:
                # Failure already recorded by on_error; keep its message.
                return
            self.state.set(ConnectionState.failed(current.gateway_address, _close_reason(close_status_code, close_msg)))


__all__ = ["normalize_address", "GatewayConnection"]
