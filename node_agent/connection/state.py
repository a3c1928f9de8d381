"""
Connection state owned by the gateway connection and observed read-only by
the control surface.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from node_agent.utils.time_utils import now_iso_utc

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True)
class ConnectionState:
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    gateway_address: str = ""
    error: Optional[str] = None
    changed_at: str = field(default_factory=now_iso_utc, compare=False)

    @property
    def is_connecting(self) -> bool:
        return self.status == ConnectionStatus.CONNECTING

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    @property
    def is_busy(self) -> bool:
        return self.status in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED)

    @classmethod
    def disconnected(cls) -> "ConnectionState":
        return cls()

    @classmethod
    def connecting(cls, address: str) -> "ConnectionState":
        return cls(status=ConnectionStatus.CONNECTING, gateway_address=address)

    @classmethod
    def connected(cls, address: str) -> "ConnectionState":
        return cls(status=ConnectionStatus.CONNECTED, gateway_address=address)

    @classmethod
    def failed(cls, address: str, reason: str) -> "ConnectionState":
        return cls(status=ConnectionStatus.FAILED, gateway_address=address, error=reason)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        payload["is_connected"] = self.is_connected
        payload["is_connecting"] = self.is_connecting
        return payload


Subscriber = Callable[[ConnectionState], None]


class ConnectionStateStore:
    """Holds the current ConnectionState and notifies subscribers on change."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._state = ConnectionState.disconnected()
        self._subscribers: List[Subscriber] = []

    @property
    def value(self) -> ConnectionState:
        with self._lock:
            return self._state

    def set(self, state: ConnectionState) -> None:
        with self._lock:
            self._state = state
            subscribers = list(self._subscribers)
        logger.info(
            "Connection state -> %s (address=%r error=%r)",
            state.status.value,
            state.gateway_address,
            state.error,
        )
        for callback in subscribers:
            try:
                callback(state)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Connection state subscriber failed: %s", exc)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register callback (called with the current state immediately); returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)
            current = self._state
        callback(current)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe


__all__ = ["ConnectionStatus", "ConnectionState", "ConnectionStateStore"]
