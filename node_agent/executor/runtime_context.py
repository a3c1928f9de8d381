"""
Process-wide runtime context shared by the connection, dispatcher and engine.

Constructed once at process start and passed by reference; the provider's
lifecycle callbacks flip the capability state and refresh the node cache.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Optional

from node_agent.config import AgentSettings, load_settings
from node_agent.contracts.envelopes import DeviceInfo
from node_agent.executor.node_cache import NodeCache
from node_agent.providers.base import NodeHandle, UITreeProvider

logger = logging.getLogger(__name__)


class CapabilityState(str, Enum):
    UNAVAILABLE = "unavailable"
    READY = "ready"


class AgentContext:
    def __init__(
        self,
        provider: UITreeProvider,
        settings: Optional[AgentSettings] = None,
        node_cache: Optional[NodeCache[NodeHandle]] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.provider = provider
        self.node_cache: NodeCache[NodeHandle] = node_cache or NodeCache()
        self.shutdown_event = threading.Event()
        self._capability_state = CapabilityState.UNAVAILABLE
        self._state_lock = threading.Lock()

    @property
    def capability_state(self) -> CapabilityState:
        with self._state_lock:
            return self._capability_state

    def is_ready(self) -> bool:
        return self.capability_state == CapabilityState.READY

    def _set_capability_state(self, state: CapabilityState) -> None:
        with self._state_lock:
            changed = self._capability_state != state
            self._capability_state = state
        if changed:
            logger.info("Capability state: %s", state.value)

    # Provider lifecycle -------------------------------------------------

    def on_provider_connected(self) -> None:
        self._set_capability_state(CapabilityState.READY)

    def on_provider_disconnected(self) -> None:
        self._set_capability_state(CapabilityState.UNAVAILABLE)

    def on_window_changed(self) -> None:
        """Replace the cached root with the provider's current active root."""
        try:
            root = self.provider.get_root_node()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Root refresh after window change failed: %s", exc)
            return
        if root is not None:
            self.node_cache.update(root)

    def start_provider(self) -> None:
        self.shutdown_event.clear()
        self.provider.start(self.on_window_changed)
        self.on_provider_connected()

    def stop_provider(self) -> None:
        self.shutdown_event.set()
        self.on_provider_disconnected()
        try:
            self.provider.stop()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Provider stop failed: %s", exc)

    def device_info(self) -> DeviceInfo:
        descriptor = self.provider.device_descriptor()
        return DeviceInfo(
            manufacturer=descriptor.manufacturer,
            model=descriptor.model,
            os_version=descriptor.os_version,
            api_level=self.provider.capability_level(),
            app_id=self.settings.app_id,
        )


__all__ = ["CapabilityState", "AgentContext"]
