from __future__ import annotations

from node_agent.config import AgentSettings
from node_agent.providers.base import UITreeProvider


def create_provider(settings: AgentSettings) -> UITreeProvider:
    """Build the provider named in settings; platform libraries load lazily."""
    if settings.provider == "uia":
        from node_agent.providers.uia import UIAutomationProvider

        return UIAutomationProvider(settings.capability_level)
    if settings.provider == "adb":
        from node_agent.providers.adb import AdbProvider

        return AdbProvider(settings.adb_serial)
    raise ValueError(f"Unknown provider: {settings.provider}")


__all__ = ["create_provider"]
