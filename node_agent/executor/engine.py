"""
Automation engine: executes one command against the platform provider.

Every operation returns a CommandResult; platform capability shortfalls and
missing UI state are reported as failures, never raised.
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Any, Dict, List, Optional, Tuple

from node_agent.contracts.envelopes import CommandResult
from node_agent.contracts.ui_node import Bounds, UINode
from node_agent.executor.commands_schema import DEFAULT_SWIPE_DURATION_MS
from node_agent.executor.runtime_context import AgentContext
from node_agent.providers.base import (
    Capability,
    GesturePath,
    GlobalAction,
    NodeHandle,
    Requirement,
    ScreenshotResult,
    flatten_children,
)

logger = logging.getLogger(__name__)

TAP_DURATION_MS = 100
ROOT_RETRY_ATTEMPTS = 3
ROOT_RETRY_DELAY_S = 0.1
SCREENSHOT_TIMEOUT_S = 5.0

_STRING_ATTRS = ("className", "text", "contentDescription", "resourceId")
_FLAG_ATTRS = ("clickable", "enabled", "focusable", "scrollable", "editable")


def _coerce_bounds(raw: Any) -> Bounds:
    if isinstance(raw, Bounds):
        return raw
    if isinstance(raw, dict):
        values = {}
        for key in ("left", "top", "right", "bottom"):
            try:
                values[key] = int(raw.get(key) or 0)
            except (TypeError, ValueError):
                values[key] = 0
        return Bounds(**values)
    return Bounds()


def to_ui_node(node: NodeHandle, depth: int) -> UINode:
    """Snapshot one live node into a UINode record."""
    attrs = node.attributes() or {}
    strings = {key: "" if attrs.get(key) is None else str(attrs.get(key)) for key in _STRING_ATTRS}
    flags = {key: bool(attrs.get(key, key == "enabled")) for key in _FLAG_ATTRS}
    return UINode.model_validate(
        {**strings, **flags, "bounds": _coerce_bounds(attrs.get("bounds")), "depth": depth}
    )


def serialize_tree(root: NodeHandle) -> List[UINode]:
    """
    Depth-first pre-order flattening of the tree under root.

    Parents precede all of their descendants, siblings keep index order, and
    each record carries its depth (root = 0). Children the platform cannot
    resolve are skipped. Iterative so deep trees do not hit the recursion limit.
    """
    records: List[UINode] = []
    stack: List[Tuple[NodeHandle, int]] = [(root, 0)]
    while stack:
        node, depth = stack.pop()
        records.append(to_ui_node(node, depth))
        children = flatten_children(node)
        for child in reversed(children):
            stack.append((child, depth + 1))
    return records


class AutomationEngine:
    def __init__(
        self,
        context: AgentContext,
        *,
        retry_attempts: int = ROOT_RETRY_ATTEMPTS,
        retry_delay: float = ROOT_RETRY_DELAY_S,
        screenshot_timeout: float = SCREENSHOT_TIMEOUT_S,
    ) -> None:
        self.context = context
        self.retry_attempts = int(retry_attempts)
        self.retry_delay = float(retry_delay)
        self.screenshot_timeout = float(screenshot_timeout)

    @property
    def provider(self):
        return self.context.provider

    def _unmet(self, requirement: Requirement) -> Optional[CommandResult]:
        if self.provider.capability_level() < requirement.level:
            return CommandResult.fail(requirement.message())
        return None

    # Root resolution ----------------------------------------------------

    def resolve_root(self) -> Optional[NodeHandle]:
        """
        Find a usable UI root.

        1) live active-window root (also refreshes the cache)
        2) cached root younger than the TTL
        3) first root among all known windows
        4) retry the live root a bounded number of times; the wait between
           attempts is cut short when the agent shuts down
        """
        root = self.provider.get_root_node()
        if root is not None:
            self.context.node_cache.update(root)
            return root

        cached = self.context.node_cache.get()
        if cached is not None:
            logger.debug("Using cached root (age=%.0fms)", self.context.node_cache.age_ms() or 0.0)
            return cached

        if self.provider.capability_level() >= Capability.WINDOW_LIST.level:
            for window_root in self.provider.list_window_roots():
                if window_root is not None:
                    return window_root

        for attempt in range(self.retry_attempts):
            if self.context.shutdown_event.wait(self.retry_delay):
                logger.info("Root resolution cancelled after %s attempts", attempt)
                return None
            root = self.provider.get_root_node()
            if root is not None:
                self.context.node_cache.update(root)
                return root

        logger.warning("No active window after %s retries", self.retry_attempts)
        return None

    # Gestures -----------------------------------------------------------

    def tap(self, x: int, y: int) -> CommandResult:
        unmet = self._unmet(Capability.GESTURE)
        if unmet:
            return unmet
        performed = self.provider.dispatch_gesture(GesturePath.point(x, y), TAP_DURATION_MS)
        return CommandResult.from_flag(performed, f"tap at ({x}, {y})")

    def swipe(
        self,
        start_x: int,
        start_y: int,
        end_x: int,
        end_y: int,
        duration: int = DEFAULT_SWIPE_DURATION_MS,
    ) -> CommandResult:
        unmet = self._unmet(Capability.GESTURE)
        if unmet:
            return unmet
        path = GesturePath.line((start_x, start_y), (end_x, end_y))
        performed = self.provider.dispatch_gesture(path, int(duration))
        return CommandResult.from_flag(performed, "swipe")

    # Text input ---------------------------------------------------------

    def type_text(self, text: str) -> CommandResult:
        root = self.resolve_root()
        if root is None:
            return CommandResult.fail("No active window")
        focused = self.provider.find_focused_editable_node(root)
        if focused is None or not focused.editable:
            return CommandResult.fail("No focused input field")
        performed = self.provider.set_node_text(focused, text)
        return CommandResult.from_flag(performed, f"type: {text}")

    # Screen capture -----------------------------------------------------

    def screenshot(self) -> CommandResult:
        unmet = self._unmet(Capability.SCREENSHOT)
        if unmet:
            return unmet

        outcome: "concurrent.futures.Future[Dict[str, Any]]" = concurrent.futures.Future()

        def _settle(value: Dict[str, Any]) -> None:
            try:
                outcome.set_result(value)
            except concurrent.futures.InvalidStateError:
                logger.debug("Ignoring duplicate screenshot callback")

        def _on_success(result: ScreenshotResult) -> None:
            try:
                meta = {"width": result.width, "height": result.height}
            finally:
                result.close()
            _settle({"ok": True, "meta": meta})

        def _on_failure(error_code: int) -> None:
            _settle({"ok": False, "error_code": error_code})

        try:
            self.provider.capture_screenshot(_on_success, _on_failure)
            settled = outcome.result(timeout=self.screenshot_timeout)
        except concurrent.futures.TimeoutError:
            return CommandResult.fail(f"Screenshot timed out after {self.screenshot_timeout:g}s")
        except Exception as exc:  # noqa: BLE001
            return CommandResult.fail(f"Screenshot exception: {exc}")

        if not settled.get("ok"):
            code = settled.get("error_code")
            return CommandResult(success=False, message=f"Error code: {code}", data={"errorCode": code})
        meta = {k: v for k, v in (settled.get("meta") or {}).items() if v is not None}
        return CommandResult.ok("Screenshot captured", meta or None)

    # Tree dump ----------------------------------------------------------

    def dump_tree(self) -> CommandResult:
        root = self.resolve_root()
        if root is None:
            return CommandResult.fail("No active window")
        nodes = serialize_tree(root)
        return CommandResult.ok("UI dumped", {"nodes": [node.to_wire() for node in nodes]})

    # Global actions -----------------------------------------------------

    def global_action(self, action: GlobalAction) -> CommandResult:
        unmet = self._unmet(Capability.GLOBAL_ACTIONS[action])
        if unmet:
            return unmet
        performed = self.provider.perform_global_action(action)
        return CommandResult.from_flag(performed, action.value)


__all__ = [
    "TAP_DURATION_MS",
    "ROOT_RETRY_ATTEMPTS",
    "ROOT_RETRY_DELAY_S",
    "SCREENSHOT_TIMEOUT_S",
    "to_ui_node",
    "serialize_tree",
    "AutomationEngine",
]
