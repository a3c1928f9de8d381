"""
Capability boundary between the automation core and the host platform.

The core only needs a handful of primitives from the platform's accessibility
surface: the current UI root, gesture dispatch, the focused input node, text
entry, named global actions, asynchronous screen capture, and a stream of
window-change notifications. Concrete providers live next to this module.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple


class GlobalAction(str, Enum):
    BACK = "back"
    HOME = "home"
    RECENT = "recent"
    NOTIFICATIONS = "notifications"
    QUICK_SETTINGS = "quickSettings"
    POWER_DIALOG = "powerDialog"
    LOCK_SCREEN = "lockScreen"
    TAKE_SCREENSHOT = "takeScreenshot"


@dataclass(frozen=True)
class Requirement:
    """Minimum platform capability level for a feature, with a readable label."""

    level: int
    label: str

    def message(self) -> str:
        return f"Requires {self.label}+"


class Capability:
    """Capability levels follow Android API levels."""

    GESTURE = Requirement(24, "Android 7.0")
    WINDOW_LIST = Requirement(22, "Android 5.1")
    SCREENSHOT = Requirement(30, "Android 11")

    GLOBAL_ACTIONS: Dict[GlobalAction, Requirement] = {
        GlobalAction.BACK: Requirement(16, "Android 4.1"),
        GlobalAction.HOME: Requirement(16, "Android 4.1"),
        GlobalAction.RECENT: Requirement(16, "Android 4.1"),
        GlobalAction.NOTIFICATIONS: Requirement(16, "Android 4.1"),
        GlobalAction.QUICK_SETTINGS: Requirement(17, "Android 4.2"),
        GlobalAction.POWER_DIALOG: Requirement(21, "Android 5.0"),
        GlobalAction.LOCK_SCREEN: Requirement(28, "Android 9.0"),
        GlobalAction.TAKE_SCREENSHOT: Requirement(30, "Android 11"),
    }


@dataclass(frozen=True)
class GesturePath:
    """Ordered stroke points; one point is a tap, two points a straight swipe."""

    points: Tuple[Tuple[float, float], ...]

    @classmethod
    def point(cls, x: float, y: float) -> "GesturePath":
        return cls(points=((float(x), float(y)),))

    @classmethod
    def line(cls, start: Tuple[float, float], end: Tuple[float, float]) -> "GesturePath":
        return cls(points=((float(start[0]), float(start[1])), (float(end[0]), float(end[1]))))

    @property
    def start(self) -> Tuple[float, float]:
        return self.points[0]

    @property
    def end(self) -> Tuple[float, float]:
        return self.points[-1]

    @property
    def is_tap(self) -> bool:
        return len(self.points) == 1


# Failure codes passed to the screenshot failure callback.
SCREENSHOT_ERROR_INTERNAL = 1
SCREENSHOT_ERROR_NO_ACCESS = 2
SCREENSHOT_ERROR_INTERVAL_TOO_SHORT = 3
SCREENSHOT_ERROR_INVALID_DISPLAY = 4


@dataclass
class ScreenshotResult:
    """A captured frame; the pixel buffer is released via close()."""

    width: Optional[int] = None
    height: Optional[int] = None
    buffer: Any = None
    _release: Optional[Callable[[], None]] = field(default=None, repr=False)

    def close(self) -> None:
        release, self._release = self._release, None
        self.buffer = None
        if release is not None:
            release()


@dataclass(frozen=True)
class DeviceDescriptor:
    manufacturer: str
    model: str
    os_version: str


class NodeHandle(ABC):
    """A live node of the platform UI tree."""

    @abstractmethod
    def attributes(self) -> Dict[str, Any]:
        """
        Return the node's properties using the wire names:
        className, text, contentDescription, resourceId, bounds
        ({left, top, right, bottom}), clickable, enabled, focusable,
        scrollable, editable.
        """

    @abstractmethod
    def child_count(self) -> int:
        ...

    @abstractmethod
    def child(self, index: int) -> Optional["NodeHandle"]:
        """Child at index, or None when the platform cannot resolve it."""

    @property
    def editable(self) -> bool:
        return bool(self.attributes().get("editable"))


WindowListener = Callable[[], None]
ScreenshotSuccess = Callable[[ScreenshotResult], None]
ScreenshotFailure = Callable[[int], None]


class UITreeProvider(ABC):
    """Platform accessibility surface consumed by the automation engine."""

    @abstractmethod
    def capability_level(self) -> int:
        ...

    @abstractmethod
    def device_descriptor(self) -> DeviceDescriptor:
        ...

    @abstractmethod
    def get_root_node(self) -> Optional[NodeHandle]:
        """Root of the active window, or None during window transitions."""

    @abstractmethod
    def list_window_roots(self) -> Iterable[Optional[NodeHandle]]:
        """Roots of every known window, in platform order."""

    @abstractmethod
    def dispatch_gesture(self, path: GesturePath, duration_ms: int) -> bool:
        ...

    @abstractmethod
    def find_focused_editable_node(self, root: NodeHandle) -> Optional[NodeHandle]:
        """Input-focused node under root (editable or not), or None."""

    @abstractmethod
    def set_node_text(self, node: NodeHandle, text: str) -> bool:
        ...

    @abstractmethod
    def perform_global_action(self, action: GlobalAction) -> bool:
        ...

    @abstractmethod
    def capture_screenshot(self, on_success: ScreenshotSuccess, on_failure: ScreenshotFailure) -> None:
        """Start an asynchronous capture; exactly one callback fires."""

    def start(self, listener: WindowListener) -> None:
        """Begin delivering window-state/content change notifications."""

    def stop(self) -> None:
        """Stop notifications and release platform resources."""


def flatten_children(node: NodeHandle) -> List[NodeHandle]:
    """Resolvable children of node, in index order."""
    children: List[NodeHandle] = []
    for index in range(node.child_count()):
        child = node.child(index)
        if child is not None:
            children.append(child)
    return children


__all__ = [
    "GlobalAction",
    "Requirement",
    "Capability",
    "GesturePath",
    "SCREENSHOT_ERROR_INTERNAL",
    "SCREENSHOT_ERROR_NO_ACCESS",
    "SCREENSHOT_ERROR_INTERVAL_TOO_SHORT",
    "SCREENSHOT_ERROR_INVALID_DISPLAY",
    "ScreenshotResult",
    "DeviceDescriptor",
    "NodeHandle",
    "WindowListener",
    "UITreeProvider",
    "flatten_children",
]
