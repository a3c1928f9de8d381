"""
Windows desktop provider built on UI Automation.

Tree and focus come from uiautomation, gestures and global-action hotkeys go
through pyautogui, and screen capture uses mss. Every call that touches UIA
runs inside a per-thread COM initializer.
"""

from __future__ import annotations

import ctypes
import logging
import platform
import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

import mss
import pyautogui
import uiautomation as auto
from PIL import Image

from node_agent.providers.base import (
    SCREENSHOT_ERROR_INTERNAL,
    DeviceDescriptor,
    GesturePath,
    GlobalAction,
    NodeHandle,
    ScreenshotFailure,
    ScreenshotResult,
    ScreenshotSuccess,
    UITreeProvider,
    WindowListener,
)

logger = logging.getLogger(__name__)

# Desktop equivalents of the mobile global actions.
GLOBAL_ACTION_HOTKEYS: Dict[GlobalAction, Tuple[str, ...]] = {
    GlobalAction.BACK: ("alt", "left"),
    GlobalAction.HOME: ("win", "d"),
    GlobalAction.RECENT: ("win", "tab"),
    GlobalAction.NOTIFICATIONS: ("win", "n"),
    GlobalAction.QUICK_SETTINGS: ("win", "a"),
    GlobalAction.POWER_DIALOG: ("win", "x"),
    GlobalAction.TAKE_SCREENSHOT: ("win", "printscreen"),
}

_SCROLLABLE_TYPES = {"listcontrol", "treecontrol", "datagridcontrol", "documentcontrol", "panecontrol"}
_CLICKABLE_TYPES = {
    "buttoncontrol",
    "hyperlinkcontrol",
    "menuitemcontrol",
    "tabitemcontrol",
    "listitemcontrol",
    "treeitemcontrol",
    "checkboxcontrol",
    "radiobuttoncontrol",
    "comboboxcontrol",
    "splitbuttoncontrol",
}


def _get_pattern(element: Any, pattern_id_attr: str, attr_name: str) -> Any:
    """Best-effort pattern fetch using pattern id or direct attributes."""
    pattern = None
    pattern_id = getattr(auto, pattern_id_attr, None)
    getter = getattr(element, "GetCurrentPattern", None)
    if callable(getter) and pattern_id is not None:
        try:
            pattern = getter(pattern_id)
        except Exception:
            pattern = None
    if pattern is None:
        alt_getter = getattr(element, f"Get{attr_name}", None)
        if callable(alt_getter):
            try:
                pattern = alt_getter()
            except Exception:
                pattern = None
    return pattern


def _writable_value_pattern(element: Any) -> Any:
    pattern = _get_pattern(element, "UIA_ValuePatternId", "ValuePattern")
    if not pattern or not hasattr(pattern, "SetValue"):
        return None
    try:
        if bool(getattr(pattern, "IsReadOnly", False)):
            return None
    except Exception:
        return None
    return pattern


def _control_type_name(control: Any) -> str:
    return str(getattr(control, "ControlTypeName", "") or "").strip().lower()


class UIANode(NodeHandle):
    def __init__(self, control: Any) -> None:
        self.control = control
        self._children: Optional[List[Any]] = None

    def _load_children(self) -> List[Any]:
        if self._children is None:
            with auto.UIAutomationInitializerInThread(debug=False):
                try:
                    self._children = list(self.control.GetChildren())
                except Exception:
                    self._children = []
        return self._children

    def attributes(self) -> Dict[str, Any]:
        ctrl = self.control
        type_name = _control_type_name(ctrl)
        with auto.UIAutomationInitializerInThread(debug=False):
            rect = getattr(ctrl, "BoundingRectangle", None)
            bounds = {"left": 0, "top": 0, "right": 0, "bottom": 0}
            if rect:
                bounds = {"left": rect.left, "top": rect.top, "right": rect.right, "bottom": rect.bottom}
            editable = type_name == "editcontrol" or (
                type_name in {"documentcontrol", "comboboxcontrol"} and _writable_value_pattern(ctrl) is not None
            )
            return {
                "className": getattr(ctrl, "ClassName", None) or getattr(ctrl, "ControlTypeName", ""),
                "text": getattr(ctrl, "Name", ""),
                "contentDescription": getattr(ctrl, "HelpText", "") or getattr(ctrl, "LocalizedControlType", ""),
                "resourceId": getattr(ctrl, "AutomationId", ""),
                "bounds": bounds,
                "clickable": type_name in _CLICKABLE_TYPES,
                "enabled": bool(getattr(ctrl, "IsEnabled", True)),
                "focusable": bool(getattr(ctrl, "IsKeyboardFocusable", False)),
                "scrollable": type_name in _SCROLLABLE_TYPES
                and _get_pattern(ctrl, "UIA_ScrollPatternId", "ScrollPattern") is not None,
                "editable": editable,
            }

    def child_count(self) -> int:
        return len(self._load_children())

    def child(self, index: int) -> Optional["UIANode"]:
        children = self._load_children()
        if 0 <= index < len(children):
            return UIANode(children[index])
        return None


def _validate_coords(x: float, y: float) -> bool:
    width, height = pyautogui.size()
    return 0 <= x < width and 0 <= y < height


class UIAutomationProvider(UITreeProvider):
    def __init__(self, capability_level: int, *, poll_interval: float = 0.5) -> None:
        self._level = int(capability_level)
        self.poll_interval = float(poll_interval)
        self._stop = threading.Event()
        self._watcher: Optional[threading.Thread] = None

    def capability_level(self) -> int:
        return self._level

    def device_descriptor(self) -> DeviceDescriptor:
        return DeviceDescriptor(
            manufacturer=platform.system(),
            model=platform.node(),
            os_version=platform.version(),
        )

    # Tree ---------------------------------------------------------------

    def get_root_node(self) -> Optional[UIANode]:
        with auto.UIAutomationInitializerInThread(debug=False):
            try:
                foreground = auto.GetForegroundControl()
                if not foreground:
                    return None
                top = foreground.GetTopLevelControl()
            except Exception as exc:  # noqa: BLE001
                logger.debug("Foreground root unavailable: %s", exc)
                return None
            return UIANode(top) if top else None

    def list_window_roots(self) -> Iterable[Optional[UIANode]]:
        with auto.UIAutomationInitializerInThread(debug=False):
            try:
                windows = list(auto.GetRootControl().GetChildren())
            except Exception:
                return []
            return [UIANode(win) for win in windows if not getattr(win, "IsOffscreen", False)]

    def find_focused_editable_node(self, root: NodeHandle) -> Optional[UIANode]:
        if not isinstance(root, UIANode):
            return None
        with auto.UIAutomationInitializerInThread(debug=False):
            try:
                focused = auto.GetFocusedControl()
                if not focused:
                    return None
                top = focused.GetTopLevelControl()
            except Exception:
                return None
            # Focus elsewhere on the desktop does not count for this window.
            if not top or not auto.ControlsAreSame(top, root.control):
                return None
            return UIANode(focused)

    # Actions ------------------------------------------------------------

    def dispatch_gesture(self, path: GesturePath, duration_ms: int) -> bool:
        (sx, sy), (ex, ey) = path.start, path.end
        if not _validate_coords(sx, sy) or not _validate_coords(ex, ey):
            logger.warning("Gesture outside screen bounds: %s", path.points)
            return False
        seconds = max(int(duration_ms), 0) / 1000.0
        try:
            pyautogui.moveTo(sx, sy)
            if path.is_tap:
                pyautogui.mouseDown()
                time.sleep(seconds)
                pyautogui.mouseUp()
            else:
                pyautogui.dragTo(ex, ey, duration=seconds)
            return True
        except Exception as exc:  # noqa: BLE001
            logger.warning("Gesture failed: %s", exc)
            return False

    def set_node_text(self, node: NodeHandle, text: str) -> bool:
        control = node.control if isinstance(node, UIANode) else None
        if control is None:
            return False
        with auto.UIAutomationInitializerInThread(debug=False):
            pattern = _writable_value_pattern(control)
            if pattern is not None:
                try:
                    pattern.SetValue(str(text))
                    return True
                except Exception as exc:  # noqa: BLE001
                    logger.info("ValuePattern.SetValue failed, typing instead: %s", exc)
            try:
                control.SetFocus()
                pyautogui.hotkey("ctrl", "a")
                pyautogui.press("backspace")
                if text:
                    pyautogui.typewrite(text, interval=0.02)
                return True
            except Exception as exc:  # noqa: BLE001
                logger.warning("Keyboard text entry failed: %s", exc)
                return False

    def perform_global_action(self, action: GlobalAction) -> bool:
        if action == GlobalAction.LOCK_SCREEN:
            # Win+L cannot be synthesized; the session API does the same thing.
            try:
                return bool(ctypes.windll.user32.LockWorkStation())
            except Exception as exc:  # noqa: BLE001
                logger.warning("LockWorkStation failed: %s", exc)
                return False
        keys = GLOBAL_ACTION_HOTKEYS.get(action)
        if not keys:
            return False
        try:
            pyautogui.hotkey(*keys)
            return True
        except Exception as exc:  # noqa: BLE001
            logger.warning("Hotkey %s failed: %s", "+".join(keys), exc)
            return False

    def capture_screenshot(self, on_success: ScreenshotSuccess, on_failure: ScreenshotFailure) -> None:
        def _capture() -> None:
            try:
                with mss.mss() as sct:
                    raw = sct.grab(sct.monitors[0])
                    img = Image.frombytes("RGB", raw.size, raw.bgra, "raw", "BGRX")
            except Exception as exc:  # noqa: BLE001
                logger.warning("Screen capture failed: %s", exc)
                on_failure(SCREENSHOT_ERROR_INTERNAL)
                return
            on_success(ScreenshotResult(width=img.width, height=img.height, buffer=img, _release=img.close))

        threading.Thread(target=_capture, name="uia-screencap", daemon=True).start()

    # Window-change notifications ----------------------------------------

    def start(self, listener: WindowListener) -> None:
        if self._watcher is not None and self._watcher.is_alive():
            return
        self._stop.clear()

        def _watch() -> None:
            last_hwnd: Optional[int] = None
            while not self._stop.is_set():
                try:
                    hwnd = int(ctypes.windll.user32.GetForegroundWindow() or 0)
                    if hwnd != last_hwnd:
                        last_hwnd = hwnd
                        listener()
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Foreground watcher error: %s", exc)
                self._stop.wait(self.poll_interval)

        self._watcher = threading.Thread(target=_watch, name="uia-window-watcher", daemon=True)
        self._watcher.start()

    def stop(self) -> None:
        self._stop.set()
        watcher, self._watcher = self._watcher, None
        if watcher is not None and watcher is not threading.current_thread():
            watcher.join(timeout=self.poll_interval * 4)


__all__ = ["GLOBAL_ACTION_HOTKEYS", "UIANode", "UIAutomationProvider"]
