"""
Android provider driven over adb.

- UI tree: `uiautomator dump` XML, parsed into node handles.
- Gestures: `input swipe` (a tap is a zero-length swipe so its duration holds).
- Text: clear the focused field, then `input text`.
- Global actions: key events and `cmd statusbar`.
- Screen capture: `exec-out screencap -p` on a worker thread.
- Window changes: polls the focused window from `dumpsys window`.
"""

from __future__ import annotations

import io
import logging
import re
import shlex
import subprocess
import threading
import xml.etree.ElementTree as ET
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

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

ADB = "adb"
ADB_TEXT_KW = dict(text=True, encoding="utf-8", errors="ignore")
REMOTE_DUMP_PATH = "/sdcard/window_dump.xml"

KEYCODE_HOME = 3
KEYCODE_BACK = 4
KEYCODE_POWER = 26
KEYCODE_DEL = 67
KEYCODE_MOVE_END = 123
KEYCODE_SYSRQ = 120
KEYCODE_APP_SWITCH = 187
KEYCODE_SLEEP = 223

BOUNDS_PATTERN = re.compile(r"\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]")
EDITABLE_CLASS_HINTS = ("EditText", "AutoCompleteTextView", "SearchAutoComplete")
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"

Runner = Callable[[List[str], float, bool], subprocess.CompletedProcess]


def _flag(element: ET.Element, name: str, default: bool = False) -> bool:
    raw = element.get(name)
    if raw is None:
        return default
    return raw.strip().lower() == "true"


def parse_bounds(bounds_str: str) -> Dict[str, int]:
    """Parse "[left,top][right,bottom]" into a bounds dict."""
    match = BOUNDS_PATTERN.match(bounds_str or "")
    if match:
        return {
            "left": int(match.group(1)),
            "top": int(match.group(2)),
            "right": int(match.group(3)),
            "bottom": int(match.group(4)),
        }
    return {"left": 0, "top": 0, "right": 0, "bottom": 0}


class AdbNode(NodeHandle):
    """A node of a parsed uiautomator dump."""

    def __init__(self, element: ET.Element) -> None:
        self.element = element
        self._children = [child for child in element if child.tag == "node"]

    def attributes(self) -> Dict[str, Any]:
        el = self.element
        class_name = el.get("class", "")
        return {
            "className": class_name,
            "text": el.get("text", ""),
            "contentDescription": el.get("content-desc", ""),
            "resourceId": el.get("resource-id", ""),
            "bounds": parse_bounds(el.get("bounds", "")),
            "clickable": _flag(el, "clickable"),
            "enabled": _flag(el, "enabled", True),
            "focusable": _flag(el, "focusable"),
            "scrollable": _flag(el, "scrollable"),
            "editable": any(hint in class_name for hint in EDITABLE_CLASS_HINTS),
        }

    @property
    def focused(self) -> bool:
        return _flag(self.element, "focused")

    @property
    def text(self) -> str:
        return self.element.get("text", "")

    def child_count(self) -> int:
        return len(self._children)

    def child(self, index: int) -> Optional["AdbNode"]:
        if 0 <= index < len(self._children):
            return AdbNode(self._children[index])
        return None

    def iter_subtree(self) -> Iterable["AdbNode"]:
        stack: List[AdbNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            for index in reversed(range(node.child_count())):
                child = node.child(index)
                if child is not None:
                    stack.append(child)


def parse_hierarchy(xml_content: str) -> List[AdbNode]:
    """Window roots of a uiautomator dump, in document order; [] when unparsable."""
    xml_content = (xml_content or "").strip()
    if not xml_content:
        return []
    if not xml_content.startswith("<?xml") and not xml_content.startswith("<hierarchy"):
        start_idx = xml_content.find("<hierarchy")
        if start_idx == -1:
            logger.warning("No <hierarchy> tag in uiautomator output")
            return []
        xml_content = xml_content[start_idx:]
    end_idx = xml_content.rfind("</hierarchy>")
    if end_idx != -1:
        xml_content = xml_content[: end_idx + len("</hierarchy>")]
    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError as exc:
        logger.warning("Failed to parse uiautomator XML: %s", exc)
        return []
    if root.tag == "hierarchy":
        return [AdbNode(child) for child in root if child.tag == "node"]
    if root.tag == "node":
        return [AdbNode(root)]
    return []


def escape_input_text(text: str) -> str:
    """Quote text for `adb shell input text` (spaces become %s)."""
    return shlex.quote(text.replace(" ", "%s"))


def _default_runner(cmd: List[str], timeout: float, binary: bool) -> subprocess.CompletedProcess:
    if binary:
        return subprocess.run(cmd, capture_output=True, timeout=timeout)
    return subprocess.run(cmd, capture_output=True, timeout=timeout, **ADB_TEXT_KW)


class AdbProvider(UITreeProvider):
    def __init__(
        self,
        serial: Optional[str] = None,
        *,
        runner: Optional[Runner] = None,
        poll_interval: float = 2.0,
        command_timeout: float = 10.0,
    ) -> None:
        self.serial = serial
        self._runner = runner or _default_runner
        self.poll_interval = float(poll_interval)
        self.command_timeout = float(command_timeout)
        self._level: Optional[int] = None
        # uiautomator dump and the cat that reads it share one device file.
        self._dump_lock = threading.Lock()
        self._stop = threading.Event()
        self._watcher: Optional[threading.Thread] = None

    # adb plumbing -------------------------------------------------------

    def _base(self) -> List[str]:
        return [ADB, "-s", self.serial] if self.serial else [ADB]

    def _run(self, args: Sequence[str], *, binary: bool = False, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        cmd = self._base() + list(args)
        logger.debug("[ADB] %s", " ".join(cmd))
        try:
            return self._runner(cmd, timeout or self.command_timeout, binary)
        except subprocess.TimeoutExpired:
            logger.warning("[ADB] timed out: %s", " ".join(cmd))
            return subprocess.CompletedProcess(cmd, 124, b"" if binary else "", "timeout")
        except OSError as exc:
            logger.warning("[ADB] failed to run %s: %s", " ".join(cmd), exc)
            return subprocess.CompletedProcess(cmd, 127, b"" if binary else "", str(exc))

    def _shell(self, *args: str, **kwargs: Any) -> subprocess.CompletedProcess:
        return self._run(["shell", *args], **kwargs)

    def _ok(self, *args: str) -> bool:
        return self._shell(*args).returncode == 0

    def getprop(self, name: str) -> str:
        proc = self._shell("getprop", name)
        if proc.returncode != 0:
            return ""
        return (proc.stdout or "").strip()

    def ui_dump(self) -> str:
        with self._dump_lock:
            dumped = self._shell("uiautomator", "dump", REMOTE_DUMP_PATH)
            if dumped.returncode != 0:
                return ""
            proc = self._shell("cat", REMOTE_DUMP_PATH)
        return (proc.stdout or "").strip() if proc.returncode == 0 else ""

    def current_focus(self) -> str:
        proc = self._shell("dumpsys", "window")
        text = (proc.stdout or "") + (proc.stderr or "")
        for line in text.splitlines():
            if "mCurrentFocus" in line:
                return line.strip()
        return ""

    # Capability queries -------------------------------------------------

    def capability_level(self) -> int:
        if self._level is None:
            raw = self.getprop("ro.build.version.sdk")
            try:
                self._level = int(raw)
            except ValueError:
                # Not cached: the device may simply not be attached yet.
                return 0
        return self._level

    def device_descriptor(self) -> DeviceDescriptor:
        return DeviceDescriptor(
            manufacturer=self.getprop("ro.product.manufacturer"),
            model=self.getprop("ro.product.model"),
            os_version=self.getprop("ro.build.version.release"),
        )

    # Tree ---------------------------------------------------------------

    def get_root_node(self) -> Optional[AdbNode]:
        roots = parse_hierarchy(self.ui_dump())
        return roots[0] if roots else None

    def list_window_roots(self) -> Iterable[Optional[AdbNode]]:
        return parse_hierarchy(self.ui_dump())

    def find_focused_editable_node(self, root: NodeHandle) -> Optional[AdbNode]:
        if not isinstance(root, AdbNode):
            return None
        for node in root.iter_subtree():
            if node.focused:
                return node
        return None

    # Actions ------------------------------------------------------------

    def dispatch_gesture(self, path: GesturePath, duration_ms: int) -> bool:
        (x1, y1), (x2, y2) = path.start, path.end
        coords = [str(int(v)) for v in (x1, y1, x2, y2)]
        return self._ok("input", "swipe", *coords, str(int(duration_ms)))

    def set_node_text(self, node: NodeHandle, text: str) -> bool:
        existing = node.text if isinstance(node, AdbNode) else ""
        if existing:
            clear = [str(KEYCODE_MOVE_END)] + [str(KEYCODE_DEL)] * len(existing)
            if not self._ok("input", "keyevent", *clear):
                return False
        if not text:
            return True
        return self._ok("input", "text", escape_input_text(text))

    def perform_global_action(self, action: GlobalAction) -> bool:
        if action == GlobalAction.NOTIFICATIONS:
            return self._ok("cmd", "statusbar", "expand-notifications")
        if action == GlobalAction.QUICK_SETTINGS:
            return self._ok("cmd", "statusbar", "expand-settings")
        if action == GlobalAction.POWER_DIALOG:
            return self._ok("input", "keyevent", "--longpress", str(KEYCODE_POWER))
        keycodes = {
            GlobalAction.BACK: KEYCODE_BACK,
            GlobalAction.HOME: KEYCODE_HOME,
            GlobalAction.RECENT: KEYCODE_APP_SWITCH,
            GlobalAction.LOCK_SCREEN: KEYCODE_SLEEP,
            GlobalAction.TAKE_SCREENSHOT: KEYCODE_SYSRQ,
        }
        keycode = keycodes.get(action)
        if keycode is None:
            return False
        return self._ok("input", "keyevent", str(keycode))

    def capture_screenshot(self, on_success: ScreenshotSuccess, on_failure: ScreenshotFailure) -> None:
        def _capture() -> None:
            proc = self._run(["exec-out", "screencap", "-p"], binary=True)
            data = proc.stdout or b""
            if proc.returncode != 0 or not data.startswith(PNG_MAGIC):
                on_failure(SCREENSHOT_ERROR_INTERNAL)
                return
            try:
                with Image.open(io.BytesIO(data)) as img:
                    width, height = img.size
            except Exception as exc:  # noqa: BLE001
                logger.warning("screencap returned an unreadable image: %s", exc)
                on_failure(SCREENSHOT_ERROR_INTERNAL)
                return
            on_success(ScreenshotResult(width=width, height=height, buffer=data))

        threading.Thread(target=_capture, name="adb-screencap", daemon=True).start()

    # Window-change notifications ----------------------------------------

    def start(self, listener: WindowListener) -> None:
        if self._watcher is not None and self._watcher.is_alive():
            return
        self._stop.clear()

        def _watch() -> None:
            last_focus: Optional[str] = None
            while not self._stop.is_set():
                try:
                    focus = self.current_focus()
                    if focus != last_focus:
                        last_focus = focus
                        listener()
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Window watcher error: %s", exc)
                self._stop.wait(self.poll_interval)

        self._watcher = threading.Thread(target=_watch, name="adb-window-watcher", daemon=True)
        self._watcher.start()

    def stop(self) -> None:
        self._stop.set()
        watcher, self._watcher = self._watcher, None
        if watcher is not None and watcher is not threading.current_thread():
            watcher.join(timeout=self.poll_interval + self.command_timeout)


__all__ = [
    "AdbNode",
    "AdbProvider",
    "parse_bounds",
    "parse_hierarchy",
    "escape_input_text",
]
