from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Iterable

# Structured event logger configured in logging_setup.
event_logger = logging.getLogger("node_agent.events")

_REDACTED_KEYS = {"image_base64", "screenshot_base64", "buffer"}


def generate_request_id() -> str:
    """Return a short, collision-resistant request id for locally issued commands."""
    return uuid.uuid4().hex


def _truncate(value: str, max_len: int = 2000) -> str:
    if len(value) <= max_len:
        return value
    return f"{value[:max_len]}...<truncated {len(value) - max_len} chars>"


def _sanitize_obj(obj: Any, max_len: int = 2000, keep_full: Iterable[str] | None = None) -> Any:
    keep_full = set(keep_full or [])
    if isinstance(obj, dict):
        sanitized: Dict[str, Any] = {}
        for key, val in obj.items():
            if key in _REDACTED_KEYS:
                sanitized[key] = "<redacted:image>"
                continue
            if key == "nodes" and isinstance(val, list):
                sanitized[key] = f"<{len(val)} nodes>"
                continue
            if key in keep_full:
                sanitized[key] = val
                continue
            sanitized[key] = _sanitize_obj(val, max_len=max_len, keep_full=keep_full)
        return sanitized
    if isinstance(obj, list):
        return [_sanitize_obj(item, max_len=max_len, keep_full=keep_full) for item in obj[:50]]
    if isinstance(obj, str):
        return _truncate(obj, max_len=max_len)
    return obj


def sanitize_payload(payload: Dict[str, Any], keep_full: Iterable[str] | None = None) -> Dict[str, Any]:
    """Return a sanitized shallow copy safe for logging."""
    try:
        return dict(_sanitize_obj(payload, keep_full=keep_full or []))
    except Exception:
        return {"error": "failed_to_sanitize"}


def summarize_response(response: Dict[str, Any] | None) -> Dict[str, Any]:
    if not isinstance(response, dict):
        return {"present": False}
    data = response.get("data")
    return {
        "present": True,
        "success": response.get("success"),
        "message": _truncate(str(response.get("message") or ""), 500),
        "data_keys": sorted(data.keys()) if isinstance(data, dict) else None,
    }


def log_event(event: str, request_id: str, payload: Dict[str, Any] | None = None) -> None:
    """Log a structured event as JSON; never raise."""
    body = {"event": event, "request_id": request_id}
    if payload:
        body.update(sanitize_payload(payload))
    try:
        event_logger.info(json.dumps(body, ensure_ascii=True, default=str))
    except Exception:
        event_logger.info(f"{event} {request_id} {body}")
