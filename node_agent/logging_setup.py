from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import List, Optional

from node_agent.config import ROOT

LOG_DIR = ROOT / "logs"
AGENT_LOG_NAME = "agent.log"
AGENT_EVENTS_LOG_NAME = "agent_events.log"
EVENT_LOGGER_NAME = "node_agent.events"

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def _safe_mkdir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
        return True
    except Exception:
        # Logging falls back to the console handler.
        return False


def _flag_from_env(var: str, default: bool) -> bool:
    value = os.getenv(var)
    if value is None:
        return default
    return str(value).strip().lower() not in {"0", "false", "off", "no", "none"}


def _rotating_handler(path: Path) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=1_000_000,
        backupCount=2,
        encoding="utf-8",
        delay=True,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    return handler


def setup_logging(log_dir: Optional[Path] = None, level: int = logging.INFO) -> None:
    """Configure rotating file logging (plus optional console echo) for the agent."""
    target_dir = Path(log_dir) if log_dir else LOG_DIR
    handlers: List[logging.Handler] = []
    if _safe_mkdir(target_dir):
        try:
            handlers.append(_rotating_handler(target_dir / AGENT_LOG_NAME))
        except Exception:
            pass

    if _flag_from_env("NODE_LOG_CONSOLE", True) or not handlers:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
        handlers.append(console)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # Structured event logger (JSON lines), kept out of the main log.
    try:
        event_logger = logging.getLogger(EVENT_LOGGER_NAME)
        event_logger.setLevel(logging.INFO)
        event_logger.propagate = False
        if not event_logger.handlers:
            event_logger.addHandler(_rotating_handler(target_dir / AGENT_EVENTS_LOG_NAME))
    except Exception:
        pass

    # websocket-client is chatty at DEBUG; keep it at the agent level.
    logging.getLogger("websocket").setLevel(max(level, logging.INFO))

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(name)
        logger.setLevel(logging.INFO)
        for h in handlers:
            logger.addHandler(h)
        logger.propagate = False
