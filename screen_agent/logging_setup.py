from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import List, Optional

ROOT = Path(__file__).resolve().parent.parent
LOG_DIR = Path(os.getenv("SCREEN_AGENT_LOG_DIR") or (ROOT / "logs"))
AGENT_LOG = "screen_agent.log"
AGENT_EVENTS_LOG = "screen_agent_events.log"
EVENTS_LOGGER = "screen_agent.events"

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def _safe_mkdir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
        return True
    except OSError:
        return False


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
    """Configure rotating file logging plus the structured events logger."""
    target = Path(log_dir) if log_dir else LOG_DIR
    handlers: List[logging.Handler] = []
    file_logging = _safe_mkdir(target)
    if file_logging:
        handlers.append(_rotating_handler(target / AGENT_LOG))

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    handlers.append(stream_handler)

    logging.basicConfig(level=level, handlers=handlers)

    if not file_logging:
        # Events keep propagating to the root logger (stderr only).
        return

    # Dedicated structured event logger (JSON lines).
    event_logger = logging.getLogger(EVENTS_LOGGER)
    event_logger.setLevel(logging.INFO)
    event_logger.addHandler(_rotating_handler(target / AGENT_EVENTS_LOG))
    event_logger.propagate = False

    # Align uvicorn loggers to use the same handlers/format.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logger = logging.getLogger(name)
        logger.setLevel(logging.INFO)
        for h in handlers:
            logger.addHandler(h)
        logger.propagate = False


__all__ = ["setup_logging", "LOG_DIR", "EVENTS_LOGGER"]
