# -*- coding: utf-8 -*-
from __future__ import annotations
import logging, logging.handlers
import os
from pathlib import Path
from typing import Optional

LOG_NAME = "fish_report.log"
WIRED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")


def _ours(h: logging.Handler) -> bool:
    return isinstance(h, logging.handlers.RotatingFileHandler) and getattr(h, "baseFilename", "").endswith(LOG_NAME)


def _build_handler(log_path: Path, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=5_000_000, backupCount=3, encoding="utf-8", delay=True
    )
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler.setLevel(level)
    return handler


def setup_logging(settings) -> Path:
    """
    Rotating file log at FISH_DATA_ROOT/logs/fish_report.log.

    Safe to call once per app instance: a second call for the same data root
    only updates the level, a call for another root moves the handler there.
    """
    log_dir = Path(settings.FISH_DATA_ROOT).expanduser() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_NAME
    target = os.path.abspath(log_path)
    level = logging.getLevelName(str(getattr(settings, "LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler: Optional[logging.Handler] = None
    # uvicorn loggers don't propagate to root
    for lg in [logging.getLogger()] + [logging.getLogger(n) for n in WIRED_LOGGERS]:
        lg.setLevel(level)
        current = None
        for h in [h for h in lg.handlers if _ours(h)]:
            if h.baseFilename == target:
                current = h
                continue
            lg.removeHandler(h)
            h.close()
        if current is not None:
            current.setLevel(level)
            continue
        if handler is None:
            handler = _build_handler(log_path, level)
        lg.addHandler(handler)

    return log_path
