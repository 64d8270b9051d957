"""Leveled stderr logging.

Lines look like:
    [2026-01-01 12:00:00] [I] [runner] Studio is online {"port": 50312}
"""

import json
import sys
from datetime import datetime, timezone

LEVELS = {"debug": 0, "info": 1, "warn": 2, "error": 3}

_level: str = "info"


def set_level(level: str) -> None:
    """Set the global minimum level (debug, info, warn, error)."""
    global _level
    if level not in LEVELS:
        raise ValueError(f"Unknown log level: {level}")
    _level = level


class Logger:
    """Component logger writing to stderr."""

    def __init__(self, component: str):
        self.component = component

    def _should_log(self, level: str) -> bool:
        return LEVELS.get(level, 1) >= LEVELS.get(_level, 1)

    def _log(self, level: str, msg: str, **extra):
        if not self._should_log(level):
            return
        ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        parts = [f"[{ts}]", f"[{level[0].upper()}]", f"[{self.component}]", msg]
        if extra:
            parts.append(json.dumps(extra, default=str))
        print(" ".join(parts), file=sys.stderr, flush=True)

    def debug(self, msg: str, **extra):
        self._log("debug", msg, **extra)

    def info(self, msg: str, **extra):
        self._log("info", msg, **extra)

    def warn(self, msg: str, **extra):
        self._log("warn", msg, **extra)

    def error(self, msg: str, **extra):
        self._log("error", msg, **extra)


def get_logger(component: str) -> Logger:
    return Logger(component)
