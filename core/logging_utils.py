"""Lightweight logging helpers with UTC timestamps."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Callable

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
STREAM_HANDLER = "signalloop-root-handler"
FILE_HANDLER = "signalloop-file-handler"
_OWNED = (STREAM_HANDLER, FILE_HANDLER)


def _resolve_level(level: str | int | None) -> int:
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def _install_once(root: logging.Logger, name: str, factory: Callable[[], logging.Handler]) -> None:
    """Attach a named handler unless one with that name is already present."""
    if any(h.get_name() == name for h in root.handlers):
        return
    handler = factory()
    handler.set_name(name)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    formatter.converter = time.gmtime
    handler.setFormatter(formatter)
    root.addHandler(handler)


def setup_logging(level: str | int | None = None, log_file: str | Path | None = None) -> logging.Logger:
    """Configure the shared console handler and, optionally, a log file.

    Safe to call repeatedly; a call without ``level`` keeps the level already set.
    """
    root = logging.getLogger()
    configured = any(h.get_name() == STREAM_HANDLER for h in root.handlers)
    _install_once(root, STREAM_HANDLER, logging.StreamHandler)
    if log_file:
        path = Path(log_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            _install_once(root, FILE_HANDLER, lambda: logging.FileHandler(path, encoding="utf-8"))
        except OSError as e:
            root.warning("Could not open log file %s: %s", path, e)

    if configured and level is None:
        return root

    resolved = _resolve_level(level)
    root.setLevel(resolved)
    for handler in root.handlers:
        if handler.get_name() in _OWNED:
            handler.setLevel(resolved)
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a logger configured with the shared format."""
    setup_logging()
    return logging.getLogger(name)
