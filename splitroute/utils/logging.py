# splitroute/utils/logging.py

from __future__ import annotations

import logging
import os
import sys

_ROOT = "splitroute"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# library use: stay silent unless the host application configures logging
logging.getLogger(_ROOT).addHandler(logging.NullHandler())

_handler = None


class _StderrHandler(logging.StreamHandler):
    """Writes to whatever sys.stderr is at emit time."""

    @property
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, value):
        pass


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the package root."""
    if name != _ROOT and not name.startswith(_ROOT + "."):
        name = f"{_ROOT}.{name}"
    return logging.getLogger(name)


def configure_logging(verbose: bool = False) -> logging.Logger:
    """
    Attach a stderr handler to the package logger for command-line use.

    Level is DEBUG with ``verbose``, else SPLITROUTE_LOG_LEVEL (default INFO).
    Records still propagate to the root logger.
    """
    global _handler
    root = logging.getLogger(_ROOT)
    if _handler is None:
        _handler = _StderrHandler()
        _handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(_handler)

    level = "DEBUG" if verbose else os.environ.get("SPLITROUTE_LOG_LEVEL", "INFO").upper()
    root.setLevel(level)
    return root
