"""Central logging setup for Voice Monitor.

Modules log through ``logging.getLogger(__name__)``; the front ends call
``setup_logging`` once at startup to attach a shared console handler.
"""

from __future__ import annotations

import logging
import sys

MODULE_LOG_LEVELS: dict[str, int] = {
    "voice_monitor": logging.INFO,
    "voice_monitor.pipeline": logging.INFO,
    "voice_monitor.metronome": logging.INFO,
    "voice_monitor.audio": logging.INFO,
    "voice_monitor.reference": logging.INFO,
    "voice_monitor.headphones": logging.WARNING,
    "voice_monitor.app": logging.INFO,
    "voice_monitor.cli": logging.INFO,
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_console_handler: logging.Handler | None = None


def setup_logging(level: str | None = None) -> None:
    """Attach the shared console handler and apply per-module levels.

    Args:
        level: Optional level name (e.g. "DEBUG") overriding every
            ``voice_monitor`` logger.
    """
    global _console_handler

    if _console_handler is None:
        _console_handler = logging.StreamHandler(sys.stdout)
        _console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    levels = dict(MODULE_LOG_LEVELS)
    if level:
        numeric = logging.getLevelName(level.upper())
        if isinstance(numeric, int):
            levels = {name: numeric for name in levels}
        else:
            logging.getLogger(__name__).error("Invalid log level: %s", level)

    root = logging.getLogger("voice_monitor")
    if _console_handler not in root.handlers:
        root.addHandler(_console_handler)
    root.propagate = False

    for name, module_level in levels.items():
        logging.getLogger(name).setLevel(module_level)
