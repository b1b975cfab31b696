from __future__ import annotations

import logging
from typing import Iterable

logger = logging.getLogger(__name__)

_HEADPHONE_WORDS = ("headphone", "headset", "earphone", "airpods", "buds")
_BLUETOOTH_WORDS = ("bluetooth", "wireless", "airpods", "buds")


def has_headphones(output_names: Iterable[str]) -> bool:
    names = [name.lower() for name in output_names]
    if any(word in name for name in names for word in _HEADPHONE_WORDS):
        return True
    # More than one output usually means one of them is worn.
    return len(names) > 1


def is_bluetooth(name: str) -> bool:
    label = name.lower()
    return any(word in label for word in _BLUETOOTH_WORDS)


def detect_headphones() -> bool:
    try:
        from voice_monitor.audio import output_device_names

        names = output_device_names()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Headphone detection failed: %s", exc)
        return False
    return has_headphones(names)
