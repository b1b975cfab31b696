"""Timer primitive shared by the analysis loop and the beat scheduler.

A timer exposes ``time()`` (monotonic seconds) and
``call_later(delay, callback)`` returning a handle with ``cancel()``.
``asyncio.TimerHandle`` already has that shape, so the asyncio flavour is a
thin wrapper. The desktop app provides a Qt flavour.
"""

from __future__ import annotations

import asyncio
from typing import Callable


class AsyncioTimer:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    def time(self) -> float:
        return self._loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(max(0.0, float(delay)), callback)
