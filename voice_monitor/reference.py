from __future__ import annotations

import logging
from typing import Callable

import numpy as np

logger = logging.getLogger(__name__)


def render_tone(
    frequency: float,
    seconds: float,
    sample_rate: int = 44100,
    gain: float = 0.3,
    fade_ms: float = 10.0,
) -> np.ndarray:
    n = max(0, int(round(seconds * sample_rate)))
    t = np.arange(n, dtype=np.float32) / float(sample_rate)
    tone = (gain * np.sin(2.0 * np.pi * float(frequency) * t)).astype(np.float32)
    # Short linear fades so start/stop do not click.
    fade = min(n // 2, int(sample_rate * fade_ms / 1000.0))
    if fade > 0:
        ramp = np.linspace(0.0, 1.0, fade, dtype=np.float32)
        tone[:fade] *= ramp
        tone[-fade:] *= ramp[::-1]
    return tone


class ReferencePlayer:
    """
    Plays a pure sine at a fixed level so the singer can match it.

    ``backend`` needs ``play(data, samplerate=..., blocking=False)`` and
    ``stop()``; the ``sounddevice`` module is used when none is given.
    """

    def __init__(
        self,
        *,
        timer,
        sample_rate: int = 44100,
        gain: float = 0.3,
        backend=None,
        on_finished: Callable[[], None] | None = None,
    ) -> None:
        self._timer = timer
        self._sample_rate = int(sample_rate)
        self._gain = float(gain)
        self._backend = backend
        self._on_finished = on_finished
        self._auto_stop = None
        self._playing = False

    @property
    def is_playing(self) -> bool:
        return self._playing

    def play_tone(self, frequency: float, duration: float = 3.0) -> None:
        self.stop()
        backend = self._get_backend()
        tone = render_tone(frequency, duration, self._sample_rate, self._gain)
        backend.play(tone, samplerate=self._sample_rate, blocking=False)
        self._playing = True
        self._auto_stop = self._timer.call_later(duration, self._finished)
        logger.info("Reference tone %.2f Hz for %.1fs", frequency, duration)

    def stop(self) -> None:
        handle, self._auto_stop = self._auto_stop, None
        if handle is not None:
            handle.cancel()
        if not self._playing:
            return
        self._playing = False
        self._get_backend().stop()

    def _finished(self) -> None:
        self._auto_stop = None
        self.stop()
        if self._on_finished is not None:
            self._on_finished()

    def _get_backend(self):
        if self._backend is None:
            import sounddevice as sd

            self._backend = sd
        return self._backend
