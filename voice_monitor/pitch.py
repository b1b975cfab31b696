from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view


@dataclass(frozen=True)
class PitchDetectorConfig:
    sample_rate: int = 44100
    silence_rms: float = 0.01  # rejects typical room noise for float32 [-1,1]
    threshold: float = 0.9
    # Plausible singing range (a bit below C2 up to ~B5).
    min_hz: float = 60.0
    max_hz: float = 1000.0


class PitchDetector:
    """
    Time-domain pitch detector with a plausible-range policy on top.

    The raw estimate comes from ``auto_correlate``; anything outside
    [min_hz, max_hz] is reported as no pitch.
    """

    def __init__(self, config: PitchDetectorConfig | None = None) -> None:
        self._cfg = config or PitchDetectorConfig()

    def detect(self, frame: np.ndarray) -> float | None:
        hz = auto_correlate(
            frame,
            self._cfg.sample_rate,
            silence_rms=self._cfg.silence_rms,
            threshold=self._cfg.threshold,
        )
        if hz is None:
            return None
        if not (self._cfg.min_hz <= hz <= self._cfg.max_hz):
            return None
        return hz


class SmoothingFilter:
    """First-order low-pass over successive pitch estimates."""

    def __init__(self, alpha: float = 0.3) -> None:
        if not (0.0 < alpha <= 1.0):
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self._alpha = float(alpha)
        self._value: float | None = None

    @property
    def value(self) -> float | None:
        return self._value

    def update(self, estimate: float) -> float:
        if self._value is None:
            self._value = float(estimate)
        else:
            self._value = self._value * (1.0 - self._alpha) + float(estimate) * self._alpha
        return self._value

    def reset(self) -> None:
        self._value = None


def rms(x: np.ndarray) -> float:
    if x.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(x.astype(np.float32, copy=False)))))


def auto_correlate(
    frame: np.ndarray,
    sample_rate: int,
    *,
    silence_rms: float = 0.01,
    threshold: float = 0.9,
) -> float | None:
    x = np.asarray(frame, dtype=np.float32)
    n = int(x.size)
    if n < 2 or sample_rate <= 0:
        return None

    if rms(x) < silence_rms:
        return None

    half = n // 2
    if half < 2:
        return None

    # Row k holds x[k : k + half]; rows 1..half-1 are the candidate lags.
    head = x[:half]
    shifted = sliding_window_view(x, half)[1:half]
    diff = np.abs(shifted - head).sum(axis=1, dtype=np.float64)
    similarity = 1.0 - diff / float(half)

    # Increase of each lag's similarity over the previous lag (lag 0 counts as 1).
    previous = np.concatenate(([1.0], similarity[:-1]))
    gain = similarity - previous

    qualifying = (similarity > threshold) & (gain > 0.0)
    if not np.any(qualifying):
        return None

    # First strong peak: largest rise, earliest lag wins ties.
    scores = np.where(qualifying, gain, -np.inf)
    lag = int(np.argmax(scores)) + 1
    return float(sample_rate) / float(lag)
