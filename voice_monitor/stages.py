from __future__ import annotations

import threading
from collections import deque

import numpy as np


class AnalysisBuffer:
    """
    Keeps the most recent ``size`` captured samples for the analysis loop.

    ``push`` runs on the audio callback thread; ``latest`` is pulled once per
    analysis tick. Until enough audio has arrived the older part is zeros.
    """

    def __init__(self, size: int = 2048) -> None:
        if size < 2 or size & (size - 1):
            raise ValueError(f"analysis buffer size must be a power of two, got {size}")
        self._size = int(size)
        self._buffer = np.zeros(self._size, dtype=np.float32)
        self._lock = threading.Lock()

    def push(self, block: np.ndarray) -> None:
        x = np.asarray(block, dtype=np.float32).reshape(-1)
        n = int(x.size)
        if n == 0:
            return
        with self._lock:
            if n >= self._size:
                self._buffer[:] = x[-self._size :]
                return
            self._buffer[:-n] = self._buffer[n:]
            self._buffer[-n:] = x

    def latest(self) -> np.ndarray:
        with self._lock:
            return self._buffer.copy()


class MonitorStage:
    """
    Pass-through of captured audio towards an output device at a given gain.

    Captured blocks are queued by ``push``; the output stream calls ``pull``
    once per audio quantum and the gain is applied there, so a gain change is
    heard on the next quantum. A bounded queue drops the oldest audio when the
    output falls behind rather than building up latency.
    """

    def __init__(self, gain: float = 0.0, max_blocks: int = 8) -> None:
        self._gain = float(gain)
        self._pending: deque[np.ndarray] = deque(maxlen=max_blocks)
        self._carry = np.zeros(0, dtype=np.float32)
        self._lock = threading.Lock()

    @property
    def gain(self) -> float:
        return self._gain

    @gain.setter
    def gain(self, value: float) -> None:
        self._gain = float(max(0.0, value))

    def push(self, block: np.ndarray) -> None:
        x = np.asarray(block, dtype=np.float32).reshape(-1)
        if x.size == 0:
            return
        with self._lock:
            self._pending.append(x.copy())

    def pull(self, frames: int) -> np.ndarray:
        out = np.zeros(int(frames), dtype=np.float32)
        filled = 0
        with self._lock:
            chunk = self._carry
            while filled < frames:
                if chunk.size == 0:
                    if not self._pending:
                        break
                    chunk = self._pending.popleft()
                take = min(frames - filled, int(chunk.size))
                out[filled : filled + take] = chunk[:take]
                chunk = chunk[take:]
                filled += take
            self._carry = chunk
        gain = self._gain
        if gain == 0.0:
            out.fill(0.0)
        elif gain != 1.0:
            out *= gain
        return out
