from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from voice_monitor.errors import SchedulerMisuse

logger = logging.getLogger(__name__)

MIN_TEMPO = 20
MAX_TEMPO = 150
DEFAULT_TEMPO = 60

BeatCallback = Callable[[int], None]


class TimeSignature(str, Enum):
    FOUR_FOUR = "4/4"
    EIGHT_EIGHT = "8/8"

    @property
    def beats_per_cycle(self) -> int:
        return 4 if self is TimeSignature.FOUR_FOUR else 8


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass(frozen=True)
class MetronomeConfig:
    tempo: int = DEFAULT_TEMPO
    time_signature: TimeSignature = TimeSignature.FOUR_FOUR


def clamp_tempo(tempo: int) -> int:
    return int(max(MIN_TEMPO, min(MAX_TEMPO, int(tempo))))


def parse_beats_per_cycle(value: int | str | TimeSignature) -> int:
    if isinstance(value, TimeSignature):
        return value.beats_per_cycle
    if isinstance(value, str):
        try:
            return TimeSignature(value).beats_per_cycle
        except ValueError:
            raise SchedulerMisuse(f"Unsupported time signature: {value!r}") from None
    beats = int(value)
    if beats not in (4, 8):
        raise SchedulerMisuse(f"Unsupported beats per cycle: {beats}")
    return beats


class BeatScheduler:
    """
    Silent metronome emitting beat indices 1..beats_per_cycle.

    Beat targets are anchored to the start time: every fire advances the
    expected time by exactly one interval and the next wake-up is computed
    from that target, so timer lateness and slow callbacks never accumulate.
    """

    def __init__(self, config: MetronomeConfig | None = None, *, timer) -> None:
        cfg = config or MetronomeConfig()
        self._timer = timer
        self._tempo = self._bounded(cfg.tempo)
        self._beats_per_cycle = parse_beats_per_cycle(cfg.time_signature)
        self._current_beat = 1
        self._state = SchedulerState.STOPPED
        self._expected: float | None = None
        self._handle = None
        self._on_beat: BeatCallback | None = None

    @property
    def tempo(self) -> int:
        return self._tempo

    @property
    def interval(self) -> float:
        return 60.0 / float(self._tempo)

    @property
    def beats_per_cycle(self) -> int:
        return self._beats_per_cycle

    @property
    def current_beat(self) -> int:
        return self._current_beat

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    def start(
        self,
        on_beat: BeatCallback,
        *,
        tempo: int | None = None,
        beats_per_cycle: int | str | None = None,
    ) -> None:
        if self._state is SchedulerState.RUNNING:
            return
        self._cancel_pending()
        if tempo is not None:
            self._tempo = self._bounded(tempo)
        if beats_per_cycle is not None:
            self._beats_per_cycle = parse_beats_per_cycle(beats_per_cycle)

        self._on_beat = on_beat
        self._state = SchedulerState.RUNNING
        self._current_beat = 1
        self._expected = self._timer.time()
        logger.info("Metronome started at %s BPM, %s beats", self._tempo, self._beats_per_cycle)

        self._schedule_next()
        on_beat(self._current_beat)

    def stop(self) -> None:
        self._cancel_pending()
        if self._state is not SchedulerState.STOPPED:
            logger.info("Metronome stopped")
        self._state = SchedulerState.STOPPED
        self._current_beat = 1
        self._expected = None

    def pause(self) -> None:
        if self._state is not SchedulerState.RUNNING:
            return
        self._cancel_pending()
        self._state = SchedulerState.PAUSED

    def resume(self) -> None:
        if self._state is not SchedulerState.PAUSED:
            return
        self._state = SchedulerState.RUNNING
        # Skipped beats are not replayed: the next one is a full interval away.
        self._expected = self._timer.time()
        self._schedule_next()

    def update_tempo(self, tempo: int) -> None:
        self._tempo = self._bounded(tempo)
        if self._state is SchedulerState.RUNNING:
            self._cancel_pending()
            self._expected = self._timer.time()
            self._schedule_next()

    def update_time_signature(self, value: int | str | TimeSignature) -> None:
        beats = parse_beats_per_cycle(value)
        self._beats_per_cycle = beats
        self._current_beat = 1
        if self._state is SchedulerState.RUNNING and self._on_beat is not None:
            on_beat = self._on_beat
            self.stop()
            self.start(on_beat)

    def _bounded(self, tempo: int) -> int:
        bounded = clamp_tempo(tempo)
        if bounded != int(tempo):
            logger.warning("Tempo %s out of range, using %s", tempo, bounded)
        return bounded

    def _schedule_next(self) -> None:
        # _expected holds the target of the beat just fired (or the anchor).
        self._expected += self.interval
        delay = max(0.0, self._expected - self._timer.time())
        self._handle = self._timer.call_later(delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        if self._state is not SchedulerState.RUNNING:
            return

        drift = self._timer.time() - self._expected
        logger.debug("Beat drift %.2f ms", drift * 1000.0)

        self._current_beat += 1
        if self._current_beat > self._beats_per_cycle:
            self._current_beat = 1
        beat = self._current_beat

        self._schedule_next()
        if self._on_beat is not None:
            self._on_beat(beat)

    def _cancel_pending(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.cancel()
