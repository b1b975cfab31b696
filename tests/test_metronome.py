from __future__ import annotations

import numpy as np
import pytest

from voice_monitor.errors import SchedulerMisuse
from voice_monitor.metronome import (
    MAX_TEMPO,
    MIN_TEMPO,
    BeatScheduler,
    MetronomeConfig,
    SchedulerState,
    TimeSignature,
)


class BeatLog:
    def __init__(self, timer) -> None:
        self._timer = timer
        self.beats: list[int] = []
        self.times: list[float] = []

    def __call__(self, beat: int) -> None:
        self.beats.append(beat)
        self.times.append(self._timer.time())


@pytest.mark.parametrize("beats_per_cycle", [4, 8])
def test_beats_land_on_grid_without_jitter(timer, beats_per_cycle: int) -> None:
    log = BeatLog(timer)
    scheduler = BeatScheduler(MetronomeConfig(tempo=60), timer=timer)
    scheduler.start(log, beats_per_cycle=beats_per_cycle)

    assert log.beats == [1]
    assert log.times == [0.0]

    for _ in range(19):
        timer.run_next()

    assert log.times == [float(n) for n in range(20)]


def test_beat_index_wraps(timer) -> None:
    log = BeatLog(timer)
    scheduler = BeatScheduler(MetronomeConfig(tempo=120), timer=timer)
    scheduler.start(log)
    for _ in range(9):
        timer.run_next()
    assert log.beats == [1, 2, 3, 4, 1, 2, 3, 4, 1, 2]


def test_eight_eight_cycle(timer) -> None:
    log = BeatLog(timer)
    scheduler = BeatScheduler(
        MetronomeConfig(tempo=100, time_signature=TimeSignature.EIGHT_EIGHT), timer=timer
    )
    scheduler.start(log)
    for _ in range(8):
        timer.run_next()
    assert log.beats == [1, 2, 3, 4, 5, 6, 7, 8, 1]
    assert all(1 <= b <= scheduler.beats_per_cycle for b in log.beats)


def test_single_late_beat_does_not_shift_later_targets(timer) -> None:
    log = BeatLog(timer)
    scheduler = BeatScheduler(MetronomeConfig(tempo=60), timer=timer)
    scheduler.start(log)

    timer.run_next()  # beat 2 at 1.0
    timer.run_next(lateness=0.4)  # beat 3 fires late at 2.4
    assert log.times[-1] == pytest.approx(2.4)
    assert timer.pending[0].due == pytest.approx(3.0)

    timer.run_next()
    assert log.times[-1] == pytest.approx(3.0)


def test_random_lateness_does_not_accumulate(timer) -> None:
    rng = np.random.default_rng(1234)
    log = BeatLog(timer)
    scheduler = BeatScheduler(MetronomeConfig(tempo=120), timer=timer)
    scheduler.start(log)

    for n in range(1, 200):
        timer.run_next(lateness=float(rng.uniform(0.0, 0.2)))
        # The next target stays on the original grid however late this one was.
        assert timer.pending[0].due == pytest.approx((n + 1) * 0.5, abs=1e-9)

    assert log.times[-1] <= 199 * 0.5 + 0.2 + 1e-9


def test_backlog_fires_immediately_without_skipping(timer) -> None:
    log = BeatLog(timer)
    scheduler = BeatScheduler(MetronomeConfig(tempo=60), timer=timer)
    scheduler.start(log)

    timer.run_next(lateness=1.5)  # beat 2 due at 1.0 runs at 2.5
    assert timer.pending[0].due == pytest.approx(2.5)  # beat 3 (due 2.0) is overdue
    timer.run_next()
    assert log.beats == [1, 2, 3]
    assert timer.pending[0].due == pytest.approx(3.0)


def test_slow_callback_does_not_delay_next_wakeup(timer) -> None:
    def slow(beat: int) -> None:
        timer.now += 0.3

    scheduler = BeatScheduler(MetronomeConfig(tempo=60), timer=timer)
    scheduler.start(slow)
    assert timer.pending[0].due == pytest.approx(1.0)
    timer.run_next()
    assert timer.pending[0].due == pytest.approx(2.0)


def test_update_tempo_reanchors_pending_beat(timer) -> None:
    log = BeatLog(timer)
    scheduler = BeatScheduler(MetronomeConfig(tempo=60), timer=timer)
    scheduler.start(log)
    timer.run_next()  # beat 2 at 1.0

    timer.now = 1.25
    scheduler.update_tempo(120)
    assert scheduler.interval == pytest.approx(0.5)
    assert [h.due for h in timer.pending] == [pytest.approx(1.75)]

    timer.run_next()
    timer.run_next()
    assert log.times[-2:] == [pytest.approx(1.75), pytest.approx(2.25)]
    assert log.beats == [1, 2, 3, 4]


@pytest.mark.parametrize(("requested", "expected"), [(500, MAX_TEMPO), (5, MIN_TEMPO), (-10, MIN_TEMPO)])
def test_tempo_is_clamped(timer, requested: int, expected: int) -> None:
    scheduler = BeatScheduler(timer=timer)
    scheduler.update_tempo(requested)
    assert scheduler.tempo == expected
    assert BeatScheduler(MetronomeConfig(tempo=requested), timer=timer).tempo == expected


def test_update_tempo_while_stopped_does_not_schedule(timer) -> None:
    scheduler = BeatScheduler(timer=timer)
    scheduler.update_tempo(90)
    assert scheduler.tempo == 90
    assert timer.pending == []


def test_update_time_signature_restarts_cycle(timer) -> None:
    log = BeatLog(timer)
    scheduler = BeatScheduler(MetronomeConfig(tempo=60), timer=timer)
    scheduler.start(log)
    timer.run_next()
    timer.run_next()  # beat 3 at 2.0

    timer.now = 2.5
    scheduler.update_time_signature("8/8")

    assert scheduler.beats_per_cycle == 8
    assert log.beats[-1] == 1
    assert log.times[-1] == 2.5
    assert len(timer.pending) == 1
    assert timer.pending[0].due == pytest.approx(3.5)


def test_update_time_signature_while_stopped(timer) -> None:
    scheduler = BeatScheduler(timer=timer)
    scheduler.update_time_signature(8)
    assert scheduler.beats_per_cycle == 8
    assert scheduler.current_beat == 1
    assert scheduler.state is SchedulerState.STOPPED
    assert timer.pending == []


@pytest.mark.parametrize("value", [3, 16, "3/4", "waltz"])
def test_unsupported_time_signature(timer, value) -> None:
    scheduler = BeatScheduler(timer=timer)
    with pytest.raises(SchedulerMisuse):
        scheduler.update_time_signature(value)


def test_pause_and_resume_keep_position(timer) -> None:
    log = BeatLog(timer)
    scheduler = BeatScheduler(MetronomeConfig(tempo=60), timer=timer)
    scheduler.start(log)
    timer.run_next()
    timer.run_next()  # beat 3 at 2.0

    timer.now = 2.4
    scheduler.pause()
    assert scheduler.state is SchedulerState.PAUSED
    assert scheduler.current_beat == 3
    assert timer.pending == []

    timer.advance(30.0)
    assert log.beats == [1, 2, 3]

    scheduler.resume()
    assert scheduler.is_running
    assert timer.pending[0].due == pytest.approx(33.4)
    timer.run_next()
    assert log.beats == [1, 2, 3, 4]


def test_resume_and_pause_outside_their_states_are_ignored(timer) -> None:
    scheduler = BeatScheduler(timer=timer)
    scheduler.resume()
    scheduler.pause()
    assert scheduler.state is SchedulerState.STOPPED
    assert timer.pending == []


def test_start_while_running_is_ignored(timer) -> None:
    log = BeatLog(timer)
    scheduler = BeatScheduler(timer=timer)
    scheduler.start(log)
    scheduler.start(log)
    assert log.beats == [1]
    assert len(timer.pending) == 1


def test_stop_cancels_pending_and_resets(timer) -> None:
    log = BeatLog(timer)
    scheduler = BeatScheduler(MetronomeConfig(tempo=60), timer=timer)
    scheduler.start(log)
    timer.run_next()
    timer.run_next()

    scheduler.stop()
    assert scheduler.state is SchedulerState.STOPPED
    assert scheduler.current_beat == 1
    assert timer.pending == []

    timer.advance(10.0)
    assert log.beats == [1, 2, 3]

    scheduler.stop()
    assert scheduler.state is SchedulerState.STOPPED


def test_stop_from_paused(timer) -> None:
    scheduler = BeatScheduler(timer=timer)
    scheduler.start(lambda beat: None)
    scheduler.pause()
    scheduler.stop()
    assert scheduler.state is SchedulerState.STOPPED
    assert scheduler.current_beat == 1


def test_stop_inside_callback_leaves_nothing_scheduled(timer) -> None:
    beats: list[int] = []
    scheduler = BeatScheduler(MetronomeConfig(tempo=60), timer=timer)

    def on_beat(beat: int) -> None:
        beats.append(beat)
        if beat == 3:
            scheduler.stop()

    scheduler.start(on_beat)
    timer.advance(10.0)
    assert beats == [1, 2, 3]
    assert timer.pending == []
