from __future__ import annotations

import numpy as np
import pytest

from voice_monitor.stages import AnalysisBuffer, MonitorStage


def test_analysis_buffer_keeps_latest_samples_in_order() -> None:
    buf = AnalysisBuffer(8)
    buf.push(np.arange(1, 4, dtype=np.float32))
    buf.push(np.arange(4, 7, dtype=np.float32))
    np.testing.assert_array_equal(buf.latest(), [0, 0, 1, 2, 3, 4, 5, 6])

    buf.push(np.arange(7, 20, dtype=np.float32))
    np.testing.assert_array_equal(buf.latest(), np.arange(12, 20))


def test_analysis_buffer_returns_copy() -> None:
    buf = AnalysisBuffer(4)
    buf.push(np.ones(4, dtype=np.float32))
    snapshot = buf.latest()
    snapshot[:] = 5.0
    np.testing.assert_array_equal(buf.latest(), np.ones(4))


@pytest.mark.parametrize("size", [0, 1, 3, 1000])
def test_analysis_buffer_requires_power_of_two(size: int) -> None:
    with pytest.raises(ValueError):
        AnalysisBuffer(size)


def test_monitor_stage_spans_blocks_and_pads_underrun() -> None:
    stage = MonitorStage(gain=1.0)
    stage.push(np.array([1, 2, 3], dtype=np.float32))
    stage.push(np.array([4, 5], dtype=np.float32))

    np.testing.assert_array_equal(stage.pull(4), [1, 2, 3, 4])
    np.testing.assert_array_equal(stage.pull(3), [5, 0, 0])


def test_monitor_stage_gain_and_mute() -> None:
    stage = MonitorStage()
    stage.push(np.full(4, 0.5, dtype=np.float32))
    np.testing.assert_array_equal(stage.pull(4), np.zeros(4))

    stage.gain = 0.8
    stage.push(np.full(4, 0.5, dtype=np.float32))
    np.testing.assert_allclose(stage.pull(4), np.full(4, 0.4))


def test_monitor_stage_drops_oldest_when_behind() -> None:
    stage = MonitorStage(gain=1.0, max_blocks=2)
    for value in (1.0, 2.0, 3.0):
        stage.push(np.full(2, value, dtype=np.float32))
    np.testing.assert_array_equal(stage.pull(4), [2, 2, 3, 3])
