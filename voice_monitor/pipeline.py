from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Callable

from voice_monitor.errors import AcquisitionError
from voice_monitor.pitch import PitchDetector, PitchDetectorConfig, SmoothingFilter
from voice_monitor.stages import AnalysisBuffer, MonitorStage

logger = logging.getLogger(__name__)

PitchCallback = Callable[["float | None"], None]


@dataclass(frozen=True)
class PipelineConfig:
    sample_rate: int = 44100
    buffer_size: int = 2048
    # Capture quantum handed over by the audio callback.
    block_size: int = 512
    tick_seconds: float = 1.0 / 60.0
    monitor_gain: float = 0.8
    # Lower = more smoothing.
    smoothing: float = 0.3
    input_device: int | str | None = None
    detector: PitchDetectorConfig = field(default_factory=PitchDetectorConfig)


def open_microphone(config: PipelineConfig):
    try:
        from voice_monitor.audio import AudioInput, AudioInputConfig
    except OSError as exc:  # PortAudio library missing
        raise AcquisitionError(f"Audio backend unavailable: {exc}") from exc
    return AudioInput(
        AudioInputConfig(
            sample_rate=config.sample_rate,
            block_size=config.block_size,
            device=config.input_device,
        )
    )


def open_monitor_output(stage: MonitorStage, config: PipelineConfig):
    try:
        from voice_monitor.audio import AudioInputConfig, MonitorOutput
    except OSError as exc:
        raise AcquisitionError(f"Audio backend unavailable: {exc}") from exc
    return MonitorOutput(
        stage,
        AudioInputConfig(sample_rate=config.sample_rate, block_size=config.block_size),
    )


class CapturePipeline:
    """
    Live capture, pitch analysis and optional monitoring for one session.

    One capture source feeds two stages: an ``AnalysisBuffer`` pulled once per
    analysis tick, and a ``MonitorStage`` streamed to the output device at a
    gain that starts muted. Ticks are scheduled on ``timer`` (see
    ``voice_monitor.timers``) and publish ``float | None`` to ``on_pitch``.
    """

    def __init__(
        self,
        on_pitch: PitchCallback,
        *,
        timer,
        config: PipelineConfig | None = None,
        source_factory: Callable[[PipelineConfig], object] | None = None,
        monitor_factory: Callable[[MonitorStage, PipelineConfig], object] | None = None,
        on_lost: Callable[[], None] | None = None,
    ) -> None:
        self._cfg = config or PipelineConfig()
        self._on_pitch = on_pitch
        self._on_lost = on_lost
        self._timer = timer
        self._source_factory = source_factory or open_microphone
        self._monitor_factory = monitor_factory or open_monitor_output
        self._detector = PitchDetector(replace(self._cfg.detector, sample_rate=self._cfg.sample_rate))
        self._smoothing = SmoothingFilter(self._cfg.smoothing)

        self._source = None
        self._output = None
        self._analysis: AnalysisBuffer | None = None
        self._monitor: MonitorStage | None = None
        self._handle = None
        self._active = False
        self._monitoring = False

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def monitoring_enabled(self) -> bool:
        return self._monitoring

    @property
    def smoothed_frequency(self) -> float | None:
        return self._smoothing.value

    def start(self) -> None:
        if self._active:
            return

        self._smoothing.reset()
        self._monitoring = False
        self._analysis = AnalysisBuffer(self._cfg.buffer_size)
        self._monitor = MonitorStage(gain=0.0)
        try:
            self._source = self._source_factory(self._cfg)
            self._source.subscribe(self._analysis.push)
            self._source.subscribe(self._monitor.push)
            self._output = self._monitor_factory(self._monitor, self._cfg)
            self._output.start()
            self._source.start()
        except AcquisitionError as exc:
            logger.warning("Audio acquisition failed: %s", exc)
            self._teardown()
            raise
        except Exception:
            self._teardown()
            raise

        self._active = True
        self._handle = self._timer.call_later(self._cfg.tick_seconds, self._tick)
        logger.info("Capture session started")

    def stop(self) -> None:
        if not self._active and self._source is None and self._handle is None:
            return
        self._teardown()
        logger.info("Capture session stopped")

    def enable_monitoring(self) -> None:
        if self._monitor is None:
            return
        self._monitor.gain = self._cfg.monitor_gain
        self._monitoring = True

    def disable_monitoring(self) -> None:
        if self._monitor is None:
            return
        self._monitor.gain = 0.0
        self._monitoring = False

    def _tick(self) -> None:
        self._handle = None
        if not self._active or self._analysis is None:
            return

        if not self._source.is_active:
            logger.warning("Audio input went away; ending session")
            self.stop()
            if self._on_lost is not None:
                self._on_lost()
            return

        hz = self._detector.detect(self._analysis.latest())
        # Re-arm before publishing so a stop() from the callback cancels it.
        self._handle = self._timer.call_later(self._cfg.tick_seconds, self._tick)
        if hz is None:
            self._smoothing.reset()
            self._on_pitch(None)
        else:
            self._on_pitch(self._smoothing.update(hz))

    def _teardown(self) -> None:
        handle, self._handle = self._handle, None
        source, self._source = self._source, None
        output, self._output = self._output, None
        analysis, self._analysis = self._analysis, None
        monitor, self._monitor = self._monitor, None
        self._active = False
        self._monitoring = False
        self._smoothing.reset()

        steps: list[Callable[[], None]] = []
        if handle is not None:
            steps.append(handle.cancel)
        if output is not None:
            steps.append(output.stop)
        if source is not None:
            steps.append(source.stop)
            if analysis is not None:
                steps.append(partial(source.unsubscribe, analysis.push))
            if monitor is not None:
                steps.append(partial(source.unsubscribe, monitor.push))

        first_error: Exception | None = None
        for step in steps:
            try:
                step()
            except Exception as exc:  # noqa: BLE001
                logger.exception("Teardown step failed")
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error
