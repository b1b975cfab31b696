from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

import numpy as np
import sounddevice as sd

from voice_monitor.errors import AcquisitionError
from voice_monitor.stages import MonitorStage

logger = logging.getLogger(__name__)

BlockConsumer = Callable[[np.ndarray], None]


@dataclass(frozen=True)
class AudioInputConfig:
    sample_rate: int = 44100
    channels: int = 1
    block_size: int = 512
    device: int | str | None = None


class AudioInput:
    """
    Microphone capture fanned out to any number of block consumers.

    PortAudio hands over the raw device signal; there is no echo
    cancellation, noise suppression or automatic gain stage to switch off.
    Consumers are called on the audio thread and must be quick.
    """

    def __init__(self, config: AudioInputConfig | None = None) -> None:
        self._cfg = config or AudioInputConfig()
        self._lock = threading.Lock()
        self._consumers: list[BlockConsumer] = []
        self._stream: sd.InputStream | None = None
        self._stopping = False
        self._lost = False

    @property
    def is_active(self) -> bool:
        stream = self._stream
        return stream is not None and not self._lost and bool(stream.active)

    def subscribe(self, consumer: BlockConsumer) -> None:
        with self._lock:
            if consumer not in self._consumers:
                self._consumers.append(consumer)

    def unsubscribe(self, consumer: BlockConsumer) -> None:
        with self._lock:
            if consumer in self._consumers:
                self._consumers.remove(consumer)

    def start(self) -> None:
        if self._stream is not None:
            return

        def callback(indata, frames, time_info, status) -> None:  # noqa: ARG001
            if status:
                # Over/underflow: the block is unreliable, skip it.
                return
            mono = np.asarray(indata[:, 0], dtype=np.float32).copy()
            with self._lock:
                consumers = list(self._consumers)
            for consumer in consumers:
                consumer(mono)

        def finished() -> None:
            if not self._stopping:
                self._lost = True
                logger.warning("Input stream finished unexpectedly")

        self._stopping = False
        self._lost = False
        try:
            stream = sd.InputStream(
                samplerate=self._cfg.sample_rate,
                channels=self._cfg.channels,
                blocksize=self._cfg.block_size,
                device=self._cfg.device,
                dtype="float32",
                callback=callback,
                finished_callback=finished,
            )
        except (sd.PortAudioError, ValueError) as exc:
            raise AcquisitionError(f"Unable to open microphone: {exc}") from exc

        try:
            stream.start()
        except sd.PortAudioError as exc:
            self._stopping = True
            stream.close()
            raise AcquisitionError(f"Unable to start microphone: {exc}") from exc

        self._stream = stream
        logger.info(
            "Capturing %s Hz mono, %s-sample blocks", self._cfg.sample_rate, self._cfg.block_size
        )

    def stop(self) -> None:
        if self._stream is None:
            return
        self._stopping = True
        try:
            self._stream.stop()
            self._stream.close()
        finally:
            self._stream = None
            logger.info("Capture stopped")


class MonitorOutput:
    """Output stream that plays whatever a ``MonitorStage`` hands it."""

    def __init__(self, stage: MonitorStage, config: AudioInputConfig | None = None) -> None:
        self._cfg = config or AudioInputConfig()
        self._stage = stage
        self._stream: sd.OutputStream | None = None

    def start(self) -> None:
        if self._stream is not None:
            return

        def callback(outdata, frames, time_info, status) -> None:  # noqa: ARG001
            outdata[:, 0] = self._stage.pull(frames)

        try:
            stream = sd.OutputStream(
                samplerate=self._cfg.sample_rate,
                channels=1,
                blocksize=self._cfg.block_size,
                dtype="float32",
                callback=callback,
            )
        except (sd.PortAudioError, ValueError) as exc:
            raise AcquisitionError(f"Unable to open monitor output: {exc}") from exc

        try:
            stream.start()
        except sd.PortAudioError as exc:
            stream.close()
            raise AcquisitionError(f"Unable to start monitor output: {exc}") from exc
        self._stream = stream

    def stop(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.stop()
            self._stream.close()
        finally:
            self._stream = None


def output_device_names() -> list[str]:
    return [
        str(dev["name"])
        for dev in sd.query_devices()
        if int(dev.get("max_output_channels", 0)) > 0
    ]
