from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TextIO

from voice_monitor import __version__
from voice_monitor.errors import AcquisitionError
from voice_monitor.headphones import detect_headphones
from voice_monitor.logging_config import setup_logging
from voice_monitor.metronome import (
    MAX_TEMPO,
    MIN_TEMPO,
    BeatScheduler,
    MetronomeConfig,
    TimeSignature,
)
from voice_monitor.notes import frequency_to_note
from voice_monitor.pipeline import CapturePipeline, PipelineConfig
from voice_monitor.timers import AsyncioTimer

logger = logging.getLogger(__name__)


class ConsoleDisplay:
    """Prints note readings when they change and one line per beat."""

    def __init__(self, stream: TextIO | None = None, beats_per_cycle: int = 4) -> None:
        self._out = stream or sys.stdout
        self._beats = int(beats_per_cycle)
        self._last: tuple[str, int] | None = None
        self._silent = True

    def on_pitch(self, hz: float | None) -> None:
        reading = frequency_to_note(hz)
        if reading is None:
            if not self._silent:
                self._write("--")
            self._silent = True
            self._last = None
            return
        self._silent = False
        key = (reading.note, reading.cents)
        if key == self._last:
            return
        self._last = key
        self._write(f"{reading.note:<4} {reading.cents:+4d} cents  ({reading.frequency:7.2f} Hz)")

    def on_beat(self, beat: int) -> None:
        dots = " ".join("●" if i == beat else "○" for i in range(1, self._beats + 1))
        self._write(f"[{dots}]")

    def _write(self, line: str) -> None:
        self._out.write(line + "\n")
        self._out.flush()


def _tempo(text: str) -> int:
    value = int(text)
    if not (MIN_TEMPO <= value <= MAX_TEMPO):
        raise argparse.ArgumentTypeError(f"tempo must be in [{MIN_TEMPO}, {MAX_TEMPO}]")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voice-monitor-cli",
        description="Live pitch readout with an optional silent metronome.",
    )
    parser.add_argument("--metronome", type=_tempo, metavar="BPM", help="run the metronome at BPM")
    parser.add_argument(
        "--time-signature",
        choices=[ts.value for ts in TimeSignature],
        default=TimeSignature.FOUR_FOUR.value,
    )
    parser.add_argument("--monitor", action="store_true", help="play the microphone back live")
    parser.add_argument("--seconds", type=float, default=None, help="stop after this many seconds")
    parser.add_argument("--device", default=None, help="input device index or name")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _device(text: str | None) -> int | str | None:
    if text is None:
        return None
    return int(text) if text.isdigit() else text


async def run(args: argparse.Namespace, stream: TextIO | None = None) -> int:
    timer = AsyncioTimer()
    finished = asyncio.Event()
    time_signature = TimeSignature(args.time_signature)
    display = ConsoleDisplay(stream, beats_per_cycle=time_signature.beats_per_cycle)

    pipeline = CapturePipeline(
        display.on_pitch,
        timer=timer,
        config=PipelineConfig(input_device=_device(args.device)),
        on_lost=finished.set,
    )
    try:
        pipeline.start()
    except AcquisitionError as exc:
        print(
            f"Microphone unavailable ({exc}). Check that a microphone is connected "
            "and that this program may use it, then try again.",
            file=sys.stderr,
        )
        return 1

    if args.monitor:
        if detect_headphones():
            pipeline.enable_monitoring()
        else:
            logger.warning("No headphones detected; live monitoring stays off to avoid feedback")

    scheduler: BeatScheduler | None = None
    if args.metronome is not None:
        scheduler = BeatScheduler(
            MetronomeConfig(tempo=args.metronome, time_signature=time_signature),
            timer=timer,
        )
        scheduler.start(display.on_beat)

    try:
        if args.seconds is not None:
            try:
                await asyncio.wait_for(finished.wait(), timeout=args.seconds)
            except asyncio.TimeoutError:
                pass
        else:
            await finished.wait()
    finally:
        if scheduler is not None:
            scheduler.stop()
        pipeline.stop()
    return 0


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        code = asyncio.run(run(args))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
