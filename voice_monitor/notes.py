from __future__ import annotations

import math
import re
from dataclasses import dataclass

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
A4_HZ = 440.0

_NOTE_RE = re.compile(r"^([A-G]#?)(\d+)$")


@dataclass(frozen=True)
class NoteReading:
    note: str
    cents: int
    frequency: float


def midi_number(hz: float) -> float:
    return 12.0 * math.log2(hz / A4_HZ) + 69.0


def frequency_to_note(hz: float | None) -> NoteReading | None:
    if not hz or hz < 20.0:
        return None
    midi = midi_number(hz)
    # Round half up like the UI always did, not Python's banker's rounding.
    nearest = int(math.floor(midi + 0.5))
    name = NOTE_NAMES[nearest % 12]
    octave = nearest // 12 - 1
    cents = int(math.floor((midi - nearest) * 100.0 + 0.5))
    return NoteReading(note=f"{name}{octave}", cents=cents, frequency=float(hz))


def note_to_frequency(name: str, octave: int) -> float:
    if name not in NOTE_NAMES:
        return A4_HZ
    midi = (int(octave) + 1) * 12 + NOTE_NAMES.index(name)
    return float(A4_HZ * 2.0 ** ((midi - 69) / 12.0))


def parse_note_string(text: str) -> tuple[str, int]:
    match = _NOTE_RE.match(text.strip())
    if match is None:
        return "A", 4
    return match.group(1), int(match.group(2))


def generate_reference_notes(low_octave: int = 2, high_octave: int = 5) -> list[str]:
    """Note names from C<low> up to and including C<high>."""
    notes: list[str] = []
    for octave in range(low_octave, high_octave):
        notes.extend(f"{name}{octave}" for name in NOTE_NAMES)
    notes.append(f"C{high_octave}")
    return notes


def tuner_position(cents: int, span: int = 50) -> float:
    """Needle position in percent for a +/-``span`` cent meter; 50 is in tune."""
    clamped = max(-span, min(span, int(cents)))
    return (clamped + span) * 100.0 / (2 * span)


def is_in_tune(cents: int, tolerance: int = 10) -> bool:
    return abs(int(cents)) <= tolerance
