from __future__ import annotations

import pytest

from voice_monitor.notes import (
    frequency_to_note,
    generate_reference_notes,
    is_in_tune,
    note_to_frequency,
    parse_note_string,
    tuner_position,
)


def test_a4_is_in_tune() -> None:
    reading = frequency_to_note(440.0)
    assert reading is not None
    assert reading.note == "A4"
    assert reading.cents == 0


@pytest.mark.parametrize(
    ("hz", "note", "cents"),
    [(261.63, "C4", 0), (446.0, "A4", 23), (430.0, "A4", -40), (82.41, "E2", 0), (523.25, "C5", 0)],
)
def test_frequency_to_note(hz: float, note: str, cents: int) -> None:
    reading = frequency_to_note(hz)
    assert reading is not None
    assert reading.note == note
    assert reading.cents == cents


@pytest.mark.parametrize("hz", [None, 0.0, 10.0])
def test_no_note_for_missing_or_subsonic(hz) -> None:
    assert frequency_to_note(hz) is None


def test_note_to_frequency() -> None:
    assert note_to_frequency("A", 4) == pytest.approx(440.0)
    assert note_to_frequency("C", 4) == pytest.approx(261.6256, rel=1e-5)
    assert note_to_frequency("H", 4) == 440.0


def test_parse_note_string() -> None:
    assert parse_note_string("D#3") == ("D#", 3)
    assert parse_note_string("nope") == ("A", 4)


def test_reference_notes_span_c2_to_c5() -> None:
    notes = generate_reference_notes()
    assert notes[0] == "C2"
    assert notes[-1] == "C5"
    assert len(notes) == 37
    assert "A4" in notes


@pytest.mark.parametrize(
    ("cents", "position"),
    [(0, 50.0), (-50, 0.0), (50, 100.0), (25, 75.0), (-80, 0.0), (120, 100.0)],
)
def test_tuner_position_clamps_to_fifty_cents(cents: int, position: float) -> None:
    assert tuner_position(cents) == pytest.approx(position)


def test_in_tune_within_ten_cents() -> None:
    assert is_in_tune(0)
    assert is_in_tune(-10)
    assert is_in_tune(10)
    assert not is_in_tune(11)
    assert not is_in_tune(-23)
