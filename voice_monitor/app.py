from __future__ import annotations

import logging
import sys
import time
from typing import Callable

from PySide6 import QtCore, QtGui, QtWidgets

from voice_monitor.errors import AcquisitionError
from voice_monitor.headphones import detect_headphones
from voice_monitor.logging_config import setup_logging
from voice_monitor.metronome import (
    BeatScheduler,
    MetronomeConfig,
    TimeSignature,
    clamp_tempo,
)
from voice_monitor.notes import (
    frequency_to_note,
    generate_reference_notes,
    is_in_tune,
    note_to_frequency,
    parse_note_string,
    tuner_position,
)
from voice_monitor.pipeline import CapturePipeline
from voice_monitor.reference import ReferencePlayer

logger = logging.getLogger(__name__)


class _QtHandle:
    def __init__(self, timer: QtCore.QTimer) -> None:
        self._timer: QtCore.QTimer | None = timer

    def cancel(self) -> None:
        if self._timer is None:
            return
        self._timer.stop()
        self._timer.deleteLater()
        self._timer = None


class QtTimer:
    """Timer primitive on the Qt event loop (single-shot precise QTimers)."""

    def __init__(self, parent: QtCore.QObject) -> None:
        self._parent = parent

    def time(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], None]) -> _QtHandle:
        timer = QtCore.QTimer(self._parent)
        timer.setSingleShot(True)
        timer.setTimerType(QtCore.Qt.TimerType.PreciseTimer)
        handle = _QtHandle(timer)

        def fire() -> None:
            handle.cancel()
            callback()

        timer.timeout.connect(fire)
        timer.start(max(0, int(round(delay * 1000.0))))
        return handle


class BeatDots(QtWidgets.QWidget):
    def __init__(self, parent: QtWidgets.QWidget | None = None) -> None:
        super().__init__(parent)
        self._count = 4
        self._active = 0
        self.setMinimumHeight(28)

    def set_count(self, count: int) -> None:
        self._count = int(count)
        self._active = 0
        self.update()

    def set_active(self, beat: int) -> None:
        self._active = int(beat)
        self.update()

    def paintEvent(self, event) -> None:  # type: ignore[override]
        painter = QtGui.QPainter(self)
        painter.setRenderHint(QtGui.QPainter.RenderHint.Antialiasing)
        x = 4
        for beat in range(1, self._count + 1):
            # Downbeat is drawn larger.
            size = 20 if beat == 1 else 16
            y = (self.height() - size) // 2
            if beat == self._active:
                color = QtGui.QColor("#1d4ed8" if beat == 1 else "#2563eb")
                painter.setPen(QtCore.Qt.PenStyle.NoPen)
                painter.setBrush(color)
            else:
                painter.setPen(QtGui.QPen(QtGui.QColor("#9ca3af"), 2))
                painter.setBrush(QtCore.Qt.BrushStyle.NoBrush)
            painter.drawEllipse(x, y, size, size)
            x += size + 8
        painter.end()


class MainWindow(QtWidgets.QMainWindow):
    _DEFAULT_REFERENCE = "A4"

    def __init__(self, metronome: MetronomeConfig | None = None) -> None:
        super().__init__()
        self.setWindowTitle("Voice Monitor")

        self._timer = QtTimer(self)
        self._pipeline = CapturePipeline(
            self._on_pitch,
            timer=self._timer,
            on_lost=self._on_input_lost,
        )
        self._scheduler = BeatScheduler(metronome or MetronomeConfig(), timer=self._timer)
        self._reference = ReferencePlayer(timer=self._timer, on_finished=self._on_reference_finished)
        self._metronome_active = False
        self._warning_handle = None

        self._build_ui()
        self._set_session_controls(active=False)

    def _build_ui(self) -> None:
        root = QtWidgets.QWidget()
        layout = QtWidgets.QVBoxLayout(root)

        met_layout = QtWidgets.QHBoxLayout()
        self.beat_dots = BeatDots()
        self.beat_dots.set_count(self._scheduler.beats_per_cycle)
        self.time_signature_combo = QtWidgets.QComboBox()
        self.time_signature_combo.addItems([ts.value for ts in TimeSignature])
        self.time_signature_combo.setCurrentText(
            TimeSignature.FOUR_FOUR.value
            if self._scheduler.beats_per_cycle == 4
            else TimeSignature.EIGHT_EIGHT.value
        )
        self.btn_slower = QtWidgets.QPushButton("-")
        self.btn_faster = QtWidgets.QPushButton("+")
        for btn in (self.btn_slower, self.btn_faster):
            # Hold to keep changing: first repeat after 500 ms, then every 100 ms.
            btn.setAutoRepeat(True)
            btn.setAutoRepeatDelay(500)
            btn.setAutoRepeatInterval(100)
            btn.setFixedWidth(32)
        self.tempo_label = QtWidgets.QLabel(str(self._scheduler.tempo))
        self.tempo_label.setFixedWidth(40)
        self.tempo_label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self.btn_metronome = QtWidgets.QPushButton("▶")
        self.btn_metronome.setFixedWidth(40)

        met_layout.addWidget(self.beat_dots, 1)
        met_layout.addWidget(self.time_signature_combo)
        met_layout.addWidget(self.btn_slower)
        met_layout.addWidget(self.tempo_label)
        met_layout.addWidget(self.btn_faster)
        met_layout.addWidget(self.btn_metronome)
        layout.addLayout(met_layout)

        self.time_signature_combo.currentTextChanged.connect(self._on_time_signature_change)
        self.btn_slower.clicked.connect(lambda: self._change_tempo(-1))
        self.btn_faster.clicked.connect(lambda: self._change_tempo(1))
        self.btn_metronome.clicked.connect(self._on_metronome_toggle)

        self.note_label = QtWidgets.QLabel("--")
        self.note_label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self.note_label.setFont(QtGui.QFont("Helvetica", 72, QtGui.QFont.Weight.Bold))
        self.cents_label = QtWidgets.QLabel("")
        self.cents_label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self.cents_label.setFont(QtGui.QFont("Helvetica", 20))
        self.tuner_bar = QtWidgets.QProgressBar()
        self.tuner_bar.setRange(0, 100)
        self.tuner_bar.setTextVisible(False)
        self.tuner_bar.setFixedHeight(12)
        layout.addWidget(self.note_label, 1)
        layout.addWidget(self.cents_label)
        layout.addWidget(self.tuner_bar)

        controls = QtWidgets.QHBoxLayout()
        self.btn_session = QtWidgets.QPushButton("Start")
        self.chk_monitor = QtWidgets.QCheckBox("Hear myself")
        controls.addWidget(self.btn_session)
        controls.addWidget(self.chk_monitor)
        controls.addStretch(1)
        layout.addLayout(controls)

        self.btn_session.clicked.connect(self._on_session_toggle)
        self.chk_monitor.toggled.connect(self._on_monitor_toggle)

        self.headphone_warning = QtWidgets.QLabel(
            "No headphones detected. Plug in headphones to hear yourself without feedback."
        )
        self.headphone_warning.setStyleSheet("color: #d97706; font-weight: bold;")
        self.headphone_warning.setVisible(False)
        layout.addWidget(self.headphone_warning)

        ref_layout = QtWidgets.QHBoxLayout()
        self.reference_combo = QtWidgets.QComboBox()
        self.reference_combo.addItems(generate_reference_notes())
        self.reference_combo.setCurrentText(self._DEFAULT_REFERENCE)
        self.btn_reference = QtWidgets.QPushButton("Play reference")
        ref_layout.addWidget(QtWidgets.QLabel("Reference:"))
        ref_layout.addWidget(self.reference_combo)
        ref_layout.addWidget(self.btn_reference)
        ref_layout.addStretch(1)
        layout.addLayout(ref_layout)

        self.btn_reference.clicked.connect(self._on_reference_clicked)

        self.status = QtWidgets.QLabel("Press Start and sing.")
        layout.addWidget(self.status)

        self.setCentralWidget(root)

    def closeEvent(self, event) -> None:  # type: ignore[override]
        try:
            self._scheduler.stop()
            self._reference.stop()
            self._pipeline.stop()
        finally:
            super().closeEvent(event)

    def hideEvent(self, event) -> None:  # type: ignore[override]
        self._scheduler.pause()
        super().hideEvent(event)

    def showEvent(self, event) -> None:  # type: ignore[override]
        if self._metronome_active:
            self._scheduler.resume()
        super().showEvent(event)

    def changeEvent(self, event) -> None:  # type: ignore[override]
        if event.type() == QtCore.QEvent.Type.WindowStateChange:
            if self.isMinimized():
                self._scheduler.pause()
            elif self._metronome_active:
                self._scheduler.resume()
        super().changeEvent(event)

    @QtCore.Slot()
    def _on_session_toggle(self) -> None:
        if self._pipeline.is_active:
            self._pipeline.stop()
            self._set_session_controls(active=False)
            self._set_status("Stopped.", "info")
            return
        try:
            self._pipeline.start()
        except AcquisitionError as exc:
            self._set_status(
                f"Microphone unavailable: {exc}. Allow microphone access and press Start again.",
                "error",
            )
            return
        self._set_session_controls(active=True)
        self._set_status("Listening...", "info")

    @QtCore.Slot(bool)
    def _on_monitor_toggle(self, enabled: bool) -> None:
        if enabled:
            if not detect_headphones():
                self.chk_monitor.blockSignals(True)
                self.chk_monitor.setChecked(False)
                self.chk_monitor.blockSignals(False)
                self._show_headphone_warning()
                return
            self.headphone_warning.setVisible(False)
            self._pipeline.enable_monitoring()
        else:
            self.headphone_warning.setVisible(False)
            self._pipeline.disable_monitoring()

    def _show_headphone_warning(self) -> None:
        self.headphone_warning.setVisible(True)
        if self._warning_handle is not None:
            self._warning_handle.cancel()
        self._warning_handle = self._timer.call_later(3.0, self._hide_headphone_warning)

    def _hide_headphone_warning(self) -> None:
        self._warning_handle = None
        self.headphone_warning.setVisible(False)

    @QtCore.Slot()
    def _on_reference_clicked(self) -> None:
        if self._reference.is_playing:
            self._reference.stop()
            self.btn_reference.setText("Play reference")
            return
        name, octave = parse_note_string(self.reference_combo.currentText())
        try:
            self._reference.play_tone(note_to_frequency(name, octave))
        except Exception as exc:  # noqa: BLE001
            self._set_status(f"Unable to play reference: {exc}", "error")
            return
        self.btn_reference.setText("Stop reference")

    def _on_reference_finished(self) -> None:
        self.btn_reference.setText("Play reference")

    @QtCore.Slot()
    def _on_metronome_toggle(self) -> None:
        if self._metronome_active:
            self._scheduler.stop()
            self._metronome_active = False
            self.beat_dots.set_active(0)
            self.btn_metronome.setText("▶")
        else:
            self._scheduler.start(self.beat_dots.set_active)
            self._metronome_active = True
            self.btn_metronome.setText("⏸")

    def _change_tempo(self, delta: int) -> None:
        tempo = clamp_tempo(self._scheduler.tempo + delta)
        if tempo == self._scheduler.tempo:
            return
        self._scheduler.update_tempo(tempo)
        self.tempo_label.setText(str(tempo))

    @QtCore.Slot(str)
    def _on_time_signature_change(self, text: str) -> None:
        self._scheduler.update_time_signature(text)
        self.beat_dots.set_count(self._scheduler.beats_per_cycle)
        if self._scheduler.is_running:
            self.beat_dots.set_active(self._scheduler.current_beat)

    def _on_pitch(self, hz: float | None) -> None:
        reading = frequency_to_note(hz)
        if reading is None:
            self.note_label.setText("--")
            self.cents_label.setText("")
            self.tuner_bar.setValue(50)
            self.tuner_bar.setStyleSheet("")
            return
        self.note_label.setText(reading.note)
        color = "#10b981" if is_in_tune(reading.cents) else "#fbbf24"
        self.tuner_bar.setValue(int(round(tuner_position(reading.cents))))
        self.tuner_bar.setStyleSheet(f"QProgressBar::chunk {{ background-color: {color}; }}")
        if reading.cents == 0:
            self.cents_label.setText("in tune")
        else:
            self.cents_label.setText(f"{reading.cents:+d} cents")

    def _on_input_lost(self) -> None:
        self._set_session_controls(active=False)
        self._set_status("Microphone disconnected. Press Start to listen again.", "error")

    def _set_session_controls(self, *, active: bool) -> None:
        self.btn_session.setText("Stop" if active else "Start")
        self.chk_monitor.setEnabled(active)
        if not active:
            self.chk_monitor.blockSignals(True)
            self.chk_monitor.setChecked(False)
            self.chk_monitor.blockSignals(False)
            self.headphone_warning.setVisible(False)
            self._on_pitch(None)

    def _set_status(self, text: str, kind: str) -> None:
        if kind == "error":
            self.status.setStyleSheet("color: #ff5c5c; font-weight: bold;")
        elif kind == "info":
            self.status.setStyleSheet("color: #7fd1ff; font-weight: bold;")
        else:
            self.status.setStyleSheet("")
        self.status.setText(text)


def main() -> None:
    setup_logging()
    app = QtWidgets.QApplication(sys.argv)
    win = MainWindow()
    win.resize(520, 420)
    win.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
