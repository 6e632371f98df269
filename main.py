"""Application entrypoint."""

from __future__ import annotations

import sys
import threading
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

from annotation import AnnotationClient
from config import CHUNK_INTERVAL_OPTIONS, JsonConfigStore
from hotkey import ToggleHotkey
from interfaces import ConfigStore
from models import AnnotationStatus, SessionState
from overlay import OverlayWindow
from recorder import SoundDeviceRecorder
from session_controller import SessionController, format_elapsed
from transcription import TranscriptionClient

try:
    from PySide6.QtCore import QObject, QSize, QTimer, Signal
    from PySide6.QtGui import QAction, QActionGroup, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

LOG_FILE = Path.home() / ".config" / "live_gloss" / "live_gloss.log"


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))  # transparent background
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_COLORS = {
    SessionState.IDLE: "#888888",          # grey
    SessionState.RECORDING: "#FF4444",     # red
    SessionState.RATE_LIMITED: "#4488FF",  # blue
    SessionState.ERROR: "#FF8800",         # orange
}


class UIBridge(QObject):
    refresh_signal = Signal()
    toggle_signal = Signal()
    error_signal = Signal(str)
    state_signal = Signal(str, str)  # from_state, to_state


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store: ConfigStore = JsonConfigStore()
        self.overlay = OverlayWindow()
        self.ui = UIBridge()
        self.ui.refresh_signal.connect(self._refresh_ui)
        self.ui.error_signal.connect(self.overlay.show_error)
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.toggle_signal.connect(self.toggle_recording)

        api_key = self.config_store.get_api_key()
        self.transcriber = TranscriptionClient(api_key=api_key)
        self.annotator = AnnotationClient(api_key=api_key)
        self.controller = SessionController(
            capture=SoundDeviceRecorder(),
            transcriber=self.transcriber,
            annotator=self.annotator,
            chunk_interval_s=self.config_store.get_chunk_interval(),
            annotation_enabled=self.config_store.get_annotation_enabled(),
            on_state_change=self._on_state_change,
            on_transcript=lambda _text: self.ui.refresh_signal.emit(),
            on_annotations=lambda _entries: self.ui.refresh_signal.emit(),
            on_annotation_status=lambda _status: self.ui.refresh_signal.emit(),
            on_error=self._on_error,
        )
        self.hotkey = ToggleHotkey(hotkey_name=self.config_store.get_hotkey())

        # One-second tick for the elapsed time and countdowns.
        self.ticker = QTimer()
        self.ticker.timeout.connect(self._refresh_status)
        self.ticker.start(1000)

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_COLORS[SessionState.IDLE]))
        self.tray.setToolTip("Live Gloss — Ready")
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        self.record_action = QAction("Start Recording", menu)
        self.record_action.triggered.connect(self.toggle_recording)
        menu.addAction(self.record_action)

        self.interval_menu = menu.addMenu("Chunk Interval")
        group = QActionGroup(self.interval_menu)
        for seconds in CHUNK_INTERVAL_OPTIONS:
            action = QAction(f"{seconds}s", self.interval_menu, checkable=True)
            action.setChecked(seconds == self.controller.chunk_interval_s)
            action.triggered.connect(lambda _checked=False, s=seconds: self._set_chunk_interval(s))
            group.addAction(action)
            self.interval_menu.addAction(action)

        self.annotation_action = QAction("Show Glosses", menu, checkable=True)
        self.annotation_action.setChecked(self.controller.annotation_enabled)
        self.annotation_action.triggered.connect(self._set_annotation_enabled)
        menu.addAction(self.annotation_action)

        self.retry_action = QAction("Retry Glosses", menu)
        self.retry_action.setEnabled(False)
        self.retry_action.triggered.connect(self.controller.retry_annotations)
        menu.addAction(self.retry_action)

        clear_action = QAction("Clear Transcript", menu)
        clear_action.triggered.connect(self.controller.clear)
        menu.addAction(clear_action)

        menu.addSeparator()
        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def toggle_recording(self) -> None:
        if self.controller.capturing:
            # Stopping joins the segmenter thread; keep it off the Qt thread.
            threading.Thread(target=self.controller.stop_session, daemon=True).start()
        elif not self.controller.start_session():
            self._refresh_status()

    def _set_chunk_interval(self, seconds: int) -> None:
        if self.controller.set_chunk_interval(seconds):
            self.config_store.set_chunk_interval(seconds)

    def _set_annotation_enabled(self, enabled: bool) -> None:
        self.controller.set_annotation_enabled(enabled)
        self.config_store.set_annotation_enabled(enabled)
        self._refresh_ui()

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "Groq API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        self.transcriber.api_key = value
        self.annotator.api_key = value
        QMessageBox.information(None, "Saved", "API Key saved and applied.")

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    def _on_error(self, code: str, message: str) -> None:
        logger.warning(f"{code}: {message}")
        self.ui.error_signal.emit(message)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _refresh_ui(self) -> None:
        self.overlay.set_tokens(self.controller.overlay_tokens())
        self._refresh_status()

    def _refresh_status(self) -> None:
        controller = self.controller
        parts = []
        if controller.capturing:
            parts.append(f"● {format_elapsed(controller.elapsed_s)} · every {controller.chunk_interval_s}s")
        if controller.rate_limit_remaining:
            parts.append(f"Rate limited: {controller.rate_limit_remaining}s")
        if controller.annotation_enabled:
            status = controller.annotation_status
            if status == AnnotationStatus.LOADING:
                parts.append("Annotating...")
            elif status == AnnotationStatus.DONE and controller.annotations:
                parts.append(f"✓ {len(controller.annotations)} words annotated")
            elif status == AnnotationStatus.RATE_LIMITED:
                parts.append(f"Glosses rate limited: wait {controller.annotation_wait_remaining}s")
        self.overlay.set_status("  ·  ".join(parts))
        self.retry_action.setEnabled(controller.can_retry_annotation)
        self.record_action.setEnabled(controller.capturing or controller.can_start)
        self.interval_menu.setEnabled(not controller.capturing)

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        state = SessionState(to_state)
        self.tray.setIcon(_create_icon(ICON_COLORS[state]))
        if state == SessionState.RECORDING:
            self.record_action.setText("Stop Recording")
            self.tray.setToolTip("Live Gloss — Recording...")
            self.overlay.set_tokens(self.controller.overlay_tokens())
        elif state == SessionState.RATE_LIMITED:
            self.tray.setToolTip("Live Gloss — Rate limited")
        elif state == SessionState.IDLE:
            self.record_action.setText("Start Recording")
            self.tray.setToolTip("Live Gloss — Ready")
        elif state == SessionState.ERROR:
            self.record_action.setText("Start Recording")
            self.tray.setToolTip("Live Gloss — Microphone error")
        self._refresh_status()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start(on_toggle=self.ui.toggle_signal.emit)
        except Exception as exc:
            self.overlay.show_error(f"Hotkey disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.ticker.stop()
        self.controller.shutdown()
        self.app.quit()


def main() -> int:
    load_dotenv()
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    logger.add(LOG_FILE, rotation="5 MB", retention=3, level="INFO")
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
