"""Overlay window showing the live transcript with glosses."""

from __future__ import annotations

import html

from models import OverlayToken

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtWidgets import QApplication, QLabel, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QWidget = object  # type: ignore
    QVBoxLayout = object  # type: ignore

TEXT_STYLE = (
    "color: white; font-size: 18px; padding: 16px;"
    "background: rgba(0,0,0,190); border-radius: 12px;"
)
ERROR_STYLE = (
    "color: #FF6B6B; font-size: 14px; padding: 6px 16px;"
    "background: rgba(0,0,0,210); border-radius: 8px;"
)
STATUS_STYLE = "color: #BBBBBB; font-size: 12px; padding: 4px 16px;"
GLOSS_COLOR = "#FFD166"


def overlay_html(tokens: list[OverlayToken]) -> str:
    """Render overlay tokens as Qt rich text, gloss and reading above the word."""
    parts: list[str] = []
    for token in tokens:
        text = html.escape(token.text).replace("\n", "<br>")
        annotation = token.annotation
        if annotation is None:
            parts.append(text)
            continue
        note = html.escape(f"{annotation.gloss} {annotation.reading}")
        parts.append(
            f'<span style="color: {GLOSS_COLOR};">{text}</span>'
            f'<sup style="color: {GLOSS_COLOR}; font-size: 11px;">{note}</sup>'
        )
    return "".join(parts)


class OverlayWindow(QWidget):
    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(
            Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool
        )
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setFixedWidth(720)

        self._label = QLabel("")
        self._label.setWordWrap(True)
        self._label.setTextFormat(Qt.RichText)
        self._label.setStyleSheet(TEXT_STYLE)

        self._status = QLabel("")
        self._status.setStyleSheet(STATUS_STYLE)

        self._error = QLabel("")
        self._error.setWordWrap(True)
        self._error.setStyleSheet(ERROR_STYLE)
        self._error.hide()

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._label)
        layout.addWidget(self._status)
        layout.addWidget(self._error)
        self.setLayout(layout)

        self._error_timer: QTimer | None = None

    def _center_top(self) -> None:
        """Position the window at the top center of the primary screen."""
        if QApplication is None:
            return
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        x = geom.x() + (geom.width() - self.width()) // 2
        y = geom.y() + 40  # 40px below menu bar
        self.move(x, y)

    def set_tokens(self, tokens: list[OverlayToken]) -> None:
        self._label.setText(overlay_html(tokens))
        self._center_top()
        self.show()

    def set_status(self, text: str) -> None:
        self._status.setText(text)

    def show_error(self, text: str, hide_after_ms: int = 4000) -> None:
        self._error.setText(f"⚠️ {html.escape(text)}")
        self._error.show()
        self._center_top()
        self.show()
        if self._error_timer is not None:
            self._error_timer.stop()
        self._error_timer = QTimer()
        self._error_timer.setSingleShot(True)
        self._error_timer.timeout.connect(self._error.hide)
        self._error_timer.start(hide_after_ms)
