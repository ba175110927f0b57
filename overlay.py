"""Floating overlay for interim dictation text and status messages."""

from __future__ import annotations

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtWidgets import QApplication, QLabel, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

_BASE_STYLE = "font-size: 16px; padding: 12px; border-radius: 10px;"
_INFO_STYLE = "color: white; background: rgba(0,0,0,190);" + _BASE_STYLE
_PREVIEW_STYLE = "color: #DDDDDD; font-style: italic; background: rgba(0,0,0,160);" + _BASE_STYLE
_ERROR_STYLE = "color: #FF6B6B; background: rgba(0,0,0,210);" + _BASE_STYLE


class StatusOverlay(QWidget):
    def __init__(self, width: int = 520) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool)
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WA_ShowWithoutActivating, True)
        self.setFixedWidth(width)

        self._label = QLabel("")
        self._label.setWordWrap(True)
        self._label.setStyleSheet(_INFO_STYLE)

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._label)
        self.setLayout(layout)

        self._hide_timer: QTimer | None = None

    def show_status(self, text: str, hide_after_ms: int = 2500) -> None:
        self._show(text, _INFO_STYLE)
        self.hide_with_delay(hide_after_ms)

    def show_error(self, text: str, hide_after_ms: int = 4000) -> None:
        self._show(f"⚠️ {text}", _ERROR_STYLE)
        self.hide_with_delay(hide_after_ms)

    def show_interim(self, text: str) -> None:
        """Live preview of the words not yet committed by the engine."""
        if not text:
            return
        self._show(f"“{text}”", _PREVIEW_STYLE)

    def hide_with_delay(self, delay_ms: int = 400) -> None:
        self._cancel_hide_timer()
        if QTimer is not None:
            self._hide_timer = QTimer(self)
            self._hide_timer.setSingleShot(True)
            self._hide_timer.timeout.connect(self.hide)
            self._hide_timer.start(delay_ms)

    def _show(self, text: str, style: str) -> None:
        self._cancel_hide_timer()
        self._label.setStyleSheet(style)
        self._label.setText(text)
        self._place_bottom_center()
        self.show()

    def _place_bottom_center(self) -> None:
        if QApplication is None:
            return
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        x = geom.x() + (geom.width() - self.width()) // 2
        y = geom.y() + geom.height() - self.height() - 80
        self.move(x, y)

    def _cancel_hide_timer(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.stop()
            self._hide_timer = None
