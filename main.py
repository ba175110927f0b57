"""Application entrypoint."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from concurrent.futures import Future
from typing import Coroutine, Optional

from config import JsonConfigStore
from dictation import DictationAdapter
from hotkey import ToggleHotkey
from interfaces import ConfigStore
from log_setup import configure_logging
from models import DictationStatus, SessionState
from overlay import StatusOverlay
from recognizer import DashscopeSpeechEngine
from recorder import SoundDeviceMicrophoneProbe

try:
    from PySide6.QtCore import QObject, Signal
    from PySide6.QtWidgets import (
        QApplication,
        QInputDialog,
        QLabel,
        QMessageBox,
        QPlainTextEdit,
        QPushButton,
        QVBoxLayout,
        QWidget,
    )
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


class LoopThread:
    """Runs the asyncio loop that owns the dictation session."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="dictation-loop", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def submit(self, coro: Coroutine) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def call(self, fn, *args) -> None:  # noqa: ANN001
        self.loop.call_soon_threadsafe(fn, *args)

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=1.0)

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()


class UIBridge(QObject):
    transcript_signal = Signal(str)
    interim_signal = Signal(str)
    status_signal = Signal(str, str)  # status, detail
    state_signal = Signal(str)
    toggle_signal = Signal()


class DictationWindow(QWidget):
    def __init__(self, bridge: UIBridge) -> None:
        super().__init__()
        self.setWindowTitle("Voice Dictation")
        self.resize(520, 320)

        self.editor = QPlainTextEdit()
        self.editor.setPlaceholderText("Type here or press the microphone button to dictate.")
        self.preview = QLabel("")
        self.preview.setStyleSheet("color: gray; font-style: italic;")
        self.button = QPushButton("🎤 Dictate")
        self.button.clicked.connect(bridge.toggle_signal.emit)

        layout = QVBoxLayout()
        layout.addWidget(self.editor)
        layout.addWidget(self.preview)
        layout.addWidget(self.button)
        self.setLayout(layout)

    def set_listening(self, listening: bool) -> None:
        self.button.setText("⏹ Stop" if listening else "🎤 Dictate")

    def set_unavailable(self) -> None:
        self.button.setEnabled(False)
        self.button.setToolTip("Voice input is not available on this system.")


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.config_store: ConfigStore = JsonConfigStore()
        self.loop_thread = LoopThread()
        self.ui = UIBridge()
        self.overlay = StatusOverlay()
        self.window = DictationWindow(self.ui)

        self.ui.transcript_signal.connect(self._on_transcript_ui)
        self.ui.interim_signal.connect(self._on_interim_ui)
        self.ui.status_signal.connect(self._on_status_ui)
        self.ui.state_signal.connect(self._on_state_ui)
        self.ui.toggle_signal.connect(self._toggle)

        config = self.config_store.get_recognition_config()
        self.engine: Optional[DashscopeSpeechEngine] = None
        if DashscopeSpeechEngine.is_available():
            self.engine = DashscopeSpeechEngine(api_key=self.config_store.get_api_key(), config=config)
        self.adapter = DictationAdapter(
            self.engine,
            on_transcript=self.ui.transcript_signal.emit,
            on_status=lambda status, detail: self.ui.status_signal.emit(status.value, detail),
            on_interim=self.ui.interim_signal.emit,
            on_state_change=lambda state: self.ui.state_signal.emit(state.value),
            config=config,
            microphone=SoundDeviceMicrophoneProbe(),
        )
        if not self.adapter.is_supported:
            self.window.set_unavailable()

        self.hotkey = ToggleHotkey(hotkey_name=self.config_store.get_hotkey())
        self._add_settings_button()

    def _add_settings_button(self) -> None:
        api_button = QPushButton("Set API Key")
        api_button.clicked.connect(self._set_api_key)
        self.window.layout().addWidget(api_button)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        if self.engine is not None:
            self.engine.set_api_key(value)
        QMessageBox.information(None, "Saved", "API Key saved and applied.")

    # ------------------------------------------------------------------
    # Callbacks (called from the loop thread → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _toggle(self) -> None:
        future = self.loop_thread.submit(self.adapter.toggle())
        future.add_done_callback(self._log_toggle_failure)

    def _log_toggle_failure(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("dictation toggle failed: %s", exc)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_transcript_ui(self, text: str) -> None:
        self.window.editor.setPlainText(text)

    def _on_interim_ui(self, text: str) -> None:
        self.window.preview.setText(text)
        self.overlay.show_interim(text)

    def _on_status_ui(self, status: str, detail: str) -> None:
        if status == DictationStatus.STARTED.value:
            self.overlay.show_status(f"🎤 {detail}")
        elif status == DictationStatus.STOPPED.value:
            self.overlay.show_status(detail)
        else:
            self.overlay.show_error(detail)

    def _on_state_ui(self, state: str) -> None:
        self.window.set_listening(state == SessionState.LISTENING.value)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.loop_thread.start()
        try:
            self.hotkey.start(on_toggle=self.ui.toggle_signal.emit)
        except Exception as exc:
            logger.warning("hotkey disabled: %s", exc)
            self.overlay.show_error(f"Hotkey disabled: {exc}")
        self.window.show()
        self.app.aboutToQuit.connect(self.shutdown)
        return self.app.exec()

    def shutdown(self) -> None:
        self.hotkey.stop()
        self.loop_thread.call(self.adapter.dispose)
        self.loop_thread.stop()


def main() -> int:
    configure_logging()
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
