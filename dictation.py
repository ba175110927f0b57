"""Folds recognition results into the text of a single input field."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from errors import ErrorKind, message_for
from interfaces import MicrophoneProbe, SpeechEngine
from models import AccumulationMode, DictationStatus, RecognitionConfig, SessionState
from session_manager import RecognitionSessionManager

logger = logging.getLogger(__name__)

SEPARATOR = " "

TranscriptCallback = Callable[[str], None]
StatusCallback = Callable[[DictationStatus, str], None]

STARTED_MESSAGE = "Recording. Speak now and toggle again to finish."
STOPPED_MESSAGE = "Recording finished. Transcription complete."


class DictationAdapter:
    """Drive one recognition session on behalf of one text field.

    Every final fragment the session commits is merged into ``text``: appended
    after a single space in append mode, or replacing the previous value in
    replace mode. ``on_transcript`` receives the full text after each change.
    """

    def __init__(
        self,
        engine: Optional[SpeechEngine],
        on_transcript: TranscriptCallback,
        on_status: Optional[StatusCallback] = None,
        config: Optional[RecognitionConfig] = None,
        microphone: Optional[MicrophoneProbe] = None,
        settle_delay_s: float = 0.1,
        restart_delay_s: float = 0.2,
        on_interim: Optional[Callable[[str], None]] = None,
        on_state_change: Optional[Callable[[SessionState], None]] = None,
    ) -> None:
        self._config = config or RecognitionConfig()
        self._on_transcript = on_transcript
        self._on_status = on_status
        self._on_interim = on_interim
        self._on_state_change = on_state_change

        self._text = ""
        self._seen_transcript = ""
        self._announced = True

        self._session = RecognitionSessionManager(
            engine,
            microphone=microphone,
            settle_delay_s=settle_delay_s,
            restart_delay_s=restart_delay_s,
            on_result=self._handle_result,
            on_error=self._handle_error,
            on_state_change=self._handle_state_change,
            on_interim=self._handle_interim,
        )
        if not self._session.is_supported:
            logger.warning("speech recognition is not available, voice input disabled")
            self._emit_status(DictationStatus.ERROR, message_for(ErrorKind.UNSUPPORTED))

    @property
    def is_supported(self) -> bool:
        return self._session.is_supported

    @property
    def is_listening(self) -> bool:
        return self._session.is_listening

    @property
    def interim_transcript(self) -> str:
        return self._session.interim_transcript

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def mode(self) -> AccumulationMode:
        return self._config.mode

    @property
    def text(self) -> str:
        return self._text

    async def toggle(self) -> None:
        if not self.is_supported:
            return
        session = self._session
        if session.is_listening:
            session.stop()
            self._emit_status(DictationStatus.STOPPED, STOPPED_MESSAGE)
            return
        if session.is_starting:
            # Nothing was recorded yet, so there is no completion to report.
            session.stop()
            return
        if session.state == SessionState.STOPPING:
            logger.warning("toggle ignored: previous session is still stopping")
            return

        session.reset_transcript()
        self._seen_transcript = ""
        if self.mode == AccumulationMode.REPLACE:
            self._text = ""
        self._announced = False
        await session.start()

    def reset(self) -> None:
        self._session.reset_transcript()
        self._seen_transcript = ""
        self._text = ""

    def dispose(self) -> None:
        self._session.dispose()
        self._seen_transcript = ""
        self._text = ""

    def _handle_result(self, transcript: str) -> None:
        # The session reports its cumulative transcript; only the new tail counts.
        if self._seen_transcript and transcript.startswith(self._seen_transcript):
            fragment = transcript[len(self._seen_transcript):].strip()
        else:
            fragment = transcript.strip()
        self._seen_transcript = transcript
        if not fragment:
            return

        if self.mode == AccumulationMode.APPEND:
            prefix = self._text + SEPARATOR if self._text else ""
            self._text = prefix + fragment
        else:
            self._text = fragment
        self._on_transcript(self._text)

    def _handle_error(self, kind: ErrorKind, message: str) -> None:
        self._emit_status(DictationStatus.ERROR, message)

    def _handle_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        if to_state == SessionState.LISTENING and not self._announced:
            self._announced = True
            self._emit_status(DictationStatus.STARTED, STARTED_MESSAGE)
        if self._on_state_change:
            self._on_state_change(to_state)

    def _handle_interim(self, text: str) -> None:
        if self._on_interim:
            self._on_interim(text)

    def _emit_status(self, status: DictationStatus, detail: str) -> None:
        if self._on_status:
            self._on_status(status, detail)
