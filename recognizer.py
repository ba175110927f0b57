"""Speech engine over DashScope qwen3-asr-flash.

The model accepts complete audio (file path, URL, or base64) and streams back
recognition results via ``stream=True``. The engine captures PCM frames from
the microphone, packs them into a WAV payload once an utterance is over, and
streams the recognised text back as ``partial`` events followed by one
``final`` event.

Event handlers registered with ``on()`` are invoked on the asyncio loop that
called ``start()``; without a running loop they are called directly from the
worker thread.
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging
import os
import threading
import time
import wave
from queue import Empty, Queue
from typing import Callable, Optional

from errors import (
    ABORTED,
    AUDIO_CAPTURE,
    NETWORK,
    NO_SPEECH,
    SERVICE_NOT_ALLOWED,
    EngineAlreadyStarted,
)
from models import AudioFrame, EngineEvent, RecognitionConfig
from recorder import SoundDeviceRecorder, capture_available

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

RECOGNITION_FAILED = "recognition-failed"

_NO_FRAME = object()

RecorderFactory = Callable[[], SoundDeviceRecorder]


def _pcm_to_wav_base64(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    """Convert raw PCM bytes to a base64-encoded WAV string."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class DashscopeSpeechEngine:
    def __init__(
        self,
        api_key: str = "",
        config: Optional[RecognitionConfig] = None,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
        max_utterance_s: float = 15.0,
        segment_s: float = 5.0,
        queue_maxsize: int = 300,
        recorder_factory: Optional[RecorderFactory] = None,
    ) -> None:
        self._api_key = api_key
        self._config = config or RecognitionConfig()
        self._model = model
        self._request_timeout_s = request_timeout_s
        self._max_utterance_s = max_utterance_s
        self._segment_s = segment_s
        self._queue_maxsize = queue_maxsize
        self._recorder_factory = recorder_factory or SoundDeviceRecorder

        self._handlers: dict[str, list[Callable[..., None]]] = {}
        self._lock = threading.Lock()
        self._running = False
        self._recorder: Optional[SoundDeviceRecorder] = None
        self._aborted: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @staticmethod
    def is_available() -> bool:
        return dashscope is not None and capture_available()

    @property
    def running(self) -> bool:
        return self._running

    def set_api_key(self, key: str) -> None:
        self._api_key = key

    def on(self, event: str, handler: Callable[..., None]) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def start(self) -> None:
        with self._lock:
            if self._running:
                raise EngineAlreadyStarted("recognition already started")
            self._loop = _running_loop()
            audio_queue: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
            recorder = self._recorder_factory()
            try:
                recorder.start(audio_queue)
            except Exception as exc:
                logger.warning("audio capture failed to start: %s", exc)
                self._emit(EngineEvent.ERROR, AUDIO_CAPTURE, str(exc))
                self._emit(EngineEvent.END)
                return

            aborted = threading.Event()
            self._running = True
            self._recorder = recorder
            self._aborted = aborted
            self._emit(EngineEvent.START)
            self._thread = threading.Thread(
                target=self._worker,
                args=(audio_queue, recorder, aborted),
                daemon=True,
            )
            self._thread.start()

    def stop(self) -> None:
        """Finish capturing; buffered audio is still recognised before ``end``."""
        with self._lock:
            if not self._running:
                return
            recorder = self._recorder
        self._safe_stop_recorder(recorder)

    def abort(self) -> None:
        """Drop buffered audio and end immediately with an ``aborted`` error."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            recorder = self._recorder
            self._recorder = None
            if self._aborted is not None:
                self._aborted.set()
            self._aborted = None
        self._safe_stop_recorder(recorder)
        self._emit(EngineEvent.ERROR, ABORTED, "recognition aborted")
        self._emit(EngineEvent.END)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(
        self,
        audio_queue: Queue[AudioFrame | None],
        recorder: SoundDeviceRecorder,
        aborted: threading.Event,
    ) -> None:
        """Consume audio frames until the sentinel, recognising as configured."""
        pcm = bytearray()
        sample_rate = 16000
        channels = 1
        recognised_any = False
        failed = False
        started = time.monotonic()

        try:
            while not aborted.is_set():
                try:
                    frame = audio_queue.get(timeout=0.2)
                except Empty:
                    if not recorder.running:
                        break
                    frame = _NO_FRAME
                if frame is None:  # Sentinel
                    break
                if frame is not _NO_FRAME:
                    pcm.extend(frame.pcm16_bytes)
                    sample_rate = frame.sample_rate
                    channels = frame.channels

                if self._config.continuous:
                    segment_bytes = int(self._segment_s * sample_rate * channels * 2)
                    if len(pcm) >= segment_bytes:
                        if not self._recognize(bytes(pcm), sample_rate, channels, aborted):
                            failed = True
                            break
                        recognised_any = True
                        pcm = bytearray()
                elif time.monotonic() - started >= self._max_utterance_s:
                    logger.info("utterance limit reached, ending capture")
                    break

            if failed:
                self._safe_stop_recorder(recorder)
                return
            if aborted.is_set():
                return
            self._safe_stop_recorder(recorder)
            if pcm:
                self._recognize(bytes(pcm), sample_rate, channels, aborted)
            elif not recognised_any:
                self._emit_unless(aborted, EngineEvent.ERROR, NO_SPEECH, "no audio captured")
        finally:
            self._finish(aborted)

    def _finish(self, aborted: threading.Event) -> None:
        with self._lock:
            if aborted.is_set() or self._aborted is not aborted:
                return
            self._running = False
            self._recorder = None
            self._aborted = None
        self._emit(EngineEvent.END)

    def _recognize(
        self,
        pcm: bytes,
        sample_rate: int,
        channels: int,
        aborted: threading.Event,
    ) -> bool:
        """Send one utterance to DashScope; returns False when an error was emitted."""
        if dashscope is None:
            self._emit_unless(aborted, EngineEvent.ERROR, SERVICE_NOT_ALLOWED, "dashscope is not installed")
            return False

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            self._emit_unless(aborted, EngineEvent.ERROR, SERVICE_NOT_ALLOWED, "No API key configured")
            return False

        wav_base64 = _pcm_to_wav_base64(pcm, sample_rate, channels)
        asr_options = {"enable_itn": False}
        if self._config.language_code:
            asr_options["language"] = self._config.language_code

        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": wav_base64}]},
                ],
                result_format="message",
                asr_options=asr_options,
                stream=True,
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            self._emit_unless(aborted, EngineEvent.ERROR, self._error_code(exc), str(exc))
            return False

        latest_text = ""
        try:
            for chunk in response:
                if aborted.is_set():
                    return False
                text = self._extract_text(chunk)
                if text:
                    latest_text = text
                    if self._config.interim_results:
                        self._emit_unless(aborted, EngineEvent.PARTIAL, text)
        except Exception as exc:
            self._emit_unless(aborted, EngineEvent.ERROR, self._error_code(exc), str(exc))
            return False

        if not latest_text.strip():
            if not self._config.continuous:
                self._emit_unless(aborted, EngineEvent.ERROR, NO_SPEECH, "empty transcript")
            return True
        self._emit_unless(aborted, EngineEvent.FINAL, latest_text)
        return True

    def _extract_text(self, chunk: object) -> str:
        """Pull text from a dashscope streaming chunk dict."""
        if isinstance(chunk, dict):
            output = chunk.get("output", {})
            choices = output.get("choices", [])
            if not choices:
                return ""
            message = choices[0].get("message", {})
            content = message.get("content", [])
            if not content:
                return ""
            value = content[0]
            if isinstance(value, dict):
                return str(value.get("text", ""))
        return ""

    def _error_code(self, exc: Exception) -> str:
        """Map an SDK/network exception to an engine error code."""
        low = str(exc).lower()
        if "401" in low or "403" in low or "auth" in low or "api key" in low:
            return SERVICE_NOT_ALLOWED
        if isinstance(exc, (ConnectionError, TimeoutError)):
            return NETWORK
        if "timeout" in low or "network" in low or "connection" in low:
            return NETWORK
        return RECOGNITION_FAILED

    def _safe_stop_recorder(self, recorder: Optional[SoundDeviceRecorder]) -> None:
        if recorder is None:
            return
        try:
            recorder.stop()
        except Exception as exc:
            logger.warning("recorder stop failed: %s", exc)

    def _emit_unless(self, aborted: threading.Event, event: EngineEvent, *args: object) -> None:
        if not aborted.is_set():
            self._emit(event, *args)

    def _emit(self, event: EngineEvent, *args: object) -> None:
        handlers = list(self._handlers.get(event.value, ()))
        loop = self._loop
        for handler in handlers:
            if loop is not None and not loop.is_closed():
                loop.call_soon_threadsafe(handler, *args)
            else:
                handler(*args)

