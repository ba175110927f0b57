"""Microphone capture and permission probing over sounddevice."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from queue import Full, Queue
from typing import Any, Optional

from errors import MicrophonePermissionError
from models import AudioFrame

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


def capture_available() -> bool:
    return sd is not None and np is not None


class SoundDeviceRecorder:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        device: Optional[int | str] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.device = device
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self.dropped_chunks = 0
        self._audio_queue: Queue[AudioFrame | None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._audio_queue = audio_queue
            self.dropped_chunks = 0
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=blocksize,
                device=self.device,
                callback=self._on_audio,
            )
            try:
                stream.start()
            except Exception:
                stream.close()
                self._audio_queue = None
                raise
            self._stream = stream
            self._running = True

    def stop(self) -> None:
        """Stop capturing and push the end-of-audio sentinel."""
        with self._lock:
            if self._running:
                self._running = False
                if self._stream is not None:
                    self._stream.stop()
                    self._stream.close()
                    self._stream = None
                if self.dropped_chunks:
                    logger.warning("dropped %d audio chunks (queue full)", self.dropped_chunks)
            self._emit_sentinel()
            self._audio_queue = None

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or self._audio_queue is None or np is None:
            return
        payload = np.asarray(indata, dtype=np.int16).tobytes()
        frame = AudioFrame(
            pcm16_bytes=payload,
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            self._audio_queue.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1

    def _emit_sentinel(self) -> None:
        if self._audio_queue is None:
            return
        try:
            self._audio_queue.put_nowait(None)
        except Full:
            logger.debug("audio queue full, sentinel not delivered")


class SoundDeviceMicrophoneProbe:
    """Acquire the microphone once and release it, to surface permission errors early."""

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        device: Optional[int | str] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device

    async def probe(self) -> None:
        await asyncio.to_thread(self._open_and_close)

    def _open_and_close(self) -> None:
        if sd is None:
            raise MicrophonePermissionError("sounddevice is not installed")
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                device=self.device,
            )
        except Exception as exc:
            raise MicrophonePermissionError(f"microphone unavailable: {exc}") from exc
        try:
            stream.start()
            stream.stop()
        except Exception as exc:
            raise MicrophonePermissionError(f"microphone unavailable: {exc}") from exc
        finally:
            stream.close()
