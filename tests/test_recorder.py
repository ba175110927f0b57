"""Tests for SoundDeviceRecorder and SoundDeviceMicrophoneProbe."""

from __future__ import annotations

from queue import Queue
from unittest.mock import MagicMock, patch

import pytest

from errors import MicrophonePermissionError
from models import AudioFrame
from recorder import SoundDeviceMicrophoneProbe, SoundDeviceRecorder


class _FakeAudioInput:
    """Fake audio input similar to what the sounddevice callback provides."""

    def __init__(self, n_samples: int = 1600) -> None:
        self._data = b"\x00\x00" * n_samples

    def tobytes(self) -> bytes:
        return self._data


class _FakeNp:
    int16 = "int16"

    @staticmethod
    def asarray(data, dtype=None):  # noqa: ANN001, ANN205
        return data


# ---------------------------------------------------------------
# Recorder
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_start_opens_stream_and_stop_emits_sentinel(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder(device=3)
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)

    assert recorder.running is True
    assert mock_sd.InputStream.call_args.kwargs["device"] == 3
    mock_stream.start.assert_called_once()

    recorder.stop()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()
    assert recorder.running is False
    assert q.get_nowait() is None


@patch("recorder.sd")
def test_start_and_stop_are_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.start(q)
    recorder.stop()
    recorder.stop()

    assert mock_sd.InputStream.call_count == 1
    assert q.get_nowait() is None
    assert q.empty()


@patch("recorder.sd", None)
def test_start_without_sounddevice_raises() -> None:
    recorder = SoundDeviceRecorder()
    with pytest.raises(RuntimeError):
        recorder.start(Queue())


@patch("recorder.sd")
def test_start_failure_closes_stream(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_stream.start.side_effect = RuntimeError("device busy")
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    with pytest.raises(RuntimeError):
        recorder.start(q)

    mock_stream.close.assert_called_once()
    assert recorder.running is False
    recorder.stop()
    assert q.empty()


@patch("recorder.np", _FakeNp())
@patch("recorder.sd")
def test_callback_pushes_frames_and_counts_drops(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder(sample_rate=16000, channels=1, chunk_ms=100)
    q: Queue[AudioFrame | None] = Queue(maxsize=1)
    recorder.start(q)

    recorder._on_audio(_FakeAudioInput(), 1600, None, None)
    recorder._on_audio(_FakeAudioInput(), 1600, None, None)

    frame = q.get_nowait()
    assert isinstance(frame, AudioFrame)
    assert len(frame.pcm16_bytes) == 3200
    assert recorder.dropped_chunks == 1
    recorder.stop()


# ---------------------------------------------------------------
# Microphone probe
# ---------------------------------------------------------------

@pytest.mark.asyncio
@patch("recorder.sd")
async def test_probe_opens_and_releases_microphone(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    await SoundDeviceMicrophoneProbe().probe()

    mock_stream.start.assert_called_once()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()


@pytest.mark.asyncio
@patch("recorder.sd")
async def test_probe_failure_raises_permission_error(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.side_effect = OSError("Error querying device -1")

    with pytest.raises(MicrophonePermissionError):
        await SoundDeviceMicrophoneProbe().probe()


@pytest.mark.asyncio
@patch("recorder.sd", None)
async def test_probe_without_sounddevice_raises_permission_error() -> None:
    with pytest.raises(MicrophonePermissionError):
        await SoundDeviceMicrophoneProbe().probe()


@pytest.mark.asyncio
@patch("recorder.sd")
async def test_probe_releases_microphone_when_start_fails(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_stream.start.side_effect = RuntimeError("permission denied")
    mock_sd.InputStream.return_value = mock_stream

    with pytest.raises(MicrophonePermissionError):
        await SoundDeviceMicrophoneProbe().probe()

    mock_stream.close.assert_called_once()
