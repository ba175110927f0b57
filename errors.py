"""Shared error kinds, user-facing messages and engine code normalisation."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NO_SPEECH = "NO_SPEECH"
    AUDIO_CAPTURE_FAILED = "AUDIO_CAPTURE_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    ABORTED = "ABORTED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    ENGINE_CONFLICT = "ENGINE_CONFLICT"
    UNSUPPORTED = "UNSUPPORTED"
    UNKNOWN = "UNKNOWN"


ERROR_MESSAGES = {
    ErrorKind.PERMISSION_DENIED: "Microphone permission denied. Enable it in your system settings.",
    ErrorKind.NO_SPEECH: "No speech detected. Please try again.",
    ErrorKind.AUDIO_CAPTURE_FAILED: "Microphone not found. Check your audio input device.",
    ErrorKind.NETWORK_ERROR: "Network error. Check your connection.",
    ErrorKind.ABORTED: "Speech recognition was interrupted.",
    ErrorKind.SERVICE_UNAVAILABLE: "Speech recognition service is not available. Check your settings.",
    ErrorKind.ENGINE_CONFLICT: "Speech recognition is already running.",
    ErrorKind.UNSUPPORTED: "Voice input is not available on this system.",
    ErrorKind.UNKNOWN: "Could not recognise speech. Please try again.",
}

# Codes emitted by speech engines through their ``error`` event.
NO_SPEECH = "no-speech"
AUDIO_CAPTURE = "audio-capture"
NOT_ALLOWED = "not-allowed"
NETWORK = "network"
ABORTED = "aborted"
SERVICE_NOT_ALLOWED = "service-not-allowed"
ALREADY_STARTED = "already-started"

_ENGINE_CODES = {
    NO_SPEECH: ErrorKind.NO_SPEECH,
    AUDIO_CAPTURE: ErrorKind.AUDIO_CAPTURE_FAILED,
    NOT_ALLOWED: ErrorKind.PERMISSION_DENIED,
    NETWORK: ErrorKind.NETWORK_ERROR,
    ABORTED: ErrorKind.ABORTED,
    SERVICE_NOT_ALLOWED: ErrorKind.SERVICE_UNAVAILABLE,
    ALREADY_STARTED: ErrorKind.ENGINE_CONFLICT,
}


class EngineAlreadyStarted(RuntimeError):
    """Raised by an engine whose ``start()`` is called while it is running."""


class MicrophonePermissionError(RuntimeError):
    """Raised by a microphone probe when audio input cannot be acquired."""


def map_engine_error(code: str, message: str = "") -> ErrorKind:
    """Normalise a raw engine error code into an ``ErrorKind``."""
    kind = _ENGINE_CODES.get((code or "").strip().lower())
    if kind is not None:
        return kind
    if "already started" in (message or "").lower():
        return ErrorKind.ENGINE_CONFLICT
    return ErrorKind.UNKNOWN


def message_for(kind: ErrorKind) -> str:
    return ERROR_MESSAGES.get(kind, ERROR_MESSAGES[ErrorKind.UNKNOWN])
