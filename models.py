"""Core data models for voice dictation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SessionState(str, Enum):
    IDLE = "IDLE"
    REQUESTING_PERMISSION = "REQUESTING_PERMISSION"
    LISTENING = "LISTENING"
    STOPPING = "STOPPING"
    RESTART_PENDING = "RESTART_PENDING"
    ERRORED = "ERRORED"


class EngineEvent(str, Enum):
    """Event names a speech engine emits through ``on(event, handler)``."""

    START = "start"
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"
    END = "end"


class AccumulationMode(str, Enum):
    APPEND = "append"
    REPLACE = "replace"


class DictationStatus(str, Enum):
    STARTED = "started"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass
class RecognitionConfig:
    language: str = "pt-BR"
    continuous: bool = False
    interim_results: bool = True
    append_mode: bool = True

    @property
    def mode(self) -> AccumulationMode:
        return AccumulationMode.APPEND if self.append_mode else AccumulationMode.REPLACE

    @property
    def language_code(self) -> str:
        """Primary language subtag, e.g. ``pt`` for ``pt-BR``."""
        return self.language.split("-", 1)[0].strip().lower()


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0
