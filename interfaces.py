"""Protocol interfaces used by the session manager and the app."""

from __future__ import annotations

from typing import Callable, Protocol

from models import RecognitionConfig


class SpeechEngine(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...

    def abort(self) -> None: ...

    def on(self, event: str, handler: Callable[..., None]) -> None: ...


class MicrophoneProbe(Protocol):
    async def probe(self) -> None: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def get_recognition_config(self) -> RecognitionConfig: ...

    def set_recognition_config(self, config: RecognitionConfig) -> None: ...
