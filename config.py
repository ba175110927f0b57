"""Simple JSON-based config store."""

from __future__ import annotations

import json
import os
from pathlib import Path

from models import RecognitionConfig

DEFAULT_HOTKEY = "Key.alt_r"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voice_dictation" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "")) or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        data = self._read_all()
        data["api_key"] = key
        self._write_all(data)

    def get_hotkey(self) -> str:
        data = self._read_all()
        return str(data.get("hotkey", DEFAULT_HOTKEY))

    def set_hotkey(self, hotkey: str) -> None:
        data = self._read_all()
        data["hotkey"] = hotkey
        self._write_all(data)

    def get_recognition_config(self) -> RecognitionConfig:
        defaults = RecognitionConfig()
        section = self._read_all().get("recognition", {})
        if not isinstance(section, dict):
            return defaults
        return RecognitionConfig(
            language=str(section.get("language", defaults.language)),
            continuous=bool(section.get("continuous", defaults.continuous)),
            interim_results=bool(section.get("interim_results", defaults.interim_results)),
            append_mode=bool(section.get("append_mode", defaults.append_mode)),
        )

    def set_recognition_config(self, config: RecognitionConfig) -> None:
        data = self._read_all()
        data["recognition"] = {
            "language": config.language,
            "continuous": config.continuous,
            "interim_results": config.interim_results,
            "append_mode": config.append_mode,
        }
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
