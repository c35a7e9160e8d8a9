"""Simple JSON-based config store."""

from __future__ import annotations

import json
from pathlib import Path

from models import ChatSettings

DEFAULTS = ChatSettings()
DEFAULT_HOTKEY = "Key.f9"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "nya_chat" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def env_file(self) -> Path:
        return self._path.parent / ".env"

    def get_api_key(self) -> str:
        return self._get_str("api_key", "")

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_model(self) -> str:
        return self._get_str("model", DEFAULTS.model)

    def set_model(self, model: str) -> None:
        self._set("model", model)

    def get_base_url(self) -> str:
        return self._get_str("base_url", DEFAULTS.base_url)

    def get_whisper_model(self) -> str:
        return self._get_str("whisper_model", DEFAULTS.whisper_model)

    def get_hotkey(self) -> str:
        return self._get_str("hotkey", DEFAULT_HOTKEY)

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def get_system_prompt(self) -> str:
        return self._get_str("system_prompt", "")

    def get_chat_settings(self) -> ChatSettings:
        return ChatSettings(
            api_key=self.get_api_key(),
            model=self.get_model(),
            base_url=self.get_base_url(),
            whisper_model=self.get_whisper_model(),
            env_file=str(self.env_file),
        )

    def _get_str(self, key: str, default: str) -> str:
        value = self._read_all().get(key)
        if value is None or value == "":
            return default
        return str(value)

    def _set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
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
