"""Simple JSON-based config store."""

from __future__ import annotations

import json
import os
from pathlib import Path

from loguru import logger

API_KEY_ENV = "GROQ_API_KEY"
CHUNK_INTERVAL_OPTIONS = (2, 3, 4, 5, 6)
DEFAULT_CHUNK_INTERVAL = 4
DEFAULT_HOTKEY = "Key.alt_r"


def resolve_api_key(configured: str = "") -> str:
    """Return the configured key, else the one from the environment."""
    return configured or os.getenv(API_KEY_ENV, "")


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "live_gloss" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", ""))

    def set_api_key(self, key: str) -> None:
        self._update(api_key=key)

    def get_hotkey(self) -> str:
        data = self._read_all()
        return str(data.get("hotkey", DEFAULT_HOTKEY))

    def set_hotkey(self, hotkey: str) -> None:
        self._update(hotkey=hotkey)

    def get_chunk_interval(self) -> int:
        value = self._read_all().get("chunk_interval_s", DEFAULT_CHUNK_INTERVAL)
        if value not in CHUNK_INTERVAL_OPTIONS:
            return DEFAULT_CHUNK_INTERVAL
        return int(value)

    def set_chunk_interval(self, seconds: int) -> None:
        if seconds not in CHUNK_INTERVAL_OPTIONS:
            raise ValueError(f"chunk interval must be one of {CHUNK_INTERVAL_OPTIONS}, got {seconds}")
        self._update(chunk_interval_s=seconds)

    def get_annotation_enabled(self) -> bool:
        return bool(self._read_all().get("annotation_enabled", True))

    def set_annotation_enabled(self, enabled: bool) -> None:
        self._update(annotation_enabled=bool(enabled))

    def _update(self, **values: object) -> None:
        data = self._read_all()
        data.update(values)
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning(f"Ignoring unreadable config {self._path}: {exc}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
