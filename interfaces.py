"""Protocol interfaces used by SessionController and the HTTP layer."""

from __future__ import annotations

from typing import Optional, Protocol

from models import AnnotationResult, AudioChunk, TranscriptionResult


class CaptureDevice(Protocol):
    def open(self) -> None: ...

    def cut(self) -> Optional[AudioChunk]: ...

    def close(self) -> None: ...


class Transcriber(Protocol):
    def transcribe(self, chunk: AudioChunk) -> TranscriptionResult: ...


class Annotator(Protocol):
    def annotate(self, text: str) -> AnnotationResult: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def get_chunk_interval(self) -> int: ...

    def set_chunk_interval(self, seconds: int) -> None: ...

    def get_annotation_enabled(self) -> bool: ...

    def set_annotation_enabled(self, enabled: bool) -> None: ...
