"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from errors import UPSTREAM_ERROR

MAX_GLOSS_CHARS = 8


class SessionState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    RATE_LIMITED = "RATE_LIMITED"
    ERROR = "ERROR"


class AnnotationStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    DONE = "done"
    RATE_LIMITED = "rate-limited"
    ERROR = "error"


@dataclass
class AudioChunk:
    data: bytes
    encoding: str = "audio/wav"
    sequence: int = 0

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def filename(self) -> str:
        if "webm" in self.encoding:
            return "recording.webm"
        if "mp4" in self.encoding or "m4a" in self.encoding:
            return "recording.m4a"
        return "recording.wav"


@dataclass(frozen=True)
class Annotation:
    surface: str
    reading: str
    gloss: Optional[str] = None

    @property
    def key(self) -> str:
        return self.surface.lower()

    def to_dict(self) -> dict[str, str]:
        data = {"surface": self.surface, "katakana": self.reading}
        if self.gloss:
            data["gloss"] = self.gloss
        return data


@dataclass
class TranscriptionResult:
    """Outcome of one transcription call, shaped like the HTTP response."""

    status: int
    text: str = ""
    code: str = ""
    error: str = ""
    retry_after: Optional[int] = None
    details: Any = None

    @property
    def ok(self) -> bool:
        return self.status == 200

    def to_payload(self) -> dict[str, Any]:
        if self.ok:
            return {"text": self.text}
        payload: dict[str, Any] = {"error": self.error}
        if self.status == 429:
            payload["retryAfter"] = self.retry_after
        elif self.code == UPSTREAM_ERROR:
            payload["status"] = self.status
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def headers(self) -> dict[str, str]:
        if self.status == 429 and self.retry_after is not None:
            return {"Retry-After": str(self.retry_after)}
        return {}


@dataclass
class AnnotationResult:
    annotations: list[Annotation] = field(default_factory=list)
    wait_seconds: Optional[int] = None
    status: int = 200
    code: str = ""
    error: str = ""

    @property
    def rate_limited(self) -> bool:
        return self.wait_seconds is not None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"annotations": [a.to_dict() for a in self.annotations]}
        if self.wait_seconds is not None:
            payload["wait_seconds"] = self.wait_seconds
        if self.error:
            payload["error"] = self.error
        return payload

    def headers(self) -> dict[str, str]:
        if self.wait_seconds is not None:
            return {"Retry-After": str(self.wait_seconds)}
        return {}


@dataclass(frozen=True)
class OverlayToken:
    text: str
    annotation: Optional[Annotation] = None

    @property
    def annotated(self) -> bool:
        return self.annotation is not None
