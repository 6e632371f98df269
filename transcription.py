"""Speech-to-text client for the Groq Whisper endpoint.

Each chunk is uploaded on its own; nothing is carried between calls. Every
outcome comes back as a ``TranscriptionResult`` with an HTTP-style status so
the HTTP layer and the session controller can act on it without catching
exceptions.
"""

from __future__ import annotations

from typing import Any, Optional

import requests
from loguru import logger

from config import resolve_api_key
from errors import (
    BUSY,
    CONFIG_ERROR,
    ERROR_MESSAGES,
    INTERNAL_ERROR,
    NETWORK_ERROR,
    RATE_LIMITED,
    UPSTREAM_ERROR,
    VALIDATION_ERROR,
    ConfigError,
    ServiceBusy,
    TransportError,
)
from models import AudioChunk, TranscriptionResult
from retry import AdmissionGate, RetryingCaller, is_retryable_status, wait_hint

GROQ_TRANSCRIPTION_URL = "https://api.groq.com/openai/v1/audio/transcriptions"
TRANSCRIPTION_MODEL = "whisper-large-v3-turbo"
MIN_UPLOAD_BYTES = 1000
REQUEST_TIMEOUT_S = 30.0


def error_details(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"message": response.text}


class TranscriptionClient:
    def __init__(
        self,
        api_key: str = "",
        url: str = GROQ_TRANSCRIPTION_URL,
        model: str = TRANSCRIPTION_MODEL,
        language: str = "en",
        caller: Optional[RetryingCaller] = None,
        session: Optional[requests.Session] = None,
        timeout_s: float = REQUEST_TIMEOUT_S,
    ) -> None:
        self.api_key = api_key
        self._url = url
        self._model = model
        self._language = language
        self._caller = caller or RetryingCaller(AdmissionGate("transcription"))
        self._session = session or requests.Session()
        self._timeout_s = timeout_s

    @property
    def busy(self) -> bool:
        return self._caller.gate.busy

    def transcribe(self, chunk: AudioChunk) -> TranscriptionResult:
        if chunk.size < MIN_UPLOAD_BYTES:
            return TranscriptionResult(
                status=400,
                code=VALIDATION_ERROR,
                error="Audio file too small",
                details=f"Size: {chunk.size} bytes",
            )

        logger.info(f"Transcribing chunk #{chunk.sequence}: {chunk.size} bytes, type {chunk.encoding}")
        try:
            api_key = self._require_api_key()
            response = self._caller.call(lambda: self._post(chunk, api_key))
        except ServiceBusy as exc:
            return TranscriptionResult(
                status=429,
                code=BUSY,
                error=ERROR_MESSAGES[BUSY],
                retry_after=exc.retry_after,
            )
        except ConfigError as exc:
            logger.error(f"Transcription unavailable: {exc}")
            return TranscriptionResult(
                status=500, code=CONFIG_ERROR, error=ERROR_MESSAGES[INTERNAL_ERROR], details=str(exc)
            )
        except TransportError as exc:
            return TranscriptionResult(
                status=500, code=NETWORK_ERROR, error=ERROR_MESSAGES[INTERNAL_ERROR], details=str(exc)
            )
        return self._to_result(response)

    def _require_api_key(self) -> str:
        api_key = resolve_api_key(self.api_key)
        if not api_key:
            raise ConfigError(ERROR_MESSAGES[CONFIG_ERROR])
        return api_key

    def _post(self, chunk: AudioChunk, api_key: str) -> requests.Response:
        return self._session.post(
            self._url,
            headers={"Authorization": f"Bearer {api_key}"},
            files={"file": (chunk.filename, chunk.data, chunk.encoding)},
            data={
                "model": self._model,
                "language": self._language,
                "temperature": "0",
                "response_format": "json",
            },
            timeout=self._timeout_s,
        )

    def _to_result(self, response: requests.Response) -> TranscriptionResult:
        status = response.status_code
        if response.ok:
            try:
                data = response.json()
            except ValueError:
                logger.error(f"Transcription upstream returned non-JSON body: {response.text[:200]}")
                return TranscriptionResult(
                    status=500,
                    code=INTERNAL_ERROR,
                    error=ERROR_MESSAGES[INTERNAL_ERROR],
                    details="invalid JSON from upstream",
                )
            text = data.get("text") if isinstance(data, dict) else ""
            return TranscriptionResult(status=200, text=str(text or "").strip())

        details = error_details(response)
        if status == 429:
            retry_after = wait_hint(response)
            logger.warning(f"Transcription rate limited, retry after {retry_after}s")
            return TranscriptionResult(
                status=429,
                code=RATE_LIMITED,
                error=ERROR_MESSAGES[RATE_LIMITED],
                retry_after=retry_after,
                details=details,
            )

        logger.error(f"Transcription failed with status {status}: {details}")
        return TranscriptionResult(
            status=status,
            code=UPSTREAM_ERROR,
            error=ERROR_MESSAGES[UPSTREAM_ERROR],
            retry_after=wait_hint(response) if is_retryable_status(status) else None,
            details=details,
        )
