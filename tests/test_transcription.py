from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from config import API_KEY_ENV
from errors import BUSY, CONFIG_ERROR, NETWORK_ERROR, RATE_LIMITED, UPSTREAM_ERROR, VALIDATION_ERROR
from models import AudioChunk
from retry import AdmissionGate, RetryingCaller
from transcription import TranscriptionClient

AUDIO = b"\x00" * 2048


def _client(session: MagicMock, api_key: str = "test-key") -> TranscriptionClient:
    caller = RetryingCaller(AdmissionGate("transcription"), sleep=lambda _s: None, rand=lambda: 0.0)
    return TranscriptionClient(api_key=api_key, caller=caller, session=session)


def _session(*responses) -> MagicMock:  # noqa: ANN002
    session = MagicMock()
    session.post.side_effect = list(responses)
    return session


# ---------------------------------------------------------------
# Validation
# ---------------------------------------------------------------

def test_too_small_file_is_rejected_without_upstream_call() -> None:
    session = _session()
    result = _client(session).transcribe(AudioChunk(data=b"\x00" * 999))

    assert result.status == 400
    assert result.code == VALIDATION_ERROR
    assert result.to_payload() == {"error": "Audio file too small", "details": "Size: 999 bytes"}
    session.post.assert_not_called()


def test_missing_api_key_is_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(API_KEY_ENV, raising=False)
    session = _session()

    result = _client(session, api_key="").transcribe(AudioChunk(data=AUDIO))

    assert result.status == 500
    assert result.code == CONFIG_ERROR
    session.post.assert_not_called()


def test_api_key_from_environment(monkeypatch: pytest.MonkeyPatch, make_response) -> None:  # noqa: ANN001
    monkeypatch.setenv(API_KEY_ENV, "env-key")
    session = _session(make_response(200, {"text": "hi"}))

    result = _client(session, api_key="").transcribe(AudioChunk(data=AUDIO))

    assert result.ok
    assert session.post.call_args.kwargs["headers"] == {"Authorization": "Bearer env-key"}


# ---------------------------------------------------------------
# Upstream outcomes
# ---------------------------------------------------------------

def test_success_returns_stripped_text(make_response) -> None:  # noqa: ANN001
    session = _session(make_response(200, {"text": "  hello world \n"}))

    result = _client(session).transcribe(AudioChunk(data=AUDIO, encoding="audio/webm"))

    assert result.status == 200
    assert result.to_payload() == {"text": "hello world"}
    assert result.headers() == {}

    kwargs = session.post.call_args.kwargs
    assert kwargs["files"] == {"file": ("recording.webm", AUDIO, "audio/webm")}
    assert kwargs["data"] == {
        "model": "whisper-large-v3-turbo",
        "language": "en",
        "temperature": "0",
        "response_format": "json",
    }


def test_rate_limit_uses_upstream_retry_after(make_response) -> None:  # noqa: ANN001
    limited = make_response(429, {"error": {"message": "slow down"}}, headers={"Retry-After": "12"})
    session = _session(limited, limited, limited)

    result = _client(session).transcribe(AudioChunk(data=AUDIO))

    assert session.post.call_count == 3
    assert result.status == 429
    assert result.code == RATE_LIMITED
    assert result.retry_after == 12
    assert result.headers() == {"Retry-After": "12"}
    payload = result.to_payload()
    assert payload["retryAfter"] == 12
    assert payload["details"] == {"error": {"message": "slow down"}}


def test_rate_limit_without_header_defaults_to_five(make_response) -> None:  # noqa: ANN001
    session = _session(*[make_response(429)] * 3)

    result = _client(session).transcribe(AudioChunk(data=AUDIO))

    assert result.retry_after == 5


def test_recovers_after_transient_rate_limit(make_response) -> None:  # noqa: ANN001
    session = _session(make_response(429), make_response(200, {"text": "later"}))

    result = _client(session).transcribe(AudioChunk(data=AUDIO))

    assert result.text == "later"
    assert session.post.call_count == 2


def test_client_error_passes_through_without_retry(make_response) -> None:  # noqa: ANN001
    session = _session(make_response(400, text="bad audio"))

    result = _client(session).transcribe(AudioChunk(data=AUDIO))

    assert session.post.call_count == 1
    assert result.status == 400
    assert result.code == UPSTREAM_ERROR
    assert result.to_payload() == {
        "error": "Transcription failed",
        "status": 400,
        "details": {"message": "bad audio"},
    }


def test_server_error_after_retries(make_response) -> None:  # noqa: ANN001
    session = _session(*[make_response(502, {"error": "gateway"})] * 3)

    result = _client(session).transcribe(AudioChunk(data=AUDIO))

    assert session.post.call_count == 3
    assert result.status == 502
    assert result.to_payload()["status"] == 502


def test_transport_failure_is_internal_error() -> None:
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("no route")

    result = _client(session).transcribe(AudioChunk(data=AUDIO))

    assert result.status == 500
    assert result.code == NETWORK_ERROR
    assert result.to_payload() == {"error": "Internal server error", "details": "no route"}


def test_busy_when_call_in_flight() -> None:
    session = _session()
    client = _client(session)

    with client._caller.gate.admit():
        assert client.busy is True
        result = client.transcribe(AudioChunk(data=AUDIO))

    assert result.status == 429
    assert result.code == BUSY
    assert result.retry_after == 2
    assert result.to_payload() == {"error": "Server is busy. Please try again later.", "retryAfter": 2}
    session.post.assert_not_called()
