"""Gloss generation for difficult words via a Groq-hosted chat model.

The model is asked for a JSON object, but its free-text reply is parsed
leniently: the first JSON object found anywhere in the text is used and
anything unparseable degrades to an empty result. Annotation is best-effort
and never fails its caller; only rate limiting is reported, as a wait hint.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import requests
from loguru import logger

from annotation_cache import AnnotationCache
from config import resolve_api_key
from errors import (
    BUSY,
    CONFIG_ERROR,
    ERROR_MESSAGES,
    INTERNAL_ERROR,
    RATE_LIMITED,
    VALIDATION_ERROR,
    ConfigError,
    ServiceBusy,
    TransportError,
)
from models import MAX_GLOSS_CHARS, Annotation, AnnotationResult
from retry import AdmissionGate, RetryingCaller, is_retryable_status, wait_hint
from vocabulary import extract_candidates

GROQ_CHAT_URL = "https://api.groq.com/openai/v1/chat/completions"
ANNOTATION_MODEL = "llama-3.1-8b-instant"
MAX_OUTPUT_TOKENS = 500
MAX_ANNOTATIONS = 8
DIFFICULTY_LEVEL = "CEFR B2"
AUDIENCE = "Japanese business professionals"
GLOSS_LANGUAGE = "Japanese"
REQUEST_TIMEOUT_S = 30.0

SYSTEM_PROMPT = "You produce JSON only. No markdown. No extra keys."


def build_prompt(text: str, candidates: list[str]) -> str:
    return (
        f"Text:\n<<<{text}>>>\n\n"
        f"Candidate words:\n[{', '.join(candidates)}]\n\n"
        "Task:\n"
        f"From the candidate words, choose at most {MAX_ANNOTATIONS} English words at "
        f"{DIFFICULTY_LEVEL} level or above.\n"
        f"Prefer specialised or difficult terms that {AUDIENCE} are unlikely to know.\n\n"
        "For each word return:\n"
        "- surface: exactly as written in the text\n"
        "- katakana: a short katakana reading\n"
        f"- gloss: a concise {GLOSS_LANGUAGE} translation (required, at most {MAX_GLOSS_CHARS} characters)\n\n"
        "Respond with a single JSON object and nothing else:\n"
        '{"annotations":[{"surface":"...", "katakana":"...", "gloss":"..."}]}'
    )


def extract_json_object(content: str) -> Optional[dict[str, Any]]:
    """Return the first JSON object embedded in ``content``, or None."""
    decoder = json.JSONDecoder()
    start = content.find("{")
    while start != -1:
        try:
            parsed, _ = decoder.raw_decode(content, start)
        except ValueError:
            start = content.find("{", start + 1)
            continue
        if isinstance(parsed, dict):
            return parsed
        start = content.find("{", start + 1)
    return None


def parse_annotations(content: str) -> list[Annotation]:
    parsed = extract_json_object(content)
    if parsed is None:
        logger.error(f"No JSON found in model response: {content[:200]!r}")
        return []

    items = parsed.get("annotations")
    if not isinstance(items, list):
        return []

    annotations: list[Annotation] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        surface = str(item.get("surface") or "").strip()
        reading = str(item.get("katakana") or "").strip()
        if not surface or not reading:
            continue
        gloss = str(item.get("gloss") or "").strip()[:MAX_GLOSS_CHARS]
        annotations.append(Annotation(surface=surface, reading=reading, gloss=gloss or None))
    return annotations


class AnnotationClient:
    def __init__(
        self,
        api_key: str = "",
        url: str = GROQ_CHAT_URL,
        model: str = ANNOTATION_MODEL,
        cache: Optional[AnnotationCache] = None,
        caller: Optional[RetryingCaller] = None,
        session: Optional[requests.Session] = None,
        timeout_s: float = REQUEST_TIMEOUT_S,
    ) -> None:
        self.api_key = api_key
        self._url = url
        self._model = model
        self.cache = cache or AnnotationCache()
        self._caller = caller or RetryingCaller(AdmissionGate("annotation"))
        self._session = session or requests.Session()
        self._timeout_s = timeout_s

    @property
    def busy(self) -> bool:
        return self._caller.gate.busy

    def annotate(self, text: str) -> AnnotationResult:
        if not text or not isinstance(text, str):
            return AnnotationResult(status=400, code=VALIDATION_ERROR, error="Text is required")

        cached = self.cache.get(text)
        if cached is not None:
            logger.info("Cache hit for annotation")
            return cached

        candidates = extract_candidates(text)
        logger.info(f"Extracted {len(candidates)} candidate words: {candidates[:10]}")
        if not candidates:
            result = AnnotationResult()
            self.cache.set(text, result)
            return result

        try:
            api_key = self._require_api_key()
            result = self._request(text, candidates, api_key)
        except ServiceBusy as exc:
            return AnnotationResult(status=429, code=BUSY, wait_seconds=exc.retry_after)
        except ConfigError as exc:
            logger.error(f"Annotation unavailable: {exc}")
            return AnnotationResult(status=500, code=CONFIG_ERROR, error=ERROR_MESSAGES[INTERNAL_ERROR])

        if not result.rate_limited:
            self.cache.set(text, result)
        return result

    def _require_api_key(self) -> str:
        api_key = resolve_api_key(self.api_key)
        if not api_key:
            raise ConfigError(ERROR_MESSAGES[CONFIG_ERROR])
        return api_key

    def _request(self, text: str, candidates: list[str], api_key: str) -> AnnotationResult:
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(text, candidates)},
            ],
            "temperature": 0,
            "max_tokens": MAX_OUTPUT_TOKENS,
        }
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

        try:
            response = self._caller.call(
                lambda: self._session.post(self._url, headers=headers, json=payload, timeout=self._timeout_s)
            )
        except TransportError as exc:
            logger.error(f"Annotation request failed: {exc}")
            return AnnotationResult()

        status = response.status_code
        if is_retryable_status(status):
            wait_seconds = wait_hint(response)
            logger.warning(f"Annotation upstream still returning {status}, wait {wait_seconds}s")
            return AnnotationResult(status=429, code=RATE_LIMITED, wait_seconds=wait_seconds)
        if not response.ok:
            logger.error(f"Annotation upstream error {status}: {response.text[:200]}")
            return AnnotationResult()

        try:
            content = response.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError):
            logger.error(f"Unexpected annotation response shape: {response.text[:200]}")
            return AnnotationResult()

        annotations = parse_annotations(str(content))
        logger.info(f"Annotation result: {len(annotations)} words")
        return AnnotationResult(annotations=annotations)
