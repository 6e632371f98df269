"""Running transcript, merged annotations and the overlay rendering contract."""

from __future__ import annotations

import re
import threading
from typing import Callable, Iterable, Optional

from loguru import logger

from models import Annotation, OverlayToken
from vocabulary import WORD_PATTERN

CommitCallback = Callable[[str], None]

# Words, whitespace runs, digit runs, then any single remaining character.
# Every character matches some alternative, so joining the tokens gives back
# the original text.
OVERLAY_TOKEN_PATTERN = re.compile(rf"{WORD_PATTERN.pattern}|\s+|\d+|.", re.DOTALL)


class TranscriptAccumulator:
    """Appends transcribed fragments in chunk order.

    Fragments may arrive in any order; each is held until every earlier
    sequence number has reported, then appended with a single space. A chunk
    that produced nothing still has to report (with ``None``) so the ones
    after it are released. ``on_commit`` is called with the full text after
    each growth, under the accumulator's lock, so it must not block.
    """

    def __init__(self, on_commit: Optional[CommitCallback] = None) -> None:
        self._on_commit = on_commit
        self._lock = threading.Lock()
        self._text = ""
        self._next_sequence = 0
        self._held: dict[int, str] = {}

    @property
    def text(self) -> str:
        with self._lock:
            return self._text

    @property
    def waiting(self) -> int:
        """Fragments received but held back behind a missing earlier chunk."""
        with self._lock:
            return len(self._held)

    def submit(self, sequence: int, fragment: Optional[str]) -> bool:
        """Report the outcome of chunk ``sequence``; True if the transcript grew."""
        with self._lock:
            if sequence < self._next_sequence or sequence in self._held:
                logger.warning(f"Ignoring duplicate fragment for chunk #{sequence}")
                return False
            self._held[sequence] = (fragment or "").strip()

            grew = False
            while self._next_sequence in self._held:
                piece = self._held.pop(self._next_sequence)
                self._next_sequence += 1
                if piece:
                    self._text = f"{self._text} {piece}" if self._text else piece
                    grew = True

            if grew and self._on_commit:
                self._on_commit(self._text)
            return grew

    def clear(self) -> None:
        """Drop the text but keep the sequence, so in-flight chunks still line up."""
        with self._lock:
            self._text = ""

    def reset(self) -> None:
        with self._lock:
            self._text = ""
            self._next_sequence = 0
            self._held.clear()


class AnnotationMerger:
    """Insert-only collection of annotations, unique by lowercase surface."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, Annotation] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def entries(self) -> list[Annotation]:
        with self._lock:
            return list(self._entries.values())

    def merge(self, annotations: Iterable[Annotation]) -> list[Annotation]:
        added: list[Annotation] = []
        with self._lock:
            for annotation in annotations:
                if annotation.key in self._entries:
                    continue
                self._entries[annotation.key] = annotation
                added.append(annotation)
        return added

    def lookup(self, word: str) -> Optional[Annotation]:
        with self._lock:
            return self._entries.get(word.lower())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def tokenize(text: str) -> list[str]:
    return OVERLAY_TOKEN_PATTERN.findall(text)


def render_overlay(text: str, annotations: Iterable[Annotation]) -> list[OverlayToken]:
    """Split ``text`` into tokens, attaching annotations that carry a gloss.

    Matching is exact and case-insensitive; there is no stemming, so
    "algorithms" does not pick up an annotation for "algorithm".
    """
    by_key: dict[str, Annotation] = {}
    for annotation in annotations:
        by_key.setdefault(annotation.key, annotation)

    tokens: list[OverlayToken] = []
    for token in tokenize(text):
        annotation = by_key.get(token.lower())
        if annotation is not None and annotation.gloss:
            tokens.append(OverlayToken(token, annotation))
        else:
            tokens.append(OverlayToken(token))
    return tokens
