"""Vocabulary candidate extraction for English transcripts.

Long, non-trivial words are a cheap proxy for specialised vocabulary. The
extractor narrows a transcript down to a short candidate list that the
annotation model then filters by difficulty.
"""

from __future__ import annotations

import re

MIN_WORD_LENGTH = 7
MAX_CANDIDATES = 25

# Letter runs with internal apostrophes or hyphens ("state-of-the-art", "o'clock").
WORD_PATTERN = re.compile(r"[^\W\d_]+(?:['’-][^\W\d_]+)*")

# Only entries of MIN_WORD_LENGTH or more can ever match; the short ones are
# kept so the set stays usable as a general English stopword list.
STOPWORDS = frozenset(
    """
    a about above after again against all also am an and any are as at be
    because been before being below between both but by can could did do does
    doing down during each few for from further had has have having he her
    here hers herself him himself his how i if in into is it its itself just
    me more most my myself no nor not now of off on once only or other our
    ours ourselves out over own same she should so some such than that the
    their theirs them themselves then there these they this those through to
    too under until up very was we were what when where which while who whom
    why will with would you your yours yourself yourselves

    able according actually against already although always another anybody
    anymore anyone anything anyway anywhere apparently around available
    basically beginning believe besides certain certainly clearly company
    completely consider continue couldn't current currently definitely
    different doesn't everybody everyone everything everywhere example
    exactly finally following general generally getting government happened
    happening haven't however hundred important including instead interest
    interested interesting looking meeting million minutes morning mountain
    necessary nothing number obviously perhaps personal possible practically
    present pretty probably problem problems program project question
    questions quickly rather really reason recently remember seconds
    seriously several shouldn't similar simply somebody someone something
    sometimes somewhere started student students support talking thank
    thanks themselves therefore thing things thinking thought thousand
    through throughout today together tomorrow tonight toward towards
    trying understand usually various wasn't weren't whatever whenever
    whether whichever without working wouldn't yesterday yourself
    """.split()
)


def is_stopword(word: str) -> bool:
    return word.lower() in STOPWORDS


def extract_candidates(text: str, limit: int = MAX_CANDIDATES) -> list[str]:
    """Return up to ``limit`` candidate words, longest first.

    Tokens shorter than MIN_WORD_LENGTH and stopwords are dropped, duplicates
    are removed case-insensitively keeping the first spelling seen, and ties
    in length keep their order of appearance.
    """
    if not text:
        return []

    seen: set[str] = set()
    candidates: list[str] = []
    for match in WORD_PATTERN.finditer(text):
        word = match.group(0)
        lower = word.lower()
        if len(lower) < MIN_WORD_LENGTH:
            continue
        if lower in STOPWORDS or lower in seen:
            continue
        seen.add(lower)
        candidates.append(word)

    # sorted() is stable, so equal lengths stay in extraction order
    candidates = sorted(candidates, key=len, reverse=True)
    return candidates[:limit]
