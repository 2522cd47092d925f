"""Edit-distance matching used to correct noisy OCR against known vocabularies."""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from rapidfuzz.distance import Levenshtein

from ..core.constants import FUZZY_DEFAULT_THRESHOLD

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class FuzzyMatch:
    value: str
    confidence: float


def distance(a: str, b: str) -> int:
    """Levenshtein distance with unit insert, delete and substitute costs."""
    return Levenshtein.distance(a, b)


def normalize(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    text = _NON_ALNUM.sub("", text.lower().strip())
    return _WHITESPACE.sub(" ", text).strip()


def _score(normalized_query: str, normalized_candidate: str) -> float:
    longest = max(len(normalized_query), len(normalized_candidate))
    if longest == 0:
        return 1.0
    score = 1.0 - distance(normalized_query, normalized_candidate) / longest
    return max(0.0, min(1.0, score))


def best_match(
    query: str,
    candidates: Iterable[str],
    threshold: float = FUZZY_DEFAULT_THRESHOLD,
) -> Optional[FuzzyMatch]:
    """
    Return the candidate closest to ``query``, or None.

    The first candidate wins ties. Blank candidates are ignored, and None is
    returned when the query normalizes to nothing or no candidate reaches
    ``threshold``.
    """
    normalized_query = normalize(query or "")
    if not normalized_query:
        return None

    best: Optional[FuzzyMatch] = None
    for candidate in candidates:
        normalized_candidate = normalize(candidate or "")
        if not normalized_candidate:
            continue
        confidence = _score(normalized_query, normalized_candidate)
        if best is None or confidence > best.confidence:
            best = FuzzyMatch(candidate, confidence)

    if best is None or best.confidence < threshold:
        return None
    return best
