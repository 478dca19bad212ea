from __future__ import annotations

from typing import Any, Optional

from rapidfuzz.distance import Levenshtein

TITLE_WEIGHT = 0.4
ARTIST_WEIGHT = 0.3
AUTHORITATIVE_BOOST = 1.1

DURATION_BUCKETS = ((2, 0.2), (5, 0.15), (10, 0.1), (20, 0.05))
YEAR_BUCKETS = ((1, 0.1), (2, 0.07), (5, 0.03))


def edit_distance(a: str, b: str) -> int:
    return Levenshtein.distance(a or "", b or "")


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Similarity in [0, 1] between two strings.

    1.0 on case-insensitive equality, 0.8 when one contains the other,
    otherwise the Levenshtein ratio over the longer string.
    """
    if not a or not b:
        return 0.0
    left = a.lower()
    right = b.lower()
    if left == right:
        return 1.0
    if left in right or right in left:
        return 0.8
    longest = max(len(left), len(right))
    return 1.0 - edit_distance(left, right) / longest


def _bucket(diff: float, buckets: tuple[tuple[int, float], ...]) -> float:
    for limit, value in buckets:
        if diff <= limit:
            return value
    return 0.0


def duration_term(a: Optional[float], b: Optional[float]) -> float:
    if not a or not b:
        return 0.0
    return _bucket(abs(float(a) - float(b)), DURATION_BUCKETS)


def year_term(a: Optional[int], b: Optional[int]) -> float:
    if not a or not b:
        return 0.0
    try:
        return _bucket(abs(int(a) - int(b)), YEAR_BUCKETS)
    except (TypeError, ValueError):
        return 0.0


def composite_score(candidate: Any, reference: Any, authoritative_source: Optional[str] = None) -> float:
    """
    Weighted confidence that ``candidate`` describes ``reference``.

    Both arguments expose ``title``, ``artist``, ``duration`` and ``year``;
    the candidate also carries ``source``. The authoritative boost is applied
    before the result is clamped to 1.0.
    """
    score = (
        TITLE_WEIGHT * similarity(getattr(candidate, "title", None), getattr(reference, "title", None))
        + ARTIST_WEIGHT * similarity(getattr(candidate, "artist", None), getattr(reference, "artist", None))
        + duration_term(getattr(candidate, "duration", None), getattr(reference, "duration", None))
        + year_term(getattr(candidate, "year", None), getattr(reference, "year", None))
    )
    if authoritative_source and getattr(candidate, "source", None) == authoritative_source:
        score *= AUTHORITATIVE_BOOST
    return round(min(score, 1.0), 2)
