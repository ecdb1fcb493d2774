from __future__ import annotations

"""
String similarity used by the listing scorer.

similarity(a, b) maps two strings onto [0, 1]:

    1.0                exact match (case-insensitive)
    containment_score  one string contains the other (0.9 by default)
    1 - d / max_len    otherwise, d = Levenshtein edit distance

Either side empty (or None) scores 0, including empty vs empty.
"""

from typing import Any

from rapidfuzz.distance import Levenshtein

from .config import CONTAINMENT_SCORE
from .normalize import text_of


def levenshtein_distance(a: str, b: str) -> int:
    """Unit-cost insert / delete / substitute edit distance."""
    return int(Levenshtein.distance(a, b))


def similarity(a: Any, b: Any, containment_score: float = CONTAINMENT_SCORE) -> float:
    s1 = text_of(a).lower()
    s2 = text_of(b).lower()
    if not s1 or not s2:
        return 0.0

    if s1 == s2:
        return 1.0

    if s1 in s2 or s2 in s1:
        return containment_score

    distance = levenshtein_distance(s1, s2)
    return 1.0 - distance / max(len(s1), len(s2))
