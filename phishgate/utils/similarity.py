"""String distance helpers."""

from __future__ import annotations

from typing import Iterable, Optional

from rapidfuzz.distance import Levenshtein


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance: insert, delete and substitute all cost 1."""
    return Levenshtein.distance(a or "", b or "")


def distance_ratio(a: str, b: str, distance: Optional[int] = None) -> float:
    """Edit distance relative to the longer string (0.0 identical, 1.0 disjoint)."""
    longest = max(len(a or ""), len(b or ""))
    if longest == 0:
        return 0.0
    if distance is None:
        distance = levenshtein(a, b)
    return distance / longest


def nearest(candidate: str, choices: Iterable[str]) -> tuple[Optional[str], int]:
    """Closest choice by edit distance; ties keep the first listed."""
    best: Optional[str] = None
    best_distance = -1
    for choice in choices:
        distance = levenshtein(candidate, choice)
        if best is None or distance < best_distance:
            best, best_distance = choice, distance
    return best, best_distance
