"""
Edit-distance based fuzzy matching used to reconcile free-text geography
(district and mandal names typed into spreadsheets) against master data.
"""
from typing import Iterable, Optional

DEFAULT_MATCH_THRESHOLD = 0.85


def _fold(value: Optional[str]) -> str:
    if value is None:
        return ""
    return str(value).strip().casefold()


def levenshtein(a: str, b: str) -> int:
    """Classic insert/delete/substitute distance, O(len(a) * len(b)) time, O(len(b)) space."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            ))
        previous = current
    return previous[-1]


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Similarity ratio in ``[0, 1]``: 1 for identical strings, 0 for maximally different.

    Inputs are trimmed and case-folded before comparison. Two empty inputs are
    identical; one empty input against a non-empty one scores 0.
    """
    left = _fold(a)
    right = _fold(b)
    if left == right:
        return 1.0
    if not left or not right:
        return 0.0
    longest = max(len(left), len(right))
    return 1.0 - levenshtein(left, right) / longest


def find_best_match(
    value: Optional[str],
    candidates: Iterable[str],
    threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> Optional[str]:
    """
    Return the candidate most similar to ``value`` or ``None``.

    An exact case-insensitive match short-circuits. Otherwise the candidate with
    the highest score strictly above ``threshold`` wins; on ties the first one
    encountered is kept, so callers must pass candidates in a stable order.
    """
    needle = _fold(value)
    if not needle:
        return None

    best: Optional[str] = None
    best_score = threshold
    for candidate in candidates:
        folded = _fold(candidate)
        if folded == needle:
            return candidate
        score = similarity(needle, folded)
        if score > best_score:
            best_score = score
            best = candidate
    return best
