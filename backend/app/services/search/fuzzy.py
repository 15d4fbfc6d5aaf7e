# backend/app/services/search/fuzzy.py
"""
Approximate string matching helpers for dedup and re-scoring.

Edit distance comes from symspellpy (already used for typo correction);
partial similarity from fuzzywuzzy.
"""
from __future__ import annotations

from functools import lru_cache
import re
from typing import Optional

from fuzzywuzzy import fuzz
from symspellpy.editdistance import DistanceAlgorithm, EditDistance

from app.services.search.patterns import NON_ALNUM

_levenshtein = EditDistance(DistanceAlgorithm.LEVENSHTEIN)

# Whole-word spellings that should compare equal after normalization
TITLE_ABBREVIATIONS = {
    "xmas": "christmas",
    "x-mas": "christmas",
    "&": "and",
    "intl": "international",
    "fest": "festival",
}

_WORD = re.compile(r"[^\s]+")


def levenshtein_distance(a: Optional[str], b: Optional[str]) -> int:
    """Classic Levenshtein distance (insert, delete, substitute all cost 1)."""
    a = a or ""
    b = b or ""
    if a == b:
        return 0
    if not a or not b:
        return max(len(a), len(b))
    # symspellpy returns -1 when the distance exceeds max_distance
    return _levenshtein.compare(a, b, max(len(a), len(b)))


def within_distance(a: Optional[str], b: Optional[str], max_distance: int) -> bool:
    a = a or ""
    b = b or ""
    if abs(len(a) - len(b)) > max_distance:
        return False
    return _levenshtein.compare(a, b, max_distance) != -1


@lru_cache(maxsize=4096)
def normalize_for_dedup(text: Optional[str]) -> str:
    """
    Lowercase, expand known abbreviations, then drop everything but [a-z0-9].

    "Brussels Xmas Market!" -> "brusselschristmasmarket"
    """
    if not text:
        return ""
    lowered = text.lower()
    expanded = _WORD.sub(lambda m: TITLE_ABBREVIATIONS.get(m.group(0), m.group(0)), lowered)
    return NON_ALNUM.sub("", expanded)


def partial_ratio(needle: Optional[str], haystack: Optional[str]) -> float:
    """Best partial-substring similarity in [0, 1]."""
    if not needle or not haystack:
        return 0.0
    return fuzz.partial_ratio(needle.lower(), haystack.lower()) / 100.0
