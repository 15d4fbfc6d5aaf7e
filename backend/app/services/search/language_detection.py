# backend/app/services/search/language_detection.py
"""
Language detection for queries and submitted events.

Statistical detection (langdetect) is tried first on text long enough to be
meaningful; short or unsupported results fall back to script and stop-word
heuristics. Query detection always returns a supported code.
"""
from __future__ import annotations

import logging
from typing import Optional

from langdetect import DetectorFactory, detect_langs
from langdetect.lang_detect_exception import LangDetectException

from app.core.constants import DEFAULT_LANGUAGE, SUPPORTED_LANGUAGES
from app.services.search.patterns import GREEK_CHARS, LANGUAGE_HINTS

logger = logging.getLogger(__name__)

# langdetect is non-deterministic unless seeded
DetectorFactory.seed = 0

MIN_DETECTION_LENGTH = 10
MIN_CONFIDENT_LENGTH = 20
MIN_PROBABILITY = 0.5


def _statistical(text: str) -> Optional[str]:
    if len(text.strip()) < MIN_DETECTION_LENGTH:
        return None
    try:
        candidates = detect_langs(text)
    except LangDetectException as e:
        logger.debug(f"langdetect failed: {e}")
        return None
    for candidate in candidates:
        if candidate.prob < MIN_PROBABILITY:
            break
        if candidate.lang in SUPPORTED_LANGUAGES:
            return candidate.lang
    return None


def _heuristic(text: str) -> Optional[str]:
    if GREEK_CHARS.search(text):
        return "el"
    lowered = text.lower()
    for lang, patterns in LANGUAGE_HINTS.items():
        if any(p.search(lowered) for p in patterns):
            return lang
    return None


def detect_language(text: Optional[str]) -> str:
    """Best-effort language code for a query; never raises."""
    if not text or not text.strip():
        return DEFAULT_LANGUAGE
    if GREEK_CHARS.search(text):
        return "el"
    detected = _statistical(text) or _heuristic(text)
    return detected or DEFAULT_LANGUAGE


def detect_event_language(title: Optional[str], description: Optional[str] = None) -> Optional[str]:
    """
    Detect the language of a submitted event from its title and description.

    Returns:
        None when the combined text is under 10 characters, "unknown" when the
        text is under 20 characters or detection is inconclusive, otherwise the
        detected language code.
    """
    combined = " ".join(p.strip() for p in (title, description) if p and p.strip())
    if len(combined) < MIN_DETECTION_LENGTH:
        return None

    detected = _statistical(combined) or _heuristic(combined)
    if detected is None or len(combined) < MIN_CONFIDENT_LENGTH:
        logger.debug(f"Low-confidence event language ({len(combined)} chars, detected={detected})")
        return "unknown"
    return detected
