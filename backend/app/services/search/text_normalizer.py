# backend/app/services/search/text_normalizer.py
"""
Query normalization: accent folding, synonym expansion and category mapping.

Every query keeps two representations: the lowercased original and an
accent-folded copy. Stored events carry the same pair (``search_text`` and
``search_text_folded``), so "cafe" finds "Café" and "αθηνα" finds "Αθήνα".
"""
from __future__ import annotations

from dataclasses import dataclass, field
import unicodedata
from typing import Dict, Iterable, List, Optional

from app.core.enums import EventCategory
from app.services.search.patterns import PUNCTUATION, WHITESPACE

# Canonical keyword -> related terms across supported languages
QUERY_SYNONYMS: Dict[str, List[str]] = {
    "market": ["fiesta", "festa", "bazaar", "swap meet", "mercado", "πανηγύρι", "fair", "flea market"],
    "festival": ["fiesta", "fest", "φεστιβάλ", "celebration", "carnival"],
    "food": ["street food", "night market", "φαγητό", "cuisine", "culinary", "tasting"],
    "music": ["concert", "gig", "μουσική", "live music", "performance", "show"],
    "art": ["exhibition", "gallery", "τέχνη", "arte", "artwork"],
    "wine": ["vino", "κρασί", "vin", "winery", "tasting"],
    "traditional": ["folklore", "heritage", "cultural", "παραδοσιακό"],
    "outdoor": ["open air", "al fresco", "υπαίθριο"],
}

CATEGORY_KEYWORDS: Dict[str, EventCategory] = {
    "arts": EventCategory.ARTS_CULTURE,
    "art": EventCategory.ARTS_CULTURE,
    "culture": EventCategory.ARTS_CULTURE,
    "exhibition": EventCategory.ARTS_CULTURE,
    "gallery": EventCategory.ARTS_CULTURE,
    "theatre": EventCategory.ARTS_CULTURE,
    "theater": EventCategory.ARTS_CULTURE,
    "music": EventCategory.MUSIC_NIGHTLIFE,
    "nightlife": EventCategory.MUSIC_NIGHTLIFE,
    "concert": EventCategory.MUSIC_NIGHTLIFE,
    "gig": EventCategory.MUSIC_NIGHTLIFE,
    "jazz": EventCategory.MUSIC_NIGHTLIFE,
    "food": EventCategory.FOOD_DRINK,
    "drink": EventCategory.FOOD_DRINK,
    "wine": EventCategory.FOOD_DRINK,
    "restaurant": EventCategory.FOOD_DRINK,
    "family": EventCategory.FAMILY_KIDS,
    "kids": EventCategory.FAMILY_KIDS,
    "children": EventCategory.FAMILY_KIDS,
    "sports": EventCategory.SPORTS_OUTDOORS,
    "sport": EventCategory.SPORTS_OUTDOORS,
    "outdoors": EventCategory.SPORTS_OUTDOORS,
    "outdoor": EventCategory.SPORTS_OUTDOORS,
    "fitness": EventCategory.SPORTS_OUTDOORS,
    "yoga": EventCategory.SPORTS_OUTDOORS,
    "community": EventCategory.COMMUNITY_CAUSES,
    "causes": EventCategory.COMMUNITY_CAUSES,
    "charity": EventCategory.COMMUNITY_CAUSES,
    "learning": EventCategory.LEARNING_TALKS,
    "talks": EventCategory.LEARNING_TALKS,
    "talk": EventCategory.LEARNING_TALKS,
    "workshop": EventCategory.LEARNING_TALKS,
    "education": EventCategory.LEARNING_TALKS,
    "markets": EventCategory.MARKETS_FAIRS,
    "market": EventCategory.MARKETS_FAIRS,
    "fairs": EventCategory.MARKETS_FAIRS,
    "fair": EventCategory.MARKETS_FAIRS,
    "online": EventCategory.ONLINE_VIRTUAL,
    "virtual": EventCategory.ONLINE_VIRTUAL,
}

CATEGORY_SYNONYMS: Dict[str, List[str]] = {
    "music": ["Music", "Concert", "Gig", "Live Music", "Performance"],
    "jazz": ["Jazz", "Music"],
    "exhibition": ["Exhibition", "Expo", "Art Show", "Gallery"],
    "expo": ["Exhibition", "Expo", "Trade Show"],
    "networking": ["Networking", "Meetup", "Social"],
    "meetup": ["Meetup", "Networking", "Social"],
    "food": ["Food", "Festival", "Culinary"],
    "festival": ["Festival", "Food", "Community", "Cultural"],
    "workshop": ["Workshop", "Class", "Training", "Learning"],
    "yoga": ["Yoga", "Wellness", "Fitness"],
    "sports": ["Sports", "Fitness", "Athletic"],
    "tech": ["Tech", "Technology", "IT", "Software"],
    "business": ["Business", "Professional", "Corporate"],
    "art": ["Art", "Creative", "Cultural"],
    "community": ["Community", "Social", "Local"],
}


@dataclass
class NormalizedQuery:
    """Normalized query with folded twin, expanded synonyms and mapped categories."""

    normalized: str
    folded: str
    language: str = "en"
    synonyms: List[str] = field(default_factory=list)
    categories: List[EventCategory] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "normalized": self.normalized,
            "folded": self.folded,
            "language": self.language,
            "synonyms": self.synonyms,
            "categories": [c.value for c in self.categories],
        }


def fold_accents(text: Optional[str]) -> str:
    """
    Strip diacritics and lowercase.

    "São Paulo" -> "sao paulo", "Café" -> "cafe", "Αθήνα" -> "αθηνα"
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not 0x0300 <= ord(ch) <= 0x036F)
    return stripped.lower().strip()


def create_search_text_folded(parts: Iterable[Optional[str]]) -> str:
    return fold_accents(" ".join(p for p in parts if p))


def map_to_event_category(keyword: Optional[str]) -> Optional[EventCategory]:
    """Map a free-text keyword ("jazz", "Market") to its canonical category."""
    if not keyword:
        return None
    lowered = keyword.lower().strip()
    category = CATEGORY_KEYWORDS.get(lowered)
    if category is None:
        category = CATEGORY_KEYWORDS.get(fold_accents(lowered))
    if category is None:
        try:
            category = EventCategory(lowered.upper())
        except ValueError:
            return None
    return category


def get_category_synonyms(keyword: str) -> List[str]:
    """Human-readable category labels for a keyword; the keyword itself when unknown."""
    return list(CATEGORY_SYNONYMS.get(keyword.lower().strip(), [keyword]))


def _tokens(text: str) -> List[str]:
    return [t for t in WHITESPACE.split(PUNCTUATION.sub(" ", text)) if t]


def _contains_phrase(haystack: str, phrase: str) -> bool:
    # Whole-word containment: "art" must not match inside "party"
    padded = f" {' '.join(_tokens(haystack))} "
    return f" {phrase} " in padded


def normalize_query(text: Optional[str], lang: str = "en") -> NormalizedQuery:
    """
    Normalize a raw query.

    Synonym groups are matched on both the original and folded forms, so an
    unaccented "φεστιβαλ" still triggers the festival group.
    """
    normalized = WHITESPACE.sub(" ", (text or "").lower()).strip()
    folded = fold_accents(normalized)

    synonyms: List[str] = []
    categories: List[EventCategory] = []
    for canonical, related in QUERY_SYNONYMS.items():
        terms = [canonical, *related]
        if any(
            _contains_phrase(normalized, term) or _contains_phrase(folded, fold_accents(term))
            for term in terms
        ):
            for term in related:
                if term not in synonyms:
                    synonyms.append(term)
            category = map_to_event_category(canonical)
            if category is not None and category not in categories:
                categories.append(category)

    for token in _tokens(normalized) + _tokens(folded):
        category = map_to_event_category(token)
        if category is not None and category not in categories:
            categories.append(category)

    return NormalizedQuery(
        normalized=normalized,
        folded=folded,
        language=lang,
        synonyms=synonyms,
        categories=categories,
        keywords=_tokens(normalized),
    )
