# backend/app/services/search/location_guard.py
"""
City/country tables and the hard location guard applied to search results.

When a query names a city, results from other cities are removed rather than
shown as filler: fewer relevant results beat more irrelevant ones.
"""
from __future__ import annotations

from functools import lru_cache
import logging
import re
from typing import Dict, Iterable, List, Optional, Pattern, Sequence

from app.services.search.result_types import SearchResult
from app.services.search.text_normalizer import fold_accents

logger = logging.getLogger(__name__)

CITY_VARIATIONS: Dict[str, List[str]] = {
    "berlin": ["berlín"],
    "brussels": ["bruxelles", "brussel", "bruselas"],
    "athens": ["αθήνα", "athina", "athen"],
    "rome": ["roma", "rom"],
    "paris": [],
    "milan": ["milano"],
    "florence": ["firenze"],
    "naples": ["napoli"],
    "venice": ["venezia"],
    "vienna": ["wien"],
    "copenhagen": ["københavn", "kobenhavn"],
    "prague": ["praha"],
    "warsaw": ["warszawa"],
    "budapest": [],
    "bucharest": ["bucurești", "bucuresti"],
    "thessaloniki": ["θεσσαλονίκη", "salonica"],
    "melbourne": [],
    "sydney": [],
    "new york": ["nyc", "new york city", "manhattan"],
    "los angeles": ["la"],
    "san francisco": ["sf"],
}

COUNTRY_VARIATIONS: Dict[str, List[str]] = {
    "united states": ["usa", "us", "united states", "america"],
    "australia": ["australia", "au", "aus", "australian"],
    "greece": ["greece", "greek", "ελλάδα", "hellas"],
    "italy": ["italy", "italian", "italia"],
    "spain": ["spain", "spanish", "españa"],
    "france": ["france", "french"],
    "united kingdom": ["uk", "united kingdom", "britain", "british", "england"],
    "germany": ["germany", "german", "deutschland"],
    "canada": ["canada", "canadian"],
}

# Cities whose name is shared with a well-known place elsewhere, and the
# country assumed when the caller does not give one
AMBIGUOUS_CITIES: Dict[str, str] = {
    "melbourne": "australia",  # Melbourne, Florida
    "perth": "australia",  # Perth, Scotland
    "sydney": "australia",  # Sydney, Nova Scotia
    "paris": "france",  # Paris, Texas
    "athens": "greece",  # Athens, Georgia
    "rome": "italy",  # Rome, Georgia
    "naples": "italy",  # Naples, Florida
    "florence": "italy",  # Florence, South Carolina
    "london": "united kingdom",  # London, Ontario
    "birmingham": "united kingdom",  # Birmingham, Alabama
    "valencia": "spain",  # Valencia, Venezuela
}

OTHER_MAJOR_CITIES = (
    # US
    "new york", "nyc", "los angeles", "chicago", "houston", "phoenix", "philadelphia",
    "san antonio", "san diego", "dallas", "san jose", "austin", "jacksonville",
    "san francisco", "boston", "kansas city", "seattle", "denver", "washington",
    "detroit", "minneapolis", "miami", "atlanta", "portland", "orlando", "las vegas",
    "nashville", "cleveland", "tampa", "sacramento", "fort worth", "indianapolis",
    "columbus", "charlotte", "el paso", "memphis", "milwaukee", "oklahoma city",
    "tucson", "fresno", "virginia beach", "oakland", "omaha", "raleigh", "long beach",
    "miami beach", "colorado springs",
    # International
    "london", "paris", "madrid", "barcelona", "amsterdam", "berlin", "milan", "vienna",
    "prague", "lisbon", "stockholm", "copenhagen", "dublin", "edinburgh", "zurich",
    "brussels", "athens", "tokyo", "sydney", "melbourne", "toronto", "vancouver",
    "montreal", "mexico city",
)

US_STATES = (
    "alabama", "alaska", "arizona", "arkansas", "california", "colorado", "connecticut",
    "delaware", "florida", "georgia", "hawaii", "idaho", "illinois", "indiana", "iowa",
    "kansas", "kentucky", "louisiana", "maine", "maryland", "massachusetts", "michigan",
    "minnesota", "mississippi", "missouri", "montana", "nebraska", "nevada",
    "new hampshire", "new jersey", "new mexico", "new york", "north carolina",
    "north dakota", "ohio", "oklahoma", "oregon", "pennsylvania", "rhode island",
    "south carolina", "south dakota", "tennessee", "texas", "utah", "vermont",
    "virginia", "washington", "west virginia", "wisconsin", "wyoming",
)

ONLINE_MARKERS = ("online", "virtual")


@lru_cache(maxsize=1024)
def _word(term: str) -> Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)")


def _mentions(text: str, term: str) -> bool:
    return bool(text) and _word(term).search(text) is not None


def _fold(value: Optional[str]) -> str:
    return fold_accents(value or "")


def city_names(city: str) -> List[str]:
    """The folded target city plus its known spellings."""
    key = _fold(city)
    for canonical, variations in CITY_VARIATIONS.items():
        folded = [_fold(v) for v in variations]
        if key == canonical or key in folded:
            return [canonical, *folded]
    return [key]


def canonical_country(country: Optional[str]) -> Optional[str]:
    """Map a free-text country ("USA", "Italia") to its canonical name."""
    if not country or not country.strip():
        return None
    key = _fold(country)
    for canonical, variations in COUNTRY_VARIATIONS.items():
        if key == canonical or key in (_fold(v) for v in variations):
            return canonical
    return key


def countries_match(event_country: Optional[str], target_country: Optional[str]) -> bool:
    if not event_country or not target_country:
        return True
    return canonical_country(event_country) == canonical_country(target_country)


def detect_country(text: Optional[str]) -> Optional[str]:
    """Canonical country explicitly mentioned in free text, if any."""
    folded = _fold(text)
    if not folded:
        return None
    for canonical, variations in COUNTRY_VARIATIONS.items():
        # Two-letter codes are too noisy in prose
        if any(len(v) > 2 and _mentions(folded, _fold(v)) for v in variations):
            return canonical
    if any(_mentions(folded, state) for state in US_STATES):
        return "united states"
    return None


def find_known_city(text: Optional[str]) -> Optional[str]:
    """First known city named anywhere in the text, title-cased canonical form."""
    folded = _fold(text)
    if not folded:
        return None
    known: List[str] = []
    for canonical, variations in CITY_VARIATIONS.items():
        known.append(canonical)
        known.extend(_fold(v) for v in variations if len(v) > 2)
    known.extend(c for c in OTHER_MAJOR_CITIES if c not in known)
    # Prefer longer names ("new york city" over "york")
    for name in sorted(set(known), key=len, reverse=True):
        if _mentions(folded, name):
            canonical = city_names(name)[0]
            return canonical.title()
    return None


def is_online_result(result: SearchResult) -> bool:
    if result.is_online:
        return True
    text = _fold(f"{result.title} {result.address or ''} {result.venue or ''}")
    return any(_mentions(text, marker) for marker in ONLINE_MARKERS)


def _mentions_other_city(text: str, allowed: Sequence[str]) -> bool:
    return any(other not in allowed and _mentions(text, other) for other in OTHER_MAJOR_CITIES)


def _mentions_us_state(text: str) -> bool:
    return any(_mentions(text, state) for state in US_STATES)


def _passes(result: SearchResult, allowed: Sequence[str], target_country: Optional[str]) -> bool:
    if is_online_result(result):
        return True

    event_city = _fold(result.city)
    event_address = _fold(result.address)
    event_venue = _fold(result.venue)
    full_text = _fold(f"{result.title} {result.snippet or ''} {result.address or result.venue or ''}")

    city_field_match = bool(event_city) and any(
        event_city == name or _mentions(event_city, name) or _mentions(name, event_city) for name in allowed
    )
    # City or address field must name the target; title mentions alone are weak
    city_match = city_field_match or any(_mentions(event_address or event_venue, name) for name in allowed)
    if not city_match:
        if event_city or not any(_mentions(full_text, name) for name in allowed):
            return False
        if _mentions_other_city(full_text, allowed):
            return False

    if _mentions_other_city(event_city, allowed) or _mentions_other_city(event_address, allowed):
        return False
    # Venue names borrow city names ("Paris Cat"); only consulted when nothing else locates the event
    if not city_field_match and not event_address and _mentions_other_city(event_venue, allowed):
        return False

    if target_country:
        if result.country and not countries_match(result.country, target_country):
            return False
        if target_country == "australia" and _mentions_us_state(full_text):
            return False

    return True


def apply_location_guard(
    results: Iterable[SearchResult], city: Optional[str], country: Optional[str] = None
) -> List[SearchResult]:
    """
    Keep only results located in the target city (and country, when given).

    Online events always pass. A result whose city field is empty may match
    on its title/description, but only when no other major city is named.
    """
    items = list(results)
    if not city or not city.strip():
        return items

    allowed = city_names(city)
    target_country = canonical_country(country)
    kept = [r for r in items if _passes(r, allowed, target_country)]

    if len(kept) != len(items):
        logger.info(
            f"Location guard: {len(items)} -> {len(kept)} results for city={city}"
            + (f", country={country}" if country else "")
        )
    return kept
