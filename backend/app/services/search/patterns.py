# backend/app/services/search/patterns.py
"""
Regex patterns for Eventa query parsing and result classification.

Groups: date/time phrases -> event intent -> result classification ->
language heuristics -> content safety.
"""
import re
from typing import Dict, List, Pattern

_MONTHS = (
    r"january|february|march|april|may|june|july|august|september|october|november|december"
)

# =============================================================================
# DATE / TIME PATTERNS
# =============================================================================

ISO_DATE: Pattern[str] = re.compile(r"^\s*(\d{4})-(\d{2})-(\d{2})\s*$")

# Whole-string time: "8pm", "8:30 pm", "20:00". Anything else is rejected.
TIME_STRICT: Pattern[str] = re.compile(
    r"^\s*(\d{1,2})(?::(\d{2}))?\s*(am|pm|a\.m\.|p\.m\.)?\s*$", re.IGNORECASE
)

# Time-of-day mentions inside free text. Requires a meridiem or an HH:MM shape
# so that counts ("5 people") and years are not read as times.
TIME_MENTION: Pattern[str] = re.compile(
    r"(?<![\w:.\-])(\d{1,2})(?::(\d{2}))?\s*(am|pm|a\.m\.|p\.m\.)(?!\w)"
    r"|(?<![\w:.\-])(\d{1,2}):(\d{2})(?![\d:])",
    re.IGNORECASE,
)

WEEKDAY_PHRASE: Pattern[str] = re.compile(
    r"^(this|next)\s+(sunday|monday|tuesday|wednesday|thursday|friday|saturday)$"
)
BARE_WEEKDAY: Pattern[str] = re.compile(
    r"^(?:on\s+)?(sunday|monday|tuesday|wednesday|thursday|friday|saturday)$"
)
MONTH_PHRASE: Pattern[str] = re.compile(
    rf"^(?:in\s+)?({_MONTHS})(?:\s+(\d{{1,2}})(?:st|nd|rd|th)?)?(?:,?\s+(\d{{4}}))?$"
)
DAY_MONTH_PHRASE: Pattern[str] = re.compile(
    rf"^(\d{{1,2}})(?:st|nd|rd|th)?\s+(?:of\s+)?({_MONTHS})(?:,?\s+(\d{{4}}))?$"
)

# Phrases inside a longer query that carry a date meaning
DATE_PHRASE_IN_QUERY: Pattern[str] = re.compile(
    r"\b(today|tonight|tomorrow|this\s+weekend|next\s+weekend|this\s+week|next\s+week|"
    r"next\s+month|(?:this|next)\s+(?:sunday|monday|tuesday|wednesday|thursday|friday|saturday)|"
    rf"\d{{4}}-\d{{2}}-\d{{2}}|(?:{_MONTHS})(?:\s+\d{{1,2}}(?:st|nd|rd|th)?)?(?:,?\s+\d{{4}})?)\b",
    re.IGNORECASE,
)

# =============================================================================
# EVENT INTENT PATTERNS
# =============================================================================

TIME_INTENT_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\b(this|next)\s+(weekend|week|month|friday|saturday|sunday)\b", re.IGNORECASE),
    re.compile(r"\b(tonight|tomorrow|today)\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}[/\-]\d{1,2}\b"),
    re.compile(rf"\b({_MONTHS})\s+\d{{1,2}}\b", re.IGNORECASE),
    re.compile(r"\b(in|on|for)\s+\d+\s+(days?|weeks?|months?)\b", re.IGNORECASE),
]

ACTIVITY_INTENT_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\b(live\s+)?music\b", re.IGNORECASE),
    re.compile(r"\bmarkets?\b", re.IGNORECASE),
    re.compile(r"\b(theatre|theater)\b", re.IGNORECASE),
    re.compile(r"\bconcerts?\b", re.IGNORECASE),
    re.compile(r"\bfestivals?\b", re.IGNORECASE),
    re.compile(r"\bshows?\b", re.IGNORECASE),
    re.compile(r"\bgigs?\b", re.IGNORECASE),
    re.compile(r"\bevents?\b", re.IGNORECASE),
    re.compile(r"\bperformances?\b", re.IGNORECASE),
    re.compile(r"\bexhibitions?\b", re.IGNORECASE),
    re.compile(r"\bjazz\b", re.IGNORECASE),
]

TRAVEL_INTENT_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\bwhile\s+i['’]?m\s+in\b", re.IGNORECASE),
    re.compile(r"\bduring\s+my\s+trip\b", re.IGNORECASE),
    re.compile(r"\bnear\s+me\b", re.IGNORECASE),
    re.compile(r"\bnearby\b", re.IGNORECASE),
    re.compile(r"\baround\s+me\b", re.IGNORECASE),
]

# =============================================================================
# RESULT CLASSIFICATION PATTERNS
# =============================================================================

AGGREGATOR_PHRASES: List[Pattern[str]] = [
    re.compile(r"\bwhat['’]?s\s+on\b", re.IGNORECASE),
    re.compile(r"\bbrowse\s+events?\b", re.IGNORECASE),
    re.compile(r"\ball\s+(concerts?|shows?|events?|gigs?)\b", re.IGNORECASE),
    re.compile(
        r"\bbest\s+(events?|things\s+to\s+do|concerts?|shows?)\s+(in|at|near)\b", re.IGNORECASE
    ),
    re.compile(r"\bfind\s+(events?|concerts?|shows?)\b", re.IGNORECASE),
    re.compile(r"\bdiscover\s+(events?|concerts?|shows?)\b", re.IGNORECASE),
    re.compile(r"\bsee\s+(all|more)\s+(events?|concerts?|shows?)\b", re.IGNORECASE),
    re.compile(r"\bevent\s+(calendar|listing|guide|directory)\b", re.IGNORECASE),
    re.compile(r"\bupcoming\s+events?\s+(in|at)\b", re.IGNORECASE),
]

AGGREGATOR_URL_FRAGMENTS = (
    "eventbrite.com/c/",
    "facebook.com/events",
    "ticketmaster.com/",
    "ticketek.com.au/",
    "eventful.com/",
    "meetup.com/events",
)

VENUE_HOMEPAGE_PHRASES: List[Pattern[str]] = [
    re.compile(r"\bhome\s+page\b", re.IGNORECASE),
    re.compile(r"\bcontact\s+(us|info)\b", re.IGNORECASE),
    re.compile(r"\babout\s+us\b", re.IGNORECASE),
    re.compile(r"\bvisit\s+us\b", re.IGNORECASE),
    re.compile(r"\bget\s+(in\s+)?touch\b", re.IGNORECASE),
]

SPECIFIC_DATE_TEXT: List[Pattern[str]] = [
    re.compile(rf"\b({_MONTHS})\s+\d{{1,2}}", re.IGNORECASE),
    re.compile(r"\b\d{1,2}[/\-]\d{1,2}"),
    re.compile(r"\b(tonight|tomorrow|this\s+(weekend|week|friday|saturday|sunday))", re.IGNORECASE),
]

# =============================================================================
# QUERY ENTITY PATTERNS (deterministic intent fallback)
# =============================================================================

CITY_AFTER_PREPOSITION: Pattern[str] = re.compile(
    r"\b(?:in|at|near|around)\s+([A-ZÀ-ɏ][\wÀ-ɏ'\-]*(?:\s+[A-ZÀ-ɏ][\wÀ-ɏ'\-]*)*)"
)
CREATE_INTENT: Pattern[str] = re.compile(
    r"\b(create|add|post|submit|list|publish|organi[sz]e|host)\b.*\b(event|gig|market|party|concert|workshop)\b",
    re.IGNORECASE,
)

# =============================================================================
# LANGUAGE HEURISTICS
# =============================================================================

GREEK_CHARS: Pattern[str] = re.compile(r"[Ͱ-Ͽἀ-῿]")

LANGUAGE_HINTS: Dict[str, List[Pattern[str]]] = {
    "it": [
        re.compile(r"\b(festa|mercato|vino|arte|cibo|evento|spettacolo|concerto)\b"),
        re.compile(r"\b(dove|quando|cosa|come|perché|oggi|domani|stasera)\b"),
    ],
    "es": [
        re.compile(r"\b(fiesta|mercado|comida|evento|espectáculo|concierto)\b"),
        re.compile(r"\b(dónde|cuándo|qué|cómo|por qué|hoy|mañana|esta noche)\b"),
    ],
    "fr": [
        re.compile(r"\b(fête|marché|vin|nourriture|événement|spectacle)\b"),
        re.compile(r"\b(où|quand|quoi|comment|pourquoi|aujourd'hui|demain|ce soir)\b"),
    ],
}

# =============================================================================
# CONTENT SAFETY / SANITIZATION
# =============================================================================

SAFETY_BLOCKLIST: List[Pattern[str]] = [
    re.compile(r"\bfree\s+crypto\b", re.IGNORECASE),
    re.compile(r"\bairdrop\b", re.IGNORECASE),
    re.compile(r"\bconnect\s+(your\s+)?wallet\b", re.IGNORECASE),
    re.compile(r"\bclaim\s+now\b", re.IGNORECASE),
    re.compile(r"\blimited\s+time\s+offer\b", re.IGNORECASE),
    re.compile(r"\bclick\s+here\s+to\s+win\b", re.IGNORECASE),
    re.compile(r"\bcasino\b", re.IGNORECASE),
    re.compile(r"\bviagra\b", re.IGNORECASE),
    re.compile(r"\bporn\b", re.IGNORECASE),
]

SNIPPET_DATE: Pattern[str] = re.compile(
    rf"\b(\d{{1,2}}[/\-]\d{{1,2}}[/\-]\d{{2,4}}|(?:{_MONTHS})\s+\d{{1,2}},?\s+\d{{4}})\b",
    re.IGNORECASE,
)

TRACKING_PARAM: Pattern[str] = re.compile(r"^(utm_[a-z_]+|fbclid|gclid)$", re.IGNORECASE)
TRACKING_IN_TEXT: Pattern[str] = re.compile(r"[?&](?:utm_[a-z_]+|fbclid|gclid)=[^\s&]*", re.IGNORECASE)
WHITESPACE: Pattern[str] = re.compile(r"\s+")
PUNCTUATION: Pattern[str] = re.compile(r"[^\w\s'\-]")
NON_ALNUM: Pattern[str] = re.compile(r"[^a-z0-9]")
