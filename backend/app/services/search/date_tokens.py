# backend/app/services/search/date_tokens.py
"""
Multilingual date vocabulary (en, el, it, es, fr) and phrase translation.

Date phrases typed in Greek, Italian, Spanish or French are translated into
their English equivalent before parsing. Translation is dictionary based:
exact phrase hits first, then relative phrases, then "modifier + weekday",
then token-for-token month names. Anything untranslatable is returned as-is.
"""
from __future__ import annotations

from typing import Dict

from app.services.search.patterns import WHITESPACE

RELATIVE_DATE_TOKENS: Dict[str, Dict[str, str]] = {
    "en": {
        "today": "today",
        "tonight": "tonight",
        "tomorrow": "tomorrow",
        "this weekend": "this weekend",
        "next week": "next week",
        "next month": "next month",
    },
    "el": {
        "σήμερα": "today",
        "απόψε": "tonight",
        "αύριο": "tomorrow",
        "αυτό το σαββατοκύριακο": "this weekend",
        "το σαββατοκύριακο": "this weekend",
        "σαββατοκύριακο": "this weekend",
        "την επόμενη εβδομάδα": "next week",
        "επόμενη εβδομάδα": "next week",
        "τον επόμενο μήνα": "next month",
        "επόμενο μήνα": "next month",
    },
    "it": {
        "oggi": "today",
        "stasera": "tonight",
        "domani": "tomorrow",
        "questo weekend": "this weekend",
        "questo fine settimana": "this weekend",
        "la prossima settimana": "next week",
        "prossima settimana": "next week",
        "il prossimo mese": "next month",
        "prossimo mese": "next month",
    },
    "es": {
        "hoy": "today",
        "esta noche": "tonight",
        "mañana": "tomorrow",
        "este fin de semana": "this weekend",
        "este finde": "this weekend",
        "la próxima semana": "next week",
        "próxima semana": "next week",
        "el próximo mes": "next month",
        "próximo mes": "next month",
    },
    "fr": {
        "aujourd'hui": "today",
        "aujourdhui": "today",
        "ce soir": "tonight",
        "demain": "tomorrow",
        "ce week-end": "this weekend",
        "ce weekend": "this weekend",
        "la semaine prochaine": "next week",
        "semaine prochaine": "next week",
        "le mois prochain": "next month",
        "mois prochain": "next month",
    },
}

DAY_TOKENS: Dict[str, Dict[str, str]] = {
    "en": {
        "monday": "monday",
        "tuesday": "tuesday",
        "wednesday": "wednesday",
        "thursday": "thursday",
        "friday": "friday",
        "saturday": "saturday",
        "sunday": "sunday",
    },
    "el": {
        "δευτέρα": "monday",
        "τρίτη": "tuesday",
        "τετάρτη": "wednesday",
        "πέμπτη": "thursday",
        "παρασκευή": "friday",
        "σάββατο": "saturday",
        "κυριακή": "sunday",
    },
    "it": {
        "lunedì": "monday",
        "lunedi": "monday",
        "martedì": "tuesday",
        "martedi": "tuesday",
        "mercoledì": "wednesday",
        "mercoledi": "wednesday",
        "giovedì": "thursday",
        "giovedi": "thursday",
        "venerdì": "friday",
        "venerdi": "friday",
        "sabato": "saturday",
        "domenica": "sunday",
    },
    "es": {
        "lunes": "monday",
        "martes": "tuesday",
        "miércoles": "wednesday",
        "miercoles": "wednesday",
        "jueves": "thursday",
        "viernes": "friday",
        "sábado": "saturday",
        "sabado": "saturday",
        "domingo": "sunday",
    },
    "fr": {
        "lundi": "monday",
        "mardi": "tuesday",
        "mercredi": "wednesday",
        "jeudi": "thursday",
        "vendredi": "friday",
        "samedi": "saturday",
        "dimanche": "sunday",
    },
}

# Month numbers are 1-based
MONTH_TOKENS: Dict[str, Dict[str, int]] = {
    "en": {
        "january": 1,
        "february": 2,
        "march": 3,
        "april": 4,
        "may": 5,
        "june": 6,
        "july": 7,
        "august": 8,
        "september": 9,
        "october": 10,
        "november": 11,
        "december": 12,
        "jan": 1,
        "feb": 2,
        "mar": 3,
        "apr": 4,
        "jun": 6,
        "jul": 7,
        "aug": 8,
        "sep": 9,
        "sept": 9,
        "oct": 10,
        "nov": 11,
        "dec": 12,
    },
    "el": {
        "ιανουάριος": 1,
        "ιανουαρίου": 1,
        "φεβρουάριος": 2,
        "φεβρουαρίου": 2,
        "μάρτιος": 3,
        "μαρτίου": 3,
        "απρίλιος": 4,
        "απριλίου": 4,
        "μάιος": 5,
        "μαΐου": 5,
        "ιούνιος": 6,
        "ιουνίου": 6,
        "ιούλιος": 7,
        "ιουλίου": 7,
        "αύγουστος": 8,
        "αυγούστου": 8,
        "σεπτέμβριος": 9,
        "σεπτεμβρίου": 9,
        "οκτώβριος": 10,
        "οκτωβρίου": 10,
        "νοέμβριος": 11,
        "νοεμβρίου": 11,
        "δεκέμβριος": 12,
        "δεκεμβρίου": 12,
    },
    "it": {
        "gennaio": 1,
        "febbraio": 2,
        "marzo": 3,
        "aprile": 4,
        "maggio": 5,
        "giugno": 6,
        "luglio": 7,
        "agosto": 8,
        "settembre": 9,
        "ottobre": 10,
        "novembre": 11,
        "dicembre": 12,
        "gen": 1,
        "mag": 5,
        "giu": 6,
        "lug": 7,
        "ago": 8,
        "ott": 10,
        "dic": 12,
    },
    "es": {
        "enero": 1,
        "febrero": 2,
        "marzo": 3,
        "abril": 4,
        "mayo": 5,
        "junio": 6,
        "julio": 7,
        "agosto": 8,
        "septiembre": 9,
        "setiembre": 9,
        "octubre": 10,
        "noviembre": 11,
        "diciembre": 12,
        "ene": 1,
        "abr": 4,
    },
    "fr": {
        "janvier": 1,
        "février": 2,
        "fevrier": 2,
        "mars": 3,
        "avril": 4,
        "mai": 5,
        "juin": 6,
        "juillet": 7,
        "août": 8,
        "aout": 8,
        "septembre": 9,
        "octobre": 10,
        "novembre": 11,
        "décembre": 12,
        "decembre": 12,
        "janv": 1,
        "févr": 2,
        "fevr": 2,
        "avr": 4,
        "juil": 7,
        "déc": 12,
    },
}

MODIFIER_TOKENS: Dict[str, Dict[str, str]] = {
    "en": {"this": "this", "next": "next"},
    "el": {
        "αυτό": "this",
        "αυτή": "this",
        "αυτήν": "this",
        "επόμενο": "next",
        "επόμενη": "next",
        "επόμενην": "next",
        "την": "this",
    },
    "it": {"questo": "this", "questa": "this", "prossimo": "next", "prossima": "next"},
    "es": {
        "este": "this",
        "esta": "this",
        "próximo": "next",
        "próxima": "next",
        "proximo": "next",
        "proxima": "next",
    },
    "fr": {"ce": "this", "cette": "this", "prochain": "next", "prochaine": "next"},
}

ENGLISH_MONTHS = [
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
]


def _build_inline_translations() -> Dict[str, str]:
    table: Dict[str, str] = {}
    for locale_tokens in RELATIVE_DATE_TOKENS.values():
        table.update(locale_tokens)
    for locale_tokens in DAY_TOKENS.values():
        table.update(locale_tokens)
    return table


# Exact-match phrase dictionary consulted before anything else
INLINE_TRANSLATIONS: Dict[str, str] = _build_inline_translations()

_ALL_MONTHS: Dict[str, int] = {
    token: number for tokens in MONTH_TOKENS.values() for token, number in tokens.items()
}

# Longest phrases first so "questo fine settimana" wins over shorter overlaps
_RELATIVE_BY_LENGTH = sorted(
    ((foreign, english) for tokens in RELATIVE_DATE_TOKENS.values() for foreign, english in tokens.items()),
    key=lambda item: len(item[0]),
    reverse=True,
)


def month_number(token: str) -> int | None:
    """Month number (1-12) for a month name or abbreviation in any supported locale."""
    return _ALL_MONTHS.get(token.lower().strip(". "))


def translate_date_phrase(phrase: str) -> str:
    """
    Translate a date phrase into English.

    Examples:
        "domani" -> "tomorrow"
        "prossimo lunedì" -> "next monday"
        "15 marzo" -> "15 march"
        "ce week-end" -> "this weekend"
    """
    if not phrase:
        return phrase
    lowered = WHITESPACE.sub(" ", phrase.lower().strip())

    exact = INLINE_TRANSLATIONS.get(lowered)
    if exact is not None:
        return exact

    for foreign, english in _RELATIVE_BY_LENGTH:
        if foreign in lowered and foreign != english:
            return english

    tokens = lowered.split(" ")
    for locale, days in DAY_TOKENS.items():
        modifiers = MODIFIER_TOKENS[locale]
        for i, token in enumerate(tokens):
            day = days.get(token)
            if day is None:
                continue
            before = tokens[i - 1] if i > 0 else None
            after = tokens[i + 1] if i + 1 < len(tokens) else None
            modifier = modifiers.get(before or "") or modifiers.get(after or "")
            if modifier:
                return f"{modifier} {day}"

    translated = []
    changed = False
    for token in tokens:
        number = _ALL_MONTHS.get(token)
        if number is not None and token not in MONTH_TOKENS["en"]:
            translated.append(ENGLISH_MONTHS[number - 1])
            changed = True
        elif token in ("de", "di", "del", "του"):
            # "15 de marzo", "15 di marzo"
            changed = True
        else:
            translated.append(token)
    if changed:
        return " ".join(translated)

    return phrase
