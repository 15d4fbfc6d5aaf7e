"""Tests for query normalization, language detection and fuzzy helpers."""

from __future__ import annotations

from app.core.enums import EventCategory
from app.services.search.fuzzy import (
    levenshtein_distance,
    normalize_for_dedup,
    partial_ratio,
    within_distance,
)
from app.services.search.language_detection import detect_event_language, detect_language
from app.services.search.text_normalizer import (
    create_search_text_folded,
    fold_accents,
    get_category_synonyms,
    map_to_event_category,
    normalize_query,
)


class TestFoldAccents:
    def test_latin_and_greek(self):
        assert fold_accents("São Paulo") == "sao paulo"
        assert fold_accents("Café") == "cafe"
        assert fold_accents("Αθήνα") == "αθηνα"

    def test_empty(self):
        assert fold_accents(None) == ""
        assert fold_accents("") == ""

    def test_search_text_folded_skips_missing_parts(self):
        assert create_search_text_folded(["Fête", None, "Thessaloníki"]) == "fete thessaloniki"


class TestCategoryMapping:
    def test_keyword_lookup(self):
        assert map_to_event_category("jazz") == EventCategory.MUSIC_NIGHTLIFE
        assert map_to_event_category("  Market ") == EventCategory.MARKETS_FAIRS

    def test_enum_value_accepted(self):
        assert map_to_event_category("food_drink") == EventCategory.FOOD_DRINK

    def test_unknown(self):
        assert map_to_event_category("quantum") is None
        assert map_to_event_category(None) is None

    def test_category_synonyms(self):
        assert get_category_synonyms("Jazz") == ["Jazz", "Music"]
        assert get_category_synonyms("cosplay") == ["cosplay"]


class TestNormalizeQuery:
    def test_collapses_whitespace_and_lowercases(self):
        result = normalize_query("  Jazz   Night  ")
        assert result.normalized == "jazz night"
        assert result.keywords == ["jazz", "night"]

    def test_synonym_group_expands(self):
        result = normalize_query("wine tasting in the hills")
        assert "vino" in result.synonyms
        assert EventCategory.FOOD_DRINK in result.categories

    def test_unaccented_greek_triggers_group(self):
        result = normalize_query("φεστιβαλ")
        assert "fiesta" in result.synonyms

    def test_whole_word_matching_only(self):
        # "art" inside "party" must not map to arts
        result = normalize_query("party")
        assert EventCategory.ARTS_CULTURE not in result.categories

    def test_to_dict_serializes_categories(self):
        payload = normalize_query("jazz").to_dict()
        assert payload["categories"] == ["MUSIC_NIGHTLIFE"]


class TestLanguageDetection:
    def test_greek_script(self):
        assert detect_language("συναυλία") == "el"

    def test_empty_defaults_to_english(self):
        assert detect_language("") == "en"
        assert detect_language(None) == "en"

    def test_long_italian_text(self):
        assert detect_language("vorrei trovare un concerto di musica jazz questa sera a Roma") == "it"

    def test_event_language_too_short(self):
        assert detect_event_language("Jazz", None) is None

    def test_event_language_low_confidence(self):
        assert detect_event_language("Jazz night", "fun") == "unknown"

    def test_event_language_detected(self):
        language = detect_event_language(
            "Community garden working bee",
            "Bring gloves and join your neighbours planting vegetables in the shared garden.",
        )
        assert language == "en"


class TestFuzzy:
    def test_levenshtein(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance(None, None) == 0

    def test_within_distance(self):
        assert within_distance("jazz night", "jaz night", 2)
        assert not within_distance("jazz night", "rock concert", 2)

    def test_normalize_for_dedup_expands_abbreviations(self):
        assert normalize_for_dedup("Brussels Xmas Market!") == "brusselschristmasmarket"
        assert normalize_for_dedup("Brussels Christmas Market") == "brusselschristmasmarket"
        assert normalize_for_dedup(None) == ""

    def test_partial_ratio(self):
        assert partial_ratio("jazz", "Melbourne Jazz Festival") == 1.0
        assert partial_ratio("", "anything") == 0.0
