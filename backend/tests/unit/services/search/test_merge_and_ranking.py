"""Tests for dedup/merge, the location guard, event-intent ranking and relevance scoring."""

from __future__ import annotations

from datetime import datetime

import pytest

from app.core.enums import ResultSource
from app.services.search.config import SearchConfig
from app.services.search.deduplication import deduplicate, filter_by_time_relevance, merge_results
from app.services.search.event_ranking import (
    has_time_intent,
    is_aggregator,
    is_event_intent_query,
    is_venue_homepage,
    rank_event_results,
    score_event_result,
    sort_by_start,
)
from app.services.search.location_guard import (
    apply_location_guard,
    canonical_country,
    city_names,
    countries_match,
    detect_country,
    find_known_city,
)
from app.services.search.ranking_service import RelevanceContext, RelevanceScorer
from tests.unit.services.search._helpers import make_result, melbourne, web_result

NOW = datetime(2026, 10, 17, 10, 0)


class TestDeduplicate:
    def test_xmas_vs_christmas_same_date_dropped(self):
        internal = [make_result("Brussels Xmas Market", start_at=melbourne(2026, 12, 5, 17, 0))]
        external = [web_result("Brussels Christmas Market", start_at=melbourne(2026, 12, 5, 10, 0))]

        result = deduplicate(internal, external)

        assert result.external == []
        assert result.dropped_count == 1

    def test_same_title_different_date_kept(self):
        internal = [make_result("Brussels Christmas Market", start_at=melbourne(2026, 12, 5, 17, 0))]
        external = [web_result("Brussels Christmas Market", start_at=melbourne(2026, 12, 6, 17, 0))]

        result = deduplicate(internal, external)

        assert len(result.external) == 1

    def test_same_venue_allows_looser_title(self):
        internal = [
            make_result("Jazz at the Forum", venue="Forum Theatre", start_at=melbourne(2026, 10, 17, 20, 0))
        ]
        external = [
            web_result("Jazz Night at the Forum", venue="Forum Theatre", start_at=melbourne(2026, 10, 17, 20, 0)),
            web_result("Jazz Night at the Forum", venue="Other Hall", start_at=melbourne(2026, 10, 17, 20, 0)),
        ]

        result = deduplicate(internal, external)

        assert [r.venue for r in result.external] == ["Other Hall"]

    def test_undated_external_never_dropped(self):
        internal = [make_result("Open Mic", start_at=melbourne(2026, 10, 17, 19, 0))]
        external = [web_result("Open Mic")]

        assert len(deduplicate(internal, external).external) == 1

    @pytest.mark.parametrize("internal_count", [0, 1, 3])
    def test_internal_set_preserved(self, internal_count):
        internal = [
            make_result(f"Event {i}", start_at=melbourne(2026, 10, 17, 12, 0)) for i in range(internal_count)
        ]
        external = [web_result("Event 0", start_at=melbourne(2026, 10, 17, 12, 0))]

        result = deduplicate(internal, external)

        assert len(result.internal) == internal_count
        assert [r.title for r in result.internal] == [r.title for r in internal]


class TestTimeRelevanceAndMerge:
    def test_filters_far_results_keeps_undated(self):
        target = melbourne(2026, 10, 17, 0, 0)
        items = [
            web_result("Soon", start_at=melbourne(2026, 10, 20, 0, 0)),
            web_result("Far", start_at=melbourne(2027, 3, 1, 0, 0)),
            web_result("Undated"),
        ]

        kept = filter_by_time_relevance(items, target, days=30)

        assert [r.title for r in kept] == ["Soon", "Undated"]

    def test_no_target_keeps_everything(self):
        items = [web_result("A"), web_result("B")]
        assert filter_by_time_relevance(items, None) == items

    def test_merge_internal_first_and_tagged(self):
        internal = [make_result("Internal")]
        external = [web_result("External")]

        merged, internal_count, external_count = merge_results(internal, external)

        assert [r.title for r in merged] == ["Internal", "External"]
        assert merged[0].source == ResultSource.INTERNAL
        assert merged[1].to_dict()["is_web_result"] is True
        assert (internal_count, external_count) == (1, 1)


class TestLocationGuard:
    def test_city_field_must_match(self):
        results = [
            web_result("Jazz night", city="Melbourne"),
            web_result("Jazz night", city="Sydney"),
        ]

        kept = apply_location_guard(results, "Melbourne")

        assert [r.city for r in kept] == ["Melbourne"]

    def test_variations_match(self):
        kept = apply_location_guard([web_result("Concerto", city="Roma")], "Rome")
        assert len(kept) == 1

    def test_empty_city_falls_back_to_text_unless_other_city_named(self):
        results = [
            web_result("Melbourne jazz festival"),
            web_result("Melbourne to Sydney jazz tour"),
            web_result("Jazz festival"),
        ]

        kept = apply_location_guard(results, "Melbourne")

        assert [r.title for r in kept] == ["Melbourne jazz festival"]

    def test_online_events_always_pass(self):
        kept = apply_location_guard([web_result("Online jazz masterclass", city="London")], "Melbourne")
        assert len(kept) == 1

    def test_country_mismatch_and_us_state(self):
        results = [
            web_result("Jazz", city="Melbourne", country="USA"),
            web_result("Jazz in Melbourne, Florida", address="Melbourne"),
            web_result("Jazz", city="Melbourne", country="Australia"),
        ]

        kept = apply_location_guard(results, "Melbourne", "Australia")

        assert [r.country for r in kept] == ["Australia"]

    def test_venue_named_after_other_city_kept_when_city_field_matches(self):
        results = [
            make_result("Late Night Jazz Session", venue="Paris Cat Jazz Club", city="Melbourne"),
            web_result("Jazz brunch", venue="Paris Cat Jazz Club", address="6 Rue de Rivoli, Paris"),
            web_result("Jazz at the Sydney Club", venue="Sydney Jazz Club"),
        ]

        kept = apply_location_guard(results, "Melbourne")

        assert [r.title for r in kept] == ["Late Night Jazz Session"]

    def test_no_city_passes_through(self):
        results = [web_result("Anything", city="Paris")]
        assert apply_location_guard(results, None) == results

    def test_helpers(self):
        assert city_names("Roma")[0] == "rome"
        assert canonical_country("Italia") == "italy"
        assert countries_match("USA", "United States")
        assert countries_match(None, "Australia")
        assert detect_country("markets in Italy this weekend") == "italy"
        assert detect_country("jazz in Texas") == "united states"
        assert detect_country("us and them") is None
        assert find_known_city("what's on in new york city tonight") == "New York"
        assert find_known_city("Melbourne this weekend jazz") == "Melbourne"
        assert find_known_city("la la land screening") is None


class TestEventIntent:
    def test_event_intent_queries(self):
        assert is_event_intent_query("jazz this weekend")
        assert is_event_intent_query("live music near me")
        assert not is_event_intent_query("contact support")
        assert not is_event_intent_query("")

    def test_time_intent(self):
        assert has_time_intent("markets next friday")
        assert not has_time_intent("markets")

    def test_aggregator_detection(self):
        assert is_aggregator(web_result("Best events in Melbourne this week"))
        assert is_aggregator(web_result("Jazz", url="https://www.eventbrite.com/c/music/"))
        assert not is_aggregator(web_result("Jazz at Bird's Basement", url="https://birdsbasement.com/jazz"))

    def test_venue_homepage(self):
        assert is_venue_homepage(web_result("The Jazz Lab | About Us"))
        assert not is_venue_homepage(
            web_result("The Jazz Lab | About Us", start_at=melbourne(2026, 10, 18, 20, 0))
        )


class TestEventRanking:
    def test_venue_and_date_beats_bare_homepage(self):
        dated = web_result(
            "Late Night Jazz Session",
            venue="Paris Cat Jazz Club",
            start_at=melbourne(2026, 10, 18, 21, 0),
        )
        homepage = web_result("Paris Cat Jazz Club - About Us")

        ranked = rank_event_results([homepage, dated], "jazz this weekend", now=NOW)

        assert ranked[0].title == "Late Night Jazz Session"
        assert ranked[0].score > ranked[1].score

    def test_score_components(self):
        config = SearchConfig()
        aggregator = web_result("All events in Melbourne", url="https://www.eventbrite.com/c/x")
        wrong_country = web_result("Jazz", country="United States")
        upcoming = web_result(
            "Jazz", venue="Hall", city="Melbourne", start_at=melbourne(2026, 10, 20, 20, 0)
        )

        assert score_event_result(aggregator, "jazz", config=config, now=NOW) == config.aggregator_penalty
        assert (
            score_event_result(wrong_country, "jazz", target_country="Australia", config=config, now=NOW)
            == config.country_mismatch_penalty
        )
        assert score_event_result(
            upcoming, "jazz this weekend", target_city="Melbourne", config=config, now=NOW
        ) == pytest.approx(config.venue_date_boost + config.city_match_boost + config.upcoming_boost)

    def test_upcoming_boost_requires_time_intent(self):
        config = SearchConfig()
        upcoming = web_result("Jazz", start_at=melbourne(2026, 10, 20, 20, 0))

        assert score_event_result(upcoming, "jazz", config=config, now=NOW) == 0.0

    def test_non_event_query_sorted_by_start_undated_last(self):
        results = [
            web_result("Undated"),
            web_result("Later", start_at=melbourne(2026, 11, 1, 10, 0)),
            web_result("Sooner", start_at=melbourne(2026, 10, 20, 10, 0)),
        ]

        ranked = rank_event_results(results, "contact support")

        assert [r.title for r in ranked] == ["Sooner", "Later", "Undated"]
        assert sort_by_start(results)[-1].title == "Undated"


class TestRelevanceScorer:
    @pytest.fixture
    def scorer(self):
        return RelevanceScorer(SearchConfig())

    def test_exact_title_outranks_partial(self, scorer):
        context = RelevanceContext(query="jazz night", terms=["jazz", "night"])
        exact = make_result("Friday Jazz Night", id="a")
        partial = make_result("Night Market", id="b")

        ranked = scorer.rank([partial, exact], context)

        assert [r.id for r in ranked] == ["a", "b"]

    def test_date_window_bonus_and_capped_penalty(self, scorer):
        window_start = melbourne(2026, 10, 17, 0, 0)
        window_end = melbourne(2026, 10, 18, 23, 59)
        context = RelevanceContext(window_start=window_start, window_end=window_end)

        inside = scorer.score(make_result("x", start_at=melbourne(2026, 10, 18, 20, 0)), context)
        far = scorer.score(make_result("x", start_at=melbourne(2027, 1, 1, 20, 0)), context)

        assert inside.date == 5.0
        assert far.date == -4.0

    def test_category_and_city(self, scorer):
        context = RelevanceContext(category_labels=["Jazz", "Music"], city="Melbourne")
        candidate = make_result("x", categories=["music"], city="Melbourne")

        breakdown = scorer.score(candidate, context)

        assert breakdown.category == 4.0
        assert breakdown.city == 3.0

    def test_hybrid_rank_contributes(self, scorer):
        context = RelevanceContext(query="yoga")
        a = make_result("Sunrise yoga", id="a", start_at=melbourne(2026, 10, 20, 7, 0))
        b = make_result("Sunset yoga", id="b", start_at=melbourne(2026, 10, 21, 7, 0))

        ranked = scorer.rank([a, b], context, hybrid_ranks={"b": 1.0})

        assert ranked[0].id == "b"

    def test_ties_broken_by_start(self, scorer):
        context = RelevanceContext()
        later = make_result("x", id="later", start_at=melbourne(2026, 10, 21, 7, 0))
        sooner = make_result("x", id="sooner", start_at=melbourne(2026, 10, 20, 7, 0))
        undated = make_result("x", id="undated")

        ranked = scorer.rank([undated, later, sooner], context)

        assert [r.id for r in ranked] == ["sooner", "later", "undated"]

    def test_nearer_candidate_wins_equal_scores(self, scorer):
        context = RelevanceContext(query="jazz", terms=["jazz"], radius_km=25.0)
        far = make_result("Jazz", id="far", distance_km=20.0, start_at=melbourne(2026, 10, 20, 19, 0))
        near = make_result("Jazz", id="near", distance_km=1.0, start_at=melbourne(2026, 10, 21, 19, 0))

        ranked = scorer.rank([far, near], context)

        assert [r.id for r in ranked] == ["near", "far"]
        assert scorer.score(near, context).proximity == pytest.approx(2.0 * (1 - 1.0 / 25.0))
        assert scorer.score(far, context).proximity == pytest.approx(2.0 * (1 - 20.0 / 25.0))

    def test_proximity_ignored_without_radius_or_distance(self, scorer):
        assert scorer.score(make_result("x", distance_km=3.0), RelevanceContext()).proximity == 0.0
        assert scorer.score(make_result("x"), RelevanceContext(radius_km=10.0)).proximity == 0.0
        beyond = make_result("x", distance_km=40.0)
        assert scorer.score(beyond, RelevanceContext(radius_km=10.0)).proximity == 0.0
