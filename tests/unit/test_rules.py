"""Rule table tests against fixed history snapshots."""

from datetime import datetime, timezone

import pytest

from anglerxp.gamification.history import HistorySnapshot
from anglerxp.gamification.rules import (
    CHALLENGE_RULES,
    RuleEvent,
    RuleKind,
    european_countries,
    rules_for,
    species_slug,
)
from anglerxp.gamification.schemas import CatchEvent


def make_catch(hour: int = 12, **kwargs) -> CatchEvent:
    defaults = {
        "id": "catch-1",
        "account_id": "angler-1",
        "species": "Perch",
        "has_photo": True,
        "caught_at": datetime(2026, 3, 4, hour, 15, tzinfo=timezone.utc),
        "moon_phase": "Waxing Crescent",
    }
    defaults.update(kwargs)
    return CatchEvent(**defaults)


def rule(slug: str):
    return next(r for r in CHALLENGE_RULES if r.slug == slug)


SNAPSHOT = HistorySnapshot(account_id="angler-1")


class TestRuleTable:
    def test_slugs_are_unique(self):
        slugs = [r.slug for r in CHALLENGE_RULES]
        assert len(slugs) == len(set(slugs))

    def test_aggregate_rules_have_metrics(self):
        for r in CHALLENGE_RULES:
            if r.kind is RuleKind.AGGREGATE:
                assert r.metric is not None, r.slug

    def test_session_rules_split_out(self):
        assert {r.slug for r in rules_for(RuleEvent.SESSION)} == {"first_session", "session_10"}
        assert "first_session" not in {r.slug for r in rules_for(RuleEvent.CATCH)}

    def test_milestone_thresholds(self):
        assert [rule(s).target for s in ("first_catch", "catch_10", "catch_50", "catch_100", "catch_500")] == [
            1, 10, 50, 100, 500,
        ]
        assert [rule(f"species_{n}").target for n in (5, 10, 25)] == [5, 10, 25]


class TestSlugs:
    @pytest.mark.parametrize(
        ("species", "slug"),
        [("Bass", "bass"), ("Largemouth Bass", "largemouth_bass"), ("  Brown   Trout ", "brown_trout")],
    )
    def test_species_slug(self, species, slug):
        assert species_slug(species) == slug

    def test_species_template(self):
        assert rule("catch_{species}").resolve_slug(make_catch(species="Northern Pike")) == "catch_northern_pike"

    def test_country_template_needs_country(self):
        template = rule("{country}_catch_1")
        assert template.resolve_slug(make_catch()) is None
        assert template.resolve_slug(make_catch(country_code="GB")) == "gb_catch_1"

    def test_template_without_catch(self):
        assert rule("catch_{species}").resolve_slug(None) is None
        assert rule("first_session").resolve_slug(None) == "first_session"


class TestTimeWindows:
    @pytest.mark.parametrize(
        ("hour", "expected"),
        [(3, False), (4, True), (5, True), (6, False)],
    )
    def test_dawn_patrol(self, hour, expected):
        assert rule("dawn_patrol").matches(make_catch(hour), SNAPSHOT) is expected

    @pytest.mark.parametrize(
        ("hour", "expected"),
        [(4, False), (5, True), (6, True), (7, False)],
    )
    def test_early_bird(self, hour, expected):
        assert rule("early_bird").matches(make_catch(hour), SNAPSHOT) is expected

    @pytest.mark.parametrize(
        ("hour", "expected"),
        [(21, False), (22, True), (23, True), (0, True), (4, True), (5, False)],
    )
    def test_night_owl_wraps_midnight(self, hour, expected):
        assert rule("night_owl").matches(make_catch(hour), SNAPSHOT) is expected

    @pytest.mark.parametrize(("hour", "expected"), [(17, False), (18, True), (19, True), (20, False)])
    def test_golden_hour(self, hour, expected):
        assert rule("golden_hour").matches(make_catch(hour), SNAPSHOT) is expected

    def test_uses_account_timezone(self):
        """10:15 UTC is 05:15 in New York (EST)."""
        snapshot = HistorySnapshot(account_id="angler-1", timezone="America/New_York")
        assert rule("early_bird").matches(make_catch(10), snapshot)
        assert not rule("early_bird").matches(make_catch(10), SNAPSHOT)


class TestCatchPredicates:
    def test_big_fish(self):
        assert rule("big_fish_5kg").matches(make_catch(weight_kg=5.0), SNAPSHOT)
        assert not rule("big_fish_5kg").matches(make_catch(weight_kg=4.99), SNAPSHOT)
        assert not rule("big_fish_10kg").matches(make_catch(weight_kg=6.0), SNAPSHOT)
        assert not rule("big_fish_5kg").matches(make_catch(), SNAPSHOT)

    def test_specimen_uses_catalog_weight(self):
        snapshot = HistorySnapshot(account_id="angler-1", specimen_weight_lb=2.0)
        assert rule("specimen_hunter").matches(make_catch(weight_kg=1.0), snapshot)  # 2.2 lb
        assert not rule("specimen_hunter").matches(make_catch(weight_kg=0.8), snapshot)
        assert not rule("specimen_hunter").matches(make_catch(weight_kg=50.0), SNAPSHOT)

    @pytest.mark.parametrize(
        ("condition", "slug"),
        [
            ("Light Rain", "rain_fisher"),
            ("drizzle", "rain_fisher"),
            ("Thunderstorm", "storm_chaser"),
            ("Mist", "fog_fisher"),
            ("Clear sky", "fair_weather"),
            ("Sunny", "fair_weather"),
        ],
    )
    def test_weather_keywords(self, condition, slug):
        assert rule(slug).matches(make_catch(weather_condition=condition), SNAPSHOT)

    def test_weather_absent(self):
        assert not rule("rain_fisher").matches(make_catch(), SNAPSHOT)

    def test_wind_warrior(self):
        assert rule("wind_warrior").matches(make_catch(wind_speed=15), SNAPSHOT)
        assert not rule("wind_warrior").matches(make_catch(wind_speed=14.9), SNAPSHOT)

    def test_moon_phase_needs_recorded_phase(self):
        assert rule("full_moon").matches(make_catch(moon_phase="Full Moon"), SNAPSHOT)
        assert not rule("full_moon").matches(make_catch(moon_phase="Waxing Gibbous"), SNAPSHOT)
        # 2024-01-11 was a new moon, but nothing was recorded on the catch
        unrecorded = make_catch(moon_phase=None, caught_at=datetime(2024, 1, 11, 12, tzinfo=timezone.utc))
        assert not rule("new_moon").matches(unrecorded, SNAPSHOT)


class TestMetrics:
    def test_aggregate_metrics(self):
        snapshot = HistorySnapshot(
            account_id="angler-1",
            total_catches=12,
            distinct_species=6,
            photographed_catches=9,
            location_buckets=5,
            country_codes=frozenset({"GB", "FR", "US"}),
            moon_phases=frozenset({"New Moon", "Full Moon"}),
            consecutive_weeks=4,
        )
        assert rule("catch_10").metric(snapshot) == 12
        assert rule("species_5").metric(snapshot) == 6
        assert rule("photo_pro").metric(snapshot) == 9
        assert rule("explorer_5").metric(snapshot) == 5
        assert rule("countries_3").metric(snapshot) == 3
        assert rule("european_tour").metric(snapshot) == 2
        assert rule("lunar_cycle").metric(snapshot) == 2
        assert rule("streak_4").metric(snapshot) == 4

    def test_european_countries(self):
        snapshot = HistorySnapshot(account_id="a", country_codes=frozenset({"US", "CA", "AU"}))
        assert european_countries(snapshot) == 0
