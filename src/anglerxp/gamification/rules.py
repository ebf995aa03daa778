"""Challenge rule table.

Every challenge the evaluator knows about is a row here. Adding a threshold
or a category means adding data, not a code path. Targets and rewards in this
table seed the default catalog; at evaluation time the active definition's
target wins.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from anglerxp.gamification.history import HistorySnapshot
from anglerxp.gamification.schemas import CatchEvent, ChallengeScope
from anglerxp.gamification.streak_service import STREAK_CHALLENGE_MAP, to_local
from anglerxp.gamification.xp_calculator import lb_to_kg

CatchPredicate = Callable[[CatchEvent, HistorySnapshot], bool]
SnapshotMetric = Callable[[HistorySnapshot], int]

EUROPEAN_TOUR_COUNTRIES = frozenset({
    "AT", "BE", "CH", "CZ", "DE", "DK", "ES", "FI", "FR", "GB",
    "GR", "HR", "IE", "IS", "IT", "NL", "NO", "PL", "PT", "SE",
})

WIND_WARRIOR_MPH = 15.0


class RuleKind(str, Enum):
    AGGREGATE = "aggregate"  # complete as soon as a history metric crosses target
    ONCE = "once"  # 1-of-1, completed by a single qualifying catch
    INCREMENT = "increment"  # +1 per qualifying catch, capped at target


class RuleEvent(str, Enum):
    CATCH = "catch"
    SESSION = "session"


@dataclass(frozen=True)
class ChallengeRule:
    category: str
    kind: RuleKind
    slug: str
    target: int
    xp_reward: int
    title: str
    description: str = ""
    predicate: CatchPredicate | None = None
    metric: SnapshotMetric | None = None
    event: RuleEvent = RuleEvent.CATCH
    scope: ChallengeScope = ChallengeScope.GLOBAL

    @property
    def is_template(self) -> bool:
        return "{" in self.slug

    def resolve_slug(self, catch: CatchEvent | None) -> str | None:
        """Concrete slug for this catch, or None when the template can't apply."""
        if not self.is_template:
            return self.slug
        if catch is None:
            return None
        if "{species}" in self.slug:
            return self.slug.replace("{species}", species_slug(catch.species))
        if "{country}" in self.slug:
            if not catch.country_code:
                return None
            return self.slug.replace("{country}", catch.country_code.lower())
        return None

    def matches(self, catch: CatchEvent | None, snapshot: HistorySnapshot) -> bool:
        if self.predicate is None:
            return True
        return catch is not None and self.predicate(catch, snapshot)


def species_slug(species: str) -> str:
    return re.sub(r"\s+", "_", species.strip().lower())


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def local_hour(catch: CatchEvent, snapshot: HistorySnapshot) -> int:
    return to_local(catch.caught_at, snapshot.tz).hour


def hour_window(start: int, end: int) -> CatchPredicate:
    """Local hour in [start, end); wraps past midnight when start > end."""

    def _predicate(catch: CatchEvent, snapshot: HistorySnapshot) -> bool:
        hour = local_hour(catch, snapshot)
        if start <= end:
            return start <= hour < end
        return hour >= start or hour < end

    return _predicate


def weather_matches(*keywords: str) -> CatchPredicate:
    def _predicate(catch: CatchEvent, _snapshot: HistorySnapshot) -> bool:
        condition = (catch.weather_condition or "").lower()
        return any(keyword in condition for keyword in keywords)

    return _predicate


def weight_at_least(kg: float) -> CatchPredicate:
    def _predicate(catch: CatchEvent, _snapshot: HistorySnapshot) -> bool:
        return catch.weight_kg is not None and catch.weight_kg >= kg

    return _predicate


def moon_phase_is(phase: str) -> CatchPredicate:
    def _predicate(catch: CatchEvent, _snapshot: HistorySnapshot) -> bool:
        return catch.moon_phase == phase

    return _predicate


def is_specimen(catch: CatchEvent, snapshot: HistorySnapshot) -> bool:
    if catch.weight_kg is None or not snapshot.specimen_weight_lb:
        return False
    return catch.weight_kg >= lb_to_kg(snapshot.specimen_weight_lb)


def is_windy(catch: CatchEvent, _snapshot: HistorySnapshot) -> bool:
    return catch.wind_speed is not None and catch.wind_speed >= WIND_WARRIOR_MPH


def european_countries(snapshot: HistorySnapshot) -> int:
    return len(snapshot.country_codes & EUROPEAN_TOUR_COUNTRIES)


# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------


def _milestones() -> list[ChallengeRule]:
    rules = []
    for threshold, slug, title, reward in [
        (1, "first_catch", "First Catch", 25),
        (10, "catch_10", "Getting Hooked", 50),
        (50, "catch_50", "Seasoned Angler", 100),
        (100, "catch_100", "Centurion", 200),
        (500, "catch_500", "Legend of the Lake", 500),
    ]:
        rules.append(ChallengeRule(
            category="milestones", kind=RuleKind.AGGREGATE, slug=slug, target=threshold,
            xp_reward=reward, title=title, description=f"Log {threshold} catches",
            metric=lambda s: s.total_catches,
        ))
    for threshold, reward in [(5, 50), (10, 100), (25, 250)]:
        rules.append(ChallengeRule(
            category="milestones", kind=RuleKind.AGGREGATE, slug=f"species_{threshold}",
            target=threshold, xp_reward=reward, title=f"{threshold} Species",
            description=f"Catch {threshold} different species",
            metric=lambda s: s.distinct_species,
        ))
    return rules


def _country_rules() -> list[ChallengeRule]:
    rules = []
    for threshold, reward in [(1, 25), (10, 50), (50, 100)]:
        rules.append(ChallengeRule(
            category="country", kind=RuleKind.AGGREGATE, slug=f"{{country}}_catch_{threshold}",
            target=threshold, xp_reward=reward, title=f"{threshold} Catches",
            scope=ChallengeScope.COUNTRY, metric=lambda s: s.country_catches,
        ))
    for threshold, reward in [(5, 50), (10, 100)]:
        rules.append(ChallengeRule(
            category="country", kind=RuleKind.AGGREGATE, slug=f"{{country}}_species_{threshold}",
            target=threshold, xp_reward=reward, title=f"{threshold} Species",
            scope=ChallengeScope.COUNTRY, metric=lambda s: s.country_species,
        ))
    for threshold, reward in [(3, 100), (5, 200), (10, 500)]:
        rules.append(ChallengeRule(
            category="country", kind=RuleKind.AGGREGATE, slug=f"countries_{threshold}",
            target=threshold, xp_reward=reward, title=f"{threshold} Countries",
            description=f"Fish in {threshold} different countries",
            metric=lambda s: len(s.country_codes),
        ))
    rules.append(ChallengeRule(
        category="country", kind=RuleKind.AGGREGATE, slug="european_tour", target=3,
        xp_reward=150, title="European Tour", description="Fish in 3 European countries",
        metric=european_countries,
    ))
    return rules


CHALLENGE_RULES: list[ChallengeRule] = [
    *_milestones(),
    # Species
    ChallengeRule(
        category="species", kind=RuleKind.ONCE, slug="catch_{species}", target=1,
        xp_reward=25, title="Species Catch",
    ),
    # Photo volume
    ChallengeRule(
        category="photo", kind=RuleKind.AGGREGATE, slug="photo_pro", target=10, xp_reward=50,
        title="Photo Pro", description="Log 10 catches with a photo",
        metric=lambda s: s.photographed_catches,
    ),
    ChallengeRule(
        category="photo", kind=RuleKind.AGGREGATE, slug="photo_50", target=50, xp_reward=150,
        title="Shutterbug", description="Log 50 catches with a photo",
        metric=lambda s: s.photographed_catches,
    ),
    # Time of day
    ChallengeRule(
        category="time", kind=RuleKind.INCREMENT, slug="dawn_patrol", target=5, xp_reward=50,
        title="Dawn Patrol", description="Catch fish between 4am and 6am",
        predicate=hour_window(4, 6),
    ),
    ChallengeRule(
        category="time", kind=RuleKind.INCREMENT, slug="early_bird", target=5, xp_reward=50,
        title="Early Bird", description="Catch fish between 5am and 7am",
        predicate=hour_window(5, 7),
    ),
    ChallengeRule(
        category="time", kind=RuleKind.INCREMENT, slug="night_owl", target=5, xp_reward=50,
        title="Night Owl", description="Catch fish after 10pm or before 5am",
        predicate=hour_window(22, 5),
    ),
    ChallengeRule(
        category="time", kind=RuleKind.INCREMENT, slug="golden_hour", target=5, xp_reward=50,
        title="Golden Hour", description="Catch fish between 6pm and 8pm",
        predicate=hour_window(18, 20),
    ),
    # Weight
    ChallengeRule(
        category="weight", kind=RuleKind.ONCE, slug="big_fish_5kg", target=1, xp_reward=50,
        title="Big Fish", description="Catch a fish of 5kg or more",
        predicate=weight_at_least(5.0),
    ),
    ChallengeRule(
        category="weight", kind=RuleKind.ONCE, slug="big_fish_10kg", target=1, xp_reward=100,
        title="Monster Catch", description="Catch a fish of 10kg or more",
        predicate=weight_at_least(10.0),
    ),
    ChallengeRule(
        category="weight", kind=RuleKind.INCREMENT, slug="specimen_hunter", target=5,
        xp_reward=150, title="Specimen Hunter",
        description="Catch 5 fish above their species' specimen weight",
        predicate=is_specimen,
    ),
    # Location diversity
    *[
        ChallengeRule(
            category="exploration", kind=RuleKind.AGGREGATE, slug=f"explorer_{threshold}",
            target=threshold, xp_reward=reward, title=f"Explorer {threshold}",
            description=f"Catch photographed fish at {threshold} different spots",
            metric=lambda s: s.location_buckets,
        )
        for threshold, reward in [(5, 50), (10, 100), (25, 250)]
    ],
    # Streaks
    *[
        ChallengeRule(
            category="streak", kind=RuleKind.AGGREGATE, slug=slug, target=weeks,
            xp_reward=weeks * 20, title=f"{weeks}-Week Streak",
            description=f"Fish {weeks} weeks in a row",
            metric=lambda s: s.consecutive_weeks,
        )
        for weeks, slug in STREAK_CHALLENGE_MAP.items()
    ],
    # Weather
    ChallengeRule(
        category="weather", kind=RuleKind.ONCE, slug="rain_fisher", target=1, xp_reward=25,
        title="Rain or Shine", predicate=weather_matches("rain", "drizzle", "shower"),
    ),
    ChallengeRule(
        category="weather", kind=RuleKind.ONCE, slug="storm_chaser", target=1, xp_reward=50,
        title="Storm Chaser", predicate=weather_matches("thunder", "storm"),
    ),
    ChallengeRule(
        category="weather", kind=RuleKind.ONCE, slug="fog_fisher", target=1, xp_reward=25,
        title="Into the Mist", predicate=weather_matches("fog", "mist"),
    ),
    ChallengeRule(
        category="weather", kind=RuleKind.INCREMENT, slug="fair_weather", target=10,
        xp_reward=50, title="Fair Weather Angler", predicate=weather_matches("clear", "sunny"),
    ),
    ChallengeRule(
        category="weather", kind=RuleKind.INCREMENT, slug="wind_warrior", target=5,
        xp_reward=50, title="Wind Warrior", description="Catch fish in 15mph+ wind",
        predicate=is_windy,
    ),
    # Moon
    ChallengeRule(
        category="moon", kind=RuleKind.ONCE, slug="full_moon", target=1, xp_reward=25,
        title="Full Moon Fisher", predicate=moon_phase_is("Full Moon"),
    ),
    ChallengeRule(
        category="moon", kind=RuleKind.ONCE, slug="new_moon", target=1, xp_reward=25,
        title="New Moon Fisher", predicate=moon_phase_is("New Moon"),
    ),
    ChallengeRule(
        category="moon", kind=RuleKind.AGGREGATE, slug="lunar_cycle", target=4, xp_reward=75,
        title="Lunar Cycle", description="Catch fish under 4 different moon phases",
        metric=lambda s: len(s.moon_phases),
    ),
    *_country_rules(),
    # Sessions
    ChallengeRule(
        category="sessions", kind=RuleKind.AGGREGATE, slug="first_session", target=1,
        xp_reward=25, title="First Session", event=RuleEvent.SESSION,
        metric=lambda s: s.completed_sessions,
    ),
    ChallengeRule(
        category="sessions", kind=RuleKind.AGGREGATE, slug="session_10", target=10,
        xp_reward=100, title="Regular", event=RuleEvent.SESSION,
        metric=lambda s: s.completed_sessions,
    ),
]


def rules_for(event: RuleEvent) -> list[ChallengeRule]:
    return [rule for rule in CHALLENGE_RULES if rule.event is event]
