"""Default challenge catalog and species reference data."""

from __future__ import annotations

import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from anglerxp.db.models import ChallengeDefinition, SpeciesCatalogEntry
from anglerxp.gamification.rules import CHALLENGE_RULES, ChallengeRule, species_slug

logger = logging.getLogger(__name__)

# Species with a seeded catch_<species> challenge, and their specimen weight (lb).
SPECIES_SEED_DATA: dict[str, float] = {
    "Largemouth Bass": 8.0,
    "Smallmouth Bass": 5.0,
    "Northern Pike": 20.0,
    "Common Carp": 20.0,
    "Rainbow Trout": 8.0,
    "Brown Trout": 8.0,
    "Atlantic Salmon": 20.0,
    "Walleye": 10.0,
    "Perch": 2.0,
    "Bream": 8.0,
    "Tench": 8.0,
    "Roach": 2.0,
    "Catfish": 30.0,
    "Zander": 12.0,
    "Barbel": 12.0,
    "Chub": 6.0,
}

COUNTRY_SEED_DATA: dict[str, str] = {
    "US": "United States",
    "CA": "Canada",
    "GB": "United Kingdom",
    "IE": "Ireland",
    "FR": "France",
    "ES": "Spain",
    "DE": "Germany",
    "NL": "Netherlands",
    "SE": "Sweden",
    "NO": "Norway",
    "AU": "Australia",
    "NZ": "New Zealand",
}


def _definition(rule: ChallengeRule, slug: str, title: str, sort_order: int, **extra) -> dict:
    return {
        "slug": slug,
        "title": title,
        "description": rule.description,
        "category": rule.category,
        "target": rule.target,
        "xp_reward": rule.xp_reward,
        "scope": rule.scope.value,
        "scope_value": None,
        "is_active": True,
        "sort_order": sort_order,
        **extra,
    }


def build_challenge_seed_data(
    species: list[str] | None = None,
    countries: dict[str, str] | None = None,
) -> list[dict]:
    """Expand the rule table into concrete challenge definitions."""
    species = list(SPECIES_SEED_DATA) if species is None else species
    countries = COUNTRY_SEED_DATA if countries is None else countries

    rows: list[dict] = []
    for rule in CHALLENGE_RULES:
        if not rule.is_template:
            rows.append(_definition(rule, rule.slug, rule.title, len(rows) + 1))
        elif "{species}" in rule.slug:
            for name in species:
                slug = rule.slug.replace("{species}", species_slug(name))
                rows.append(_definition(
                    rule, slug, f"Catch a {name}", len(rows) + 1,
                    description=f"Log your first {name}",
                ))
        elif "{country}" in rule.slug:
            for code, country in countries.items():
                slug = rule.slug.replace("{country}", code.lower())
                rows.append(_definition(
                    rule, slug, f"{country}: {rule.title}", len(rows) + 1,
                    scope_value=code,
                ))
    return rows


CHALLENGE_SEED_DATA: list[dict] = build_challenge_seed_data()


def _insert(db: AsyncSession, model: type):
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


async def seed_challenges(db: AsyncSession, rows: list[dict] | None = None) -> int:
    """Upsert challenge definitions. Returns number of definitions seeded."""
    seeded = 0
    for data in CHALLENGE_SEED_DATA if rows is None else rows:
        stmt = _insert(db, ChallengeDefinition).values(**data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={
                "title": stmt.excluded.title,
                "description": stmt.excluded.description,
                "category": stmt.excluded.category,
                "target": stmt.excluded.target,
                "xp_reward": stmt.excluded.xp_reward,
                "scope": stmt.excluded.scope,
                "scope_value": stmt.excluded.scope_value,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)
        seeded += 1

    for name, specimen_lb in SPECIES_SEED_DATA.items():
        stmt = _insert(db, SpeciesCatalogEntry).values(species=name, specimen_weight_lb=specimen_lb)
        stmt = stmt.on_conflict_do_update(
            index_elements=["species"],
            set_={"specimen_weight_lb": stmt.excluded.specimen_weight_lb},
        )
        await db.execute(stmt)

    await db.commit()
    logger.info("Seeded %d challenge definitions", seeded)
    return seeded
