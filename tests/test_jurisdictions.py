"""
Tests for jurisdiction lookup, rule-set versioning and seeding.
"""
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from landlordcomply.core.database import get_db_session
from landlordcomply.core.errors import NotFoundError
from landlordcomply.models.models import RuleSet
from landlordcomply.services.jurisdictions import resolve_jurisdiction, select_effective_rule_set
from landlordcomply.services.seed import JURISDICTIONS, seed_jurisdictions


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestEffectiveRuleSet:

    def test_latest_effective_wins(self):
        old = RuleSet(version="2024.1", effective_date=utc(2024, 1, 1))
        current = RuleSet(version="2025.1", effective_date=utc(2025, 1, 1))
        future = RuleSet(version="2026.1", effective_date=utc(2026, 1, 1))
        assert select_effective_rule_set([old, future, current], utc(2025, 6, 1)) is current

    def test_none_when_all_in_future(self):
        future = RuleSet(version="2030.1", effective_date=utc(2030, 1, 1))
        assert select_effective_rule_set([future], utc(2025, 6, 1)) is None

    def test_effective_on_the_day(self):
        rs = RuleSet(version="2025.1", effective_date=utc(2025, 1, 1))
        assert select_effective_rule_set([rs], utc(2025, 1, 1)) is rs


class TestSeed:

    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self):
        async with get_db_session() as db:
            assert await seed_jurisdictions(db) == len(JURISDICTIONS)
        async with get_db_session() as db:
            assert await seed_jurisdictions(db) == 0

    @pytest.mark.asyncio
    async def test_city_overrides_state(self, seeded):
        async with get_db_session() as db:
            jurisdiction, rule_set = await resolve_jurisdiction(db, "ca", "san francisco")
            assert jurisdiction.city == "San Francisco"
            assert rule_set.interest_required is True

    @pytest.mark.asyncio
    async def test_unknown_city_falls_back_to_state(self, seeded):
        async with get_db_session() as db:
            jurisdiction, rule_set = await resolve_jurisdiction(db, "CA", "Fresno")
            assert jurisdiction.city is None
            assert rule_set.return_deadline_days == 21

    @pytest.mark.asyncio
    async def test_uncovered_state(self, seeded):
        async with get_db_session() as db:
            with pytest.raises(NotFoundError):
                await resolve_jurisdiction(db, "TX", "Austin")

    @pytest.mark.asyncio
    async def test_no_rule_set_in_effect(self, seeded):
        async with get_db_session() as db:
            with pytest.raises(NotFoundError):
                await resolve_jurisdiction(db, "CA", None, now=utc(2020, 1, 1))


class TestJurisdictionApi:

    @pytest.mark.asyncio
    async def test_list(self, anonymous_client: AsyncClient, seeded):
        response = await anonymous_client.get("/api/jurisdictions")
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == len(JURISDICTIONS)
        assert all(j["rule_set"] is not None for j in data["jurisdictions"])

    @pytest.mark.asyncio
    async def test_list_by_state(self, anonymous_client: AsyncClient, seeded):
        response = await anonymous_client.get("/api/jurisdictions", params={"state": "WA"})
        codes = {j["state_code"] for j in response.json()["jurisdictions"]}
        assert codes == {"WA"}

    @pytest.mark.asyncio
    async def test_lookup(self, anonymous_client: AsyncClient, seeded):
        response = await anonymous_client.get(
            "/api/jurisdictions/lookup", params={"state": "NY", "city": "New York City"}
        )
        assert response.status_code == 200
        assert response.json()["jurisdiction"]["city"] == "New York City"

    @pytest.mark.asyncio
    async def test_lookup_not_covered(self, anonymous_client: AsyncClient, seeded):
        response = await anonymous_client.get("/api/jurisdictions/lookup", params={"state": "TX"})
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"
