"""
Tests for the dashboard, health check and app wiring.
"""
import logging

import pytest
from httpx import AsyncClient


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, anonymous_client: AsyncClient):
        response = await anonymous_client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["app"] == "LandlordComply"
        assert data["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, anonymous_client: AsyncClient):
        response = await anonymous_client.get("/health", headers={"X-Request-Id": "req-123"})
        assert response.headers["X-Request-Id"] == "req-123"

    @pytest.mark.asyncio
    async def test_request_timed_and_logged(self, anonymous_client: AsyncClient, caplog):
        with caplog.at_level(logging.INFO, logger="landlordcomply.requests"):
            response = await anonymous_client.get("/health", headers={"X-Request-Id": "req-456"})
        assert response.headers["X-Response-Time"].endswith("ms")
        messages = [r.getMessage() for r in caplog.records if r.name == "landlordcomply.requests"]
        assert any(m.startswith("GET /health -> 200 (") and "req-456" in m for m in messages)


class TestDashboard:

    @pytest.mark.asyncio
    async def test_empty(self, client: AsyncClient, seeded):
        response = await client.get("/api/dashboard")
        assert response.status_code == 200
        data = response.json()
        assert data["stats"]["active_cases"] == 0
        assert data["stats"]["jurisdictions_covered"] == seeded
        assert data["deadline_radar"] == []

    @pytest.mark.asyncio
    async def test_counts_and_radar(self, client: AsyncClient, ca_case: dict):
        overdue = await client.post(
            "/api/cases",
            json={
                "property_id": ca_case["property"]["id"],
                "lease_start_date": "2023-01-01",
                "lease_end_date": "2024-01-01",
                "move_out_date": "2024-01-01",
                "deposit_amount": 900,
            },
        )
        assert overdue.status_code == 201

        data = (await client.get("/api/dashboard")).json()
        assert data["stats"]["active_cases"] == 2
        assert data["stats"]["total_properties"] == 1
        assert data["stats"]["overdue_count"] == 1
        assert data["stats"]["upcoming_deadlines"] == 1

        radar = data["deadline_radar"]
        assert [r["id"] for r in radar] == [overdue.json()["id"], ca_case["id"]]
        assert radar[0]["urgency"] == "overdue"
        assert radar[1]["address"] == "742 Evergreen Terrace, Unit 2B, Sacramento, CA 95814"

    @pytest.mark.asyncio
    async def test_closed_cases_leave_radar(self, client: AsyncClient, ca_case: dict):
        response = await client.patch(f"/api/cases/{ca_case['id']}/status", json={"status": "CLOSED"})
        assert response.status_code == 200

        data = (await client.get("/api/dashboard")).json()
        assert data["stats"]["active_cases"] == 0
        assert data["deadline_radar"] == []

    @pytest.mark.asyncio
    async def test_scoped_to_landlord(self, other_client: AsyncClient, ca_case: dict):
        data = (await other_client.get("/api/dashboard")).json()
        assert data["stats"]["active_cases"] == 0
        assert data["stats"]["total_properties"] == 0
