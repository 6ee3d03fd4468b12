"""
Tests for the deductions API, proration preview and the AI endpoints.
"""
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from landlordcomply.main import app
from landlordcomply.services.ai_assist import GeminiAssistant, get_ai_assistant

CARPET = {
    "description": "Carpet replacement in bedroom due to pet urine stains",
    "category": "REPAIRS",
    "amount": 450,
    "item_age": 24,
}


@pytest.fixture
async def deduction(client: AsyncClient, ca_case: dict) -> dict:
    response = await client.post(f"/api/cases/{ca_case['id']}/deductions", json=CARPET)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def ai_assistant():
    """Configured assistant whose provider call is mocked out."""
    assistant = GeminiAssistant(api_key="test-key")
    assistant._generate_json = AsyncMock(return_value={
        "description": "Bedroom carpet (12x14 ft) saturated with pet urine; odor and staining throughout.",
        "reasoning": "Adds size, location and observable condition",
    })
    app.dependency_overrides[get_ai_assistant] = lambda: assistant
    yield assistant
    app.dependency_overrides.pop(get_ai_assistant, None)


class TestDeductionCrud:

    @pytest.mark.asyncio
    async def test_add(self, deduction: dict):
        assert deduction["amount"] == 450.0
        assert deduction["has_evidence"] is False
        assert deduction["risk_level"] == "MEDIUM"
        assert deduction["proration"] == {
            "item_age": 24,
            "useful_life_months": 60,
            "factor": 0.6,
            "prorated_amount": 270.0,
        }

    @pytest.mark.asyncio
    async def test_explicit_risk_level_kept(self, client: AsyncClient, ca_case: dict):
        response = await client.post(
            f"/api/cases/{ca_case['id']}/deductions",
            json={"description": "Unpaid rent for final month of tenancy", "category": "UNPAID_RENT",
                  "amount": 1500, "risk_level": "LOW"},
        )
        data = response.json()
        assert data["risk_level"] == "LOW"
        assert data["proration"] is None

    @pytest.mark.asyncio
    async def test_attachments_mark_evidence(self, client: AsyncClient, ca_case: dict, deduction: dict):
        response = await client.patch(
            f"/api/cases/{ca_case['id']}/deductions/{deduction['id']}",
            json={"attachment_ids": ["att-1", "att-2"], "amount": 400},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["has_evidence"] is True
        assert data["attachment_ids"] == ["att-1", "att-2"]
        assert data["amount"] == 400.0

    @pytest.mark.asyncio
    async def test_list_totals_and_refund(self, client: AsyncClient, ca_case: dict, deduction: dict):
        await client.post(
            f"/api/cases/{ca_case['id']}/deductions",
            json={"description": "Professional cleaning of kitchen", "category": "CLEANING", "amount": 125.5},
        )
        response = await client.get(f"/api/cases/{ca_case['id']}/deductions")
        data = response.json()
        assert len(data["deductions"]) == 2
        assert data["total"] == 575.5

        case = (await client.get(f"/api/cases/{ca_case['id']}")).json()
        assert case["total_deductions"] == 575.5
        assert case["refund_amount"] == 1424.5

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient, ca_case: dict, deduction: dict):
        response = await client.delete(f"/api/cases/{ca_case['id']}/deductions/{deduction['id']}")
        assert response.status_code == 200
        response = await client.get(f"/api/cases/{ca_case['id']}/deductions")
        assert response.json() == {"deductions": [], "total": 0.0}

        case = (await client.get(f"/api/cases/{ca_case['id']}")).json()
        assert [e["action"] for e in case["audit_events"][:2]] == ["deduction_deleted", "deduction_added"]

    @pytest.mark.asyncio
    async def test_negative_amount_rejected(self, client: AsyncClient, ca_case: dict):
        response = await client.post(
            f"/api/cases/{ca_case['id']}/deductions", json={"description": "Refund", "amount": -10}
        )
        assert response.status_code == 422


class TestProration:

    @pytest.mark.asyncio
    async def test_preview(self, client: AsyncClient):
        response = await client.post(
            "/api/deductions/proration", json={"amount": 600, "item_age": 24, "useful_life_months": 60}
        )
        assert response.status_code == 200
        assert response.json()["prorated_amount"] == 360.0

    @pytest.mark.asyncio
    async def test_zero_life_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/deductions/proration", json={"amount": 600, "item_age": 24, "useful_life_months": 0}
        )
        assert response.status_code == 422


class TestAiEndpoints:

    @pytest.mark.asyncio
    async def test_improve_unavailable_without_key(self, client: AsyncClient, deduction: dict):
        response = await client.post(f"/api/deductions/{deduction['id']}/improve", json={})
        assert response.status_code == 503
        assert response.json()["error"] == "service_unavailable"

    @pytest.mark.asyncio
    async def test_improve_keeps_original(self, client: AsyncClient, deduction: dict, ai_assistant):
        response = await client.post(
            f"/api/deductions/{deduction['id']}/improve", json={"where_located": "Back bedroom"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["improved_description"].startswith("Bedroom carpet")
        assert data["deduction"]["ai_generated"] is True
        assert data["deduction"]["original_description"] == CARPET["description"]

        response = await client.post(f"/api/deductions/{deduction['id']}/improve")
        assert response.json()["deduction"]["original_description"] == CARPET["description"]

    @pytest.mark.asyncio
    async def test_risk_rule_based(self, client: AsyncClient, deduction: dict):
        response = await client.get(f"/api/deductions/{deduction['id']}/risk")
        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "rules"
        assert data["risk_level"] == "MEDIUM"

    @pytest.mark.asyncio
    async def test_other_landlord_cannot_assess(self, other_client: AsyncClient, deduction: dict):
        response = await other_client.get(f"/api/deductions/{deduction['id']}/risk")
        assert response.status_code == 404
