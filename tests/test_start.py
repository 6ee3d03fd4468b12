"""
Tests for the pre-signup start flow: preview, access-link email and claim.
"""
from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from landlordcomply.core.database import get_db_session
from landlordcomply.core.utc import utc_now
from landlordcomply.main import app
from landlordcomply.models.models import DraftCase
from landlordcomply.services.mailer import ResendMailer, SendResult, get_mailer

MOVE_OUT = date.today() - timedelta(days=3)


@pytest.fixture
def mailer():
    """Mailer whose delivery is mocked; calls are inspectable."""
    mock_mailer = ResendMailer(api_key="test-key")
    mock_mailer.send = AsyncMock(return_value=SendResult(delivered=True, message_id="msg_1"))
    app.dependency_overrides[get_mailer] = lambda: mock_mailer
    yield mock_mailer
    app.dependency_overrides.pop(get_mailer, None)


async def create_draft(client: AsyncClient, **overrides) -> dict:
    payload = {
        "address_raw": "500 Pine St",
        "city": "Seattle",
        "state": "WA",
        "move_out_date": str(MOVE_OUT),
        "deposit_amount": 1500,
        "utm_source": "google",
    }
    payload.update(overrides)
    response = await client.post("/api/start/preview", json=payload)
    assert response.status_code == 200, response.text
    return response.json()


# ============================================================================
# PREVIEW
# ============================================================================

class TestPreview:

    @pytest.mark.asyncio
    async def test_preview(self, anonymous_client: AsyncClient, seeded):
        data = await create_draft(anonymous_client)
        preview = data["preview"]
        assert data["draft_id"]
        assert preview["deadline"]["deadline_days"] == 21
        assert preview["deadline"]["date"].startswith(str(MOVE_OUT + timedelta(days=21)))
        assert preview["jurisdiction"]["city"] == "Seattle"
        assert preview["rules"]["allowed_delivery_methods"] == ["mail", "hand_delivery"]
        assert preview["rule_set_version"] == "2025.1"
        labels = [step["label"] for step in preview["checklist"]]
        assert "Prepare itemized statement" in labels
        assert "Calculate deposit interest" not in labels

    @pytest.mark.asyncio
    async def test_preview_with_interest(self, anonymous_client: AsyncClient, seeded):
        data = await create_draft(anonymous_client, city="San Francisco", state="CA")
        steps = {s["label"]: s for s in data["preview"]["checklist"]}
        assert steps["Calculate deposit interest"]["description"] == "Interest at 5% annually is required"
        assert steps["Gather receipts/invoices"]["description"] == "Receipts required for repairs over $125"

    @pytest.mark.asyncio
    async def test_preview_uncovered(self, anonymous_client: AsyncClient, seeded):
        response = await anonymous_client.post(
            "/api/start/preview",
            json={"address_raw": "1 Main", "state": "TX", "move_out_date": str(MOVE_OUT)},
        )
        assert response.status_code == 404


# ============================================================================
# ACCESS LINK EMAIL
# ============================================================================

class TestAccessEmail:

    @pytest.mark.asyncio
    async def test_sends_link(self, anonymous_client: AsyncClient, seeded, mailer):
        draft = await create_draft(anonymous_client)
        response = await anonymous_client.post(
            "/api/start/email", json={"draft_id": draft["draft_id"], "email": "Owner@Example.com"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["email"] == "Ow***@Example.com"

        mailer.send.assert_awaited_once()
        to, subject, html, text = mailer.send.await_args.args
        assert to == "owner@example.com"
        assert f"/start/complete?draftId={draft['draft_id']}" in text

        async with get_db_session() as db:
            stored = await db.get(DraftCase, draft["draft_id"])
            assert stored.status == "EMAIL_SENT"
            assert stored.email == "owner@example.com"

    @pytest.mark.asyncio
    async def test_invalid_email(self, anonymous_client: AsyncClient, seeded, mailer):
        draft = await create_draft(anonymous_client)
        response = await anonymous_client.post(
            "/api/start/email", json={"draft_id": draft["draft_id"], "email": "not-an-email"}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"
        mailer.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_draft(self, anonymous_client: AsyncClient, seeded, mailer):
        response = await anonymous_client.post(
            "/api/start/email", json={"draft_id": "missing", "email": "owner@example.com"}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_resend_limit_per_draft(self, anonymous_client: AsyncClient, seeded, mailer):
        draft = await create_draft(anonymous_client)
        body = {"draft_id": draft["draft_id"], "email": "owner@example.com"}
        for _ in range(2):
            assert (await anonymous_client.post("/api/start/email", json=body)).status_code == 200

        response = await anonymous_client.post("/api/start/email", json=body)
        assert response.status_code == 429
        assert response.json()["message"] == "Maximum resends reached for this session."
        assert int(response.headers["Retry-After"]) > 0

    @pytest.mark.asyncio
    async def test_limit_per_email(self, anonymous_client: AsyncClient, seeded, mailer):
        drafts = [await create_draft(anonymous_client) for _ in range(4)]
        for draft in drafts[:3]:
            response = await anonymous_client.post(
                "/api/start/email", json={"draft_id": draft["draft_id"], "email": "owner@example.com"}
            )
            assert response.status_code == 200

        response = await anonymous_client.post(
            "/api/start/email", json={"draft_id": drafts[3]["draft_id"], "email": "OWNER@example.com"}
        )
        assert response.status_code == 429
        assert response.json()["error"] == "rate_limit_exceeded"
        assert response.json()["message"] == "Too many requests. Please try again later."

    @pytest.mark.asyncio
    async def test_unconfigured_mailer_still_succeeds(self, anonymous_client: AsyncClient, seeded):
        draft = await create_draft(anonymous_client)
        response = await anonymous_client.post(
            "/api/start/email", json={"draft_id": draft["draft_id"], "email": "owner@example.com"}
        )
        assert response.status_code == 200


# ============================================================================
# CLAIM
# ============================================================================

class TestComplete:

    @pytest.mark.asyncio
    async def test_requires_identity(self, anonymous_client: AsyncClient, seeded):
        draft = await create_draft(anonymous_client)
        response = await anonymous_client.post("/api/start/complete", json={"draft_id": draft["draft_id"]})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_claim_creates_case(self, client: AsyncClient, seeded):
        draft = await create_draft(client)
        response = await client.post("/api/start/complete", json={"draft_id": draft["draft_id"]})
        assert response.status_code == 200
        case_id = response.json()["case_id"]

        case = (await client.get(f"/api/cases/{case_id}")).json()
        assert case["status"] == "ACTIVE"
        assert case["deposit_amount"] == 1500.0
        assert case["deposit_interest"] == 0.0
        assert case["property"]["address"] == "500 Pine St"
        assert case["property"]["jurisdiction"]["city"] == "Seattle"
        assert case["lease_start_date"].startswith(f"{MOVE_OUT.year - 1}-{MOVE_OUT.month:02d}-01")
        assert case["due_date"] == draft["preview"]["deadline"]["date"]
        assert case["audit_events"][0]["action"] == "beta_case_created_from_draft"
        assert case["audit_events"][0]["metadata"]["utm_source"] == "google"

    @pytest.mark.asyncio
    async def test_claim_is_idempotent(self, client: AsyncClient, seeded, mailer):
        draft = await create_draft(client)
        first = (await client.post("/api/start/complete", json={"draft_id": draft["draft_id"]})).json()
        second = (await client.post("/api/start/complete", json={"draft_id": draft["draft_id"]})).json()
        assert second == {"success": True, "case_id": first["case_id"], "already_claimed": True}

        response = await client.post(
            "/api/start/email", json={"draft_id": draft["draft_id"], "email": "owner@example.com"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_claim_charges_interest(self, client: AsyncClient, seeded):
        draft = await create_draft(client, city="San Francisco", state="CA")
        case_id = (await client.post("/api/start/complete", json={"draft_id": draft["draft_id"]})).json()["case_id"]
        case = (await client.get(f"/api/cases/{case_id}")).json()
        assert case["deposit_interest"] == 75.0

    @pytest.mark.asyncio
    async def test_expired_draft(self, client: AsyncClient, seeded):
        draft = await create_draft(client)
        async with get_db_session() as db:
            stored = await db.get(DraftCase, draft["draft_id"])
            stored.expires_at = utc_now() - timedelta(minutes=1)

        response = await client.post("/api/start/complete", json={"draft_id": draft["draft_id"]})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"
