"""
LandlordComply - Shared Test Fixtures
Provides reusable fixtures for the database, seeded rules and API clients.
"""

import os
import tempfile
from datetime import date, timedelta
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport

# Configure test environment BEFORE importing app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_landlordcomply.db"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="landlordcomply-test-")
os.environ["SEED_JURISDICTIONS_ON_STARTUP"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["GOOGLE_AI_API_KEY"] = ""

from landlordcomply.main import app
from landlordcomply.core.security import USER_HEADER, get_rate_limiter

TEST_USER_ID = "testuser01"
OTHER_USER_ID = "otheruser02"


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture(scope="function", autouse=True)
async def setup_test_database():
    """Create database tables before each test and clean up after."""
    from landlordcomply.core.database import close_db, create_tables, drop_tables

    await create_tables()

    yield

    await drop_tables()
    await close_db()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    get_rate_limiter().reset()
    yield
    get_rate_limiter().reset()


@pytest.fixture
async def seeded():
    """Load the bundled jurisdiction catalogue."""
    from landlordcomply.core.database import get_db_session
    from landlordcomply.services.seed import seed_jurisdictions

    async with get_db_session() as db:
        count = await seed_jurisdictions(db)
    return count


@pytest.fixture
async def anonymous_client() -> AsyncGenerator[AsyncClient, None]:
    """Client without a landlord identity."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Client signed in as the test landlord."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={USER_HEADER: TEST_USER_ID},
    ) as ac:
        yield ac


@pytest.fixture
async def other_client() -> AsyncGenerator[AsyncClient, None]:
    """A second landlord, for ownership checks."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={USER_HEADER: OTHER_USER_ID},
    ) as ac:
        yield ac


# =============================================================================
# Case Fixtures
# =============================================================================

@pytest.fixture
async def ca_property(client: AsyncClient, seeded) -> dict:
    response = await client.post(
        "/api/properties",
        json={
            "address": "742 Evergreen Terrace",
            "unit": "2B",
            "city": "Sacramento",
            "state": "CA",
            "zip_code": "95814",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
async def ca_case(client: AsyncClient, ca_property: dict) -> dict:
    """An ACTIVE case under California state rules, move-out five days ago."""
    move_out = date.today() - timedelta(days=5)
    response = await client.post(
        "/api/cases",
        json={
            "property_id": ca_property["id"],
            "lease_start_date": str(move_out - timedelta(days=365)),
            "lease_end_date": str(move_out),
            "move_out_date": str(move_out),
            "deposit_amount": 2000,
            "tenants": [{"name": "Jane Tenant", "email": "jane@example.com"}],
        },
    )
    assert response.status_code == 201, response.text
    return response.json()
