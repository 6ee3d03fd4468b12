"""
Tests for the session scope and SQLite foreign key enforcement.
"""
import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from landlordcomply.core.database import get_db_session, is_sqlite
from landlordcomply.models.models import Tenant, User


class TestSessionScope:

    @pytest.mark.asyncio
    async def test_commits_on_success(self):
        async with get_db_session() as db:
            db.add(User(id="committed01"))

        async with get_db_session() as db:
            assert await db.get(User, "committed01") is not None

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self):
        with pytest.raises(RuntimeError):
            async with get_db_session() as db:
                db.add(User(id="rolledback01"))
                await db.flush()
                raise RuntimeError("boom")

        async with get_db_session() as db:
            assert await db.get(User, "rolledback01") is None


class TestSqlite:

    def test_is_sqlite(self):
        assert is_sqlite("sqlite+aiosqlite:///./x.db")
        assert not is_sqlite("postgresql+asyncpg://u:p@localhost/db")

    @pytest.mark.asyncio
    async def test_foreign_keys_enabled(self):
        async with get_db_session() as db:
            result = await db.execute(text("PRAGMA foreign_keys"))
            assert result.scalar() == 1

    @pytest.mark.asyncio
    async def test_orphan_child_rejected(self):
        with pytest.raises(IntegrityError):
            async with get_db_session() as db:
                db.add(Tenant(case_id="no-such-case", name="Ghost"))
                await db.flush()
