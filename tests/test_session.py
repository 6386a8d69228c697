"""Tests for engine setup and transaction boundaries."""

import pytest
from sqlalchemy import text

from wikitree.db.models import Tag
from wikitree.db.session import session_scope, transaction
from wikitree.lib.exceptions import SlugConflictError, StorageError


class TestTransaction:
    """Tests for the transaction() unit of work."""

    async def test_commits_on_success(self, db_session, session_maker):
        async with transaction(db_session):
            db_session.add(Tag(name="kept"))

        async with session_scope(session_maker) as other:
            assert (await other.execute(text("SELECT count(*) FROM tags"))).scalar() == 1

    async def test_integrity_error_becomes_conflict(self, db_session):
        db_session.add(Tag(name="dup"))
        await db_session.commit()

        with pytest.raises(SlugConflictError):
            async with transaction(db_session, on_conflict=SlugConflictError("dup")):
                db_session.add(Tag(name="dup"))

    async def test_integrity_error_without_conflict_is_storage_error(self, db_session):
        db_session.add(Tag(name="dup"))
        await db_session.commit()

        with pytest.raises(StorageError):
            async with transaction(db_session):
                db_session.add(Tag(name="dup"))

    async def test_other_errors_roll_back(self, db_session):
        with pytest.raises(RuntimeError):
            async with transaction(db_session):
                db_session.add(Tag(name="gone"))
                await db_session.flush()
                raise RuntimeError("boom")

        assert (await db_session.execute(text("SELECT count(*) FROM tags"))).scalar() == 0


class TestSqliteEngine:
    async def test_foreign_keys_enforced(self, db_session):
        assert (await db_session.execute(text("PRAGMA foreign_keys"))).scalar() == 1
