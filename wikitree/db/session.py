"""Async engine, session factory and transaction boundaries.

Every public mutation in ``wikitree.db.services`` runs inside
:func:`transaction`: one commit at the end, a rollback on any exception
including ``asyncio.CancelledError``. Multi-row changes such as a rename
cascade are therefore never observable half-applied.

Mutations leave no transaction open after their commit. Reads do: the
session begins a transaction on its first query and keeps it until commit,
rollback or close. On SQLite that open read holds a shared lock which stops
other connections from committing, so sessions are request-scoped (see
:func:`session_scope`). A long-lived session that only reads must
``commit()`` between units of work.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from wikitree.config import DatabaseConfig
from wikitree.lib.exceptions import StorageError, WikiError

logger = logging.getLogger(__name__)


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """Turn on foreign keys and real BEGIN/SAVEPOINT handling for SQLite.

    The sqlite3 driver otherwise defers BEGIN and silently breaks
    SAVEPOINT semantics.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine(config: DatabaseConfig | str, **kwargs) -> AsyncEngine:
    """Create an async engine from a DatabaseConfig or a URL.

    Args:
        config: Database config section or a SQLAlchemy URL
        **kwargs: Extra create_async_engine() arguments (e.g. poolclass)

    Returns:
        The configured AsyncEngine
    """
    if isinstance(config, str):
        config = DatabaseConfig(url=config)

    url = make_url(config.url)
    options = {"echo": config.echo, **kwargs}
    is_sqlite = url.get_backend_name() == "sqlite"
    if not is_sqlite and "poolclass" not in kwargs:
        options.setdefault("pool_size", config.pool_size)
        options.setdefault("max_overflow", config.pool_overflow)
        options.setdefault("pool_timeout", config.pool_timeout)

    engine = create_async_engine(url, **options)
    if is_sqlite:
        _enable_sqlite_transactions(engine)
    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory; objects stay usable after commit."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def session_scope(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Provide a session that is always closed, even when the task is cancelled."""
    session = session_maker()
    try:
        yield session
    finally:
        # Also runs on CancelledError, so the connection returns to the pool
        await session.close()


@asynccontextmanager
async def transaction(
    db_session: AsyncSession,
    on_conflict: WikiError | None = None,
) -> AsyncIterator[AsyncSession]:
    """Run a block as a single atomic unit of work.

    Commits when the block finishes. On failure the whole unit is rolled back
    and the error is translated:

    - ``IntegrityError`` becomes ``on_conflict`` when given (a unique
      violation on slug is reported as SlugConflictError), otherwise
      StorageError.
    - Any other ``SQLAlchemyError`` becomes StorageError.
    - Everything else (including cancellation) is re-raised unchanged.

    Args:
        db_session: Session to commit or roll back
        on_conflict: Error to raise for an integrity violation

    Yields:
        The same session
    """
    try:
        yield db_session
        await db_session.commit()
    except IntegrityError as exc:
        await db_session.rollback()
        if on_conflict is not None:
            raise on_conflict from exc
        raise StorageError(f"Integrity violation: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        await db_session.rollback()
        logger.error("Database operation failed, rolled back", exc_info=True)
        raise StorageError(str(exc)) from exc
    except BaseException:
        await db_session.rollback()
        raise
