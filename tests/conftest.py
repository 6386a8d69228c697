"""Shared pytest fixtures."""

from uuid import uuid4

import pytest
import yaml
from sqlalchemy.pool import StaticPool

import wikitree.db.models  # noqa: F401 - register all models on Base
from wikitree.config import clear_settings_cache
from wikitree.db.base import Base
from wikitree.db.session import create_engine, create_session_maker
from wikitree.lib.hooks import hooks


@pytest.fixture
async def engine():
    """In-memory SQLite database with the full schema and foreign keys on."""
    engine = create_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def author_id():
    return uuid4()


@pytest.fixture(autouse=True)
def clean_hooks():
    """Save and restore hooks state around a test."""
    original_filters = {name: list(handlers) for name, handlers in hooks._filters.items()}
    original_actions = {name: list(handlers) for name, handlers in hooks._actions.items()}
    yield
    hooks.clear()
    hooks._filters.update(original_filters)
    hooks._actions.update(original_actions)


@pytest.fixture
def temp_app_yaml(tmp_path, monkeypatch):
    """Write an app.yaml and point WIKITREE_CONFIG at it."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        monkeypatch.setenv("WIKITREE_CONFIG", str(config_path))
        clear_settings_cache()
        return config_path

    yield _create_config
    clear_settings_cache()
