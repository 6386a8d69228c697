"""Wiring of the database, search index and backup mirror.

create_wiki() builds everything a host process (CLI, web layer, worker)
needs from Settings and hooks the best-effort collaborators up to the page
events.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from wikitree.config import Settings, get_settings
from wikitree.db.base import Base
from wikitree.db.models import Page
from wikitree.db.services import search_service
from wikitree.db.services.search_service import SearchResult
from wikitree.db.services.types import SlugChange
from wikitree.db.session import create_engine, create_session_maker, session_scope
from wikitree.lib import observability
from wikitree.lib.backup import MarkdownBackup
from wikitree.lib.hooks import (
    HookRegistry,
    hooks,
    AFTER_PAGE_DELETE,
    AFTER_PAGE_SAVE,
    PAGE_SLUG_CHANGED,
)
from wikitree.lib.search_index import SearchIndex
from wikitree.lib.slugs import ancestor_segments

logger = logging.getLogger(__name__)

AuthorNameResolver = Callable[[UUID | None], str]


def default_author_name(author_id: UUID | None) -> str:
    return str(author_id) if author_id is not None else "unknown"


def register_collaborators(
    registry: HookRegistry = hooks,
    search_index: SearchIndex | None = None,
    backup: MarkdownBackup | None = None,
    author_name: AuthorNameResolver = default_author_name,
) -> list[tuple[str, Callable[..., Any]]]:
    """Attach the search index and backup mirror to the page hooks.

    Both run after the page transaction committed; their failures are logged
    by HookRegistry.notify and never affect the page write.

    Returns:
        The (hook name, callback) pairs registered, for later removal
    """
    registered: list[tuple[str, Callable[..., Any]]] = []

    def _register(hook_name: str, callback: Callable[..., Any]) -> None:
        registry.add_action(hook_name, callback)
        registered.append((hook_name, callback))

    if search_index is not None:

        def index_saved_page(page: Page, is_new: bool = False, previous_slug: str | None = None) -> None:
            search_index.reindex(page.id, page.slug, page.title, page.content, page.is_published)

        def index_moved_page(page: Page, change: SlugChange) -> None:
            search_index.reindex(page.id, page.slug, page.title, page.content, page.is_published)

        def unindex_deleted_page(page: Page) -> None:
            search_index.remove(page.id)

        _register(AFTER_PAGE_SAVE, index_saved_page)
        _register(PAGE_SLUG_CHANGED, index_moved_page)
        _register(AFTER_PAGE_DELETE, unindex_deleted_page)

    if backup is not None:

        async def mirror_saved_page(page: Page, is_new: bool = False, previous_slug: str | None = None) -> None:
            if previous_slug and previous_slug != page.slug:
                await backup.delete_page(previous_slug, ancestor_segments(previous_slug))
            await backup.save_page(page, author_name(page.author_id), ancestor_segments(page.slug))

        async def mirror_moved_page(page: Page, change: SlugChange) -> None:
            await backup.delete_page(change.old_slug, ancestor_segments(change.old_slug))
            await backup.save_page(page, author_name(page.author_id), ancestor_segments(change.new_slug))

        async def mirror_deleted_page(page: Page) -> None:
            await backup.delete_page(page.slug, ancestor_segments(page.slug))

        _register(AFTER_PAGE_SAVE, mirror_saved_page)
        _register(PAGE_SLUG_CHANGED, mirror_moved_page)
        _register(AFTER_PAGE_DELETE, mirror_deleted_page)

    return registered


@dataclass
class Wiki:
    """A configured wiki: engine, sessions and collaborators."""

    settings: Settings
    engine: AsyncEngine
    session_maker: async_sessionmaker[AsyncSession]
    search_index: SearchIndex | None = None
    backup: MarkdownBackup | None = None
    registry: HookRegistry = hooks
    _registered: list[tuple[str, Callable[..., Any]]] = field(default_factory=list)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with session_scope(self.session_maker) as db_session:
            yield db_session

    async def create_schema(self) -> None:
        """Create all tables directly (tests and throwaway databases)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def rebuild_search_index(self) -> int:
        """Load every page into the search index."""
        if self.search_index is None:
            return 0
        async with self.session() as db_session:
            result = await db_session.execute(select(Page))
            return self.search_index.rebuild(result.scalars().all())

    async def search(self, db_session: AsyncSession, query: str, limit: int | None = None) -> list[SearchResult]:
        """Search with the configured strategy and limits."""
        config = self.settings.search
        return await search_service.search_pages(
            db_session,
            query,
            limit=limit or config.default_limit,
            strategy=config.strategy,
            index=self.search_index,
            max_limit=config.max_limit,
        )

    async def dispose(self) -> None:
        """Unhook collaborators and close the engine."""
        for hook_name, callback in self._registered:
            self.registry.remove_action(hook_name, callback)
        self._registered.clear()
        await self.engine.dispose()


def create_wiki(
    settings: Settings | None = None,
    registry: HookRegistry = hooks,
    author_name: AuthorNameResolver = default_author_name,
    **engine_kwargs: Any,
) -> Wiki:
    """Build a Wiki from settings.

    Args:
        settings: Settings to use (defaults to get_settings())
        registry: Hook registry the collaborators attach to
        author_name: Maps author ids to display names for the backup mirror
        **engine_kwargs: Extra create_async_engine() arguments

    Returns:
        The configured Wiki
    """
    settings = settings or get_settings()
    observability.configure(settings)
    engine = create_engine(settings.db, **engine_kwargs)
    observability.instrument_sqlalchemy(engine)

    search_index = SearchIndex() if settings.search.strategy == "index" else None
    backup = MarkdownBackup(settings.backup.path) if settings.backup.enabled else None

    wiki = Wiki(
        settings=settings,
        engine=engine,
        session_maker=create_session_maker(engine),
        search_index=search_index,
        backup=backup,
        registry=registry,
    )
    wiki._registered = register_collaborators(registry, search_index, backup, author_name)

    logger.debug(
        "Wiki configured (search=%s, backup=%s, logfire=%s)",
        settings.search.strategy,
        settings.backup.path if backup else "disabled",
        observability.is_available(),
    )
    return wiki
