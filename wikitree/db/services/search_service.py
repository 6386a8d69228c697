"""Search service: the page search query contract.

Two strategies are available:

``substring``
    Case-insensitive substring match on title or content of published
    pages, most recently updated first.

``index``
    Word-prefix ranking through an in-process SearchIndex.

Both return at most ``limit`` results (clamped to ``[1, max_limit]``) and
an empty list for a blank query.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from wikitree.db.models import Page
from wikitree.lib.exceptions import InvalidInputError
from wikitree.lib.search_index import SearchIndex

SearchStrategy = Literal["substring", "index"]

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
SNIPPET_LENGTH = 150


@dataclass(frozen=True)
class SearchResult:
    page_id: UUID
    slug: str
    title: str
    snippet: str
    updated_at: datetime | None
    score: int = 0


def clamp_limit(limit: int | None, default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT) -> int:
    if limit is None or limit <= 0:
        return min(default_limit, max_limit)
    return min(limit, max_limit)


def make_snippet(content: str) -> str:
    if len(content) <= SNIPPET_LENGTH:
        return content
    return content[:SNIPPET_LENGTH] + "..."


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_result(page: Page, score: int = 0) -> SearchResult:
    return SearchResult(
        page_id=page.id,
        slug=page.slug,
        title=page.title,
        snippet=make_snippet(page.content),
        updated_at=page.updated_at,
        score=score,
    )


async def _substring_search(db_session: AsyncSession, query: str, limit: int) -> list[SearchResult]:
    pattern = f"%{_escape_like(query)}%"
    result = await db_session.execute(
        select(Page)
        .where(
            Page.is_published == True,
            or_(Page.title.ilike(pattern, escape="\\"), Page.content.ilike(pattern, escape="\\")),
        )
        .order_by(Page.updated_at.desc(), Page.slug)
        .limit(limit)
    )
    return [_to_result(page) for page in result.scalars().all()]


async def _index_search(
    db_session: AsyncSession,
    query: str,
    limit: int,
    index: SearchIndex,
) -> list[SearchResult]:
    hits = index.search(query, limit=limit)
    if not hits:
        return []

    result = await db_session.execute(
        select(Page).where(Page.id.in_([hit.page_id for hit in hits]), Page.is_published == True)
    )
    pages = {page.id: page for page in result.scalars().all()}
    # Index entries for deleted or unpublished pages are skipped
    return [_to_result(pages[hit.page_id], hit.score) for hit in hits if hit.page_id in pages]


async def search_pages(
    db_session: AsyncSession,
    query: str | None,
    limit: int | None = None,
    strategy: SearchStrategy = "substring",
    index: SearchIndex | None = None,
    max_limit: int = MAX_LIMIT,
) -> list[SearchResult]:
    """Search published pages.

    Args:
        db_session: Database session
        query: User query
        limit: Maximum results (defaults to 20, capped at ``max_limit``)
        strategy: "substring" or "index"
        index: SearchIndex to use for the "index" strategy
        max_limit: Upper bound for ``limit``

    Returns:
        Matching pages with a 150-character snippet

    Raises:
        InvalidInputError: For an unknown strategy, or "index" without an index
    """
    query = (query or "").strip()
    if not query:
        return []

    limit = clamp_limit(limit, max_limit=max_limit)

    if strategy == "substring":
        return await _substring_search(db_session, query, limit)
    if strategy == "index":
        if index is None:
            raise InvalidInputError("The index search strategy needs a search index", field="strategy")
        return await _index_search(db_session, query, limit, index)
    raise InvalidInputError(f"Unknown search strategy: {strategy}", field="strategy")
