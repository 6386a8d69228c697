"""Hierarchy service: parent chains derived from slash-delimited slugs.

A page ``a/b/c`` has ``a/b`` as parent and ``a`` as grandparent. The slug
string and the ``parent_id`` pointers describe the same tree; they are kept
consistent by the page services and checked by :func:`verify_hierarchy`.
All walks are iterative and guard against cycles.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, UTC
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wikitree.db.models import Page
from wikitree.db.services.types import PageSummary
from wikitree.db.session import transaction
from wikitree.lib.exceptions import PageNotFoundError
from wikitree.lib.hooks import hooks, AFTER_PAGE_SAVE, BEFORE_PAGE_SAVE
from wikitree.lib.slugs import (
    ancestor_slugs,
    humanize_segment,
    leaf_segment,
    normalize_slug,
    parent_slug,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HierarchyIssue:
    """A page whose slug disagrees with its parent pointer."""

    page_id: UUID
    slug: str
    kind: str
    detail: str


async def find_page_by_slug(db_session: AsyncSession, slug: str) -> Page | None:
    """Case-insensitive exact slug lookup, always read from the database."""
    wanted = slug.strip().strip("/").lower()
    result = await db_session.execute(
        select(Page).where(Page.slug == wanted).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _create_placeholder(
    db_session: AsyncSession,
    author_id: UUID | None,
    slug: str,
    parent_id: UUID | None,
) -> tuple[Page, bool]:
    """Insert an empty published page for ``slug`` unless one appears first.

    The insert runs in a SAVEPOINT; if a concurrent writer created the same
    slug in the meantime the unique constraint fires and that page is reused.

    Returns:
        (page, created)
    """
    placeholder = Page(
        slug=slug,
        title=humanize_segment(leaf_segment(slug)),
        content="",
        rendered_content="",
        author_id=author_id,
        parent_id=parent_id,
        is_published=True,
        published_at=datetime.now(UTC),
        tags=[],
    )
    await hooks.do_action(BEFORE_PAGE_SAVE, placeholder, is_new=True)

    try:
        async with db_session.begin_nested():
            db_session.add(placeholder)
    except IntegrityError:
        existing = await find_page_by_slug(db_session, slug)
        if existing is None:
            raise
        logger.debug("Placeholder %s created concurrently, reusing it", slug)
        return existing, False

    logger.info("Created placeholder page %s", slug)
    return placeholder, True


async def ensure_ancestors(
    db_session: AsyncSession,
    author_id: UUID | None,
    slug: str,
    created: list[Page] | None = None,
) -> UUID | None:
    """Make sure every ancestor of ``slug`` exists and return the parent's id.

    Walks the prefixes of the slug from the root (``a``, then ``a/b`` for
    ``a/b/c``). Existing pages are reused; missing ones become published
    placeholder pages with empty content and a title built from the segment.
    Calling it again for the same slug never duplicates a placeholder.

    Runs in the caller's transaction and does not commit.

    Args:
        db_session: Database session
        author_id: Author recorded on new placeholders
        slug: Normalized slug of the page that needs a parent chain
        created: Optional list that receives every placeholder created

    Returns:
        ID of the immediate parent, or None for a root slug
    """
    parent_id = None
    for prefix in ancestor_slugs(slug):
        page = await find_page_by_slug(db_session, prefix)
        if page is None:
            page, was_created = await _create_placeholder(db_session, author_id, prefix, parent_id)
            if was_created and created is not None:
                created.append(page)
        parent_id = page.id
    return parent_id


async def notify_placeholders_created(placeholders: list[Page]) -> None:
    """Tell collaborators about placeholders once their transaction committed."""
    for placeholder in placeholders:
        await hooks.notify(AFTER_PAGE_SAVE, placeholder, is_new=True, previous_slug=None)


async def get_children(db_session: AsyncSession, page_id: UUID) -> list[Page]:
    """Direct children of a page, ordered by slug."""
    result = await db_session.execute(
        select(Page).where(Page.parent_id == page_id).order_by(Page.slug)
    )
    return list(result.scalars().all())


async def get_root_pages(db_session: AsyncSession, published_only: bool = False) -> list[Page]:
    """Pages without a parent, ordered by slug."""
    query = select(Page).where(Page.parent_id.is_(None)).order_by(Page.slug)
    if published_only:
        query = query.where(Page.is_published == True)
    result = await db_session.execute(query)
    return list(result.scalars().all())


async def get_descendants(db_session: AsyncSession, page_id: UUID) -> list[Page]:
    """Every page below ``page_id`` via parent links, level by level.

    Breadth-first over the parent pointers with a visited set, so a corrupt
    cycle cannot loop forever. The starting page is never included.

    Returns:
        Descendants ordered by depth (children, then grandchildren, ...)
    """
    descendants: list[Page] = []
    visited = {page_id}
    frontier = [page_id]

    while frontier:
        result = await db_session.execute(
            select(Page)
            .where(Page.parent_id.in_(frontier))
            .order_by(Page.slug)
            .execution_options(populate_existing=True)
        )
        frontier = []
        for child in result.scalars().all():
            if child.id in visited:
                continue
            visited.add(child.id)
            descendants.append(child)
            frontier.append(child.id)

    return descendants


async def collect_subtree(db_session: AsyncSession, page_id: UUID) -> list[UUID]:
    """IDs of a page and all its descendants, deepest first, the page last.

    This is the order delete_pages() expects.
    """
    descendants = await get_descendants(db_session, page_id)
    return [page.id for page in reversed(descendants)] + [page_id]


async def _ancestor_chain(db_session: AsyncSession, page: Page) -> list[Page]:
    """Page followed by its ancestors, nearest first."""
    chain = []
    seen = set()
    current: Page | None = page
    while current is not None and current.id not in seen:
        seen.add(current.id)
        chain.append(current)
        current = await db_session.get(Page, current.parent_id) if current.parent_id else None
    return chain


async def get_page_path(db_session: AsyncSession, page_id: UUID) -> list[PageSummary]:
    """Breadcrumbs: the ancestor chain from the root down to the page itself.

    Raises:
        PageNotFoundError: If the page does not exist
    """
    page = await db_session.get(Page, page_id)
    if page is None:
        raise PageNotFoundError(page_id)
    chain = await _ancestor_chain(db_session, page)
    return [PageSummary.from_page(p) for p in reversed(chain)]


async def is_descendant(db_session: AsyncSession, page_id: UUID, ancestor_id: UUID) -> bool:
    """True when ``ancestor_id`` is a strict ancestor of ``page_id``."""
    if page_id == ancestor_id:
        return False
    page = await db_session.get(Page, page_id)
    if page is None:
        return False
    chain = await _ancestor_chain(db_session, page)
    return any(ancestor.id == ancestor_id for ancestor in chain[1:])


async def verify_hierarchy(db_session: AsyncSession) -> list[HierarchyIssue]:
    """Check every page's slug against its live parent chain.

    A page is consistent when its parent's slug is exactly its own slug minus
    the last segment (and root slugs have no parent). Checking each link
    implies the whole chain matches.

    Returns:
        One issue per inconsistent page, ordered by slug
    """
    result = await db_session.execute(
        select(Page.id, Page.slug, Page.parent_id).order_by(Page.slug)
    )
    rows = result.all()
    slugs_by_id = {row.id: row.slug for row in rows}

    issues = []
    for row in rows:
        if normalize_slug(row.slug) != row.slug:
            issues.append(HierarchyIssue(row.id, row.slug, "invalid_slug", "slug is not normalized"))
            continue

        expected = parent_slug(row.slug)
        if expected is None:
            if row.parent_id is not None:
                issues.append(HierarchyIssue(
                    row.id, row.slug, "unexpected_parent",
                    f"root page points at parent {slugs_by_id.get(row.parent_id, row.parent_id)}",
                ))
            continue

        if row.parent_id is None:
            issues.append(HierarchyIssue(row.id, row.slug, "missing_parent", f"expected parent {expected}"))
        elif row.parent_id not in slugs_by_id:
            issues.append(HierarchyIssue(row.id, row.slug, "dangling_parent", f"parent {row.parent_id} does not exist"))
        elif slugs_by_id[row.parent_id] != expected:
            issues.append(HierarchyIssue(
                row.id, row.slug, "wrong_parent",
                f"parent is {slugs_by_id[row.parent_id]}, expected {expected}",
            ))

    return issues


async def repair_hierarchy(
    db_session: AsyncSession,
    author_id: UUID | None = None,
) -> list[HierarchyIssue]:
    """Re-derive parent pointers from slugs for every inconsistent page.

    Missing ancestors are created as placeholders. Pages with a slug that is
    not normalized are reported but left alone.

    Returns:
        The issues that were repaired
    """
    issues = [issue for issue in await verify_hierarchy(db_session) if issue.kind != "invalid_slug"]
    if not issues:
        return []

    created: list[Page] = []
    async with transaction(db_session):
        for issue in issues:
            page = await db_session.get(Page, issue.page_id)
            page.parent_id = await ensure_ancestors(db_session, author_id, issue.slug, created)
            logger.info("Repaired parent of %s (%s)", issue.slug, issue.kind)

    await notify_placeholders_created(created)
    return issues
