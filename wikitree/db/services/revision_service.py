"""Revision service: append-only page content history."""

from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wikitree.db.models import Page, PageRevision
from wikitree.db.session import transaction
from wikitree.lib.exceptions import PageNotFoundError, RevisionConflictError, RevisionNotFoundError

INITIAL_REVISION_COMMENT = "Initial version"


def revert_comment(revision_number: int) -> str:
    return f"Reverted to revision {revision_number}"


async def _next_revision_number(db_session: AsyncSession, page_id: UUID) -> int:
    result = await db_session.execute(
        select(func.coalesce(func.max(PageRevision.revision_number), 0))
        .where(PageRevision.page_id == page_id)
    )
    return (result.scalar() or 0) + 1


async def create_revision(
    db_session: AsyncSession,
    page: Page,
    author_id: UUID | None = None,
    comment: str = "",
    content: str | None = None,
) -> PageRevision:
    """Snapshot a page's content as a new revision.

    Runs in the caller's transaction and does not commit; page writes call it
    before changing the content so the snapshot holds the pre-edit text.

    Args:
        db_session: Database session
        page: The page to snapshot
        author_id: ID of user making the change (optional)
        comment: Edit summary
        content: Content to store instead of ``page.content``

    Returns:
        The created PageRevision object

    Raises:
        RevisionConflictError: If a concurrent edit stored the same revision
            number first
    """
    next_revision = await _next_revision_number(db_session, page.id)

    revision = PageRevision(
        page_id=page.id,
        author_id=author_id,
        revision_number=next_revision,
        content=page.content if content is None else content,
        comment=(comment or "")[:500],
    )
    try:
        async with db_session.begin_nested():
            db_session.add(revision)
    except IntegrityError as exc:
        raise RevisionConflictError(page.id, next_revision) from exc
    return revision


async def record_revision(
    db_session: AsyncSession,
    page_id: UUID,
    content: str,
    author_id: UUID | None = None,
    comment: str = "",
) -> PageRevision:
    """Append a revision for an existing page and commit it.

    Raises:
        PageNotFoundError: If the page does not exist
    """
    page = await db_session.get(Page, page_id)
    if page is None:
        raise PageNotFoundError(page_id)

    async with transaction(db_session):
        revision = await create_revision(db_session, page, author_id, comment, content=content)
    return revision


async def list_revisions(
    db_session: AsyncSession,
    page_id: UUID,
    limit: int | None = None,
    offset: int = 0,
) -> list[PageRevision]:
    """List revisions for a page, newest first.

    Args:
        db_session: Database session
        page_id: The page ID to get revisions for
        limit: Maximum number of revisions to return (None for all)
        offset: Number of revisions to skip

    Returns:
        List of PageRevision objects ordered by revision_number descending
    """
    query = (
        select(PageRevision)
        .where(PageRevision.page_id == page_id)
        .order_by(PageRevision.revision_number.desc())
    )

    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)

    result = await db_session.execute(query)
    return list(result.scalars().all())


async def get_revision(
    db_session: AsyncSession,
    revision_id: UUID,
) -> PageRevision | None:
    """Get a specific revision by ID, or None if not found."""
    result = await db_session.execute(
        select(PageRevision).where(PageRevision.id == revision_id)
    )
    return result.scalar_one_or_none()


async def revert_to_revision(
    db_session: AsyncSession,
    revision_id: UUID,
    author_id: UUID | None = None,
) -> Page:
    """Restore a page's content from an older revision.

    This is a normal page update with the revision's content, so the content
    being abandoned is itself saved as a new revision and the revert can be
    reverted in turn.

    Args:
        db_session: Database session
        revision_id: The revision to restore
        author_id: ID of user performing the revert

    Returns:
        The updated Page object

    Raises:
        RevisionNotFoundError: If the revision does not exist
    """
    from wikitree.db.services import page_service

    revision = await get_revision(db_session, revision_id)
    if revision is None:
        raise RevisionNotFoundError(revision_id)

    result = await page_service.update_page(
        db_session,
        revision.page_id,
        author_id,
        content=revision.content,
        comment=revert_comment(revision.revision_number),
    )
    return result.page


async def get_revision_count(
    db_session: AsyncSession,
    page_id: UUID,
) -> int:
    """Get the total number of revisions for a page."""
    result = await db_session.execute(
        select(func.count(PageRevision.id))
        .where(PageRevision.page_id == page_id)
    )
    return result.scalar() or 0
