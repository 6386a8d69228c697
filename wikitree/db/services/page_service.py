"""Page service: CRUD for hierarchical pages.

Creating ``a/b/c`` creates missing ``a`` and ``a/b`` placeholders first.
Changing a slug moves the page's whole subtree (see rename_service). Every
content change first snapshots the old content as a revision. Multi-row
writes run in one transaction; collaborators hear about committed changes
through the ``after_*`` hooks.
"""

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, UTC
from pathlib import Path
from typing import Literal
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wikitree.db.models import Page, ShareLink, Tag
from wikitree.db.services import hierarchy_service, rename_service, revision_service, tag_service
from wikitree.db.services.types import ImportResult, PageSummary, SlugChange, UpdateResult
from wikitree.db.session import transaction
from wikitree.lib.exceptions import (
    ContentUnavailableError,
    InvalidInputError,
    InvalidSlugError,
    InvalidTitleError,
    PageNotFoundError,
    SlugConflictError,
)
from wikitree.lib.frontmatter import is_markdown_filename, parse_markdown_document
from wikitree.lib.hooks import (
    hooks,
    AFTER_PAGE_DELETE,
    AFTER_PAGE_SAVE,
    BEFORE_PAGE_DELETE,
    BEFORE_PAGE_SAVE,
    PAGE_CONTENT,
    PAGE_SLUG_CHANGED,
)
from wikitree.lib.markdown import extract_wiki_links, render_markdown
from wikitree.lib.slugs import normalize_slug

logger = logging.getLogger(__name__)

OrderBy = Literal["updated", "created", "title", "slug"]

IMPORT_COMMENT = "Imported content"
MAX_IMPORT_SUFFIX = 99


@dataclass(frozen=True)
class WikiStats:
    page_count: int
    published_count: int
    tag_count: int
    share_link_count: int


async def render_page_content(content: str, page: Page | None = None) -> str:
    """Render page markdown to sanitized HTML.

    The ``page_content`` filter may rewrite the markdown first.

    Raises:
        ContentUnavailableError: If the renderer fails
    """
    source = await hooks.apply_filters(PAGE_CONTENT, content, page)
    try:
        return render_markdown(source)
    except Exception as exc:
        raise ContentUnavailableError(f"Could not render page content: {exc}") from exc


async def get_page_by_slug(
    db_session: AsyncSession,
    slug: str,
    published_only: bool = False,
) -> Page | None:
    """Get a single page by slug (case-insensitive).

    Args:
        db_session: Database session
        slug: Page slug
        published_only: Only return if published

    Returns:
        Page object or None if not found
    """
    page = await hierarchy_service.find_page_by_slug(db_session, slug)
    if page is not None and published_only and not page.is_published:
        return None
    return page


async def get_page_by_id(
    db_session: AsyncSession,
    page_id: UUID,
    for_update: bool = False,
) -> Page | None:
    """Get a single page by ID, or None if not found.

    The row is re-read even when the page is already in the session, so an
    edit committed through another session is not hidden by a cached copy.

    Args:
        db_session: Database session
        page_id: Page UUID
        for_update: Lock the row until the transaction ends (where supported)

    Returns:
        Page object or None if not found
    """
    query = select(Page).where(Page.id == page_id).execution_options(populate_existing=True)
    if for_update:
        query = query.with_for_update()
    result = await db_session.execute(query)
    return result.scalar_one_or_none()


async def page_exists(db_session: AsyncSession, slug: str) -> bool:
    """Check whether a page owns ``slug``."""
    return await hierarchy_service.find_page_by_slug(db_session, slug) is not None


async def list_pages(
    db_session: AsyncSession,
    published_only: bool = False,
    author_id: UUID | None = None,
    tag: str | None = None,
    order_by: OrderBy = "updated",
    descending: bool = True,
    limit: int | None = None,
    offset: int = 0,
) -> list[PageSummary]:
    """List pages with optional filtering.

    Args:
        db_session: Database session
        published_only: Only return published pages
        author_id: Filter by author
        tag: Filter by tag name
        order_by: "updated" (default), "created", "title" or "slug"
        descending: Reverse the sort order
        limit: Maximum number of results
        offset: Number of results to skip

    Returns:
        Page summaries with plain-text excerpts
    """
    query = select(Page)

    filters = []
    if published_only:
        filters.append(Page.is_published == True)
    if author_id:
        filters.append(Page.author_id == author_id)
    if tag:
        names = tag_service.normalize_tag_names([tag])
        query = query.where(Page.tags.any(Tag.name.in_(names)))

    if filters:
        query = query.where(and_(*filters))

    column = {
        "updated": Page.updated_at,
        "created": Page.created_at,
        "title": Page.title,
        "slug": Page.slug,
    }[order_by]
    query = query.order_by(column.desc() if descending else column.asc(), Page.slug.asc())

    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)

    result = await db_session.execute(query)
    return [PageSummary.from_page(page) for page in result.scalars().all()]


async def count_pages(db_session: AsyncSession, published_only: bool = False) -> int:
    query = select(func.count(Page.id))
    if published_only:
        query = query.where(Page.is_published == True)
    result = await db_session.execute(query)
    return result.scalar() or 0


async def get_recent_pages(db_session: AsyncSession, limit: int = 10) -> list[PageSummary]:
    """Most recently updated published pages."""
    return await list_pages(db_session, published_only=True, order_by="updated", limit=limit)


async def get_pages_by_tag(
    db_session: AsyncSession,
    tag: str,
    limit: int | None = None,
    offset: int = 0,
) -> list[PageSummary]:
    """Published pages carrying ``tag``."""
    return await list_pages(db_session, published_only=True, tag=tag, limit=limit, offset=offset)


async def get_backlinks(db_session: AsyncSession, slug: str) -> list[PageSummary]:
    """Published pages whose content holds a ``[[...]]`` link to ``slug``."""
    target = normalize_slug(slug)
    result = await db_session.execute(
        select(Page)
        .where(Page.is_published == True, Page.content.contains("[["), Page.slug != target)
        .order_by(Page.slug)
    )
    return [
        PageSummary.from_page(page)
        for page in result.scalars().all()
        if target in extract_wiki_links(page.content)
    ]


async def get_stats(db_session: AsyncSession) -> WikiStats:
    """Counts of pages, published pages, tags in use and share links."""
    page_count = await count_pages(db_session)
    published_count = await count_pages(db_session, published_only=True)
    tag_count = len(await tag_service.list_tags(db_session))
    result = await db_session.execute(select(func.count(ShareLink.id)))
    return WikiStats(
        page_count=page_count,
        published_count=published_count,
        tag_count=tag_count,
        share_link_count=result.scalar() or 0,
    )


async def create_page(
    db_session: AsyncSession,
    author_id: UUID | None,
    slug: str = "",
    title: str = "",
    content: str = "",
    tags: Iterable[str] | None = None,
    is_published: bool = True,
) -> Page:
    """Create a new page, creating missing ancestors along the way.

    Args:
        db_session: Database session
        author_id: Author of the page
        slug: Desired slug; when empty it is derived from the title
        title: Page title
        content: Raw markdown
        tags: Tag names
        is_published: Whether the page is published

    Returns:
        Created Page object

    Raises:
        InvalidSlugError: If the slug normalizes to an empty string
        InvalidTitleError: If the title is blank
        SlugConflictError: If a page with that slug already exists
    """
    raw_slug = (slug or "").strip()
    normalized = normalize_slug(raw_slug if raw_slug else title)
    if not normalized:
        raise InvalidSlugError()

    title = (title or "").strip()
    if not title:
        raise InvalidTitleError()

    if await page_exists(db_session, normalized):
        raise SlugConflictError(normalized)

    content = content or ""
    created: list[Page] = []

    async with transaction(db_session, on_conflict=SlugConflictError(normalized)):
        parent_id = await hierarchy_service.ensure_ancestors(db_session, author_id, normalized, created)
        page = Page(
            slug=normalized,
            title=title,
            content=content,
            author_id=author_id,
            parent_id=parent_id,
            is_published=is_published,
            published_at=datetime.now(UTC) if is_published else None,
            tags=await tag_service.get_or_create_tags(db_session, tags),
        )
        page.rendered_content = await render_page_content(content, page)

        await hooks.do_action(BEFORE_PAGE_SAVE, page, is_new=True)

        db_session.add(page)
        await db_session.flush()
        await revision_service.create_revision(
            db_session, page, author_id, revision_service.INITIAL_REVISION_COMMENT
        )
        await db_session.refresh(page)

    await hierarchy_service.notify_placeholders_created(created)
    await hooks.notify(AFTER_PAGE_SAVE, page, is_new=True, previous_slug=None)

    return page


async def update_page(
    db_session: AsyncSession,
    page_id: UUID,
    author_id: UUID | None = None,
    slug: str | None = None,
    title: str | None = None,
    content: str | None = None,
    is_published: bool | None = None,
    tags: Iterable[str] | None = None,
    comment: str = "",
) -> UpdateResult:
    """Update any subset of a page's fields.

    When the content changes, the old content is saved as a revision before
    the new content is written. When the slug changes, every descendant is
    renamed too (see rename_service.cascade_rename). All of it commits or
    rolls back together.

    Args:
        db_session: Database session
        page_id: Page UUID to update
        author_id: ID of user making the change
        slug: New slug (optional)
        title: New title (optional)
        content: New content (optional)
        is_published: New published status (optional)
        tags: Replacement tag names (optional, an empty list clears them)
        comment: Edit summary stored on the revision

    Returns:
        The page plus the primary and cascaded slug changes

    Raises:
        PageNotFoundError: If the page does not exist
        InvalidTitleError: If the new title is blank
        InvalidSlugError: If the new slug is empty or inside the page's own subtree
        SlugConflictError: If the new slug belongs to another page
    """
    page = await get_page_by_id(db_session, page_id, for_update=True)
    if page is None:
        raise PageNotFoundError(page_id)

    if title is not None:
        title = title.strip()
        if not title:
            raise InvalidTitleError()

    new_slug = None
    if slug is not None:
        new_slug = normalize_slug(slug)
        if not new_slug:
            raise InvalidSlugError()

    previous_slug = page.slug
    result = UpdateResult(page=page)
    created: list[Page] = []

    async with transaction(db_session, on_conflict=SlugConflictError(new_slug or previous_slug)):
        content_changed = content is not None and content != page.content
        if content_changed:
            await revision_service.create_revision(db_session, page, author_id, comment)

        await hooks.do_action(BEFORE_PAGE_SAVE, page, is_new=False)

        if new_slug is not None and new_slug != page.slug:
            result.cascaded_changes = await rename_service.cascade_rename(
                db_session, page, new_slug, author_id, created
            )
            result.slug_change = SlugChange(page_id=page.id, old_slug=previous_slug, new_slug=new_slug)

        if title is not None:
            page.title = title
        if content_changed:
            page.content = content
            page.rendered_content = await render_page_content(content, page)
        if is_published is not None:
            page.is_published = is_published
            if is_published and page.published_at is None:
                page.published_at = datetime.now(UTC)
        if tags is not None:
            page.tags = await tag_service.get_or_create_tags(db_session, tags)
            await db_session.flush()
            await tag_service.prune_unused_tags(db_session)

        await db_session.flush()
        await db_session.refresh(page)

    await hierarchy_service.notify_placeholders_created(created)
    await hooks.notify(AFTER_PAGE_SAVE, page, is_new=False, previous_slug=previous_slug)
    for change in result.cascaded_changes:
        moved = await db_session.get(Page, change.page_id)
        await hooks.notify(PAGE_SLUG_CHANGED, moved, change)

    return result


async def delete_pages(
    db_session: AsyncSession,
    page_ids: Sequence[UUID],
) -> int:
    """Delete several pages as one atomic unit.

    Pages are deleted in the order given. Children are not removed with their
    parent: pass descendants before ancestors, e.g. the output of
    hierarchy_service.collect_subtree(). Revisions, tag links and share links
    of each page go with it.

    Args:
        db_session: Database session
        page_ids: Page UUIDs, children before parents

    Returns:
        Number of pages deleted

    Raises:
        PageNotFoundError: If any id does not exist (nothing is deleted)
    """
    deleted: list[Page] = []

    async with transaction(db_session):
        for page_id in dict.fromkeys(page_ids):
            page = await db_session.get(Page, page_id)
            if page is None:
                raise PageNotFoundError(page_id)

            await hooks.do_action(BEFORE_PAGE_DELETE, page)

            await db_session.delete(page)
            # Flush per page so rows are removed in the caller's order
            await db_session.flush()
            deleted.append(page)

        await tag_service.prune_unused_tags(db_session)

    for page in deleted:
        await hooks.notify(AFTER_PAGE_DELETE, page)

    return len(deleted)


async def delete_page(
    db_session: AsyncSession,
    page_id: UUID,
) -> bool:
    """Delete a single page.

    Returns:
        True if deleted, False if not found
    """
    page = await get_page_by_id(db_session, page_id)
    if not page:
        return False
    await delete_pages(db_session, [page.id])
    return True


async def delete_page_tree(
    db_session: AsyncSession,
    page_id: UUID,
) -> list[UUID]:
    """Delete a page together with all of its descendants.

    Returns:
        IDs deleted, children first

    Raises:
        PageNotFoundError: If the page does not exist
    """
    if await get_page_by_id(db_session, page_id) is None:
        raise PageNotFoundError(page_id)
    page_ids = await hierarchy_service.collect_subtree(db_session, page_id)
    await delete_pages(db_session, page_ids)
    return page_ids


async def import_markdown_file(
    db_session: AsyncSession,
    author_id: UUID | None,
    path: Path | str,
    slug: str,
    title: str,
    tags: Iterable[str] | None = None,
) -> Page | None:
    """Create a page from a markdown file unless the slug is already taken.

    Returns:
        The new page, or None when the page exists or the file is missing
    """
    if await page_exists(db_session, normalize_slug(slug)):
        return None

    path = Path(path)
    try:
        content = await asyncio.to_thread(path.read_text, encoding="utf-8")
    except FileNotFoundError:
        logger.info("Skipping import, %s does not exist", path)
        return None

    try:
        page = await create_page(db_session, author_id, slug=slug, title=title, content=content, tags=tags)
    except SlugConflictError:
        return None

    logger.info("Imported %s as /wiki/%s", path, page.slug)
    return page


async def _free_import_slug(db_session: AsyncSession, slug: str) -> str:
    """First of ``slug-2`` ... ``slug-99`` not owned by a page, else ``slug``."""
    for number in range(2, MAX_IMPORT_SUFFIX + 1):
        candidate = f"{slug}-{number}"
        if not await page_exists(db_session, candidate):
            return candidate
    return slug


async def import_markdown(
    db_session: AsyncSession,
    author_id: UUID | None,
    text: str,
    filename: str,
) -> ImportResult:
    """Import an uploaded markdown document as a page.

    Title, slug and tags are read from the YAML front matter (see
    parse_markdown_document). When the slug belongs to an empty placeholder
    page, that page is filled through a normal update. When a page with
    content owns it, the first free ``-2`` ... ``-99`` suffix is used.

    Args:
        db_session: Database session
        author_id: Author of the imported page
        text: Raw file content
        filename: Original file name (``.md`` or ``.markdown``)

    Returns:
        The written page and how it was placed

    Raises:
        InvalidInputError: If the file name or the front matter is invalid
        InvalidSlugError: If no slug can be derived
        SlugConflictError: If every suffixed slug is taken too
    """
    if not is_markdown_filename(filename):
        raise InvalidInputError(f"{filename} is not a markdown file", field="filename")

    document = parse_markdown_document(text, filename)
    if not document.slug:
        raise InvalidSlugError()

    existing = await hierarchy_service.find_page_by_slug(db_session, document.slug)
    if existing is not None and not existing.content.strip():
        result = await update_page(
            db_session,
            existing.id,
            author_id,
            title=document.title,
            content=document.body,
            tags=document.tags or None,
            comment=IMPORT_COMMENT,
        )
        logger.info("Imported %s into placeholder /wiki/%s", filename, existing.slug)
        return ImportResult(page=result.page, requested_slug=document.slug, filled_placeholder=True)

    slug = document.slug
    if existing is not None:
        slug = await _free_import_slug(db_session, slug)

    page = await create_page(
        db_session,
        author_id,
        slug=slug,
        title=document.title,
        content=document.body,
        tags=document.tags,
    )
    logger.info("Imported %s as /wiki/%s", filename, page.slug)
    return ImportResult(page=page, requested_slug=document.slug)
