"""Tag service: tag lookup/creation and per-page tag replacement."""

from dataclasses import dataclass
from collections.abc import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wikitree.db.models import Page, Tag, page_tags
from wikitree.db.session import transaction

MAX_TAG_LENGTH = 100


@dataclass(frozen=True)
class TagCount:
    name: str
    page_count: int


def normalize_tag_names(names: Iterable[str] | None) -> list[str]:
    """Trim, lower-case and de-duplicate tag names, keeping first-seen order."""
    result: list[str] = []
    for name in names or []:
        cleaned = " ".join(name.split()).lower()[:MAX_TAG_LENGTH]
        if cleaned and cleaned not in result:
            result.append(cleaned)
    return result


async def get_or_create_tags(db_session: AsyncSession, names: Iterable[str] | None) -> list[Tag]:
    """Resolve tag names to Tag rows, creating missing ones.

    Runs in the caller's transaction. Each new tag is inserted in a
    SAVEPOINT so a tag created concurrently by another writer is reused
    instead of failing the whole unit of work.

    Args:
        db_session: Database session
        names: Raw tag names

    Returns:
        Tags in the order the names were given
    """
    wanted = normalize_tag_names(names)
    if not wanted:
        return []

    result = await db_session.execute(select(Tag).where(Tag.name.in_(wanted)))
    by_name = {tag.name: tag for tag in result.scalars().all()}

    for name in wanted:
        if name in by_name:
            continue
        tag = Tag(name=name)
        try:
            async with db_session.begin_nested():
                db_session.add(tag)
        except IntegrityError:
            result = await db_session.execute(select(Tag).where(Tag.name == name))
            tag = result.scalar_one()
        by_name[name] = tag

    return [by_name[name] for name in wanted]


async def set_page_tags(
    db_session: AsyncSession,
    page: Page,
    names: Iterable[str] | None,
) -> Page:
    """Replace a page's tags as a single atomic change.

    Args:
        db_session: Database session
        page: Page to retag
        names: New tag names (blank names are skipped)

    Returns:
        The updated page
    """
    async with transaction(db_session):
        page.tags = await get_or_create_tags(db_session, names)
        await db_session.flush()
        await prune_unused_tags(db_session)
    return page


async def prune_unused_tags(db_session: AsyncSession) -> int:
    """Delete tags no page uses any more. Runs in the caller's transaction."""
    in_use = select(page_tags.c.tag_id)
    result = await db_session.execute(
        delete(Tag).where(Tag.id.not_in(in_use)).execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def list_tags(db_session: AsyncSession) -> list[TagCount]:
    """All tags with the number of pages carrying each, alphabetically."""
    result = await db_session.execute(
        select(Tag.name, func.count(page_tags.c.page_id))
        .join(page_tags, page_tags.c.tag_id == Tag.id)
        .group_by(Tag.name)
        .order_by(Tag.name)
    )
    return [TagCount(name=name, page_count=count) for name, count in result.all()]
