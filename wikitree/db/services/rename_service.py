"""Rename cascade: moving a page moves its whole subtree.

Renaming ``linux`` to ``commands/linux`` rewrites ``linux/ubuntu`` to
``commands/linux/ubuntu`` and so on for every descendant. Parent pointers
are not touched because they reference ids. Each rewritten slug is reported
as a :class:`SlugChange` so collaborators such as the backup mirror can
relocate their copies.

Known limitation: the descendant read and the slug writes are separate
statements, so two concurrent renames of overlapping subtrees have undefined
results. Renames are rare, operator-driven reorganizations.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from wikitree.db.models import Page
from wikitree.db.services import hierarchy_service
from wikitree.db.services.types import SlugChange
from wikitree.lib.exceptions import InvalidSlugError, SlugConflictError
from wikitree.lib.slugs import is_within

logger = logging.getLogger(__name__)


def rewrite_prefix(slug: str, old_prefix: str, new_prefix: str) -> str | None:
    """Swap ``old_prefix`` for ``new_prefix`` when ``slug`` lies below it."""
    if not is_within(slug, old_prefix):
        return None
    return new_prefix + slug[len(old_prefix):]


async def cascade_rename(
    db_session: AsyncSession,
    page: Page,
    new_slug: str,
    author_id: UUID | None = None,
    created: list[Page] | None = None,
) -> list[SlugChange]:
    """Give ``page`` a new slug and carry every descendant along.

    Checks the new slug is free (or already this page's), resolves or creates
    its ancestor chain, then rewrites each descendant whose slug starts with
    ``old_slug + "/"``. Descendants whose slug has drifted away from that
    prefix keep their slug.

    Runs in the caller's transaction; the storage-level unique constraint
    still rejects a collision that slips past the existence check.

    Args:
        db_session: Database session
        page: Page being renamed (its slug is still the old one)
        new_slug: Normalized target slug
        author_id: Author recorded on auto-created ancestors
        created: Optional list that receives auto-created ancestors

    Returns:
        The cascaded renames, excluding ``page`` itself. Callers must not
        rely on their order.

    Raises:
        InvalidSlugError: If the page would become its own descendant
        SlugConflictError: If another page already owns ``new_slug``
    """
    old_slug = page.slug
    if new_slug == old_slug:
        return []

    if is_within(new_slug, old_slug):
        raise InvalidSlugError(f"Cannot move '{old_slug}' beneath itself")

    existing = await hierarchy_service.find_page_by_slug(db_session, new_slug)
    if existing is not None and existing.id != page.id:
        raise SlugConflictError(new_slug)

    descendants = await hierarchy_service.get_descendants(db_session, page.id)

    page.parent_id = await hierarchy_service.ensure_ancestors(db_session, author_id, new_slug, created)
    page.slug = new_slug

    changes = []
    for descendant in descendants:
        renamed = rewrite_prefix(descendant.slug, old_slug, new_slug)
        if renamed is None:
            logger.warning(
                "Descendant %s of %s does not share its slug prefix, leaving it in place",
                descendant.slug,
                old_slug,
            )
            continue
        changes.append(SlugChange(page_id=descendant.id, old_slug=descendant.slug, new_slug=renamed))
        descendant.slug = renamed

    logger.info("Renamed %s to %s, cascading to %d descendants", old_slug, new_slug, len(changes))
    return changes
