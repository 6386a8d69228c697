"""Share link service: capability tokens granting anonymous page access.

A share link exposes one page, optionally with its subtree. The raw token is
returned once when the link is issued; only its SHA-256 hash is stored.
Every access re-checks the link's limits in this order:

1. revoked
2. expired
3. view cap reached
4. unique-IP cap reached (IPs that already used the link stay admitted)
5. requested page outside the link's scope

A denied access is a :class:`DenialReason` on the result, not an exception.
An unknown token raises ShareLinkNotFoundError.
"""

import hashlib
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from wikitree.db.models import Page, ShareLink, ShareLinkAccess
from wikitree.db.services import hierarchy_service
from wikitree.db.session import transaction
from wikitree.lib.client_ip import sanitize_ip, truncate_user_agent
from wikitree.lib.exceptions import (
    InvalidInputError,
    PageNotFoundError,
    PermissionDeniedError,
    ShareLinkNotFoundError,
)
from wikitree.lib.hooks import hooks, SHARE_LINK_ACCESSED

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{40,50}$")


class DenialReason(str, Enum):
    REVOKED = "revoked"
    EXPIRED = "expired"
    VIEW_LIMIT_REACHED = "view_limit_reached"
    IP_LIMIT_REACHED = "ip_limit_reached"
    PAGE_NOT_ACCESSIBLE = "page_not_accessible"

    @property
    def message(self) -> str:
        return _DENIAL_MESSAGES[self]


_DENIAL_MESSAGES = {
    DenialReason.REVOKED: "This share link has been revoked.",
    DenialReason.EXPIRED: "This share link has expired.",
    DenialReason.VIEW_LIMIT_REACHED: "This share link has reached its view limit.",
    DenialReason.IP_LIMIT_REACHED: "This share link has reached its limit of unique visitors.",
    DenialReason.PAGE_NOT_ACCESSIBLE: "This page is not accessible with this share link.",
}


class LinkState(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"
    VIEW_LIMIT_REACHED = "view_limit_reached"
    IP_LIMIT_REACHED = "ip_limit_reached"


@dataclass
class ShareAccessResult:
    """Outcome of one share link access attempt."""

    link: ShareLink
    page: Page | None = None
    denial: DenialReason | None = None
    is_child_access: bool = False
    access: ShareLinkAccess | None = None

    @property
    def granted(self) -> bool:
        return self.denial is None


@dataclass(frozen=True)
class ShareLinkStats:
    total_views: int
    unique_ips: int
    last_access: datetime | None


def generate_token(nbytes: int = TOKEN_BYTES) -> str:
    """Random URL-safe token (43 characters for the default 32 bytes)."""
    return secrets.token_urlsafe(nbytes)


def hash_token(token: str) -> str:
    """Hex SHA-256 of a raw token; the only form that is persisted."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def is_valid_token_format(token: str | None) -> bool:
    """Cheap shape check before touching the database."""
    return bool(token) and TOKEN_PATTERN.match(token) is not None


async def issue_share_link(
    db_session: AsyncSession,
    page_id: UUID,
    created_by: UUID,
    include_children: bool = False,
    max_views: int | None = None,
    max_unique_ips: int | None = None,
    expires_in: timedelta | None = None,
) -> tuple[str, ShareLink]:
    """Create a share link for a page.

    Args:
        db_session: Database session
        page_id: Page to share
        created_by: User issuing the link
        include_children: Also grant access to the page's descendants
        max_views: Total successful accesses allowed (None for unlimited)
        max_unique_ips: Distinct client IPs allowed (None for unlimited)
        expires_in: Lifetime from now (None for no expiry)

    Returns:
        (raw_token, link). The raw token cannot be recovered later.

    Raises:
        PageNotFoundError: If the page does not exist
        InvalidInputError: If a limit or lifetime is not positive
    """
    if max_views is not None and max_views < 1:
        raise InvalidInputError("max_views must be at least 1", field="max_views")
    if max_unique_ips is not None and max_unique_ips < 1:
        raise InvalidInputError("max_unique_ips must be at least 1", field="max_unique_ips")
    if expires_in is not None and expires_in <= timedelta(0):
        raise InvalidInputError("expires_in must be positive", field="expires_in")

    page = await db_session.get(Page, page_id)
    if page is None:
        raise PageNotFoundError(page_id)

    token = generate_token()
    link = ShareLink(
        token_hash=hash_token(token),
        page_id=page.id,
        created_by=created_by,
        include_children=include_children,
        max_views=max_views,
        max_unique_ips=max_unique_ips,
        expires_at=datetime.now(UTC) + expires_in if expires_in is not None else None,
        is_revoked=False,
        view_count=0,
    )

    async with transaction(db_session):
        db_session.add(link)
        await db_session.flush()
        await db_session.refresh(link)

    logger.info("Issued share link %s for page %s", link.id, page.slug)
    return token, link


async def get_share_link(db_session: AsyncSession, link_id: UUID) -> ShareLink | None:
    """Get a share link by ID, or None if not found."""
    result = await db_session.execute(
        select(ShareLink)
        .where(ShareLink.id == link_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_share_link_by_token(db_session: AsyncSession, token: str) -> ShareLink | None:
    """Find the link for a raw token, or None.

    The row is always re-read so a revoke or view committed through another
    session is seen by this one.
    """
    if not is_valid_token_format(token):
        return None
    result = await db_session.execute(
        select(ShareLink)
        .where(ShareLink.token_hash == hash_token(token))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _has_ip_accessed(db_session: AsyncSession, link_id: UUID, ip_address: str) -> bool:
    result = await db_session.execute(
        select(ShareLinkAccess.id)
        .where(ShareLinkAccess.share_link_id == link_id, ShareLinkAccess.ip_address == ip_address)
        .limit(1)
    )
    return result.first() is not None


async def count_unique_ips(db_session: AsyncSession, link_id: UUID) -> int:
    result = await db_session.execute(
        select(func.count(func.distinct(ShareLinkAccess.ip_address)))
        .where(ShareLinkAccess.share_link_id == link_id)
    )
    return result.scalar() or 0


def _is_expired(link: ShareLink, now: datetime) -> bool:
    return link.expires_at is not None and now > link.expires_at


async def _check_limits(
    db_session: AsyncSession,
    link: ShareLink,
    ip_address: str,
    now: datetime,
) -> DenialReason | None:
    if link.is_revoked:
        return DenialReason.REVOKED
    if _is_expired(link, now):
        return DenialReason.EXPIRED
    if link.max_views is not None and link.view_count >= link.max_views:
        return DenialReason.VIEW_LIMIT_REACHED
    if link.max_unique_ips is not None:
        if not await _has_ip_accessed(db_session, link.id, ip_address):
            if await count_unique_ips(db_session, link.id) >= link.max_unique_ips:
                return DenialReason.IP_LIMIT_REACHED
    return None


async def _resolve_page(
    db_session: AsyncSession,
    link: ShareLink,
    requested_slug: str | None,
) -> tuple[Page | None, bool]:
    """Page a request may see through ``link``: (page, is_child_access)."""
    page = await db_session.get(Page, link.page_id, populate_existing=True)
    if page is None:
        return None, False

    wanted = (requested_slug or "").strip().strip("/").lower()
    if not wanted or wanted == page.slug:
        return page, False

    if not link.include_children:
        return None, False

    target = await hierarchy_service.find_page_by_slug(db_session, wanted)
    if target is None or not await hierarchy_service.is_descendant(db_session, target.id, page.id):
        return None, False
    return target, True


async def record_access(
    db_session: AsyncSession,
    link: ShareLink,
    ip_address: str,
    user_agent: str = "",
) -> ShareLinkAccess:
    """Append an access row and bump the view counter in one transaction.

    The counter is incremented in SQL so concurrent accesses never lose an
    increment.
    """
    access = ShareLinkAccess(
        share_link_id=link.id,
        ip_address=sanitize_ip(ip_address),
        user_agent=truncate_user_agent(user_agent),
        accessed_at=datetime.now(UTC),
    )

    async with transaction(db_session):
        db_session.add(access)
        await db_session.execute(
            update(ShareLink)
            .where(ShareLink.id == link.id)
            .values(view_count=ShareLink.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        await db_session.refresh(link)

    return access


async def validate_and_record(
    db_session: AsyncSession,
    token: str,
    ip_address: str,
    user_agent: str = "",
    requested_slug: str | None = None,
    now: datetime | None = None,
) -> ShareAccessResult:
    """Check a share link for one request and log the access if allowed.

    Call exactly once per request; each granted call counts one view.

    Args:
        db_session: Database session
        token: Raw token from the URL
        ip_address: Client address (canonicalized before use)
        user_agent: Client user agent (truncated before storage)
        requested_slug: Slug being viewed; None means the linked page
        now: Current time, for tests

    Returns:
        Result with the page on success or the denial reason

    Raises:
        ShareLinkNotFoundError: If no link matches the token
    """
    link = await get_share_link_by_token(db_session, token)
    if link is None:
        raise ShareLinkNotFoundError()

    ip_address = sanitize_ip(ip_address)
    denial = await _check_limits(db_session, link, ip_address, now or datetime.now(UTC))
    if denial is not None:
        logger.info("Share link %s denied: %s", link.id, denial.value)
        return ShareAccessResult(link=link, denial=denial)

    page, is_child_access = await _resolve_page(db_session, link, requested_slug)
    if page is None:
        return ShareAccessResult(link=link, denial=DenialReason.PAGE_NOT_ACCESSIBLE)

    access = await record_access(db_session, link, ip_address, user_agent)
    await hooks.notify(SHARE_LINK_ACCESSED, link, access)

    return ShareAccessResult(link=link, page=page, is_child_access=is_child_access, access=access)


async def share_link_state(
    db_session: AsyncSession,
    link: ShareLink,
    now: datetime | None = None,
) -> LinkState:
    """Current state of a link as seen by a new visitor."""
    now = now or datetime.now(UTC)
    if link.is_revoked:
        return LinkState.REVOKED
    if _is_expired(link, now):
        return LinkState.EXPIRED
    if link.max_views is not None and link.view_count >= link.max_views:
        return LinkState.VIEW_LIMIT_REACHED
    if link.max_unique_ips is not None and await count_unique_ips(db_session, link.id) >= link.max_unique_ips:
        return LinkState.IP_LIMIT_REACHED
    return LinkState.ACTIVE


async def _get_managed_link(
    db_session: AsyncSession,
    link_id: UUID,
    user_id: UUID,
    is_admin: bool,
) -> ShareLink:
    link = await get_share_link(db_session, link_id)
    if link is None:
        raise ShareLinkNotFoundError(f"Share link not found: {link_id}")
    if link.created_by != user_id and not is_admin:
        raise PermissionDeniedError("Only the creator or an admin can manage this share link")
    return link


async def revoke_share_link(
    db_session: AsyncSession,
    link_id: UUID,
    user_id: UUID,
    is_admin: bool = False,
) -> ShareLink:
    """Permanently revoke a link. Allowed for its creator or an admin."""
    link = await _get_managed_link(db_session, link_id, user_id, is_admin)
    async with transaction(db_session):
        link.is_revoked = True
    logger.info("Revoked share link %s", link.id)
    return link


async def delete_share_link(
    db_session: AsyncSession,
    link_id: UUID,
    user_id: UUID,
    is_admin: bool = False,
) -> None:
    """Delete a link and its access log. Allowed for its creator or an admin."""
    link = await _get_managed_link(db_session, link_id, user_id, is_admin)
    async with transaction(db_session):
        await db_session.delete(link)
    logger.info("Deleted share link %s", link_id)


async def list_share_links(
    db_session: AsyncSession,
    page_id: UUID | None = None,
    created_by: UUID | None = None,
) -> list[ShareLink]:
    """Share links for a page, for a creator, or all of them; newest first."""
    query = select(ShareLink).order_by(ShareLink.created_at.desc())
    if page_id is not None:
        query = query.where(ShareLink.page_id == page_id)
    if created_by is not None:
        query = query.where(ShareLink.created_by == created_by)
    result = await db_session.execute(query)
    return list(result.scalars().all())


async def get_share_link_stats(
    db_session: AsyncSession,
    link_id: UUID,
    user_id: UUID | None = None,
    is_admin: bool = True,
) -> ShareLinkStats:
    """View totals for a link.

    Pass ``user_id`` (and ``is_admin=False``) to restrict the stats to the
    link's creator.
    """
    if user_id is not None:
        await _get_managed_link(db_session, link_id, user_id, is_admin)
    elif await get_share_link(db_session, link_id) is None:
        raise ShareLinkNotFoundError(f"Share link not found: {link_id}")

    result = await db_session.execute(
        select(
            func.count(ShareLinkAccess.id),
            func.count(func.distinct(ShareLinkAccess.ip_address)),
            func.max(ShareLinkAccess.accessed_at),
        ).where(ShareLinkAccess.share_link_id == link_id)
    )
    total, unique_ips, last_access = result.one()
    return ShareLinkStats(total_views=total or 0, unique_ips=unique_ips or 0, last_access=last_access)


async def list_share_link_accesses(
    db_session: AsyncSession,
    link_id: UUID,
    limit: int | None = 50,
    offset: int = 0,
) -> list[ShareLinkAccess]:
    """Access log of a link, newest first."""
    query = (
        select(ShareLinkAccess)
        .where(ShareLinkAccess.share_link_id == link_id)
        .order_by(ShareLinkAccess.accessed_at.desc())
    )
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    result = await db_session.execute(query)
    return list(result.scalars().all())
