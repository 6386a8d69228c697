"""Share links and their access log."""

from datetime import datetime
from uuid import UUID

from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wikitree.db.base import Base


class ShareLink(Base):
    """A capability granting anonymous access to one page, optionally its subtree.

    Only the SHA-256 hash of the token is stored.
    """

    __tablename__ = "share_links"

    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)

    page_id: Mapped[UUID] = mapped_column(
        ForeignKey("pages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_by: Mapped[UUID] = mapped_column(nullable=False, index=True)

    include_children: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    max_views: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_unique_ips: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)

    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    accesses: Mapped[list["ShareLinkAccess"]] = relationship(
        "ShareLinkAccess",
        back_populates="share_link",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="desc(ShareLinkAccess.accessed_at)",
    )


class ShareLinkAccess(Base):
    """One successful access through a share link."""

    __tablename__ = "share_link_access"
    __table_args__ = (Index("ix_share_link_access_link_ip", "share_link_id", "ip_address"),)

    share_link_id: Mapped[UUID] = mapped_column(
        ForeignKey("share_links.id", ondelete="CASCADE"), nullable=False, index=True
    )
    share_link: Mapped["ShareLink"] = relationship("ShareLink", back_populates="accesses")

    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)
    user_agent: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    accessed_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True), nullable=False)
