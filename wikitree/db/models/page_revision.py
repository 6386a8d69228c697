"""Page revision model for content history."""

from uuid import UUID

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wikitree.db.base import Base


class PageRevision(Base):
    """Content of a page as it was before an edit. Never updated."""

    __tablename__ = "page_revisions"
    __table_args__ = (
        UniqueConstraint("page_id", "revision_number", name="uq_page_revisions_page_revision_number"),
    )

    # Cascade delete when page is deleted
    page_id: Mapped[UUID] = mapped_column(
        ForeignKey("pages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    page: Mapped["Page"] = relationship("Page", back_populates="revisions")

    # Who made the change (nullable for system changes)
    author_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)

    # Per-page sequence, starting at 1
    revision_number: Mapped[int] = mapped_column(Integer, nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    comment: Mapped[str] = mapped_column(String(500), nullable=False, default="")
