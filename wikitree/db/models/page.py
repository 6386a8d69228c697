from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import Boolean, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wikitree.db.base import Base
from wikitree.db.models.tag import page_tags

if TYPE_CHECKING:
    from wikitree.db.models.page_revision import PageRevision
    from wikitree.db.models.tag import Tag


class Page(Base):
    """A wiki page addressed by a hierarchical slug."""

    __tablename__ = "pages"

    # Author is an opaque id owned by the auth layer
    author_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)

    # Content fields
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    rendered_content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Parent pointer; slug and parent chain are kept in step by the page services
    parent_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("pages.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Publication fields
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)

    revisions: Mapped[list["PageRevision"]] = relationship(
        "PageRevision",
        back_populates="page",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="desc(PageRevision.revision_number)",
    )

    tags: Mapped[list["Tag"]] = relationship(
        "Tag", secondary=page_tags, lazy="selectin", order_by="Tag.name"
    )

    @property
    def is_root(self) -> bool:
        return "/" not in self.slug

    @property
    def tag_names(self) -> list[str]:
        return sorted(tag.name for tag in self.tags)
