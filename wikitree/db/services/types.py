"""Result types returned by the page services."""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from wikitree.db.models import Page
from wikitree.lib.markdown import make_excerpt


@dataclass(frozen=True)
class SlugChange:
    """One slug rewritten by a rename."""

    page_id: UUID
    old_slug: str
    new_slug: str


@dataclass
class PageSummary:
    """Lightweight view of a page for listings and breadcrumbs."""

    id: UUID
    slug: str
    title: str
    excerpt: str = ""
    author_id: UUID | None = None
    parent_id: UUID | None = None
    is_published: bool = False
    updated_at: datetime | None = None
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_page(cls, page: Page) -> "PageSummary":
        return cls(
            id=page.id,
            slug=page.slug,
            title=page.title,
            excerpt=make_excerpt(page.content),
            author_id=page.author_id,
            parent_id=page.parent_id,
            is_published=page.is_published,
            updated_at=page.updated_at,
            tags=page.tag_names,
        )


@dataclass
class UpdateResult:
    """Outcome of an update: the page plus every slug it moved."""

    page: Page
    slug_change: SlugChange | None = None
    cascaded_changes: list[SlugChange] = field(default_factory=list)

    @property
    def all_slug_changes(self) -> list[SlugChange]:
        primary = [self.slug_change] if self.slug_change else []
        return primary + self.cascaded_changes


@dataclass
class ImportResult:
    """A page written by a markdown import."""

    page: Page
    requested_slug: str
    filled_placeholder: bool = False

    @property
    def renamed(self) -> bool:
        return self.page.slug != self.requested_slug
