"""In-process inverted index used by the ``index`` search strategy.

Fed through the page hooks (see app_factory.register_collaborators), so it
only sees pages saved while the process is running; call :meth:`rebuild`
on startup to load existing pages.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from uuid import UUID

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"[a-z0-9]+")
TITLE_WEIGHT = 3


def tokenize(text: str | None) -> list[str]:
    """Lower-case alphanumeric words of ``text``."""
    if not text:
        return []
    return TOKEN_PATTERN.findall(text.lower())


def sanitize_query(query: str | None) -> list[str]:
    """Search terms of a user query with operators and punctuation removed.

    Each term is matched as a prefix and terms are OR-combined.
    """
    terms: list[str] = []
    for term in tokenize(query):
        if term not in terms:
            terms.append(term)
    return terms


@dataclass
class IndexedPage:
    slug: str
    title_terms: Counter
    body_terms: Counter
    is_published: bool


@dataclass(frozen=True)
class IndexHit:
    page_id: UUID
    slug: str
    score: int


class SearchIndex:
    """Word-prefix index over page titles and content."""

    def __init__(self) -> None:
        self._pages: dict[UUID, IndexedPage] = {}

    def __len__(self) -> int:
        return len(self._pages)

    def __contains__(self, page_id: UUID) -> bool:
        return page_id in self._pages

    def reindex(
        self,
        page_id: UUID,
        slug: str,
        title: str,
        content: str,
        is_published: bool = True,
    ) -> None:
        """Add or replace one page."""
        self._pages[page_id] = IndexedPage(
            slug=slug,
            title_terms=Counter(tokenize(title)),
            body_terms=Counter(tokenize(content)),
            is_published=is_published,
        )

    def remove(self, page_id: UUID) -> None:
        self._pages.pop(page_id, None)

    def clear(self) -> None:
        self._pages.clear()

    def rebuild(self, pages) -> int:
        """Replace the index contents with ``pages`` (objects with page fields)."""
        self.clear()
        for page in pages:
            self.reindex(page.id, page.slug, page.title, page.content, page.is_published)
        logger.info("Search index rebuilt with %d pages", len(self._pages))
        return len(self._pages)

    def search(self, query: str | None, limit: int = 20, published_only: bool = True) -> list[IndexHit]:
        """Pages matching any query term as a word prefix, best first.

        A title match weighs more than a body match. Ties are broken by slug.
        """
        terms = sanitize_query(query)
        if not terms:
            return []

        hits = []
        for page_id, page in self._pages.items():
            if published_only and not page.is_published:
                continue
            score = 0
            for term in terms:
                score += TITLE_WEIGHT * _prefix_count(page.title_terms, term)
                score += _prefix_count(page.body_terms, term)
            if score:
                hits.append(IndexHit(page_id=page_id, slug=page.slug, score=score))

        hits.sort(key=lambda hit: (-hit.score, hit.slug))
        return hits[:limit]


def _prefix_count(terms: Counter, prefix: str) -> int:
    return sum(count for word, count in terms.items() if word.startswith(prefix))
