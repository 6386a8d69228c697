"""Markdown file mirror of the wiki.

Each page is written to ``<root>/<ancestor>/.../<last segment>.md`` with a
YAML front-matter block followed by the raw markdown. The mirror only
consumes page events; it is never read back by wikitree.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from wikitree.lib.slugs import leaf_segment

if TYPE_CHECKING:
    from wikitree.db.models import Page

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\<>:"|?*\x00-\x1f]')


def sanitize_filename(name: str) -> str:
    """Make a slug segment safe to use as a file or directory name."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("-", name).strip().lstrip(".")
    return cleaned or "untitled"


def _isoformat(value) -> str | None:
    return value.isoformat() if value is not None else None


def build_front_matter(page: Page, author_name: str) -> dict:
    """Front-matter fields for a page, in file order."""
    data = {
        "title": page.title,
        "slug": page.slug,
        "author": author_name,
    }
    tags = page.tag_names
    if tags:
        data["tags"] = tags
    if page.parent_id is not None:
        data["parent_id"] = str(page.parent_id)
    data["created_at"] = _isoformat(page.created_at)
    data["updated_at"] = _isoformat(page.updated_at)
    if page.published_at is not None:
        data["published_at"] = _isoformat(page.published_at)
    data["published"] = page.is_published
    return data


def render_document(page: Page, author_name: str) -> str:
    """Full file contents for a page."""
    front_matter = yaml.safe_dump(
        build_front_matter(page, author_name),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"---\n{front_matter}---\n\n{page.content}"


class MarkdownBackup:
    """Writes and removes page files under a root directory."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, slug: str, ancestors: list[str]) -> Path:
        directory = self._root.joinpath(*(sanitize_filename(segment) for segment in ancestors))
        return directory / f"{sanitize_filename(leaf_segment(slug))}.md"

    async def save_page(self, page: Page, author_name: str, ancestors: list[str]) -> Path:
        """Write (or overwrite) the file for a page."""
        path = self.path_for(page.slug, ancestors)
        document = render_document(page, author_name)
        await asyncio.to_thread(self._write_file, path, document)
        logger.debug("Backed up %s to %s", page.slug, path)
        return path

    async def delete_page(self, slug: str, ancestors: list[str]) -> None:
        """Remove a page's file and any directories left empty by it."""
        path = self.path_for(slug, ancestors)
        await asyncio.to_thread(self._remove_file, path)

    # -- internal helpers --

    @staticmethod
    def _write_file(path: Path, document: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(document, encoding="utf-8")

    def _remove_file(self, path: Path) -> None:
        path.unlink(missing_ok=True)
        self._clean_empty_dirs(path.parent)

    def _clean_empty_dirs(self, directory: Path) -> None:
        root = self._root.resolve()
        directory = directory.resolve()
        while directory != root and root in directory.parents:
            if not directory.is_dir() or any(directory.iterdir()):
                break
            directory.rmdir()
            directory = directory.parent
