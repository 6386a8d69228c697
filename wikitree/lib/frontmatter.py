"""YAML front matter of imported markdown documents."""

import re
from dataclasses import dataclass, field

import yaml

from wikitree.lib.exceptions import InvalidInputError
from wikitree.lib.slugs import normalize_slug

FRONT_MATTER_RE = re.compile(r"(?s)\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)")
HEADING_RE = re.compile(r"^#[ \t]+(.+?)[ \t]*$", re.MULTILINE)
MARKDOWN_SUFFIXES = (".md", ".markdown")


@dataclass
class MarkdownDocument:
    title: str
    slug: str
    body: str
    tags: list[str] = field(default_factory=list)


def is_markdown_filename(filename: str) -> bool:
    return filename.lower().endswith(MARKDOWN_SUFFIXES)


def _tag_list(raw) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return [part.strip() for part in raw.split(",") if part.strip()]
    if isinstance(raw, (list, tuple)):
        return [str(item).strip() for item in raw if item is not None and str(item).strip()]
    text = str(raw).strip()
    return [text] if text else []


def _title_from_filename(filename: str) -> str:
    stem = filename
    for suffix in MARKDOWN_SUFFIXES:
        if stem.lower().endswith(suffix):
            stem = stem[: -len(suffix)]
            break
    return stem.replace("-", " ").replace("_", " ").strip()


def parse_markdown_document(text: str, filename: str = "") -> MarkdownDocument:
    """Split a markdown file into its metadata and body.

    ``title``, ``slug`` and ``tags`` come from a leading ``---`` YAML block
    when present; the block is removed from the body. Without a title the
    first ``# `` heading is used, then the file name. Without a slug it is
    derived from the title.

    Args:
        text: Raw file content
        filename: Original file name, for the title fallback

    Returns:
        The parsed document

    Raises:
        InvalidInputError: If the front matter is not valid YAML
    """
    data = {}
    body = text
    match = FRONT_MATTER_RE.match(text)
    if match:
        try:
            loaded = yaml.safe_load(match.group(1))
        except yaml.YAMLError as exc:
            raise InvalidInputError(f"Invalid front matter: {exc}", field="front_matter") from exc
        if isinstance(loaded, dict):
            data = loaded
        body = text[match.end():].strip()

    title = str(data.get("title") or "").strip()
    if not title:
        heading = HEADING_RE.search(body)
        title = heading.group(1) if heading else _title_from_filename(filename)

    slug = normalize_slug(str(data.get("slug") or "")) or normalize_slug(title)

    return MarkdownDocument(title=title, slug=slug, body=body, tags=_tag_list(data.get("tags")))
