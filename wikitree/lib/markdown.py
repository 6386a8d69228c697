"""Markdown rendering for page content.

Pages are CommonMark with GitHub-style tables and strikethrough, footnotes,
heading anchors and ``[[Page Name]]`` / ``[[Page Name|label]]`` wiki links.
Output is passed through bleach so stored HTML is always safe to serve.
"""

import re
from dataclasses import dataclass

import bleach
from bleach.css_sanitizer import CSSSanitizer
from markdown_it import MarkdownIt
from markdown_it.rules_inline import StateInline
from mdit_py_plugins.anchors import anchors_plugin
from mdit_py_plugins.footnote import footnote_plugin

from wikitree.lib.slugs import normalize_slug

WIKI_LINK_PREFIX = "/wiki/"
EXCERPT_LENGTH = 150

WIKI_LINK_PATTERN = re.compile(r"\[\[([^\[\]|\n]+)(?:\|([^\[\]\n]+))?\]\]")

ALLOWED_TAGS = frozenset({
    "a", "abbr", "b", "blockquote", "br", "code", "del", "div", "em", "h1", "h2",
    "h3", "h4", "h5", "h6", "hr", "i", "img", "li", "ol", "p", "pre", "s",
    "section", "span", "strong", "sub", "sup", "table", "tbody", "td", "th",
    "thead", "tr", "ul",
})

ALLOWED_ATTRIBUTES = {
    "*": ["id", "class"],
    "a": ["href", "title", "id", "class", "rel"],
    "img": ["src", "alt", "title"],
    "th": ["style"],
    "td": ["style"],
    "ol": ["start", "class"],
}

_cleaner = bleach.Cleaner(
    tags=ALLOWED_TAGS,
    attributes=ALLOWED_ATTRIBUTES,
    css_sanitizer=CSSSanitizer(allowed_css_properties=["text-align"]),
    strip=True,
)


@dataclass(frozen=True)
class TocEntry:
    level: int
    text: str
    anchor: str


def heading_anchor(text: str) -> str:
    """Anchor id for a heading: lower-case words joined by hyphens."""
    anchor = re.sub(r"[^\w\- ]", "", text.strip().lower())
    return re.sub(r"[\s-]+", "-", anchor).strip("-")


def _unique_anchor(anchor: str, seen: set[str]) -> str:
    candidate = anchor
    i = 1
    while candidate in seen:
        candidate = f"{anchor}-{i}"
        i += 1
    seen.add(candidate)
    return candidate


def wiki_link_href(target: str) -> str | None:
    """URL of the page a wiki link points at, or None if the target has no slug."""
    slug = normalize_slug(target)
    if not slug:
        return None
    return WIKI_LINK_PREFIX + slug


def _wiki_link_rule(state: StateInline, silent: bool) -> bool:
    if not state.src.startswith("[[", state.pos):
        return False

    match = WIKI_LINK_PATTERN.match(state.src, state.pos)
    if match is None:
        return False

    target = match.group(1).strip()
    href = wiki_link_href(target)
    if href is None:
        return False

    if not silent:
        token = state.push("link_open", "a", 1)
        token.attrSet("href", href)
        token.attrSet("class", "wiki-link")
        token = state.push("text", "", 0)
        token.content = (match.group(2) or target).strip()
        state.push("link_close", "a", -1)

    state.pos = match.end()
    return True


def wiki_links_plugin(md: MarkdownIt) -> None:
    """Register the ``[[target|label]]`` inline rule ahead of normal links."""
    md.inline.ruler.before("link", "wiki_link", _wiki_link_rule)


def create_markdown_renderer() -> MarkdownIt:
    """Create a new markdown renderer instance."""
    md = (
        MarkdownIt("commonmark", {"html": True})
        .enable(["table", "strikethrough"])
        .use(footnote_plugin)
        .use(anchors_plugin, min_level=1, max_level=6, slug_func=heading_anchor)
        .use(wiki_links_plugin)
    )
    return md


_renderer: MarkdownIt | None = None


def get_renderer() -> MarkdownIt:
    """Shared renderer instance."""
    global _renderer
    if _renderer is None:
        _renderer = create_markdown_renderer()
    return _renderer


def render_markdown(content: str | None) -> str:
    """Render markdown to sanitized HTML.

    Args:
        content: Raw markdown (None is treated as empty)

    Returns:
        Sanitized HTML, or an empty string for empty input
    """
    if not content or not content.strip():
        return ""
    html = get_renderer().render(content)
    return _cleaner.clean(html).strip()


def generate_toc(content: str | None) -> list[TocEntry]:
    """Table of contents for the headings in a markdown document.

    Anchors match the ids that render_markdown() puts on the headings.
    """
    if not content:
        return []

    tokens = get_renderer().parse(content)
    entries = []
    seen: set[str] = set()
    for i, token in enumerate(tokens):
        if token.type != "heading_open":
            continue
        inline = tokens[i + 1]
        text = "".join(
            child.content for child in (inline.children or []) if child.type in ("text", "code_inline")
        )
        anchor = _unique_anchor(heading_anchor(text), seen)
        entries.append(TocEntry(level=int(token.tag[1]), text=text, anchor=anchor))
    return entries


def extract_wiki_links(content: str | None) -> list[str]:
    """Slugs referenced by ``[[...]]`` wiki links, in order of first appearance."""
    if not content:
        return []

    slugs = []
    for match in WIKI_LINK_PATTERN.finditer(content):
        slug = normalize_slug(match.group(1))
        if slug and slug not in slugs:
            slugs.append(slug)
    return slugs


def make_excerpt(content: str | None, length: int = EXCERPT_LENGTH) -> str:
    """Plain-text excerpt of markdown content.

    Markup characters and wiki-link brackets are stripped and the text is cut
    at a word boundary near ``length`` characters, with "..." appended when
    truncated.
    """
    if not content:
        return ""

    text = WIKI_LINK_PATTERN.sub(lambda m: (m.group(2) or m.group(1)).strip(), content)
    text = re.sub(r"[#*_`>|\[\]]", "", text)
    text = " ".join(text.split())

    if len(text) <= length:
        return text

    cut = text[:length]
    space = cut.rfind(" ")
    if space > length * 2 // 3:
        cut = cut[:space]
    return cut.rstrip() + "..."
