"""Slug normalization and hierarchy helpers.

Slugs are lower-case, URL-safe and hierarchical: segments are separated by
``/`` and each segment only contains ``a-z``, ``0-9`` and single hyphens.
"""

import re

SLUG_SEPARATOR = "/"

_WORD_BREAKS = re.compile(r"[\s_]+")
_UNSAFE_CHARS = re.compile(r"[^a-z0-9/-]")
_HYPHEN_RUNS = re.compile(r"-{2,}")


def normalize_slug(value: str | None) -> str:
    """Turn an arbitrary page name into a canonical hierarchical slug.

    Lower-cases the input, turns whitespace and underscore runs into a single
    hyphen, drops every character outside ``[a-z0-9/-]`` and then cleans each
    segment so that no segment is empty or starts/ends with a hyphen.

    Examples:
        >>> normalize_slug("Getting Started")
        'getting-started'
        >>> normalize_slug("foo-/bar")
        'foo/bar'
        >>> normalize_slug("//Linux//Ubuntu_22 ")
        'linux/ubuntu-22'
        >>> normalize_slug("!!!")
        ''

    Args:
        value: Raw page name or slug

    Returns:
        The normalized slug, or an empty string when nothing usable remains
    """
    if not value:
        return ""

    slug = _WORD_BREAKS.sub("-", value.strip().lower())
    slug = _UNSAFE_CHARS.sub("", slug)

    segments = (_HYPHEN_RUNS.sub("-", segment).strip("-") for segment in slug.split(SLUG_SEPARATOR))
    return SLUG_SEPARATOR.join(segment for segment in segments if segment)


def split_slug(slug: str) -> list[str]:
    """Split a normalized slug into its segments."""
    return [segment for segment in slug.split(SLUG_SEPARATOR) if segment]


def ancestor_segments(slug: str) -> list[str]:
    """Segments of every ancestor of ``slug``, root first.

    ``ancestor_segments("a/b/c")`` is ``["a", "b"]``.
    """
    return split_slug(slug)[:-1]


def ancestor_slugs(slug: str) -> list[str]:
    """Full slugs of every ancestor of ``slug``, root first.

    ``ancestor_slugs("a/b/c")`` is ``["a", "a/b"]``.
    """
    segments = split_slug(slug)
    return [SLUG_SEPARATOR.join(segments[:depth]) for depth in range(1, len(segments))]


def parent_slug(slug: str) -> str | None:
    """Slug of the immediate parent, or None for a root slug."""
    if SLUG_SEPARATOR not in slug:
        return None
    return slug.rsplit(SLUG_SEPARATOR, 1)[0]


def leaf_segment(slug: str) -> str:
    """Last segment of a slug."""
    return slug.rsplit(SLUG_SEPARATOR, 1)[-1]


def is_within(slug: str, ancestor: str) -> bool:
    """True when ``slug`` sits strictly below ``ancestor`` in the slug tree."""
    return slug.startswith(ancestor + SLUG_SEPARATOR)


def humanize_segment(segment: str) -> str:
    """Build a display title from a slug segment.

    ``humanize_segment("getting-started")`` is ``"Getting Started"``.
    """
    words = [word for word in segment.split("-") if word]
    return " ".join(word[:1].upper() + word[1:] for word in words)
