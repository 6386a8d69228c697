"""Tests for markdown document parsing on import."""

import pytest

from wikitree.lib.exceptions import InvalidInputError
from wikitree.lib.frontmatter import is_markdown_filename, parse_markdown_document


class TestParseMarkdownDocument:
    """Tests for parse_markdown_document."""

    def test_front_matter_fields(self):
        doc = parse_markdown_document(
            '---\ntitle: "DNS Setup"\nslug: Guides/DNS\ntags: [dns, "net"]\n---\n# Ignored heading\n\nBody\n',
            "dns.md",
        )

        assert doc.title == "DNS Setup"
        assert doc.slug == "guides/dns"
        assert doc.tags == ["dns", "net"]
        assert doc.body == "# Ignored heading\n\nBody"

    def test_comma_separated_tags(self):
        doc = parse_markdown_document("---\ntitle: T\ntags: a, b ,, c\n---\nx", "t.md")
        assert doc.tags == ["a", "b", "c"]

    def test_title_from_first_heading(self):
        doc = parse_markdown_document("intro\n\n## Not this\n# Backup Plan\n", "plan.md")

        assert doc.title == "Backup Plan"
        assert doc.slug == "backup-plan"
        assert doc.tags == []

    def test_title_from_filename(self):
        doc = parse_markdown_document("no heading here", "release_notes-2024.markdown")

        assert doc.title == "release notes 2024"
        assert doc.slug == "release-notes-2024"
        assert doc.body == "no heading here"

    def test_unclosed_front_matter_is_body(self):
        text = "---\ntitle: Open\nbody"
        doc = parse_markdown_document(text, "open.md")

        assert doc.body == text
        assert doc.title == "open"

    def test_non_mapping_front_matter_is_ignored(self):
        doc = parse_markdown_document("---\n- just\n- a list\n---\n# Real", "x.md")

        assert doc.title == "Real"
        assert doc.body == "# Real"

    def test_invalid_yaml(self):
        with pytest.raises(InvalidInputError) as exc_info:
            parse_markdown_document("---\ntitle: [unclosed\n---\nbody", "x.md")
        assert exc_info.value.field == "front_matter"


@pytest.mark.parametrize("filename, expected", [
    ("guide.md", True),
    ("GUIDE.MD", True),
    ("notes.markdown", True),
    ("notes.txt", False),
    ("md", False),
])
def test_is_markdown_filename(filename, expected):
    assert is_markdown_filename(filename) is expected
