"""
Tests for frontmatter parsing and searchable text.
"""

from engram_vault.core.frontmatter import (
    MAX_PARAGRAPH_CHARS,
    build_searchable_text,
    first_paragraph,
    parse_frontmatter,
)


DOCUMENT = """---
type: concept
confidence: high
tags: [ruby, classes]
last_verified: 2025-01-15
---
# Classes

Ruby classes are open.
They can be reopened at runtime.

## Details
More text here.
"""


class TestParseFrontmatter:
    """Test YAML header extraction."""

    def test_parses_header(self):
        metadata, body = parse_frontmatter(DOCUMENT)

        assert metadata["type"] == "concept"
        assert metadata["tags"] == ["ruby", "classes"]
        assert body.startswith("# Classes")

    def test_dates_become_strings(self):
        metadata, _ = parse_frontmatter(DOCUMENT)
        assert metadata["last_verified"] == "2025-01-15"

    def test_no_header(self):
        metadata, body = parse_frontmatter("Just text")
        assert metadata == {}
        assert body == "Just text"

    def test_malformed_yaml_ignored(self):
        content = "---\ntags: [unclosed\n---\nBody"
        metadata, body = parse_frontmatter(content)
        assert metadata == {}
        assert body == content

    def test_non_mapping_header_ignored(self):
        content = "---\n- a\n- b\n---\nBody"
        metadata, body = parse_frontmatter(content)
        assert metadata == {}
        assert body == content

    def test_empty_content(self):
        assert parse_frontmatter("") == ({}, "")


class TestSearchableText:
    """Test the text that gets embedded."""

    def test_first_paragraph_skips_headings(self):
        _, body = parse_frontmatter(DOCUMENT)
        assert first_paragraph(body) == "Ruby classes are open. They can be reopened at runtime."

    def test_first_paragraph_truncated(self):
        assert len(first_paragraph("word " * 1000)) == MAX_PARAGRAPH_CHARS

    def test_first_paragraph_headings_only(self):
        assert first_paragraph("# Title\n\n## Sub") == ""

    def test_build_searchable_text(self):
        text = build_searchable_text("Ruby classes", {"tags": ["ruby", "oop"]}, DOCUMENT)
        assert text == (
            "Ruby classes\n"
            "Tags: ruby, oop\n"
            "Ruby classes are open. They can be reopened at runtime."
        )

    def test_build_without_tags_or_title(self):
        assert build_searchable_text("", None, "Plain body.") == "Plain body."

    def test_string_tags(self):
        text = build_searchable_text("T", {"tags": "a, b"}, "")
        assert text == "T\nTags: a, b"
