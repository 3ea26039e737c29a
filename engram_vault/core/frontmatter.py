"""
Frontmatter parsing and searchable text extraction.

Entries are usually markdown, optionally opening with a YAML header:

    ---
    type: concept
    confidence: high
    tags: [ruby, classes]
    ---
    # Classes
    Ruby classes are open...

The header feeds metadata; the title, tags and first paragraph of the
body form the "searchable text" that gets embedded.
"""

import logging
import re
from datetime import date, datetime
from typing import Optional

import yaml


logger = logging.getLogger(__name__)

FRONTMATTER_PATTERN = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)(.*)\Z", re.DOTALL)

MAX_PARAGRAPH_CHARS = 1000


def parse_frontmatter(content: str) -> tuple[dict, str]:
    """
    Split content into (metadata, body).

    Content without a header, or with a header that is not a YAML
    mapping, yields an empty dict and the content unchanged.
    """
    match = FRONTMATTER_PATTERN.match(content or "")
    if not match:
        return {}, content or ""

    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.debug("Ignoring malformed frontmatter: %s", e)
        return {}, content

    if not isinstance(data, dict):
        return {}, content

    return {str(k): _plain(v) for k, v in data.items()}, match.group(2)


def _plain(value):
    # YAML turns bare dates into date objects; keep metadata string-typed
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return value


def first_paragraph(body: str) -> str:
    """Return the first non-heading paragraph of a markdown body."""
    for block in re.split(r"\n\s*\n", body or ""):
        lines = [line.strip() for line in block.strip().splitlines() if line.strip()]
        text_lines = [line for line in lines if not line.startswith("#")]
        if text_lines:
            return " ".join(text_lines)[:MAX_PARAGRAPH_CHARS]
    return ""


def build_searchable_text(title: str, metadata: Optional[dict], content: str) -> str:
    """
    Compose the text embedded for an entry.

    Title, tags and the first paragraph only, joined by newlines.
    """
    _, body = parse_frontmatter(content)
    parts = [title.strip()] if title and title.strip() else []

    tags = (metadata or {}).get("tags")
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(",") if t.strip()]
    if tags:
        parts.append("Tags: " + ", ".join(str(t) for t in tags))

    paragraph = first_paragraph(body)
    if paragraph:
        parts.append(paragraph)

    return "\n".join(parts)
