"""
Built-in virtual entries.

Virtual entries ship with the package so that every store, even a
freshly created empty one, can answer for them. They are never written
to a back end, never count toward size accounting and cannot be
overwritten or deleted.
"""

from datetime import datetime, timezone
from typing import Optional

from engram_vault.core.interfaces import Entry


DEEP_LEARNING_PROTOCOL = """# Deep Learning Protocol

Use this protocol when you need to understand a topic thoroughly rather
than skim it. Work through the steps in order and store what you learn.

## 1. Define Scope
- Write down the question you are trying to answer in one sentence.
- List what is in scope and what you will deliberately ignore.
- Check memory first: search for existing concepts, facts and skills on the topic.

## 2. Map the Territory
- Identify the core concepts and how they relate to each other.
- Find authoritative sources (official docs, source code, specifications).
- Note vocabulary you do not yet understand.

## 3. Go Deep on Each Concept
- Read the primary source, not a summary of it.
- Work through a concrete example for every abstract idea.
- Record each concept as its own entry with type, tags and related links.

## 4. Self-Test Understanding
- Explain the topic from memory without looking at your notes.
- Predict the behavior of a small example, then verify it.
- Where your prediction was wrong, update the relevant entry.

## 5. Consolidate
- Link related entries to each other.
- Mark verified facts with high confidence and a last_verified date.
- Capture reusable procedures as skills.
"""

BUILTIN_TIMESTAMP = datetime(2025, 1, 1, tzinfo=timezone.utc)

VIRTUAL_ENTRIES: dict[str, Entry] = {
    "skill/meta/deep-learning.md": Entry(
        content=DEEP_LEARNING_PROTOCOL,
        title="Deep Learning Protocol",
        metadata={
            "type": "skill",
            "confidence": "high",
            "tags": ["learning", "meta", "research", "protocol"],
            "domain": "meta",
            "tools": [],
            "permissions": {},
        },
        updated_at=BUILTIN_TIMESTAMP,
        virtual=True,
    ),
}


def get_virtual_entry(path: str, table: Optional[dict[str, Entry]] = None) -> Optional[Entry]:
    """Look up a built-in entry by normalized path. Returns a copy."""
    entry = (VIRTUAL_ENTRIES if table is None else table).get(path)
    return entry.copy() if entry is not None else None


def is_virtual(path: str, table: Optional[dict[str, Entry]] = None) -> bool:
    return path in (VIRTUAL_ENTRIES if table is None else table)
