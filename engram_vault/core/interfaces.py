"""
Core interfaces and data models for Engram Vault.

This module defines the Entry value object, its typed metadata view,
the result types returned by queries and the embedding protocol.
The storage contract itself lives in engram_vault.adapters.base.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntryType(Enum):
    """Kinds of knowledge an entry can hold."""

    CONCEPT = "concept"  # Abstract ideas, architectures, patterns
    FACT = "fact"  # Concrete, verifiable information
    SKILL = "skill"  # Step-by-step procedures an agent can follow
    EXPERIENCE = "experience"  # Lessons learned from past work


@dataclass
class SkillSpec:
    """Tool and permission requirements attached to skill entries."""

    tools: list = field(default_factory=list)
    permissions: Any = field(default_factory=dict)


@dataclass
class EntryMetadata:
    """
    Typed view over an entry's metadata mapping.

    Known keys are parsed into fields; anything else is kept in
    ``extra`` so forward-compatible keys survive a round trip.
    """

    type: Optional[EntryType] = None
    confidence: Optional[str] = None  # "high", "medium" or "low"
    tags: list[str] = field(default_factory=list)
    domain: Optional[str] = None
    source: Optional[str] = None
    related: list[str] = field(default_factory=list)
    last_verified: Optional[str] = None
    skill: Optional[SkillSpec] = None  # Only for EntryType.SKILL
    extra: dict = field(default_factory=dict)

    KNOWN_KEYS = (
        "type", "confidence", "tags", "domain", "source",
        "related", "last_verified", "tools", "permissions",
    )

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "EntryMetadata":
        """Parse a raw metadata mapping."""
        data = dict(data or {})
        extra = {k: v for k, v in data.items() if k not in cls.KNOWN_KEYS}

        entry_type = None
        raw_type = data.get("type")
        if raw_type is not None:
            try:
                entry_type = EntryType(str(raw_type).lower())
            except ValueError:
                # Unknown kinds are preserved, not rejected
                extra["type"] = raw_type

        skill = None
        if entry_type is EntryType.SKILL:
            skill = SkillSpec(
                tools=list(data.get("tools") or []),
                permissions=data.get("permissions") if data.get("permissions") is not None else {},
            )
        else:
            for key in ("tools", "permissions"):
                if key in data:
                    extra[key] = data[key]

        confidence = data.get("confidence")
        last_verified = data.get("last_verified")

        return cls(
            type=entry_type,
            confidence=str(confidence).lower() if confidence is not None else None,
            tags=_as_list(data.get("tags")),
            domain=data.get("domain"),
            source=data.get("source"),
            related=_as_list(data.get("related")),
            last_verified=str(last_verified) if last_verified is not None else None,
            skill=skill,
            extra=extra,
        )

    def to_dict(self) -> dict:
        """Convert back to a plain mapping, omitting empty fields."""
        data = dict(self.extra)
        if self.type is not None:
            data["type"] = self.type.value
        for key in ("confidence", "domain", "source", "last_verified"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.tags:
            data["tags"] = list(self.tags)
        if self.related:
            data["related"] = list(self.related)
        if self.skill is not None:
            data["tools"] = list(self.skill.tools)
            data["permissions"] = self.skill.permissions
        return data

    def quality_score(self) -> int:
        """
        Score metadata completeness from 0 to 100.

        Type and confidence are worth 20 each, tags and related links 15,
        domain and last_verified 10, and high confidence earns a 10 point
        bonus.
        """
        score = 0
        if self.type is not None or "type" in self.extra:
            score += 20
        if self.confidence:
            score += 20
        if self.tags:
            score += 15
        if self.related:
            score += 15
        if self.domain:
            score += 10
        if self.last_verified:
            score += 10
        if self.confidence == "high":
            score += 10
        return min(score, 100)


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return list(value)


@dataclass(frozen=True)
class Entry:
    """
    A single unit of stored knowledge.

    ``size`` is always derived from ``content`` so it can never disagree
    with the bytes that were persisted.
    """

    content: str
    title: str
    metadata: dict = field(default_factory=dict)
    embedding: Optional[list[float]] = None
    updated_at: datetime = field(default_factory=utcnow)
    virtual: bool = False  # Built-in entries are never persisted
    size: int = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "size", len(self.content.encode("utf-8")))

    @property
    def info(self) -> EntryMetadata:
        """Typed view of the metadata."""
        return EntryMetadata.from_dict(self.metadata)

    @property
    def embedded(self) -> bool:
        return bool(self.embedding)

    def copy(self) -> Entry:
        """Copy with its own metadata and embedding, safe to hand to callers."""
        return replace(
            self,
            metadata=deepcopy(self.metadata),
            embedding=list(self.embedding) if self.embedding is not None else None,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "content": self.content,
            "title": self.title,
            "metadata": self.metadata,
            "embedding": self.embedding,
            "size": self.size,
            "updated_at": self.updated_at.isoformat(),
            "virtual": self.virtual,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Entry":
        """Create from dictionary."""
        return cls(
            content=data["content"],
            title=data.get("title", ""),
            metadata=data.get("metadata") or {},
            embedding=data.get("embedding"),
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else utcnow(),
            virtual=data.get("virtual", False),
        )


@dataclass
class EntrySummary:
    """Metadata-only listing row returned by list() and glob()."""

    path: str
    title: str
    size: int
    updated_at: datetime

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "title": self.title,
            "size": self.size,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class GrepResult:
    """Per-entry grep hit for the "content" and "count" output modes."""

    path: str
    matches: list[tuple[int, str]] = field(default_factory=list)  # (line_number, line)
    count: int = 0


@dataclass
class RetrievalResult:
    """Result from a vector or hybrid search."""

    path: str
    entry: Entry
    relevance_score: float  # Combined score used for ranking
    semantic_score: float = 0.0  # Cosine similarity to the query vector
    keyword_score: float = 0.0  # Token overlap with the query text

    @property
    def similarity(self) -> float:
        return self.relevance_score

    @property
    def title(self) -> str:
        return self.entry.title

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "title": self.entry.title,
            "similarity": round(self.relevance_score, 4),
            "semantic_score": round(self.semantic_score, 4),
            "keyword_score": round(self.keyword_score, 4),
            "metadata": self.entry.metadata,
            "updated_at": self.entry.updated_at.isoformat(),
        }


class EmbeddingProvider(Protocol):
    """Protocol for embedding generation."""

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts."""
        ...

    @property
    def dimension(self) -> int:
        """Return the embedding dimension."""
        ...


def metadata_matches(metadata: dict, filters: Optional[dict]) -> bool:
    """
    Check an entry's metadata against a filter mapping.

    Scalar filter values must match exactly; when the stored value is a
    list (tags, related) the filter value must be contained in it.
    """
    if not filters:
        return True
    for key, expected in filters.items():
        actual = metadata.get(key)
        if isinstance(actual, (list, tuple)) and not isinstance(expected, (list, tuple)):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True
