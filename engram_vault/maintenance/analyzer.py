"""
Corpus statistics.

Analyzer walks every entry once and reports how well the vault is
organized: metadata, tag, link and embedding coverage, the confidence
mix and an overall organization score out of 100.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from engram_vault.adapters.base import StorageAdapter
from engram_vault.core.errors import format_bytes
from engram_vault.core.interfaces import Entry, EntryMetadata


CONFIDENCE_ORDER = {"high": 0, "medium": 1, "low": 2}


def percentage(part: int, total: int) -> int:
    if total == 0:
        return 0
    return round(part / total * 100)


def interpret_score(score: int) -> str:
    """One-line verdict for a 0-100 score."""
    if score >= 80:
        return "Excellent - Memory is well-organized and high-quality"
    if score >= 60:
        return "Good - Memory is decent but could use some improvements"
    if score >= 40:
        return "Fair - Consider running defrag to improve organization"
    if score >= 20:
        return "Poor - Memory needs significant cleanup and reorganization"
    return "Critical - Memory is poorly organized and needs immediate attention"


@dataclass
class CorpusStats:
    """Aggregate statistics over all persisted entries."""

    total_entries: int = 0
    total_size: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    by_confidence: dict[str, int] = field(default_factory=dict)
    with_metadata: int = 0
    with_embeddings: int = 0
    with_tags: int = 0
    with_links: int = 0
    average_quality: int = 0
    organization_score: int = 0

    @property
    def empty(self) -> bool:
        return self.total_entries == 0

    def to_markdown(self) -> str:
        if self.empty:
            return "# Memory Health Report\n\nMemory is empty. No entries to analyze."

        total = self.total_entries
        lines = [
            "# Memory Health Report",
            "",
            "## Overview",
            f"- Total entries: {total}",
            f"- Total size: {format_bytes(self.total_size)}",
            f"- Entries with metadata: {self.with_metadata} ({percentage(self.with_metadata, total)}%)",
            f"- Entries with embeddings: {self.with_embeddings} ({percentage(self.with_embeddings, total)}%)",
            f"- Entries with tags: {self.with_tags} ({percentage(self.with_tags, total)}%)",
            f"- Entries with related links: {self.with_links} ({percentage(self.with_links, total)}%)",
            f"- Average quality score: {self.average_quality}/100",
            "",
        ]

        if self.by_type:
            lines.append("## By Type")
            for entry_type, count in sorted(self.by_type.items(), key=lambda kv: (-kv[1], kv[0])):
                lines.append(f"- {entry_type}: {count} ({percentage(count, total)}%)")
            lines.append("")

        if self.by_confidence:
            lines.append("## By Confidence")
            for level, count in sorted(self.by_confidence.items(), key=lambda kv: CONFIDENCE_ORDER.get(kv[0], 999)):
                lines.append(f"- {level}: {count} ({percentage(count, total)}%)")
            lines.append("")

        lines.append(f"## Organization Score: {self.organization_score}/100")
        lines.append(interpret_score(self.organization_score))
        return "\n".join(lines)


class Analyzer:
    """Computes CorpusStats for an adapter."""

    def __init__(self, adapter: StorageAdapter):
        self._adapter = adapter

    def analyze(self, entries: Optional[dict[str, Entry]] = None) -> CorpusStats:
        """
        Analyze the vault.

        Args:
            entries: Snapshot to analyze (defaults to adapter.all_entries())
        """
        if entries is None:
            entries = self._adapter.all_entries()
        if not entries:
            return CorpusStats()

        by_type = Counter()
        by_confidence = Counter()
        stats = CorpusStats(total_entries=len(entries))
        quality_scores = []

        for entry in entries.values():
            stats.total_size += entry.size
            info = EntryMetadata.from_dict(entry.metadata)

            if info.type is not None:
                by_type[info.type.value] += 1
            elif "type" in info.extra:
                by_type[str(info.extra["type"])] += 1
            if entry.metadata:
                stats.with_metadata += 1
            if info.confidence:
                by_confidence[info.confidence] += 1
            if entry.embedded:
                stats.with_embeddings += 1
            if info.tags:
                stats.with_tags += 1
            if info.related:
                stats.with_links += 1
            quality_scores.append(info.quality_score())

        stats.by_type = dict(by_type)
        stats.by_confidence = dict(by_confidence)
        stats.average_quality = sum(quality_scores) // len(quality_scores)
        stats.organization_score = organization_score(stats)
        return stats


def organization_score(stats: CorpusStats) -> int:
    """
    Score coverage out of 100.

    Metadata coverage is worth up to 30 points, tags and links 20 each,
    embeddings and the share of high-confidence entries 15 each.
    """
    total = stats.total_entries
    if total == 0:
        return 0

    score = 0

    metadata_pct = percentage(stats.with_metadata, total)
    if metadata_pct > 80:
        score += 30
    elif metadata_pct > 50:
        score += 20
    elif metadata_pct > 20:
        score += 10

    tags_pct = percentage(stats.with_tags, total)
    if tags_pct > 60:
        score += 20
    elif tags_pct > 30:
        score += 10

    links_pct = percentage(stats.with_links, total)
    if links_pct > 40:
        score += 20
    elif links_pct > 20:
        score += 10

    embedding_pct = percentage(stats.with_embeddings, total)
    if embedding_pct > 80:
        score += 15
    elif embedding_pct > 50:
        score += 8

    high_pct = percentage(stats.by_confidence.get("high", 0), total)
    if high_pct > 50:
        score += 15
    elif high_pct > 25:
        score += 8

    return score
