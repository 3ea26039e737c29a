"""
Read-only vault maintenance analysis.

Defragmenter inspects the whole corpus and recommends cleanup without
ever changing an entry:

- Duplicates: pairs whose content overlap or vector similarity is
  above a threshold
- Low quality: entries missing a type or tags, too short, or carrying
  low confidence
- Archival candidates: entries not updated for a number of days
- Health score: a 0-100 summary of the three checks above
- Related pairs: entries similar enough to be worth cross-linking but
  not so similar that they look like duplicates

Every check is O(n^2) at worst over a snapshot from all_entries(); run
it as an explicit maintenance step, not on a hot path.

Usage:
    defrag = Defragmenter(adapter)
    report = defrag.full_analysis()
    print(report.to_markdown())
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from itertools import combinations
from typing import Optional

import numpy as np

from engram_vault.adapters.base import StorageAdapter
from engram_vault.core.errors import format_bytes
from engram_vault.core.interfaces import Entry, EntryMetadata, EmbeddingProvider
from engram_vault.maintenance.analyzer import Analyzer, CorpusStats, interpret_score
from engram_vault.search.similarity import cosine_matrix, tokenize


logger = logging.getLogger(__name__)

DEFAULT_DUPLICATE_THRESHOLD = 0.6
DEFAULT_MIN_CONTENT_LENGTH = 50
DEFAULT_ARCHIVAL_AGE_DAYS = 90
DEFAULT_RELATED_MIN = 0.60
DEFAULT_RELATED_MAX = 0.85

CONFIDENCE_LEVELS = {"low": 0, "medium": 1, "high": 2}


@dataclass
class DuplicatePair:
    path1: str
    path2: str
    similarity: float  # max of text and semantic similarity
    text_similarity: float
    semantic_similarity: Optional[float]
    title1: str = ""
    title2: str = ""
    size1: int = 0
    size2: int = 0


@dataclass
class LowQualityEntry:
    path: str
    title: str
    issues: list[str]
    confidence: str
    quality_score: int


@dataclass
class ArchivalCandidate:
    path: str
    title: str
    age_days: int
    size: int
    confidence: str
    last_verified: Optional[str] = None


@dataclass
class RelatedPair:
    path1: str
    path2: str
    similarity: float
    title1: str = ""
    title2: str = ""
    type1: str = "unknown"
    type2: str = "unknown"
    linked_1_to_2: bool = False
    linked_2_to_1: bool = False

    @property
    def already_linked(self) -> bool:
        return self.linked_1_to_2 and self.linked_2_to_1

    @property
    def link_status(self) -> str:
        if self.already_linked:
            return "already_linked"
        if self.linked_1_to_2:
            return "linked_1_to_2"
        if self.linked_2_to_1:
            return "linked_2_to_1"
        return "unlinked"


@dataclass
class DefragReport:
    """Combined result of every maintenance check."""

    stats: CorpusStats
    duplicates: list[DuplicatePair] = field(default_factory=list)
    low_quality: list[LowQualityEntry] = field(default_factory=list)
    archival: list[ArchivalCandidate] = field(default_factory=list)
    related: list[RelatedPair] = field(default_factory=list)
    health_score: int = 100
    duplicate_threshold: float = DEFAULT_DUPLICATE_THRESHOLD
    archival_age_days: int = DEFAULT_ARCHIVAL_AGE_DAYS

    def to_markdown(self) -> str:
        sections = [
            self.stats.to_markdown(),
            "",
            f"## Health Score: {self.health_score}/100",
            interpret_score(self.health_score),
            "",
            format_duplicates(self.duplicates, self.duplicate_threshold),
            "",
            format_low_quality(self.low_quality),
            "",
            format_archival(self.archival, self.archival_age_days),
        ]
        if self.related:
            sections.extend(["", format_related(self.related)])
        return "\n".join(sections)


class Defragmenter:
    """
    Maintenance checks over a storage adapter.

    Never writes, deletes or links anything; every method returns
    recommendations for the caller to act on.
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        embeddings: Optional[EmbeddingProvider] = None,
        duplicate_threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
        min_content_length: int = DEFAULT_MIN_CONTENT_LENGTH,
        archival_age_days: int = DEFAULT_ARCHIVAL_AGE_DAYS,
        related_min: float = DEFAULT_RELATED_MIN,
        related_max: float = DEFAULT_RELATED_MAX,
    ):
        """
        Args:
            adapter: Back end to analyze
            embeddings: When set, unembedded entries are reported as low quality
            duplicate_threshold: Default similarity at which a pair is a duplicate
            min_content_length: Default minimum content size, in bytes
            archival_age_days: Default age after which an entry is an archival candidate
            related_min: Default lower bound (inclusive) of the related band
            related_max: Default upper bound (exclusive) of the related band

        The defaults apply whenever a check is called without its own value.
        """
        self._adapter = adapter
        self._embeddings = embeddings
        self._analyzer = Analyzer(adapter)
        self.duplicate_threshold = duplicate_threshold
        self.min_content_length = min_content_length
        self.archival_age_days = archival_age_days
        self.related_min = related_min
        self.related_max = related_max

    def _snapshot(self, entries: Optional[dict[str, Entry]]) -> dict[str, Entry]:
        return self._adapter.all_entries() if entries is None else entries

    # ========== Checks ==========

    def find_duplicates(
        self,
        threshold: Optional[float] = None,
        entries: Optional[dict[str, Entry]] = None,
    ) -> list[DuplicatePair]:
        """
        Find pairs of entries that look like duplicates.

        Similarity is the higher of content token overlap and, when both
        entries carry vectors, cosine similarity.

        Returns:
            Pairs sorted by similarity (highest first)
        """
        if threshold is None:
            threshold = self.duplicate_threshold
        entries = self._snapshot(entries)
        paths = sorted(entries)
        if len(paths) < 2:
            return []

        tokens = {p: tokenize(entries[p].content) for p in paths}
        semantic = _pairwise_cosine(entries, paths)

        duplicates = []
        for path1, path2 in combinations(paths, 2):
            a, b = tokens[path1], tokens[path2]
            union = a | b
            # Content without tokens has no text overlap with anything
            text_sim = len(a & b) / len(union) if union else 0.0
            semantic_sim = semantic.get((path1, path2))
            similarity = max(text_sim, semantic_sim) if semantic_sim is not None else text_sim
            if similarity < threshold:
                continue

            entry1, entry2 = entries[path1], entries[path2]
            duplicates.append(DuplicatePair(
                path1=path1,
                path2=path2,
                similarity=similarity,
                text_similarity=text_sim,
                semantic_similarity=semantic_sim,
                title1=entry1.title,
                title2=entry2.title,
                size1=entry1.size,
                size2=entry2.size,
            ))

        duplicates.sort(key=lambda d: (-d.similarity, d.path1, d.path2))
        return duplicates

    def find_low_quality(
        self,
        min_content_length: Optional[int] = None,
        confidence_filter: str = "low",
        entries: Optional[dict[str, Entry]] = None,
    ) -> list[LowQualityEntry]:
        """
        Find entries missing required metadata or with too little content.

        Args:
            min_content_length: Entries shorter than this many bytes are flagged
            confidence_filter: Flag entries at or below this confidence
                ("low", "medium" or "high")

        Returns:
            Flagged entries sorted by quality score (worst first)
        """
        if min_content_length is None:
            min_content_length = self.min_content_length
        entries = self._snapshot(entries)
        filter_level = CONFIDENCE_LEVELS.get(confidence_filter, 0)
        flagged = []

        for path in sorted(entries):
            entry = entries[path]
            info = EntryMetadata.from_dict(entry.metadata)

            issues = []
            if not entry.metadata:
                issues.append("No metadata")
            if info.type is None and "type" not in info.extra:
                issues.append("No type specified")
            if not info.tags:
                issues.append("No tags")
            if entry.size < min_content_length:
                issues.append(f"Content too short ({entry.size} < {min_content_length} bytes)")
            if info.confidence in CONFIDENCE_LEVELS and CONFIDENCE_LEVELS[info.confidence] <= filter_level:
                issues.append(f"Confidence: {info.confidence}")
            if self._embeddings is not None and not entry.embedded:
                issues.append("Not embedded")

            if not issues:
                continue
            flagged.append(LowQualityEntry(
                path=path,
                title=entry.title,
                issues=issues,
                confidence=info.confidence or "unknown",
                quality_score=info.quality_score(),
            ))

        flagged.sort(key=lambda e: (e.quality_score, e.path))
        return flagged

    def find_archival_candidates(
        self,
        age_days: Optional[int] = None,
        now: Optional[datetime] = None,
        entries: Optional[dict[str, Entry]] = None,
    ) -> list[ArchivalCandidate]:
        """
        Find entries not updated for at least ``age_days`` days.

        Returns:
            Candidates sorted oldest first
        """
        if age_days is None:
            age_days = self.archival_age_days
        entries = self._snapshot(entries)
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=age_days)

        candidates = []
        for path in sorted(entries):
            entry = entries[path]
            if entry.updated_at >= cutoff:
                continue
            info = EntryMetadata.from_dict(entry.metadata)
            candidates.append(ArchivalCandidate(
                path=path,
                title=entry.title,
                age_days=(now - entry.updated_at).days,
                size=entry.size,
                confidence=info.confidence or "unknown",
                last_verified=info.last_verified,
            ))

        candidates.sort(key=lambda c: (-c.age_days, c.path))
        return candidates

    def find_related(
        self,
        min_threshold: Optional[float] = None,
        max_threshold: Optional[float] = None,
        entries: Optional[dict[str, Entry]] = None,
    ) -> list[RelatedPair]:
        """
        Suggest pairs worth cross-linking.

        Pairs qualify when the cosine similarity of their vectors falls in
        ``[min_threshold, max_threshold)``. Existing ``related`` links are
        reported so the caller can add only the missing direction.
        """
        if min_threshold is None:
            min_threshold = self.related_min
        if max_threshold is None:
            max_threshold = self.related_max
        entries = self._snapshot(entries)
        paths = sorted(entries)
        semantic =_pairwise_cosine(entries, paths)

        pairs = []
        for (path1, path2), similarity in semantic.items():
            if similarity < min_threshold or similarity >= max_threshold:
                continue
            entry1, entry2 = entries[path1], entries[path2]
            info1, info2 = entry1.info, entry2.info
            related1 = {_strip_scheme(r) for r in info1.related}
            related2 = {_strip_scheme(r) for r in info2.related}
            pairs.append(RelatedPair(
                path1=path1,
                path2=path2,
                similarity=similarity,
                title1=entry1.title,
                title2=entry2.title,
                type1=info1.type.value if info1.type else "unknown",
                type2=info2.type.value if info2.type else "unknown",
                linked_1_to_2=path2 in related1,
                linked_2_to_1=path1 in related2,
            ))

        pairs.sort(key=lambda p: (-p.similarity, p.path1, p.path2))
        return pairs

    # ========== Summary ==========

    def health_score(
        self,
        total: int,
        duplicates: list[DuplicatePair],
        low_quality: list[LowQualityEntry],
        archival: list[ArchivalCandidate],
    ) -> int:
        """
        Combine check results into a 0-100 score.

        Each check contributes the share of the corpus it flags, weighted
        40% for low quality, 35% for duplicates and 25% for archival.
        An empty vault scores 100.
        """
        if total == 0:
            return 100
        duplicate_paths = {d.path1 for d in duplicates} | {d.path2 for d in duplicates}
        penalty = (
            0.40 * len(low_quality) / total
            + 0.35 * len(duplicate_paths) / total
            + 0.25 * len(archival) / total
        )
        return max(0, min(100, round(100 * (1 - penalty))))

    def full_analysis(
        self,
        duplicate_threshold: Optional[float] = None,
        min_content_length: Optional[int] = None,
        age_days: Optional[int] = None,
        confidence_filter: str = "low",
        include_related: bool = False,
        related_min: Optional[float] = None,
        related_max: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> DefragReport:
        """
        Run every check against a single snapshot.

        Returns:
            DefragReport with statistics, each check's findings and the
            composite health score
        """
        if duplicate_threshold is None:
            duplicate_threshold = self.duplicate_threshold
        if age_days is None:
            age_days = self.archival_age_days
        entries = self._adapter.all_entries()
        duplicates = self.find_duplicates(duplicate_threshold, entries=entries)
        low_quality = self.find_low_quality(min_content_length, confidence_filter, entries=entries)
        archival = self.find_archival_candidates(age_days, now=now, entries=entries)
        related = self.find_related(related_min, related_max, entries=entries) if include_related else []

        report = DefragReport(
            stats=self._analyzer.analyze(entries),
            duplicates=duplicates,
            low_quality=low_quality,
            archival=archival,
            related=related,
            health_score=self.health_score(len(entries), duplicates, low_quality, archival),
            duplicate_threshold=duplicate_threshold,
            archival_age_days=age_days,
        )
        logger.info(
            "Defrag analysis: %d entries, %d duplicate pairs, %d low quality, %d archival, health %d",
            len(entries), len(duplicates), len(low_quality), len(archival), report.health_score,
        )
        return report


def _strip_scheme(path: str) -> str:
    return path[len("memory://"):] if path.startswith("memory://") else path


def _pairwise_cosine(entries: dict[str, Entry], paths: list[str]) -> dict[tuple[str, str], float]:
    """
    Cosine similarity for every pair of embedded entries.

    Only vectors sharing the most common dimension are compared; the
    rest were produced by a different embedder and are not comparable.
    """
    embedded = [p for p in paths if entries[p].embedded]
    if len(embedded) < 2:
        return {}

    dims = {}
    for p in embedded:
        dims.setdefault(len(entries[p].embedding), []).append(p)
    comparable = max(dims.values(), key=len)
    if len(comparable) < len(embedded):
        logger.warning("Ignoring %d vectors with a non-standard dimension", len(embedded) - len(comparable))

    matrix = cosine_matrix(np.asarray([entries[p].embedding for p in comparable], dtype=np.float64))
    return {
        (comparable[i], comparable[j]): float(matrix[i, j])
        for i, j in combinations(range(len(comparable)), 2)
    }


# ========== Formatting ==========

def format_duplicates(duplicates: list[DuplicatePair], threshold: float) -> str:
    if not duplicates:
        return f"No duplicate entries found above {round(threshold * 100)}% similarity."

    lines = [f"## Potential Duplicates ({len(duplicates)} pairs)", ""]
    for d in duplicates:
        semantic = f", semantic {d.semantic_similarity:.0%}" if d.semantic_similarity is not None else ""
        lines.append(f"- {d.similarity:.0%} similar (text {d.text_similarity:.0%}{semantic})")
        lines.append(f"  - memory://{d.path1} \"{d.title1}\" ({format_bytes(d.size1)})")
        lines.append(f"  - memory://{d.path2} \"{d.title2}\" ({format_bytes(d.size2)})")
    return "\n".join(lines)


def format_low_quality(entries: list[LowQualityEntry]) -> str:
    if not entries:
        return "All entries have good quality metadata."

    lines = [f"## Low-Quality Entries ({len(entries)} entries)", ""]
    for e in entries:
        lines.append(f"- memory://{e.path} \"{e.title}\" (quality {e.quality_score}/100)")
        lines.append(f"  Issues: {', '.join(e.issues)}")
    return "\n".join(lines)


def format_archival(candidates: list[ArchivalCandidate], age_days: int) -> str:
    if not candidates:
        return f"No entries older than {age_days} days found."

    total_size = sum(c.size for c in candidates)
    lines = [
        f"## Archival Candidates ({len(candidates)} entries older than {age_days} days)",
        "",
    ]
    for c in candidates:
        verified = f", last verified {c.last_verified}" if c.last_verified else ""
        lines.append(f"- memory://{c.path} \"{c.title}\" ({c.age_days} days old{verified})")
    lines.append("")
    lines.append(f"Archiving would free {format_bytes(total_size)}.")
    return "\n".join(lines)


def format_related(pairs: list[RelatedPair]) -> str:
    lines = [f"## Related Entries ({len(pairs)} pairs)", ""]
    for p in pairs:
        lines.append(f"- {p.similarity:.0%} memory://{p.path1} <-> memory://{p.path2} [{p.link_status}]")
    return "\n".join(lines)
