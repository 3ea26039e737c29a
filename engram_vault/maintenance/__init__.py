"""Read-only maintenance analysis."""

from engram_vault.maintenance.analyzer import Analyzer, CorpusStats
from engram_vault.maintenance.defragmenter import (
    Defragmenter,
    DefragReport,
    DuplicatePair,
    LowQualityEntry,
    ArchivalCandidate,
    RelatedPair,
)

__all__ = [
    "Analyzer",
    "CorpusStats",
    "Defragmenter",
    "DefragReport",
    "DuplicatePair",
    "LowQualityEntry",
    "ArchivalCandidate",
    "RelatedPair",
]
