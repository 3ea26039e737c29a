"""Core types, errors and path helpers for Engram Vault."""

from engram_vault.core.errors import (
    VaultError,
    ConfigurationError,
    InvalidPathError,
    EntryNotFoundError,
    EntryTooLargeError,
    StorageFullError,
    DimensionMismatchError,
    InvalidPatternError,
    CorruptedMetadataError,
    LockError,
    VirtualEntryError,
)
from engram_vault.core.interfaces import (
    EntryType,
    SkillSpec,
    EntryMetadata,
    Entry,
    EntrySummary,
    GrepResult,
    RetrievalResult,
    EmbeddingProvider,
)
from engram_vault.core.paths import normalize_path, glob_to_regex
from engram_vault.core.read_tracker import ReadTracker
from engram_vault.core.virtual import VIRTUAL_ENTRIES, get_virtual_entry, is_virtual

__all__ = [
    # Errors
    "VaultError",
    "ConfigurationError",
    "InvalidPathError",
    "EntryNotFoundError",
    "EntryTooLargeError",
    "StorageFullError",
    "DimensionMismatchError",
    "InvalidPatternError",
    "CorruptedMetadataError",
    "LockError",
    "VirtualEntryError",
    # Types
    "EntryType",
    "SkillSpec",
    "EntryMetadata",
    "Entry",
    "EntrySummary",
    "GrepResult",
    "RetrievalResult",
    "EmbeddingProvider",
    # Paths
    "normalize_path",
    "glob_to_regex",
    # Reads and built-ins
    "ReadTracker",
    "VIRTUAL_ENTRIES",
    "get_virtual_entry",
    "is_virtual",
]
