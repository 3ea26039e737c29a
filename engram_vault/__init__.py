"""
Engram Vault - Persistent knowledge store for AI agents.

Agents write what they learn as markdown entries addressed by
hierarchical paths (``concept/ruby/classes.md``), read them back in
later sessions, and find them again by glob, regex or meaning.

Pieces:
- Storage: async façade that embeds entries on write
- Adapters: filesystem (default) or ChromaDB persistence
- SemanticIndex: hybrid vector and keyword search
- Defragmenter: read-only duplicate, quality and staleness report
- ReadTracker: which caller has read which entry

Quick Start:
    from engram_vault import Storage, FilesystemAdapter, ReadTracker
    from engram_vault.utils import LocalEmbeddings

    storage = Storage(
        adapter=FilesystemAdapter("./vault"),
        embeddings=LocalEmbeddings(),
        read_tracker=ReadTracker(),
    )
    await storage.write(
        "concept/ruby/classes.md",
        "Ruby classes are open and can be reopened at runtime.",
        title="Ruby classes",
        metadata={"type": "concept", "tags": ["ruby"]},
    )
    results = await storage.search("reopening classes", top_k=3)
"""

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
    EntryMetadata,
    Entry,
    EntrySummary,
    GrepResult,
    RetrievalResult,
    EmbeddingProvider,
)
from engram_vault.core.read_tracker import ReadTracker
from engram_vault.adapters.base import StorageAdapter
from engram_vault.adapters.filesystem import FilesystemAdapter
from engram_vault.adapters.chroma import ChromaAdapter
from engram_vault.search.semantic_index import SemanticIndex
from engram_vault.maintenance.analyzer import Analyzer
from engram_vault.maintenance.defragmenter import Defragmenter, DefragReport
from engram_vault.storage import Storage
from engram_vault.config import VaultConfig, load_config, create_adapter, create_defragmenter, create_storage

__version__ = "0.1.0"

__all__ = [
    # Core types
    "EntryType",
    "EntryMetadata",
    "Entry",
    "EntrySummary",
    "GrepResult",
    "RetrievalResult",
    "EmbeddingProvider",
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
    # Storage
    "Storage",
    "StorageAdapter",
    "FilesystemAdapter",
    "ChromaAdapter",
    "ReadTracker",
    # Search and maintenance
    "SemanticIndex",
    "Analyzer",
    "Defragmenter",
    "DefragReport",
    # Configuration
    "VaultConfig",
    "load_config",
    "create_adapter",
    "create_storage",
    "create_defragmenter",
]
