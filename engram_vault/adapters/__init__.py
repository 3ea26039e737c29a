"""Storage adapters for Engram Vault."""

from engram_vault.adapters.base import StorageAdapter, MAX_ENTRY_SIZE, MAX_TOTAL_SIZE
from engram_vault.adapters.filesystem import FilesystemAdapter
from engram_vault.adapters.chroma import ChromaAdapter

__all__ = [
    "StorageAdapter",
    "MAX_ENTRY_SIZE",
    "MAX_TOTAL_SIZE",
    "FilesystemAdapter",
    "ChromaAdapter",
]
