"""Utility modules for Engram Vault."""

from engram_vault.utils.embeddings import (
    OpenAIEmbeddings,
    LocalEmbeddings,
    ChromaEmbeddings,
    get_default_embeddings,
    get_embeddings,
)
from engram_vault.utils.filelock import FileLock
from engram_vault.utils.logging_config import configure_quiet_mode, enable_debug_logging

__all__ = [
    "OpenAIEmbeddings",
    "LocalEmbeddings",
    "ChromaEmbeddings",
    "get_default_embeddings",
    "get_embeddings",
    "FileLock",
    "configure_quiet_mode",
    "enable_debug_logging",
]
