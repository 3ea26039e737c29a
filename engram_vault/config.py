"""
Configuration for Engram Vault.

Dataclasses for the store, search, embedding and maintenance settings,
plus load_config() for reading a JSON or YAML file and factories that
turn a config into a ready-to-use adapter or Storage.

Example vault.yml:

    store:
      backend: filesystem
      directory: ./vault
      max_entry_size: 3000000
    search:
      semantic_weight: 0.6
      keyword_weight: 0.4
    embedding:
      provider: local
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from engram_vault.adapters.base import MAX_ENTRY_SIZE, MAX_TOTAL_SIZE, StorageAdapter
from engram_vault.core.errors import ConfigurationError
from engram_vault.core.interfaces import EmbeddingProvider
from engram_vault.core.read_tracker import ReadTracker


logger = logging.getLogger(__name__)

BACKENDS = ("filesystem", "chroma")
EMBEDDING_PROVIDERS = ("auto", "local", "openai", "chroma", "none")


def _check_range(errors: list[str], name: str, value, lo, hi, typ=None) -> None:
    """Append an error message if value is out of [lo, hi] or wrong type."""
    if typ is not None and (not isinstance(value, typ) or isinstance(value, bool)):
        expected = "/".join(t.__name__ for t in typ) if isinstance(typ, tuple) else typ.__name__
        errors.append(f"{name}: expected {expected}, got {type(value).__name__}")
        return
    if value < lo or value > hi:
        errors.append(f"{name}: {value} not in [{lo}, {hi}]")


@dataclass
class StoreConfig:
    """Where and how entries are persisted."""
    backend: str = "filesystem"
    directory: str = "./vault"
    collection_name: str = "engram_vault"  # chroma only
    dimension: int = 384  # chroma only
    max_entry_size: int = MAX_ENTRY_SIZE
    max_total_size: int = MAX_TOTAL_SIZE

    def validate(self) -> list[str]:
        errors: list[str] = []
        if self.backend not in BACKENDS:
            errors.append(f"store.backend: {self.backend!r} not one of {', '.join(BACKENDS)}")
        if not self.directory:
            errors.append("store.directory: must not be empty")
        _check_range(errors, "store.max_entry_size", self.max_entry_size, 1, 10**12, int)
        _check_range(errors, "store.max_total_size", self.max_total_size, 1, 10**15, int)
        _check_range(errors, "store.dimension", self.dimension, 1, 65536, int)
        return errors


@dataclass
class SearchConfig:
    """Hybrid search weights and defaults."""
    semantic_weight: float = 0.5
    keyword_weight: float = 0.5
    default_top_k: int = 5
    default_threshold: float = 0.0

    def validate(self) -> list[str]:
        errors: list[str] = []
        _check_range(errors, "search.semantic_weight", self.semantic_weight, 0.0, 1.0, (int, float))
        _check_range(errors, "search.keyword_weight", self.keyword_weight, 0.0, 1.0, (int, float))
        _check_range(errors, "search.default_top_k", self.default_top_k, 1, 1000, int)
        _check_range(errors, "search.default_threshold", self.default_threshold, 0.0, 1.0, (int, float))
        if not errors and self.semantic_weight + self.keyword_weight == 0:
            errors.append("search: semantic_weight and keyword_weight cannot both be 0")
        return errors


@dataclass
class EmbeddingConfig:
    """Which embedder to build."""
    provider: str = "auto"
    model: Optional[str] = None

    def __post_init__(self):
        if self.model is None:
            self.model = os.getenv("ENGRAM_EMBEDDING_MODEL")

    def validate(self) -> list[str]:
        if self.provider not in EMBEDDING_PROVIDERS:
            return [f"embedding.provider: {self.provider!r} not one of {', '.join(EMBEDDING_PROVIDERS)}"]
        return []


@dataclass
class DefragConfig:
    """Thresholds for maintenance analysis."""
    duplicate_threshold: float = 0.6
    min_content_length: int = 50
    archival_age_days: int = 90
    related_min: float = 0.60
    related_max: float = 0.85

    def validate(self) -> list[str]:
        errors: list[str] = []
        _check_range(errors, "defrag.duplicate_threshold", self.duplicate_threshold, 0.0, 1.0, (int, float))
        _check_range(errors, "defrag.min_content_length", self.min_content_length, 0, 10**6, int)
        _check_range(errors, "defrag.archival_age_days", self.archival_age_days, 1, 36500, int)
        _check_range(errors, "defrag.related_min", self.related_min, 0.0, 1.0, (int, float))
        _check_range(errors, "defrag.related_max", self.related_max, 0.0, 1.0, (int, float))
        if not errors and self.related_min >= self.related_max:
            errors.append("defrag: related_min must be below related_max")
        return errors


@dataclass
class VaultConfig:
    """Top-level configuration."""
    store: StoreConfig = field(default_factory=StoreConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    defrag: DefragConfig = field(default_factory=DefragConfig)

    SECTIONS = {
        "store": StoreConfig,
        "search": SearchConfig,
        "embedding": EmbeddingConfig,
        "defrag": DefragConfig,
    }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> VaultConfig:
        """
        Build config from a nested dict.

        Raises:
            ConfigurationError: unknown section or key
        """
        kwargs: dict[str, Any] = {}
        for name, value in (d or {}).items():
            section = cls.SECTIONS.get(name)
            if section is None:
                raise ConfigurationError(f"Unknown config section: {name!r}")
            if not isinstance(value, dict):
                raise ConfigurationError(f"Config section {name!r} must be a mapping")
            known = {f.name for f in fields(section)}
            unknown = sorted(set(value) - known)
            if unknown:
                raise ConfigurationError(f"Unknown keys in {name!r}: {', '.join(unknown)}")
            kwargs[name] = section(**value)
        return cls(**kwargs)

    def validate(self) -> list[str]:
        errors: list[str] = []
        errors.extend(self.store.validate())
        errors.extend(self.search.validate())
        errors.extend(self.embedding.validate())
        errors.extend(self.defrag.validate())
        return errors


def load_config(path: Optional[str] = None, *, strict: bool = False) -> VaultConfig:
    """
    Load config from a JSON or YAML file.

    Args:
        path: Config file (.json, .yml or .yaml). None or a missing
            file yields the defaults.
        strict: Raise ConfigurationError on unreadable or invalid
            config instead of logging a warning and using defaults.
    """
    if path is None or not Path(path).exists():
        return VaultConfig()

    try:
        text = Path(path).read_text(encoding="utf-8")
        if Path(path).suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path}: top level must be a mapping")
        config = VaultConfig.from_dict(data)
    except (OSError, ValueError, yaml.YAMLError, TypeError) as e:
        if strict:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(f"Cannot load config {path}: {e}") from e
        logger.warning("Ignoring config %s: %s", path, e)
        return VaultConfig()

    errors = config.validate()
    if errors:
        if strict:
            raise ConfigurationError("; ".join(errors))
        logger.warning("Invalid config %s, using defaults: %s", path, "; ".join(errors))
        return VaultConfig()
    return config


# ========== Factories ==========

def create_adapter(config: Optional[VaultConfig] = None) -> StorageAdapter:
    """Build the storage adapter named by ``config.store.backend``."""
    config = config or VaultConfig()
    errors = config.store.validate()
    if errors:
        raise ConfigurationError("; ".join(errors))

    store = config.store
    if store.backend == "filesystem":
        from engram_vault.adapters.filesystem import FilesystemAdapter

        return FilesystemAdapter(
            store.directory,
            max_entry_size=store.max_entry_size,
            max_total_size=store.max_total_size,
        )

    from engram_vault.adapters.chroma import ChromaAdapter

    return ChromaAdapter(
        collection_name=store.collection_name,
        persist_directory=store.directory,
        dimension=store.dimension,
        max_entry_size=store.max_entry_size,
        max_total_size=store.max_total_size,
    )


def create_storage(
    config: Optional[VaultConfig] = None,
    embeddings: Optional[EmbeddingProvider] = None,
    read_tracker: Optional[ReadTracker] = None,
):
    """
    Build a Storage from config.

    Args:
        config: Vault configuration (defaults if None)
        embeddings: Explicit embedder; when None one is built from
            ``config.embedding``
        read_tracker: Shared read tracker for the host process
    """
    from engram_vault.storage import Storage
    from engram_vault.utils.embeddings import get_embeddings

    config = config or VaultConfig()
    errors = config.validate()
    if errors:
        raise ConfigurationError("; ".join(errors))

    if embeddings is None:
        embeddings = get_embeddings(config.embedding.provider, config.embedding.model)

    return Storage(
        adapter=create_adapter(config),
        embeddings=embeddings,
        read_tracker=read_tracker,
        semantic_weight=config.search.semantic_weight,
        keyword_weight=config.search.keyword_weight,
        default_top_k=config.search.default_top_k,
        default_threshold=config.search.default_threshold,
    )


def create_defragmenter(
    config: Optional[VaultConfig] = None,
    adapter: Optional[StorageAdapter] = None,
    embeddings: Optional[EmbeddingProvider] = None,
):
    """
    Build a Defragmenter with the thresholds from ``config.defrag``.

    Args:
        config: Vault configuration (defaults if None)
        adapter: Back end to analyze; when None one is built from
            ``config.store``
        embeddings: When set, unembedded entries count as low quality
    """
    from engram_vault.maintenance.defragmenter import Defragmenter

    config = config or VaultConfig()
    errors = config.defrag.validate()
    if errors:
        raise ConfigurationError("; ".join(errors))

    defrag = config.defrag
    return Defragmenter(
        adapter if adapter is not None else create_adapter(config),
        embeddings=embeddings,
        duplicate_threshold=defrag.duplicate_threshold,
        min_content_length=defrag.min_content_length,
        archival_age_days=defrag.archival_age_days,
        related_min=defrag.related_min,
        related_max=defrag.related_max,
    )
