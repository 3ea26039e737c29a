"""
ChromaDB storage adapter.

Stores entries in a ChromaDB collection instead of plain files:
content goes in the document, vectors in the embedding slot and
everything else in flattened metadata. Useful when a deployment already
runs Chroma or wants its HNSW index for larger corpora.

Usage:
    adapter = ChromaAdapter(
        collection_name="vault",
        persist_directory="./vault_chroma",
        dimension=384,
    )
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Iterator, Optional

from engram_vault.adapters.base import MAX_ENTRY_SIZE, MAX_TOTAL_SIZE, StorageAdapter
from engram_vault.core.errors import DimensionMismatchError, EntryNotFoundError
from engram_vault.core.interfaces import (
    Entry,
    EntrySummary,
    RetrievalResult,
    metadata_matches,
    utcnow,
)


logger = logging.getLogger(__name__)

# Reserved metadata keys; user metadata is stored alongside them
TITLE_KEY = "_vault_title"
UPDATED_KEY = "_vault_updated_at"
SIZE_KEY = "_vault_size"
EMBEDDED_KEY = "_vault_embedded"
RESERVED_KEYS = (TITLE_KEY, UPDATED_KEY, SIZE_KEY, EMBEDDED_KEY)
SCALAR_TYPES = (str, int, float, bool)  # What Chroma metadata stores natively


class ChromaAdapter(StorageAdapter):
    """
    Storage adapter backed by a ChromaDB collection.

    Chroma requires a vector for every record, so entries written
    without an embedding get a placeholder unit vector and are flagged
    as unembedded; semantic search never returns them.
    """

    def __init__(
        self,
        collection_name: str = "engram_vault",
        persist_directory: Optional[str] = None,
        dimension: int = 384,
        max_entry_size: int = MAX_ENTRY_SIZE,
        max_total_size: int = MAX_TOTAL_SIZE,
        virtual_entries: Optional[dict[str, Entry]] = None,
    ):
        """
        Initialize ChromaDB storage.

        Args:
            collection_name: Name of the collection to use
            persist_directory: Path to persist data (None for in-memory)
            dimension: Embedding dimension of the deployment
            max_entry_size: Largest accepted content, in bytes
            max_total_size: Quota for all stored content, in bytes
            virtual_entries: Built-in entries (defaults to the package set)
        """
        super().__init__(max_entry_size, max_total_size, virtual_entries)
        try:
            import chromadb
            from chromadb.config import Settings
        except ImportError:
            raise ImportError(
                "ChromaDB is required for ChromaAdapter. "
                "Install it with: pip install chromadb"
            )

        if persist_directory:
            self._client = chromadb.PersistentClient(
                path=persist_directory,
                settings=Settings(anonymized_telemetry=False),
            )
        else:
            self._client = chromadb.Client(
                settings=Settings(anonymized_telemetry=False),
            )

        self._collection_name = collection_name
        self._collection = self._open_collection()
        self._dimension = dimension

        self._lock = threading.RLock()
        self._index: dict[str, tuple[EntrySummary, dict, bool]] = {}
        self._total_size = 0
        self._build_index()
        logger.info("Opened Chroma collection %s (%d entries)", collection_name, len(self._index))

    def _open_collection(self):
        return self._client.get_or_create_collection(
            name=self._collection_name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=None,
        )

    # ========== Index ==========

    def _build_index(self) -> None:
        with self._lock:
            self._index.clear()
            self._total_size = 0
            results = self._collection.get(include=["metadatas"])
            for path, raw in zip(results["ids"], results["metadatas"] or []):
                summary, metadata, embedded = self._parse_record(path, raw or {})
                self._index[path] = (summary, metadata, embedded)
                self._total_size += summary.size

    def _parse_record(self, path: str, raw: dict) -> tuple[EntrySummary, dict, bool]:
        updated = raw.get(UPDATED_KEY)
        updated_at = datetime.fromisoformat(updated) if updated else datetime.fromtimestamp(0, timezone.utc)
        summary = EntrySummary(
            path=path,
            title=raw.get(TITLE_KEY, ""),
            size=int(raw.get(SIZE_KEY, 0)),
            updated_at=updated_at,
        )
        user = {k: v for k, v in raw.items() if k not in RESERVED_KEYS}
        return summary, self._restore_metadata(user), bool(raw.get(EMBEDDED_KEY, False))

    def _set_record(self, path: str, record: Optional[tuple[EntrySummary, dict, bool]]) -> None:
        previous = self._index.pop(path, None)
        if previous is not None:
            self._total_size -= previous[0].size
        if record is not None:
            self._index[path] = record
            self._total_size += record[0].size

    # ========== CRUD ==========

    def _write(
        self,
        path: str,
        content: str,
        title: str,
        embedding: Optional[list[float]],
        metadata: dict,
    ) -> Entry:
        with self._lock:
            previous = self._index.get(path)
            size = self._check_limits(path, content, previous[0].size if previous else 0)

            embedded = embedding is not None and len(embedding) > 0
            if embedded and len(embedding) != self._dimension:
                raise DimensionMismatchError(self._dimension, len(embedding))
            vector = [float(v) for v in embedding] if embedded else self._placeholder()

            updated_at = utcnow()
            stored = self._clean_metadata(metadata)
            stored.update({
                TITLE_KEY: title,
                UPDATED_KEY: updated_at.isoformat(),
                SIZE_KEY: size,
                EMBEDDED_KEY: embedded,
            })

            self._collection.upsert(
                ids=[path],
                embeddings=[vector],
                metadatas=[stored],
                documents=[content],
            )
            summary = EntrySummary(path=path, title=title, size=size, updated_at=updated_at)
            self._set_record(path, (summary, copy.deepcopy(metadata), embedded))

        logger.debug("Wrote memory://%s to Chroma (%d bytes)", path, size)
        return Entry(
            content=content,
            title=title,
            metadata=metadata,
            embedding=vector if embedded else None,
            updated_at=updated_at,
        )

    def _placeholder(self) -> list[float]:
        return [1.0] + [0.0] * (self._dimension - 1)

    def _read_entry(self, path: str) -> Entry:
        with self._lock:
            results = self._collection.get(
                ids=[path],
                include=["documents", "metadatas", "embeddings"],
            )
            if not results["ids"]:
                self._set_record(path, None)
                raise EntryNotFoundError(path)
            return self._to_entry(
                path,
                results["documents"][0],
                results["metadatas"][0] or {},
                results["embeddings"][0] if results.get("embeddings") is not None else None,
            )

    def _to_entry(self, path: str, document: str, raw: dict, vector) -> Entry:
        summary, metadata, embedded = self._parse_record(path, raw)
        return Entry(
            content=document or "",
            title=summary.title,
            metadata=metadata,
            embedding=[float(v) for v in vector] if embedded and vector is not None else None,
            updated_at=summary.updated_at,
        )

    def _delete(self, path: str) -> None:
        with self._lock:
            if path not in self._index and not self._collection.get(ids=[path])["ids"]:
                raise EntryNotFoundError(path)
            self._collection.delete(ids=[path])
            self._set_record(path, None)
        logger.debug("Deleted memory://%s from Chroma", path)

    def clear(self) -> None:
        """Clear all entries by recreating the collection."""
        with self._lock:
            self._client.delete_collection(self._collection_name)
            self._collection = self._open_collection()
            self._index.clear()
            self._total_size = 0
        logger.info("Cleared Chroma collection %s", self._collection_name)

    # ========== Listing & accounting ==========

    def _summaries(self) -> list[EntrySummary]:
        with self._lock:
            return [summary for summary, _, _ in self._index.values()]

    def _iter_contents(self, path: Optional[str] = None) -> Iterator[tuple[str, str]]:
        with self._lock:
            paths = [p for p in self._index if self._in_subtree(p, path)]
            if not paths:
                return iter(())
            results = self._collection.get(ids=paths, include=["documents"])
        return iter(list(zip(results["ids"], [d or "" for d in results["documents"]])))

    def total_size(self) -> int:
        with self._lock:
            return self._total_size

    def size(self) -> int:
        with self._lock:
            return len(self._index)

    def all_entries(self) -> dict[str, Entry]:
        with self._lock:
            results = self._collection.get(include=["documents", "metadatas", "embeddings"])
            vectors = results.get("embeddings")
            entries = {}
            for i, path in enumerate(results["ids"]):
                entries[path] = self._to_entry(
                    path,
                    results["documents"][i],
                    results["metadatas"][i] or {},
                    vectors[i] if vectors is not None else None,
                )
        return dict(sorted(entries.items()))

    # ========== Search ==========

    def semantic_search(
        self,
        embedding: list[float],
        top_k: int = 5,
        threshold: float = 0.0,
        filters: Optional[dict] = None,
    ) -> list[RetrievalResult]:
        if embedding is None or len(embedding) == 0 or top_k <= 0:
            return []
        if len(embedding) != self._dimension:
            raise DimensionMismatchError(self._dimension, len(embedding))

        with self._lock:
            candidates = [
                p for p, (_, metadata, embedded) in self._index.items()
                if embedded and metadata_matches(metadata, filters)
            ]
            if not candidates:
                return []

            # Only keys every candidate stores as the same plain scalar go to
            # Chroma; list values are JSON strings there and are matched above
            clauses = [{EMBEDDED_KEY: True}]
            for key, value in (filters or {}).items():
                if isinstance(value, SCALAR_TYPES) and all(
                    type(self._index[p][1].get(key)) is type(value) for p in candidates
                ):
                    clauses.append({key: value})
            where = clauses[0] if len(clauses) == 1 else {"$and": clauses}
            embedded_count = sum(1 for _, _, embedded in self._index.values() if embedded)

            results = self._collection.query(
                query_embeddings=[[float(v) for v in embedding]],
                n_results=embedded_count,
                where=where,
                include=["documents", "metadatas", "embeddings", "distances"],
            )

        allowed = set(candidates)
        scored = []
        if results["ids"] and results["ids"][0]:
            vectors = results.get("embeddings")
            for i, path in enumerate(results["ids"][0]):
                if path not in allowed:
                    continue
                # For cosine distance: similarity = 1 - distance
                similarity = 1 - results["distances"][0][i]
                if similarity < threshold:
                    continue
                entry = self._to_entry(
                    path,
                    results["documents"][0][i],
                    results["metadatas"][0][i] or {},
                    vectors[0][i] if vectors is not None else None,
                )
                scored.append(RetrievalResult(
                    path=path, entry=entry, relevance_score=similarity, semantic_score=similarity,
                ))

        scored.sort(key=lambda r: (-r.relevance_score, r.path))
        return scored[:top_k]

    # ========== Metadata encoding ==========

    def _clean_metadata(self, metadata: dict) -> dict:
        """
        Flatten metadata for ChromaDB storage.

        ChromaDB only supports: str, int, float, bool
        Everything else is JSON-serialized with a type marker.
        """
        clean = {}
        for key, value in metadata.items():
            if isinstance(value, SCALAR_TYPES):
                clean[key] = value
            elif value is None:
                clean[key] = "null"
                clean[f"__{key}_type"] = "none"
            elif isinstance(value, (list, tuple)):
                clean[key] = json.dumps(list(value))
                clean[f"__{key}_type"] = "list"
            elif isinstance(value, dict):
                clean[key] = json.dumps(value)
                clean[f"__{key}_type"] = "dict"
            else:
                clean[key] = str(value)
                clean[f"__{key}_type"] = "str"
        return clean

    def _restore_metadata(self, metadata: dict) -> dict:
        """Restore complex types from JSON strings."""
        restored = {}
        for key, value in metadata.items():
            if key.startswith("__") and key.endswith("_type"):
                continue

            type_hint = metadata.get(f"__{key}_type")
            if type_hint == "none":
                restored[key] = None
            elif type_hint in ("list", "dict"):
                try:
                    restored[key] = json.loads(value)
                except json.JSONDecodeError:
                    restored[key] = value
            else:
                restored[key] = value
        return restored
