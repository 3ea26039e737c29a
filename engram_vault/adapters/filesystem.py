"""
Filesystem storage adapter.

Each entry is stored as up to three files in one flat directory:

    fact%2Fapi.md.yml                metadata (title, size, version, checksum)
    fact%2Fapi.md.<version>.md       content (UTF-8 markdown)
    fact%2Fapi.md.<version>.emb      embedding as packed little-endian float32

The file stem is the logical path percent-encoded with no safe
characters, so ``/`` becomes ``%2F`` and the original path is recovered
with ``unquote``. Keeping the vector in its own file means listing never
touches embeddings.

Content and vector files carry a random version that the metadata file
names. A write puts the new versioned files in place first and renames
the metadata file over the old one last, so that rename is the single
point at which readers switch from the previous entry to the new one.
Files of superseded versions are removed after the rename; anything left
behind by an interrupted write is swept when the directory is opened.

Every file is written to a temporary name in the same directory and
renamed into place. Writers are serialized by an in-process lock and a
``.lock`` file shared with other processes using the same directory.

Usage:
    adapter = FilesystemAdapter("./vault")
    adapter.write("fact/api.md", "The API lives at /v2", "API location")
    adapter.read("fact/api.md")
"""

from __future__ import annotations

import contextlib
import copy
import hashlib
import logging
import os
import re
import tempfile
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional
from urllib.parse import quote, unquote

import numpy as np
import yaml

from engram_vault.adapters.base import MAX_ENTRY_SIZE, MAX_TOTAL_SIZE, StorageAdapter
from engram_vault.core.errors import (
    CorruptedMetadataError,
    DimensionMismatchError,
    EntryNotFoundError,
    InvalidPathError,
)
from engram_vault.core.interfaces import (
    Entry,
    EntrySummary,
    RetrievalResult,
    metadata_matches,
    utcnow,
)
from engram_vault.utils.filelock import FileLock


logger = logging.getLogger(__name__)

CONTENT_SUFFIX = ".md"
METADATA_SUFFIX = ".yml"
EMBEDDING_SUFFIX = ".emb"
LOCK_FILENAME = ".lock"
TEMP_SUFFIX = ".tmp"

VECTOR_DTYPE = np.dtype("<f4")
VERSION_PATTERN = re.compile(r"[0-9a-f]{12}")
MAX_STEM_BYTES = 236  # Room for ".<version>.emb" under the usual 255 byte limit
READ_ATTEMPTS = 5


def path_to_stem(path: str) -> str:
    return quote(path, safe="")


def stem_to_path(stem: str) -> str:
    return unquote(stem)


def new_version() -> str:
    return uuid.uuid4().hex[:12]


def artifact_name(path: str, suffix: str, version: Optional[str] = None) -> str:
    """File name of one artifact. Content and vector files carry a version."""
    stem = path_to_stem(path)
    return f"{stem}.{version}{suffix}" if version else stem + suffix


def split_artifact(name: str) -> Optional[tuple[str, str]]:
    """(stem, version) of a versioned content or vector file name, else None."""
    for suffix in (CONTENT_SUFFIX, EMBEDDING_SUFFIX):
        if name.endswith(suffix):
            stem, _, version = name[: -len(suffix)].rpartition(".")
            if stem and VERSION_PATTERN.fullmatch(version):
                return stem, version
    return None


def pack_embedding(embedding: list[float]) -> bytes:
    return np.asarray(embedding, dtype=VECTOR_DTYPE).tobytes()


def unpack_embedding(data: bytes) -> list[float]:
    return np.frombuffer(data, dtype=VECTOR_DTYPE).astype(float).tolist()


def embedding_checksum(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


@dataclass
class IndexRecord:
    """What the in-memory index keeps per entry."""

    title: str
    size: int
    updated_at: datetime
    version: str
    metadata: dict = field(default_factory=dict)
    embedding_checksum: Optional[str] = None
    embedding_dimension: Optional[int] = None

    @property
    def embedded(self) -> bool:
        return self.embedding_checksum is not None


class FilesystemAdapter(StorageAdapter):
    """
    Reference storage adapter persisting entries as files.

    The index of path -> IndexRecord is built once at startup and kept
    in sync on every write and delete, so listing and size accounting
    never rescan the directory. Another process writing to the same
    directory becomes visible here when the affected path is read.
    """

    def __init__(
        self,
        directory: str,
        max_entry_size: int = MAX_ENTRY_SIZE,
        max_total_size: int = MAX_TOTAL_SIZE,
        virtual_entries: Optional[dict[str, Entry]] = None,
    ):
        """
        Open (or create) a storage directory.

        Args:
            directory: Where entries are stored
            max_entry_size: Largest accepted content, in bytes
            max_total_size: Quota for all stored content, in bytes
            virtual_entries: Built-in entries (defaults to the package set)

        Raises:
            LockError: the lock file cannot be created
        """
        super().__init__(max_entry_size, max_total_size, virtual_entries)

        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._file_lock = FileLock(self._directory / LOCK_FILENAME)

        self._index: dict[str, IndexRecord] = {}
        self._vectors: dict[str, np.ndarray] = {}  # Lazily loaded by semantic_search
        self._total_size = 0

        self._build_index()
        logger.info("Opened vault at %s (%d entries)", self._directory, len(self._index))

    @property
    def directory(self) -> Path:
        return self._directory

    # ========== Index ==========

    def _build_index(self) -> None:
        """Scan metadata files once, skipping any that cannot be parsed."""
        with self._lock, self._file_lock:
            self._index.clear()
            self._vectors.clear()
            self._total_size = 0

            for meta_file in sorted(self._directory.glob(f"*{METADATA_SUFFIX}")):
                path = stem_to_path(meta_file.name[: -len(METADATA_SUFFIX)])
                try:
                    record = self._load_record(path)
                except CorruptedMetadataError as e:
                    logger.warning("Skipping entry: %s", e)
                    continue
                except EntryNotFoundError:
                    continue
                if not self._artifact(path, CONTENT_SUFFIX, record.version).exists():
                    logger.warning("Skipping memory://%s: content file is missing", path)
                    continue
                self._index[path] = record
                self._total_size += record.size

            self._remove_stale_artifacts()

    def _remove_stale_artifacts(self) -> None:
        """Delete versioned files no metadata file points to. Caller holds the file lock."""
        for artifact in self._directory.iterdir():
            parts = split_artifact(artifact.name)
            if parts is None:
                continue
            stem, version = parts
            record = self._index.get(stem_to_path(stem))
            if record is not None:
                stale = record.version != version
            else:
                stale = not (self._directory / (stem + METADATA_SUFFIX)).exists()
            if stale:
                logger.debug("Removing leftover %s", artifact.name)
                with contextlib.suppress(FileNotFoundError):
                    artifact.unlink()

    def _load_record(self, path: str) -> IndexRecord:
        """Parse a metadata file into an IndexRecord."""
        meta_file = self._artifact(path, METADATA_SUFFIX)

        try:
            raw = meta_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise EntryNotFoundError(path)

        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise CorruptedMetadataError(path, str(e)) from e
        if not isinstance(data, dict) or "title" not in data:
            raise CorruptedMetadataError(path, "expected a mapping with a title")

        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise CorruptedMetadataError(path, "metadata must be a mapping")

        version = data.get("version")
        if not isinstance(version, str) or not VERSION_PATTERN.fullmatch(version):
            raise CorruptedMetadataError(path, "missing or invalid version")

        size = data.get("size")
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            raise CorruptedMetadataError(path, "missing or invalid size")

        updated_at = data.get("updated_at")
        try:
            if isinstance(updated_at, str):
                updated_at = datetime.fromisoformat(updated_at)
            elif not isinstance(updated_at, datetime):
                updated_at = utcnow()
        except ValueError as e:
            raise CorruptedMetadataError(path, f"bad updated_at: {e}") from e
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)

        return IndexRecord(
            title=str(data.get("title") or ""),
            size=size,
            updated_at=updated_at,
            version=version,
            metadata=metadata,
            embedding_checksum=data.get("embedding_checksum"),
            embedding_dimension=data.get("embedding_dimension"),
        )

    def _set_record(self, path: str, record: Optional[IndexRecord]) -> None:
        previous = self._index.pop(path, None)
        if previous is not None:
            self._total_size -= previous.size
        self._vectors.pop(path, None)
        if record is not None:
            self._index[path] = record
            self._total_size += record.size

    # ========== Files ==========

    def _artifact(self, path: str, suffix: str, version: Optional[str] = None) -> Path:
        return self._directory / artifact_name(path, suffix, version)

    def _atomic_write(self, target: Path, data: bytes) -> None:
        """Write data to a temp file next to target, then rename over it."""
        fd, tmp = tempfile.mkstemp(dir=self._directory, prefix=".", suffix=TEMP_SUFFIX)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, target)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp)
            raise

    def _remove_versions(self, path: str, keep: Optional[str] = None) -> None:
        """Delete the content and vector files of every version but ``keep``."""
        stem = path_to_stem(path)
        for artifact in self._directory.glob(f"{stem}.*"):
            parts = split_artifact(artifact.name)
            if parts is None or parts[0] != stem or parts[1] == keep:
                continue
            with contextlib.suppress(FileNotFoundError):
                artifact.unlink()

    # ========== CRUD ==========

    def _write(
        self,
        path: str,
        content: str,
        title: str,
        embedding: Optional[list[float]],
        metadata: dict,
    ) -> Entry:
        stem = path_to_stem(path)
        if len(stem.encode("utf-8")) > MAX_STEM_BYTES:
            raise InvalidPathError(path, "path is too long")

        with self._lock, self._file_lock:
            previous = self._index.get(path)
            self._check_limits(path, content, previous.size if previous else 0)

            updated_at = utcnow()
            version = new_version()
            has_vector = embedding is not None and len(embedding) > 0
            packed = pack_embedding(embedding) if has_vector else None
            checksum = embedding_checksum(packed) if packed else None

            document = {
                "path": path,
                "title": title,
                "size": len(content.encode("utf-8")),
                "updated_at": updated_at.isoformat(),
                "version": version,
                "embedding_checksum": checksum,
                "embedding_dimension": len(embedding) if has_vector else None,
                "metadata": metadata,
            }
            try:
                rendered = yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
            except yaml.YAMLError as e:
                raise ValueError(f"Metadata for {path} is not serializable: {e}") from e

            content_file = self._artifact(path, CONTENT_SUFFIX, version)
            emb_file = self._artifact(path, EMBEDDING_SUFFIX, version)
            try:
                if packed is not None:
                    self._atomic_write(emb_file, packed)
                self._atomic_write(content_file, content.encode("utf-8"))
                # Commit point: readers switch versions on this rename
                self._atomic_write(self._artifact(path, METADATA_SUFFIX), rendered.encode("utf-8"))
            except BaseException:
                for orphan in (emb_file, content_file):
                    with contextlib.suppress(FileNotFoundError):
                        orphan.unlink()
                raise
            self._remove_versions(path, keep=version)

            record = IndexRecord(
                title=title,
                size=document["size"],
                updated_at=updated_at,
                version=version,
                metadata=copy.deepcopy(metadata),
                embedding_checksum=checksum,
                embedding_dimension=document["embedding_dimension"],
            )
            self._set_record(path, record)

        logger.debug("Wrote memory://%s (%d bytes)", path, record.size)
        return Entry(
            content=content,
            title=title,
            metadata=metadata,
            embedding=unpack_embedding(packed) if packed else None,
            updated_at=updated_at,
        )

    def _read_entry(self, path: str) -> Entry:
        with self._lock:
            try:
                record, content, data = self._read_committed(path)
            except EntryNotFoundError:
                self._set_record(path, None)
                raise

            # Re-reading a path picks up writes made by other processes
            current = self._index.get(path)
            if current is None or current.version != record.version:
                self._set_record(path, record)

        return Entry(
            content=content,
            title=record.title,
            metadata=copy.deepcopy(record.metadata),
            embedding=self._verified_embedding(path, record, data),
            updated_at=record.updated_at,
        )

    def _read_committed(self, path: str) -> tuple[IndexRecord, str, Optional[bytes]]:
        """
        Read the metadata of a path and the versioned files it names.

        Reads do not take the file lock, so another process may commit a
        newer version in between. A missing file is only an error when
        the metadata still names the same version; otherwise the newer
        version is read instead.
        """
        record = self._load_record(path)
        for _ in range(READ_ATTEMPTS):
            try:
                content = self._artifact(path, CONTENT_SUFFIX, record.version).read_bytes().decode("utf-8")
            except FileNotFoundError:
                latest = self._load_record(path)
                if latest.version == record.version:
                    raise EntryNotFoundError(path)
                record = latest
                continue

            data = None
            if record.embedded:
                try:
                    data = self._artifact(path, EMBEDDING_SUFFIX, record.version).read_bytes()
                except FileNotFoundError:
                    latest = self._load_record(path)
                    if latest.version != record.version:
                        record = latest
                        continue
                    logger.warning("Embedding file for memory://%s is missing", path)
            return record, content, data

        raise EntryNotFoundError(path)

    def _verified_embedding(self, path: str, record: IndexRecord, data: Optional[bytes]) -> Optional[list[float]]:
        if data is None:
            return None
        if embedding_checksum(data) != record.embedding_checksum:
            logger.warning("Embedding checksum mismatch for memory://%s, ignoring vector", path)
            return None
        return unpack_embedding(data)

    def _load_embedding(self, path: str, record: IndexRecord) -> Optional[list[float]]:
        if not record.embedded:
            return None
        try:
            data = self._artifact(path, EMBEDDING_SUFFIX, record.version).read_bytes()
        except FileNotFoundError:
            logger.warning("Embedding file for memory://%s is missing", path)
            return None
        return self._verified_embedding(path, record, data)

    def _delete(self, path: str) -> None:
        with self._lock, self._file_lock:
            meta_file = self._artifact(path, METADATA_SUFFIX)
            if path not in self._index and not meta_file.exists():
                raise EntryNotFoundError(path)

            # Metadata first: without it the entry is invisible to a rescan
            with contextlib.suppress(FileNotFoundError):
                meta_file.unlink()
            self._remove_versions(path)
            self._set_record(path, None)

        logger.debug("Deleted memory://%s", path)

    def clear(self) -> None:
        with self._lock, self._file_lock:
            for suffix in (METADATA_SUFFIX, CONTENT_SUFFIX, EMBEDDING_SUFFIX):
                for artifact in self._directory.glob(f"*{suffix}"):
                    with contextlib.suppress(FileNotFoundError):
                        artifact.unlink()
            self._index.clear()
            self._vectors.clear()
            self._total_size = 0
        logger.info("Cleared vault at %s", self._directory)

    # ========== Listing & accounting ==========

    def _summaries(self) -> list[EntrySummary]:
        with self._lock:
            return [
                EntrySummary(path=p, title=r.title, size=r.size, updated_at=r.updated_at)
                for p, r in self._index.items()
            ]

    def _iter_contents(self, path: Optional[str] = None) -> Iterator[tuple[str, str]]:
        with self._lock:
            targets = [(p, r.version) for p, r in self._index.items() if self._in_subtree(p, path)]
        for entry_path, version in targets:
            try:
                content = self._artifact(entry_path, CONTENT_SUFFIX, version).read_bytes().decode("utf-8")
            except FileNotFoundError:
                # Replaced by another process since the index was built
                try:
                    content = self._read_entry(entry_path).content
                except (EntryNotFoundError, CorruptedMetadataError):
                    continue
            yield entry_path, content

    def total_size(self) -> int:
        with self._lock:
            return self._total_size

    def size(self) -> int:
        with self._lock:
            return len(self._index)

    def all_entries(self) -> dict[str, Entry]:
        entries = {}
        with self._lock:
            for path in sorted(self._index):
                try:
                    entries[path] = self._read_entry(path)
                except (EntryNotFoundError, CorruptedMetadataError) as e:
                    logger.warning("Skipping memory://%s in snapshot: %s", path, e)
        return entries

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

        query = np.asarray(embedding, dtype=np.float64)
        query_norm = np.linalg.norm(query)
        if query_norm == 0:
            return []

        with self._lock:
            candidates = [
                p for p, r in self._index.items()
                if r.embedded and metadata_matches(r.metadata, filters)
            ]
            vectors = []
            paths = []
            for path in candidates:
                vector = self._vector(path)
                if vector is None:
                    continue
                if vector.shape[0] != query.shape[0]:
                    raise DimensionMismatchError(query.shape[0], vector.shape[0])
                vectors.append(vector)
                paths.append(path)

        if not paths:
            return []

        matrix = np.vstack(vectors)
        norms = np.linalg.norm(matrix, axis=1)
        safe = np.where(norms == 0, 1.0, norms)
        scores = np.where(norms == 0, 0.0, matrix @ query / (safe * query_norm))

        ranked = sorted(
            ((float(score), path) for score, path in zip(scores, paths) if score >= threshold),
            key=lambda item: (-item[0], item[1]),
        )

        results = []
        for score, path in ranked:
            try:
                entry = self._read_entry(path)
            except EntryNotFoundError:
                continue
            results.append(RetrievalResult(path=path, entry=entry, relevance_score=score, semantic_score=score))
            if len(results) >= top_k:
                break
        logger.debug("Vector search scored %d candidates, returned %d", len(paths), len(results))
        return results

    def _vector(self, path: str) -> Optional[np.ndarray]:
        """Cached embedding for a path as a float64 array."""
        vector = self._vectors.get(path)
        if vector is None:
            values = self._load_embedding(path, self._index[path])
            if values is None:
                return None
            vector = np.asarray(values, dtype=np.float64)
            self._vectors[path] = vector
        return vector
