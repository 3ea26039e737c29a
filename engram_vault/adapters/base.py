"""
Storage adapter contract.

Every back end (filesystem, vector database, ...) implements the same
CRUD + search surface. Path validation, size limits, built-in virtual
entries, glob and grep are handled here once; back ends only provide
the underscore-prefixed primitives.

Implementing a new back end:
    class MyAdapter(StorageAdapter):
        def _write(self, path, content, title, embedding, metadata): ...
        def _read_entry(self, path): ...
        def _delete(self, path): ...
        def _summaries(self): ...
        def _iter_contents(self, path=None): ...
        def clear(self): ...
        def total_size(self): ...
        def size(self): ...
        def all_entries(self): ...
        def semantic_search(self, embedding, top_k=5, threshold=0.0, filters=None): ...
"""

from __future__ import annotations

import copy
import logging
import re
from abc import ABC, abstractmethod
from typing import Iterable, Iterator, Optional

from engram_vault.core.errors import (
    EntryTooLargeError,
    InvalidPatternError,
    StorageFullError,
    VirtualEntryError,
)
from engram_vault.core.interfaces import Entry, EntrySummary, GrepResult, RetrievalResult
from engram_vault.core.paths import glob_to_regex, normalize_path, normalize_pattern, path_matches_prefix
from engram_vault.core.virtual import VIRTUAL_ENTRIES


logger = logging.getLogger(__name__)

MAX_ENTRY_SIZE = 3_000_000  # 3MB per entry
MAX_TOTAL_SIZE = 100_000_000_000  # 100GB per store

GREP_OUTPUT_MODES = ("files_with_matches", "content", "count")


class StorageAdapter(ABC):
    """
    Abstract base class for storage back ends.

    Back ends persist entries keyed by logical path and answer
    metadata, pattern and raw vector queries. Hybrid ranking lives in
    SemanticIndex, so an adapter only needs plain cosine search over
    its own vectors.
    """

    def __init__(
        self,
        max_entry_size: int = MAX_ENTRY_SIZE,
        max_total_size: int = MAX_TOTAL_SIZE,
        virtual_entries: Optional[dict[str, Entry]] = None,
    ):
        """
        Args:
            max_entry_size: Largest accepted content, in bytes
            max_total_size: Quota for all stored content, in bytes
            virtual_entries: Built-in entries (defaults to the package set)
        """
        self.max_entry_size = max_entry_size
        self.max_total_size = max_total_size
        self._virtual = VIRTUAL_ENTRIES if virtual_entries is None else virtual_entries

    # ========== CRUD ==========

    def write(
        self,
        path: str,
        content: str,
        title: str,
        embedding: Optional[list[float]] = None,
        metadata: Optional[dict] = None,
    ) -> Entry:
        """
        Create or fully replace the entry at a path.

        Args:
            path: Logical path (primary key)
            content: Entry body
            title: Short human-readable label
            embedding: Optional vector for semantic search
            metadata: Optional metadata mapping

        Returns:
            The Entry as persisted. Writes to a built-in path are not
            persisted; the built-in Entry (``virtual=True``) is returned
            instead so callers can tell the write was shadowed.

        Raises:
            InvalidPathError: path fails validation
            EntryTooLargeError: content exceeds max_entry_size
            StorageFullError: the write would exceed max_total_size
        """
        path = normalize_path(path)
        virtual = self._virtual.get(path)
        if virtual is not None:
            logger.warning("Write to built-in entry memory://%s ignored", path)
            return virtual.copy()
        return self._write(path, content, title, embedding, copy.deepcopy(metadata or {}))

    def read_entry(self, path: str) -> Entry:
        """
        Read a full entry, built-in entries included.

        Raises:
            EntryNotFoundError: nothing is stored at the path
        """
        path = normalize_path(path)
        virtual = self._virtual.get(path)
        if virtual is not None:
            return virtual.copy()
        return self._read_entry(path)

    def read(self, path: str) -> str:
        """Read only the content of an entry."""
        return self.read_entry(path).content

    def delete(self, path: str) -> None:
        """
        Delete an entry.

        Raises:
            EntryNotFoundError: nothing is stored at the path
            VirtualEntryError: the path is a built-in entry
        """
        path = normalize_path(path)
        if path in self._virtual:
            raise VirtualEntryError(path)
        self._delete(path)

    def exists(self, path: str) -> bool:
        path = normalize_path(path)
        return path in self._virtual or any(s.path == path for s in self._summaries())

    def is_virtual(self, path: str) -> bool:
        return normalize_path(path) in self._virtual

    @abstractmethod
    def clear(self) -> None:
        """Remove every persisted entry."""
        pass

    # ========== Listing ==========

    def list(self, prefix: Optional[str] = None) -> list[EntrySummary]:
        """
        List persisted entries sorted by path.

        Args:
            prefix: Only include paths starting with this prefix (leading and
                repeated slashes are ignored)
        """
        prefix = normalize_pattern(prefix) if prefix else None
        summaries = [s for s in self._summaries() if not prefix or s.path.startswith(prefix)]
        return sorted(summaries, key=lambda s: s.path)

    def glob(self, pattern: str) -> list[EntrySummary]:
        """
        Match paths against a shell-style glob.

        ``*`` stays within one path segment, ``**`` spans any number of
        segments. Results are ordered most recently updated first, ties
        by path.
        """
        regex = glob_to_regex(normalize_pattern(pattern))
        matches = [s for s in self._summaries() if regex.match(s.path)]
        matches.sort(key=lambda s: s.path)
        matches.sort(key=lambda s: s.updated_at, reverse=True)
        return matches

    def grep(
        self,
        pattern: str,
        case_insensitive: bool = False,
        output_mode: str = "files_with_matches",
        path: Optional[str] = None,
    ) -> list:
        """
        Regex search over entry content.

        Args:
            pattern: Regular expression
            case_insensitive: Ignore case when matching
            output_mode: "files_with_matches" returns a sorted list of paths,
                "content" returns GrepResult objects with (line_number, line)
                matches, "count" returns GrepResult objects with match counts
            path: Restrict the search to this path or subtree

        Raises:
            InvalidPatternError: pattern is not a valid regex
        """
        if output_mode not in GREP_OUTPUT_MODES:
            raise ValueError(
                f"Invalid output_mode {output_mode!r}, expected one of {', '.join(GREP_OUTPUT_MODES)}"
            )
        try:
            regex = re.compile(pattern, re.IGNORECASE if case_insensitive else 0)
        except re.error as e:
            raise InvalidPatternError(pattern, str(e)) from e

        results = []
        for entry_path, content in sorted(self._iter_contents(path)):
            if output_mode == "files_with_matches":
                if regex.search(content):
                    results.append(entry_path)
                continue

            lines = [
                (number, line)
                for number, line in enumerate(content.split("\n"), start=1)
                if regex.search(line)
            ]
            if not lines:
                continue
            if output_mode == "content":
                results.append(GrepResult(path=entry_path, matches=lines, count=len(lines)))
            else:
                results.append(GrepResult(path=entry_path, count=len(lines)))
        return results

    # ========== Accounting ==========

    @abstractmethod
    def total_size(self) -> int:
        """Total content bytes stored (built-in entries excluded)."""
        pass

    @abstractmethod
    def size(self) -> int:
        """Number of persisted entries (built-in entries excluded)."""
        pass

    @abstractmethod
    def all_entries(self) -> dict[str, Entry]:
        """
        Point-in-time snapshot of every persisted entry, keyed by path.

        Loads all content and vectors; meant for maintenance analysis,
        not for hot paths.
        """
        pass

    # ========== Search ==========

    @abstractmethod
    def semantic_search(
        self,
        embedding: list[float],
        top_k: int = 5,
        threshold: float = 0.0,
        filters: Optional[dict] = None,
    ) -> list[RetrievalResult]:
        """
        Raw cosine similarity search over stored vectors.

        Args:
            embedding: Query vector
            top_k: Maximum results to return
            threshold: Minimum cosine similarity
            filters: Metadata filter applied before any vector math

        Returns:
            Results sorted by similarity (highest first), ties by path
        """
        pass

    # ========== Back end primitives ==========

    @abstractmethod
    def _write(
        self,
        path: str,
        content: str,
        title: str,
        embedding: Optional[list[float]],
        metadata: dict,
    ) -> Entry:
        """Persist an entry at an already normalized, non-virtual path."""
        pass

    @abstractmethod
    def _read_entry(self, path: str) -> Entry:
        pass

    @abstractmethod
    def _delete(self, path: str) -> None:
        pass

    @abstractmethod
    def _summaries(self) -> Iterable[EntrySummary]:
        """Listing rows for every persisted entry, in any order."""
        pass

    @abstractmethod
    def _iter_contents(self, path: Optional[str] = None) -> Iterator[tuple[str, str]]:
        """Yield (path, content) for persisted entries under an optional path filter."""
        pass

    # ========== Helpers ==========

    def _check_limits(self, path: str, content: str, previous_size: int = 0) -> int:
        """Validate size limits for a write and return the content byte length."""
        content_size = len(content.encode("utf-8"))
        if content_size > self.max_entry_size:
            raise EntryTooLargeError(path, self.max_entry_size, content_size)
        projected = self.total_size() - previous_size + content_size
        if projected > self.max_total_size:
            raise StorageFullError(path, self.max_total_size, projected)
        return content_size

    @staticmethod
    def _in_subtree(path: str, prefix: Optional[str]) -> bool:
        return not prefix or path_matches_prefix(path, normalize_pattern(prefix))
