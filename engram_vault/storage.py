"""
Storage orchestrator.

Storage is the façade the rest of an agent framework talks to. It is
the only piece that knows about both the storage adapter and the
embedding provider: on write it derives the entry's searchable text and
embeds it, everything else is delegated to the adapter.

Adapter calls block on disk or database I/O, so they are run in the
default executor and the public API is async.

Usage:
    storage = Storage(
        adapter=FilesystemAdapter("./vault"),
        embeddings=LocalEmbeddings(),
        read_tracker=ReadTracker(),
    )
    await storage.write("concept/ruby/classes.md", content, title="Ruby classes")
    content = await storage.read("concept/ruby/classes.md", caller="agent-1")
    results = await storage.semantic_index.search("open classes", top_k=3)
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Optional

from engram_vault.adapters.base import StorageAdapter
from engram_vault.core.frontmatter import build_searchable_text, parse_frontmatter
from engram_vault.core.interfaces import EmbeddingProvider, Entry, EntrySummary, RetrievalResult
from engram_vault.core.paths import normalize_path
from engram_vault.core.read_tracker import ReadTracker
from engram_vault.search.semantic_index import (
    DEFAULT_KEYWORD_WEIGHT,
    DEFAULT_SEMANTIC_WEIGHT,
    SemanticIndex,
)


logger = logging.getLogger(__name__)


class Storage:
    """
    Async façade over a storage adapter and an optional embedder.
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        embeddings: Optional[EmbeddingProvider] = None,
        read_tracker: Optional[ReadTracker] = None,
        semantic_weight: float = DEFAULT_SEMANTIC_WEIGHT,
        keyword_weight: float = DEFAULT_KEYWORD_WEIGHT,
        default_top_k: int = 5,
        default_threshold: float = 0.0,
    ):
        """
        Initialize storage.

        Args:
            adapter: Back end that persists entries
            embeddings: Provider for write-time and query embeddings
                (None disables semantic search)
            read_tracker: Where reads are recorded when a caller is given
            semantic_weight: Vector weight for hybrid search
            keyword_weight: Token overlap weight for hybrid search
            default_top_k: Result count when search() is called without one
            default_threshold: Minimum score when search() is called without one
        """
        self._adapter = adapter
        self._embeddings = embeddings
        self._read_tracker = read_tracker
        self.default_top_k = default_top_k
        self.default_threshold = default_threshold
        self._semantic_index = SemanticIndex(
            adapter,
            embeddings=embeddings,
            semantic_weight=semantic_weight,
            keyword_weight=keyword_weight,
        )

    @property
    def adapter(self) -> StorageAdapter:
        return self._adapter

    @property
    def semantic_index(self) -> SemanticIndex:
        """Hybrid search index (``enabled`` is False without an embedder)."""
        return self._semantic_index

    @property
    def read_tracker(self) -> Optional[ReadTracker]:
        return self._read_tracker

    # ========== Writes ==========

    async def write(
        self,
        path: str,
        content: str,
        title: str,
        metadata: Optional[dict] = None,
        generate_embedding: bool = True,
    ) -> Entry:
        """
        Create or replace an entry, embedding it when possible.

        Metadata keys found in the content's YAML frontmatter are used
        unless the caller passes the same key explicitly.

        Args:
            path: Logical path
            content: Entry body (markdown, optional frontmatter)
            title: Short human-readable label
            metadata: Explicit metadata
            generate_embedding: Set False to skip the embedder for this write

        Returns:
            The persisted Entry, or the built-in Entry (``virtual=True``)
            when the path is reserved and the write was ignored
        """
        path = normalize_path(path)
        if self._adapter.is_virtual(path):
            return await self._run(self._adapter.write, path, content, title)

        frontmatter, _ = parse_frontmatter(content)
        merged = {**frontmatter, **(metadata or {})}

        embedding = None
        if self._embeddings is not None and generate_embedding:
            searchable = build_searchable_text(title, merged, content)
            try:
                embedding = await self._embeddings.embed(searchable)
            except Exception as e:
                logger.warning("Embedding failed for memory://%s, storing without vector: %s", path, e)

        return await self._run(
            self._adapter.write,
            path,
            content,
            title,
            embedding=embedding,
            metadata=merged,
        )

    async def delete(self, path: str) -> None:
        await self._run(self._adapter.delete, normalize_path(path))

    async def clear(self) -> None:
        await self._run(self._adapter.clear)

    # ========== Reads ==========

    async def read(self, path: str, caller: Optional[str] = None) -> str:
        """
        Read an entry's content.

        Args:
            path: Logical path
            caller: Identity to record in the read tracker
        """
        entry = await self.read_entry(path, caller=caller)
        return entry.content

    async def read_entry(self, path: str, caller: Optional[str] = None) -> Entry:
        """Read a full entry, recording the read when a caller is given."""
        path = normalize_path(path)
        entry = await self._run(self._adapter.read_entry, path)
        if caller is not None and self._read_tracker is not None:
            self._read_tracker.register_read(caller, path)
        return entry

    def has_been_read(self, caller: str, path: str) -> bool:
        """Whether a caller has read a path (always False without a tracker)."""
        if self._read_tracker is None:
            return False
        return self._read_tracker.has_been_read(caller, normalize_path(path))

    async def list(self, prefix: Optional[str] = None) -> list[EntrySummary]:
        return await self._run(self._adapter.list, prefix)

    async def glob(self, pattern: str) -> list[EntrySummary]:
        return await self._run(self._adapter.glob, pattern)

    async def grep(
        self,
        pattern: str,
        case_insensitive: bool = False,
        output_mode: str = "files_with_matches",
        path: Optional[str] = None,
    ) -> list:
        return await self._run(
            self._adapter.grep,
            pattern,
            case_insensitive=case_insensitive,
            output_mode=output_mode,
            path=path,
        )

    async def total_size(self) -> int:
        return await self._run(self._adapter.total_size)

    async def size(self) -> int:
        return await self._run(self._adapter.size)

    async def all_entries(self) -> dict[str, Entry]:
        return await self._run(self._adapter.all_entries)

    # ========== Search ==========

    async def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
        filter: Optional[dict] = None,
    ) -> list[RetrievalResult]:
        """Shortcut for ``semantic_index.search`` using the storage defaults."""
        if top_k is None:
            top_k = self.default_top_k
        if threshold is None:
            threshold = self.default_threshold
        return await self._semantic_index.search(query, top_k=top_k, threshold=threshold, filter=filter)

    @staticmethod
    async def _run(func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
