"""
Hybrid semantic + keyword search.

SemanticIndex sits on top of any StorageAdapter. For a query it:

1. Embeds the query once
2. Pulls a widened candidate set from the adapter's raw vector search,
   with any metadata filter applied inside the adapter first
3. Re-scores each candidate as
   ``semantic_weight * cosine + keyword_weight * token_overlap``
   where the keyword side compares the query with the entry's
   searchable text (title, tags, first paragraph)
4. Drops results under the threshold and sorts by score, then path

Usage:
    index = SemanticIndex(adapter, embeddings=LocalEmbeddings())
    results = await index.search("how do ruby classes work", top_k=5, threshold=0.3)
    skills = await index.search("debug flaky tests", filter={"type": "skill"})
"""

import asyncio
import functools
import logging
from typing import Optional

from engram_vault.adapters.base import StorageAdapter
from engram_vault.core.errors import ConfigurationError
from engram_vault.core.frontmatter import build_searchable_text
from engram_vault.core.interfaces import EmbeddingProvider, RetrievalResult
from engram_vault.core.paths import normalize_path
from engram_vault.search.similarity import cosine_similarity, token_overlap


logger = logging.getLogger(__name__)

DEFAULT_SEMANTIC_WEIGHT = 0.5
DEFAULT_KEYWORD_WEIGHT = 0.5
CANDIDATE_MULTIPLIER = 3


class SemanticIndex:
    """
    Hybrid ranking over an adapter's stored vectors.

    Without an embedding provider the index is disabled: ``enabled`` is
    False and every search returns an empty list.
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        embeddings: Optional[EmbeddingProvider] = None,
        semantic_weight: float = DEFAULT_SEMANTIC_WEIGHT,
        keyword_weight: float = DEFAULT_KEYWORD_WEIGHT,
    ):
        """
        Initialize the index.

        Args:
            adapter: Storage back end holding entries and vectors
            embeddings: Provider used to embed queries (None disables search)
            semantic_weight: Weight of vector similarity in the combined score
            keyword_weight: Weight of token overlap in the combined score
        """
        if semantic_weight < 0 or keyword_weight < 0:
            raise ConfigurationError("Search weights must be non-negative")
        if semantic_weight + keyword_weight == 0:
            raise ConfigurationError("At least one search weight must be positive")

        self._adapter = adapter
        self._embeddings = embeddings
        self.semantic_weight = semantic_weight
        self.keyword_weight = keyword_weight

    @property
    def enabled(self) -> bool:
        return self._embeddings is not None

    async def search(
        self,
        query: str,
        top_k: int = 5,
        threshold: float = 0.0,
        filter: Optional[dict] = None,
    ) -> list[RetrievalResult]:
        """
        Search entries by hybrid relevance.

        Args:
            query: Natural language query
            top_k: Maximum results to return
            threshold: Minimum combined score
            filter: Metadata filter, e.g. {"type": "skill"}

        Returns:
            Results sorted by combined score (highest first), ties by path
        """
        if not self.enabled or not query or not query.strip() or top_k <= 0:
            return []

        query_embedding = await self._embeddings.embed(query)
        candidates = await self._run(
            self._adapter.semantic_search,
            query_embedding,
            top_k=top_k * CANDIDATE_MULTIPLIER,
            threshold=0.0,
            filters=filter,
        )
        results = self._rank(query, query_embedding, candidates, top_k, threshold)
        logger.debug("Hybrid search for %r: %d candidates, %d results", query, len(candidates), len(results))
        return results

    async def find_similar(
        self,
        path: str,
        top_k: int = 5,
        threshold: float = 0.0,
        filter: Optional[dict] = None,
    ) -> list[RetrievalResult]:
        """
        Find entries similar to a stored entry.

        Uses the entry's own vector, so no embedding call is made. The
        entry itself is excluded from the results.
        """
        path = normalize_path(path)
        entry = await self._run(self._adapter.read_entry, path)
        if not entry.embedded:
            return []

        candidates = await self._run(
            self._adapter.semantic_search,
            entry.embedding,
            top_k=(top_k + 1) * CANDIDATE_MULTIPLIER,
            threshold=0.0,
            filters=filter,
        )
        query_text = build_searchable_text(entry.title, entry.metadata, entry.content)
        candidates = [c for c in candidates if c.path != path]
        return self._rank(query_text, entry.embedding, candidates, top_k, threshold)

    def _rank(
        self,
        query_text: str,
        query_embedding: list[float],
        candidates: list[RetrievalResult],
        top_k: int,
        threshold: float,
    ) -> list[RetrievalResult]:
        ranked = []
        for candidate in candidates:
            entry = candidate.entry
            if entry.embedded:
                semantic = cosine_similarity(query_embedding, entry.embedding)
            else:
                semantic = candidate.semantic_score
            searchable = build_searchable_text(entry.title, entry.metadata, entry.content)
            keyword = token_overlap(query_text, searchable)
            score = self.semantic_weight * semantic + self.keyword_weight * keyword

            if score < threshold:
                continue
            ranked.append(RetrievalResult(
                path=candidate.path,
                entry=entry,
                relevance_score=score,
                semantic_score=semantic,
                keyword_score=keyword,
            ))

        ranked.sort(key=lambda r: (-r.relevance_score, r.path))
        return ranked[:top_k]

    @staticmethod
    async def _run(func, *args, **kwargs):
        """Run blocking adapter I/O in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
