"""
Tests for hybrid semantic + keyword search.
"""

import pytest

from engram_vault.core.errors import ConfigurationError, EntryNotFoundError
from engram_vault.search.semantic_index import SemanticIndex


class FixedEmbeddings:
    """Returns preset vectors for known queries."""

    def __init__(self, vectors: dict[str, list[float]]):
        self._vectors = vectors
        self.calls = []

    @property
    def dimension(self) -> int:
        return 2

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return self._vectors[text]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed(t) for t in texts]


@pytest.fixture
def embeddings():
    return FixedEmbeddings({"alpha": [1.0, 0.0], "beta": [0.0, 1.0]})


@pytest.fixture
def corpus(fs_adapter):
    # Title and content are single tokens so keyword overlap is exact
    fs_adapter.write("fact/alpha.md", "alpha", "alpha", embedding=[1.0, 0.0], metadata={"type": "fact"})
    fs_adapter.write("fact/beta.md", "beta", "beta", embedding=[0.6, 0.8], metadata={"type": "fact"})
    fs_adapter.write("skill/gamma.md", "gamma", "gamma", embedding=[0.0, 1.0], metadata={"type": "skill"})
    return fs_adapter


@pytest.fixture
def index(corpus, embeddings):
    return SemanticIndex(corpus, embeddings=embeddings)


class TestSemanticIndexConfig:
    """Test construction and the disabled state."""

    def test_enabled(self, fs_adapter, embeddings):
        assert SemanticIndex(fs_adapter, embeddings=embeddings).enabled
        assert not SemanticIndex(fs_adapter).enabled

    def test_negative_weight_rejected(self, fs_adapter):
        with pytest.raises(ConfigurationError):
            SemanticIndex(fs_adapter, semantic_weight=-0.1)

    def test_zero_weights_rejected(self, fs_adapter):
        with pytest.raises(ConfigurationError):
            SemanticIndex(fs_adapter, semantic_weight=0.0, keyword_weight=0.0)

    @pytest.mark.asyncio
    async def test_disabled_returns_empty(self, corpus):
        assert await SemanticIndex(corpus).search("alpha") == []


class TestSemanticIndexSearch:
    """Test hybrid ranking."""

    @pytest.mark.asyncio
    async def test_combined_score(self, index):
        results = await index.search("alpha", top_k=5)
        scores = {r.path: r for r in results}

        assert [r.path for r in results] == ["fact/alpha.md", "fact/beta.md", "skill/gamma.md"]
        assert scores["fact/alpha.md"].relevance_score == pytest.approx(1.0)
        assert scores["fact/alpha.md"].keyword_score == pytest.approx(1.0)
        assert scores["fact/beta.md"].semantic_score == pytest.approx(0.6, abs=1e-4)
        assert scores["fact/beta.md"].keyword_score == 0.0
        assert scores["fact/beta.md"].relevance_score == pytest.approx(0.3, abs=1e-4)
        assert scores["skill/gamma.md"].relevance_score == pytest.approx(0.0, abs=1e-6)

    @pytest.mark.asyncio
    async def test_threshold(self, index):
        results = await index.search("alpha", threshold=0.5)
        assert [r.path for r in results] == ["fact/alpha.md"]

    @pytest.mark.asyncio
    async def test_top_k(self, index):
        assert len(await index.search("alpha", top_k=2)) == 2

    @pytest.mark.asyncio
    async def test_filter(self, index):
        results = await index.search("alpha", filter={"type": "skill"})
        assert [r.path for r in results] == ["skill/gamma.md"]

    @pytest.mark.asyncio
    async def test_weights(self, corpus, embeddings):
        semantic_only = SemanticIndex(corpus, embeddings=embeddings, semantic_weight=1.0, keyword_weight=0.0)
        results = await semantic_only.search("alpha", top_k=2)

        assert results[1].path == "fact/beta.md"
        assert results[1].relevance_score == pytest.approx(0.6, abs=1e-4)

    @pytest.mark.asyncio
    async def test_deterministic(self, index):
        first = await index.search("alpha")
        second = await index.search("alpha")
        assert [(r.path, r.relevance_score) for r in first] == [(r.path, r.relevance_score) for r in second]

    @pytest.mark.asyncio
    async def test_ties_broken_by_path(self, fs_adapter, embeddings):
        fs_adapter.write("fact/z.md", "same", "same", embedding=[1.0, 0.0])
        fs_adapter.write("fact/a.md", "same", "same", embedding=[1.0, 0.0])

        results = await SemanticIndex(fs_adapter, embeddings=embeddings).search("alpha")
        assert [r.path for r in results] == ["fact/a.md", "fact/z.md"]

    @pytest.mark.asyncio
    async def test_keyword_signal_reorders_candidates(self, fs_adapter, embeddings):
        # Best raw vector match has no shared words; the runner-up does
        fs_adapter.write("fact/vector.md", "zzz", "zzz", embedding=[1.0, 0.0])
        fs_adapter.write("fact/words.md", "alpha", "alpha", embedding=[0.8, 0.6])

        results = await SemanticIndex(fs_adapter, embeddings=embeddings).search("alpha", top_k=1)
        assert [r.path for r in results] == ["fact/words.md"]
        assert results[0].relevance_score == pytest.approx(0.9, abs=1e-4)

    @pytest.mark.asyncio
    async def test_blank_query(self, index, embeddings):
        assert await index.search("   ") == []
        assert embeddings.calls == []

    @pytest.mark.asyncio
    async def test_unembedded_entries_not_returned(self, corpus, embeddings):
        corpus.write("fact/plain.md", "alpha", "alpha")
        results = await SemanticIndex(corpus, embeddings=embeddings).search("alpha")
        assert "fact/plain.md" not in [r.path for r in results]


class TestFindSimilar:
    """Test similarity lookup from a stored entry."""

    @pytest.mark.asyncio
    async def test_excludes_self(self, index, embeddings):
        results = await index.find_similar("fact/alpha.md")

        assert "fact/alpha.md" not in [r.path for r in results]
        assert results[0].path == "fact/beta.md"
        assert embeddings.calls == []

    @pytest.mark.asyncio
    async def test_unembedded_source(self, index, corpus):
        corpus.write("fact/plain.md", "text", "Plain")
        assert await index.find_similar("fact/plain.md") == []

    @pytest.mark.asyncio
    async def test_missing_source(self, index):
        with pytest.raises(EntryNotFoundError):
            await index.find_similar("fact/missing.md")
