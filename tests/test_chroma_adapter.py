"""
Tests for the ChromaDB storage adapter.
"""

import uuid

import pytest

pytest.importorskip("chromadb")

from engram_vault.adapters.chroma import ChromaAdapter
from engram_vault.core.errors import DimensionMismatchError, EntryNotFoundError, EntryTooLargeError, VirtualEntryError


def unit(i: int, dimension: int = 64) -> list[float]:
    vector = [0.0] * dimension
    vector[i] = 1.0
    return vector


class TestChromaAdapterBasics:
    """Test basic ChromaAdapter functionality."""

    def test_init_empty(self, chroma_adapter):
        assert chroma_adapter.size() == 0
        assert chroma_adapter.total_size() == 0

    def test_write_read(self, chroma_adapter):
        chroma_adapter.write(
            "concept/a.md",
            "Alpha body",
            "Alpha",
            embedding=unit(0),
            metadata={"type": "concept", "tags": ["x", "y"], "confidence": "high", "owner": None},
        )
        entry = chroma_adapter.read_entry("concept/a.md")

        assert entry.content == "Alpha body"
        assert entry.title == "Alpha"
        assert entry.metadata == {"type": "concept", "tags": ["x", "y"], "confidence": "high", "owner": None}
        assert entry.embedding == pytest.approx(unit(0), abs=1e-4)

    def test_unembedded_entry(self, chroma_adapter):
        chroma_adapter.write("fact/a.md", "Alpha", "A")
        assert chroma_adapter.read_entry("fact/a.md").embedding is None

    def test_overwrite(self, chroma_adapter):
        chroma_adapter.write("fact/a.md", "First", "A")
        chroma_adapter.write("fact/a.md", "Second!", "A")

        assert chroma_adapter.read("fact/a.md") == "Second!"
        assert chroma_adapter.size() == 1
        assert chroma_adapter.total_size() == len("Second!")

    def test_delete(self, chroma_adapter):
        chroma_adapter.write("fact/a.md", "Alpha", "A")
        chroma_adapter.delete("fact/a.md")

        assert chroma_adapter.size() == 0
        with pytest.raises(EntryNotFoundError):
            chroma_adapter.read("fact/a.md")
        with pytest.raises(EntryNotFoundError):
            chroma_adapter.delete("fact/a.md")

    def test_clear(self, chroma_adapter):
        chroma_adapter.write("fact/a.md", "Alpha", "A")
        chroma_adapter.clear()
        assert chroma_adapter.size() == 0
        assert chroma_adapter.list() == []

    def test_size_limit(self):
        adapter = ChromaAdapter(collection_name=f"test_{uuid.uuid4().hex[:8]}", dimension=4, max_entry_size=5)
        with pytest.raises(EntryTooLargeError):
            adapter.write("fact/a.md", "123456", "A")

    def test_dimension_checked(self, chroma_adapter):
        with pytest.raises(DimensionMismatchError):
            chroma_adapter.write("fact/a.md", "Alpha", "A", embedding=[1.0, 0.0])

    def test_virtual_entries(self, chroma_adapter):
        assert chroma_adapter.read_entry("skill/meta/deep-learning.md").virtual
        with pytest.raises(VirtualEntryError):
            chroma_adapter.delete("skill/meta/deep-learning.md")


class TestChromaAdapterQueries:
    """Test listing and search."""

    @pytest.fixture
    def loaded(self, chroma_adapter):
        chroma_adapter.write("fact/api/a.md", "billing endpoint", "A", embedding=unit(0), metadata={"type": "fact"})
        chroma_adapter.write("fact/api/b.md", "billing auth", "B", embedding=unit(1), metadata={"type": "fact"})
        chroma_adapter.write("skill/c.md", "debug tests", "C", embedding=unit(0), metadata={"type": "skill", "tags": ["t"]})
        chroma_adapter.write("fact/plain.md", "no vector", "P")
        return chroma_adapter

    def test_list_and_glob(self, loaded):
        assert [s.path for s in loaded.list("fact")] == ["fact/api/a.md", "fact/api/b.md", "fact/plain.md"]
        assert len(loaded.glob("fact/*")) == 1
        assert len(loaded.glob("fact/**")) == 3

    def test_grep(self, loaded):
        assert loaded.grep("billing") == ["fact/api/a.md", "fact/api/b.md"]

    def test_semantic_search(self, loaded):
        results = loaded.semantic_search(unit(0), top_k=5)

        assert [r.path for r in results][:2] == ["fact/api/a.md", "skill/c.md"]
        assert results[0].relevance_score == pytest.approx(1.0, abs=1e-4)
        assert "fact/plain.md" not in [r.path for r in results]

    def test_semantic_search_filters(self, loaded):
        assert [r.path for r in loaded.semantic_search(unit(0), filters={"type": "skill"})] == ["skill/c.md"]
        assert [r.path for r in loaded.semantic_search(unit(0), filters={"tags": "t"})] == ["skill/c.md"]

    def test_semantic_search_tag_among_several(self, chroma_adapter):
        chroma_adapter.write("fact/a.md", "a", "A", embedding=unit(0), metadata={"tags": ["ruby", "x"]})
        chroma_adapter.write("fact/b.md", "b", "B", embedding=unit(0), metadata={"tags": ["python"]})

        results = chroma_adapter.semantic_search(unit(0), filters={"tags": "ruby"})
        assert [r.path for r in results] == ["fact/a.md"]

    def test_semantic_search_scalar_and_list_filters(self, loaded):
        results = loaded.semantic_search(unit(0), filters={"type": "skill", "tags": "t"})
        assert [r.path for r in results] == ["skill/c.md"]

    def test_semantic_search_filtered_match_outranked(self, chroma_adapter):
        for i in range(5):
            chroma_adapter.write(f"fact/near-{i}.md", "n", "N", embedding=unit(0), metadata={"tags": ["other"]})
        leaning = [0.6, 0.8] + [0.0] * 62
        chroma_adapter.write("fact/far.md", "f", "F", embedding=leaning, metadata={"tags": ["wanted"]})

        (result,) = chroma_adapter.semantic_search(unit(0), top_k=1, filters={"tags": "wanted"})
        assert result.path == "fact/far.md"
        assert result.relevance_score == pytest.approx(0.6, abs=1e-4)

    def test_returned_metadata_detached(self, chroma_adapter):
        written = chroma_adapter.write("fact/a.md", "a", "A", embedding=unit(0), metadata={"tags": ["ruby"]})
        written.metadata["tags"].append("python")

        assert chroma_adapter.semantic_search(unit(0), filters={"tags": "python"}) == []
        assert chroma_adapter.read_entry("fact/a.md").metadata == {"tags": ["ruby"]}

    def test_semantic_search_threshold(self, loaded):
        results = loaded.semantic_search(unit(0), threshold=0.5)
        assert {r.path for r in results} == {"fact/api/a.md", "skill/c.md"}

    def test_all_entries(self, loaded):
        entries = loaded.all_entries()
        assert list(entries) == sorted(entries)
        assert entries["fact/plain.md"].embedding is None
        assert entries["skill/c.md"].embedding == pytest.approx(unit(0), abs=1e-4)

    def test_reopen_persistent(self, temp_dir):
        name = f"test_{uuid.uuid4().hex[:8]}"
        adapter = ChromaAdapter(collection_name=name, persist_directory=temp_dir, dimension=4)
        adapter.write("fact/a.md", "Alpha", "A", embedding=[1.0, 0.0, 0.0, 0.0])

        reopened = ChromaAdapter(collection_name=name, persist_directory=temp_dir, dimension=4)
        assert reopened.size() == 1
        assert reopened.total_size() == 5
        assert reopened.read("fact/a.md") == "Alpha"
