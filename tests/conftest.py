"""
Pytest configuration and shared fixtures for Engram Vault tests.
"""

import hashlib
import shutil
import tempfile
import uuid

import pytest
import pytest_asyncio


# ============================================================
# Temporary Directory Fixtures
# ============================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test data."""
    dirpath = tempfile.mkdtemp(prefix="engram_vault_test_")
    yield dirpath
    # Cleanup after test
    shutil.rmtree(dirpath, ignore_errors=True)


# ============================================================
# Mock Embedding Providers
# ============================================================

class MockEmbeddings:
    """
    Mock embedding provider for testing.

    Generates deterministic fake embeddings based on text hash.
    This allows tests to run without external dependencies.
    """

    def __init__(self, dimension: int = 384):
        self._dimension = dimension
        self.calls = 0

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        """Generate a deterministic fake embedding from text."""
        self.calls += 1
        hash_bytes = hashlib.sha256(text.encode()).digest()

        # Expand hash to fill embedding dimension, values in [-1, 1]
        return [
            (hash_bytes[i % len(hash_bytes)] / 255.0) * 2 - 1
            for i in range(self._dimension)
        ]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed(text) for text in texts]


class KeywordEmbeddings:
    """
    Hashed bag-of-words embeddings.

    Texts sharing words get similar vectors, which makes ranking and
    duplicate detection predictable in tests.
    """

    def __init__(self, dimension: int = 64):
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for token in text.lower().split():
            bucket = int(hashlib.md5(token.encode()).hexdigest(), 16) % self._dimension
            vector[bucket] += 1.0
        return vector

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed(text) for text in texts]


class FailingEmbeddings:
    """Embedding provider whose every call raises."""

    @property
    def dimension(self) -> int:
        return 8

    async def embed(self, text: str) -> list[float]:
        raise RuntimeError("embedding service unavailable")

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        raise RuntimeError("embedding service unavailable")


@pytest.fixture
def mock_embeddings():
    """Create a mock embedding provider."""
    return MockEmbeddings(dimension=384)


@pytest.fixture
def keyword_embeddings():
    """Create a bag-of-words embedding provider."""
    return KeywordEmbeddings(dimension=64)


# ============================================================
# Storage Fixtures
# ============================================================

@pytest.fixture
def fs_adapter(temp_dir):
    """Create a FilesystemAdapter in a temporary directory."""
    from engram_vault.adapters.filesystem import FilesystemAdapter
    return FilesystemAdapter(temp_dir)


@pytest.fixture
def small_adapter(temp_dir):
    """FilesystemAdapter with tiny limits for size tests."""
    from engram_vault.adapters.filesystem import FilesystemAdapter
    return FilesystemAdapter(temp_dir, max_entry_size=100, max_total_size=250)


@pytest.fixture
def chroma_adapter():
    """Create an in-memory ChromaAdapter."""
    pytest.importorskip("chromadb")
    from engram_vault.adapters.chroma import ChromaAdapter

    # Use unique collection name to avoid test isolation issues
    return ChromaAdapter(
        collection_name=f"test_vault_{uuid.uuid4().hex[:8]}",
        persist_directory=None,
        dimension=64,
    )


@pytest.fixture
def read_tracker():
    from engram_vault.core.read_tracker import ReadTracker
    return ReadTracker()


@pytest.fixture
def storage(fs_adapter, keyword_embeddings, read_tracker):
    """Create a Storage with keyword embeddings and a read tracker."""
    from engram_vault.storage import Storage
    return Storage(
        adapter=fs_adapter,
        embeddings=keyword_embeddings,
        read_tracker=read_tracker,
    )


@pytest.fixture
def storage_no_embeddings(fs_adapter, read_tracker):
    """Create a Storage without an embedding provider."""
    from engram_vault.storage import Storage
    return Storage(adapter=fs_adapter, read_tracker=read_tracker)


# ============================================================
# Sample Data Fixtures
# ============================================================

@pytest.fixture
def sample_entries():
    """A small corpus of (path, content, title, metadata) rows."""
    return [
        (
            "concept/ruby/classes.md",
            "Ruby classes are open and can be reopened at runtime to add methods.",
            "Ruby classes",
            {"type": "concept", "confidence": "high", "tags": ["ruby", "classes"], "domain": "ruby"},
        ),
        (
            "fact/api/endpoint.md",
            "The billing API is served from the v2 endpoint behind the gateway.",
            "Billing API endpoint",
            {"type": "fact", "confidence": "medium", "tags": ["api", "billing"]},
        ),
        (
            "fact/api/auth.md",
            "Requests to the billing API authenticate with short lived bearer tokens.",
            "Billing API auth",
            {"type": "fact", "confidence": "high", "tags": ["api", "auth"]},
        ),
        (
            "fact/db/postgres.md",
            "Production data lives in PostgreSQL 15 with daily snapshots.",
            "Database",
            {"type": "fact", "confidence": "low", "tags": ["database"]},
        ),
        (
            "skill/debugging/flaky-tests.md",
            "To debug flaky tests rerun them in isolation, then pin the random seed.",
            "Debugging flaky tests",
            {"type": "skill", "confidence": "high", "tags": ["testing", "debugging"], "tools": ["pytest"]},
        ),
    ]


@pytest.fixture
def populated_adapter(fs_adapter, sample_entries):
    """FilesystemAdapter pre-loaded with the sample corpus (no vectors)."""
    for path, content, title, metadata in sample_entries:
        fs_adapter.write(path, content, title, metadata=metadata)
    return fs_adapter


@pytest_asyncio.fixture
async def populated_storage(storage, sample_entries):
    """Storage pre-loaded with the sample corpus, embedded."""
    for path, content, title, metadata in sample_entries:
        await storage.write(path, content, title, metadata=metadata)
    return storage
