"""
Embedding providers for Engram Vault.

The store only needs ``embed(text) -> list[float]``; these classes wrap
the usual sources:

- LocalEmbeddings: sentence-transformers in-process (default)
- OpenAIEmbeddings: OpenAI embeddings API
- ChromaEmbeddings: ChromaDB's bundled MiniLM function

Usage:
    # In-process sentence-transformers model
    embeddings = LocalEmbeddings()

    # OpenAI API
    embeddings = OpenAIEmbeddings(api_key="sk-...")

    # First provider whose dependencies are available
    embeddings = get_default_embeddings()

Set ENGRAM_EMBEDDING_MODEL to change the local model without code
changes. Every vector in a vault must come from the same model.
"""

import asyncio
import logging
import os
from typing import Optional

from engram_vault.core.errors import ConfigurationError
from engram_vault.core.interfaces import EmbeddingProvider


logger = logging.getLogger(__name__)

DEFAULT_LOCAL_MODEL = "sentence-transformers/multi-qa-MiniLM-L6-cos-v1"
DEFAULT_DIMENSION = 384
MODEL_ENV_VAR = "ENGRAM_EMBEDDING_MODEL"


class OpenAIEmbeddings:
    """
    OpenAI embeddings using the API.

    The key comes from ``api_key`` or OPENAI_API_KEY. Known models and
    their dimensions are listed in DIMENSIONS; unknown models default
    to 1536.
    """

    DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
    ):
        """
        Initialize OpenAI embeddings.

        Args:
            model: OpenAI embedding model to use
            api_key: OpenAI API key (or set OPENAI_API_KEY env var)
        """
        try:
            from openai import AsyncOpenAI
        except ImportError:
            raise ImportError(
                "OpenAI client is required. "
                "Install it with: pip install openai"
            )

        self._client = AsyncOpenAI(api_key=api_key or os.getenv("OPENAI_API_KEY"))
        self._model = model

    @property
    def dimension(self) -> int:
        return self.DIMENSIONS.get(self._model, 1536)

    async def embed(self, text: str) -> list[float]:
        response = await self._client.embeddings.create(model=self._model, input=text)
        return response.data[0].embedding

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        response = await self._client.embeddings.create(model=self._model, input=texts)
        return [d.embedding for d in response.data]


class LocalEmbeddings:
    """
    Local embeddings using sentence-transformers.

    The model is loaded once at construction. sentence-transformers
    fetches it into its cache if it is not there yet.

    The default multi-qa-MiniLM-L6-cos-v1 (384 dims) is tuned for
    matching short questions against passages, which is how vault
    searches look.
    """

    def __init__(self, model_name: Optional[str] = None):
        """
        Initialize local embeddings.

        Args:
            model_name: sentence-transformers model (defaults to
                $ENGRAM_EMBEDDING_MODEL, then multi-qa-MiniLM-L6-cos-v1)
        """
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise ImportError(
                "sentence-transformers is required for local embeddings. "
                "Install it with: pip install sentence-transformers"
            )

        self._model_name = model_name or os.getenv(MODEL_ENV_VAR) or DEFAULT_LOCAL_MODEL
        logger.info("Loading embedding model %s", self._model_name)
        self._model = SentenceTransformer(self._model_name)

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimension(self) -> int:
        return self._model.get_sentence_embedding_dimension()

    async def embed(self, text: str) -> list[float]:
        # sentence-transformers is sync, run in executor
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self._model.encode(text, convert_to_numpy=True, normalize_embeddings=True).tolist(),
        )

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self._model.encode(texts, convert_to_numpy=True, normalize_embeddings=True).tolist(),
        )


class ChromaEmbeddings:
    """
    ChromaDB's built-in embedding function (all-MiniLM-L6-v2, 384 dims).

    Used when chromadb is installed but sentence-transformers is not.
    """

    def __init__(self):
        try:
            from chromadb.utils import embedding_functions
        except ImportError:
            raise ImportError(
                "ChromaDB is required. "
                "Install it with: pip install chromadb"
            )

        self._ef = embedding_functions.DefaultEmbeddingFunction()

    @property
    def dimension(self) -> int:
        return DEFAULT_DIMENSION

    async def embed(self, text: str) -> list[float]:
        result = await self.embed_batch([text])
        return result[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        loop = asyncio.get_running_loop()
        vectors = await loop.run_in_executor(None, self._ef, texts)
        return [[float(v) for v in vector] for vector in vectors]


def get_default_embeddings() -> EmbeddingProvider:
    """
    Return the first provider that can be built, in this order:

    1. LocalEmbeddings, when sentence-transformers is installed
    2. OpenAIEmbeddings, when OPENAI_API_KEY is set and openai is installed
    3. ChromaEmbeddings, when chromadb is installed

    Returns:
        An embedding provider instance
    """
    try:
        return LocalEmbeddings()
    except ImportError:
        logger.debug("sentence-transformers not installed")

    if os.getenv("OPENAI_API_KEY"):
        try:
            return OpenAIEmbeddings()
        except ImportError:
            logger.debug("openai not installed")

    try:
        return ChromaEmbeddings()
    except ImportError:
        logger.debug("chromadb not installed")

    raise ImportError(
        "No embedding provider available. Install one of:\n"
        "  pip install sentence-transformers  # local embeddings\n"
        "  pip install openai                 # OpenAI embeddings\n"
        "  pip install chromadb               # ChromaDB default embeddings"
    )


def get_embeddings(provider: str = "auto", model: Optional[str] = None) -> Optional[EmbeddingProvider]:
    """
    Build an embedding provider by name.

    Args:
        provider: "auto", "local", "openai", "chroma" or "none"
        model: Model name for "local" or "openai"

    Returns:
        The provider, or None for "none"
    """
    if provider == "none":
        return None
    if provider == "auto":
        return get_default_embeddings()
    if provider == "local":
        return LocalEmbeddings(model)
    if provider == "openai":
        return OpenAIEmbeddings(model) if model else OpenAIEmbeddings()
    if provider == "chroma":
        return ChromaEmbeddings()
    raise ConfigurationError(f"Unknown embedding provider: {provider!r}")
