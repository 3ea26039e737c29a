"""Similarity measures and hybrid search."""

from engram_vault.search.similarity import cosine_similarity, token_overlap, tokenize
from engram_vault.search.semantic_index import SemanticIndex

__all__ = [
    "cosine_similarity",
    "token_overlap",
    "tokenize",
    "SemanticIndex",
]
