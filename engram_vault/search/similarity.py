"""
Similarity primitives.

Two stateless functions shared by the semantic index, the adapters and
the maintenance engine:

- cosine_similarity: angle between two equal-length vectors
- token_overlap: Jaccard overlap of lower-cased whitespace tokens
"""

from typing import Sequence

import numpy as np

from engram_vault.core.errors import DimensionMismatchError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    Empty or zero-length vectors score 0.0.

    Raises:
        DimensionMismatchError: the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    if len(a) == 0:
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def tokenize(text: str) -> set[str]:
    return set((text or "").lower().split())


def token_overlap(a: str, b: str) -> float:
    """
    Intersection-over-union of the token sets of two strings.

    Identical texts score 1.0 (two empty strings included), texts with
    no shared tokens score 0.0.
    """
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a and not tokens_b:
        return 1.0
    union = tokens_a | tokens_b
    return len(tokens_a & tokens_b) / len(union)


def cosine_matrix(vectors: np.ndarray) -> np.ndarray:
    """
    Pairwise cosine similarities for a (n, dim) matrix.

    Rows with zero norm produce zero similarity to everything.
    """
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    safe = np.where(norms == 0, 1.0, norms)
    unit = vectors / safe
    unit[norms[:, 0] == 0] = 0.0
    return unit @ unit.T
