"""Cosine-similarity ranking by linear scan."""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

import numpy as np

from .config import config

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = config.get_logger(__name__)

T = TypeVar("T")


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two vectors.

    Returns:
        dot(a, b) / (|a| * |b|), or NaN if either vector has zero magnitude.

    Raises:
        ValueError: If the vectors differ in dimensionality.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        msg = f"Dimension mismatch: {a.shape} vs {b.shape}"
        raise ValueError(msg)

    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return float("nan")
    return float(np.dot(a, b) / norm)


def batch_cosine_similarity(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Calculate cosine similarity between a query and each row of a matrix.

    Returns:
        np.ndarray: One score per row; NaN where either vector is all zeros.
    """
    query = np.asarray(query, dtype=np.float64)
    matrix = np.asarray(matrix, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(norms > 0, dots / np.where(norms > 0, norms, 1.0), np.nan)


def rank(
    query: np.ndarray,
    candidates: Sequence[tuple[np.ndarray | None, T]],
    top_k: int | None = None,
) -> list[tuple[T, float]]:
    """Rank payloads by cosine similarity of their vectors to the query.

    Candidates whose vector is missing or has a different dimensionality than
    the query are left out. Undefined scores (zero vectors) sort last. Equal
    scores keep their input order.

    Args:
        query: Query embedding.
        candidates: ``(vector, payload)`` pairs.
        top_k: Maximum number of results; None returns every comparable candidate.

    Returns:
        ``(payload, score)`` pairs, best first.
    """
    query = np.asarray(query, dtype=np.float64)
    dimension = query.shape[-1] if query.ndim else 0

    vectors: list[np.ndarray] = []
    payloads: list[T] = []
    skipped = 0
    for vector, payload in candidates:
        if vector is None or np.shape(vector) != (dimension,):
            skipped += 1
            continue
        vectors.append(vector)
        payloads.append(payload)

    if skipped:
        logger.warning(
            "Skipped %d candidates without a %d-dimensional embedding",
            skipped,
            dimension,
        )

    if not vectors:
        return []

    scores = batch_cosine_similarity(query, np.vstack(vectors))
    sort_keys = np.where(np.isfinite(scores), -scores, np.inf)
    order = np.argsort(sort_keys, kind="stable")
    if top_k is not None:
        order = order[:top_k]

    return [(payloads[idx], float(scores[idx])) for idx in order]
