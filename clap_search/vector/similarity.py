"""
Cosine similarity and top-k ranking over a record store.
"""

import heapq
from abc import ABC, abstractmethod
from typing import List

import numpy as np

from .index import IRecordStore
from .types import QueryResult, as_embedding
from ..util.logging import logger


def cosine_similarity(a, b) -> float:
    """Cosine of the angle between a and b; 0.0 when either has zero norm or is not finite."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    norm = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    similarity = float(np.dot(a, b)) / norm
    if not np.isfinite(similarity):
        return 0.0
    return max(-1.0, min(1.0, similarity))


def rank_order(result: QueryResult):
    """Sort key: descending similarity, then ascending key (earliest insert first)."""
    return (-result.similarity, result.record.key)


class IQueryEngine(ABC):
    """Abstract interface for top-k similarity ranking."""

    @abstractmethod
    def rank(self, store: IRecordStore, query_vector, k: int) -> List[QueryResult]:
        """Return up to k results ordered by rank_order."""

    def _check_query(self, store: IRecordStore, query_vector):
        """Return the query as float32, or None if it cannot be ranked against the store."""
        query = as_embedding(query_vector)
        if query.ndim != 1 or query.size == 0:
            logger.warning(f"Cannot search with empty or non-vector embedding (shape {query.shape}).")
            return None
        if not np.all(np.isfinite(query)):
            logger.warning("Cannot search with a non-finite embedding.")
            return None
        if store.dimension is not None and query.shape[0] != store.dimension:
            logger.log_operation("query.rank", "rejected", {
                "reason": "dimension_mismatch",
                "expected": store.dimension,
                "actual": int(query.shape[0]),
            })
            return None
        return query


class BruteForceQueryEngine(IQueryEngine):
    """Scans every record once; keeps only the best k in a bounded heap."""

    def rank(self, store: IRecordStore, query_vector, k: int) -> List[QueryResult]:
        if k <= 0:
            return []
        query = self._check_query(store, query_vector)
        if query is None:
            return []

        scored = (
            QueryResult(record=record, similarity=cosine_similarity(query, record.embedding))
            for record in store.scan()
        )
        return heapq.nsmallest(k, scored, key=rank_order)
