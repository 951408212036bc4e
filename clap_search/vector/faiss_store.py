"""
FAISS-backed ranking. Builds an exact inner-product index over L2-normalised
vectors, so inner product equals cosine similarity.
"""

from typing import List

import numpy as np

from .index import IRecordStore
from .similarity import IQueryEngine, rank_order
from .types import QueryResult


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    # Zero vectors stay zero so their similarity is 0 rather than NaN
    safe = np.where(norms == 0, 1.0, norms)
    return (matrix / safe).astype(np.float32)


class FaissQueryEngine(IQueryEngine):
    """FAISS flat-index implementation of IQueryEngine."""

    def __init__(self):
        try:
            import faiss
            self.faiss = faiss
        except ImportError:
            raise ImportError("FAISS not installed. Please install faiss-cpu package.")

    def rank(self, store: IRecordStore, query_vector, k: int) -> List[QueryResult]:
        if k <= 0:
            return []
        query = self._check_query(store, query_vector)
        if query is None:
            return []

        records = list(store.scan())
        if not records:
            return []

        matrix = _normalize_rows(np.vstack([r.embedding for r in records]).astype(np.float32))
        index = self.faiss.IndexFlatIP(matrix.shape[1])
        index.add(matrix)

        normalized_query = _normalize_rows(query.reshape(1, -1))

        # Score everything so ties at the k boundary still resolve by key
        scores, indices = index.search(normalized_query, len(records))

        results = []
        for score, position in zip(scores[0], indices[0]):
            if position < 0:
                continue
            similarity = max(-1.0, min(1.0, float(score)))
            results.append(QueryResult(record=records[int(position)], similarity=similarity))

        results.sort(key=rank_order)
        return results[:k]
