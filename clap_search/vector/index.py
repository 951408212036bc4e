"""
Record store interface and a process-local in-memory implementation.
"""

import threading
from abc import ABC, abstractmethod
from typing import Iterable, Iterator, List, Optional

import numpy as np

from .types import Record, as_embedding
from ..core.errors import DimensionMismatchError, NotReadyError
from ..util.logging import logger


class IRecordStore(ABC):
    """Abstract interface for append-only embedding record storage."""

    name: str

    @property
    @abstractmethod
    def is_initialized(self) -> bool:
        """Whether the backing collection is open."""

    @property
    @abstractmethod
    def dimension(self) -> Optional[int]:
        """Established embedding dimension, or None before the first insert."""

    @abstractmethod
    def initialize(self) -> "IRecordStore":
        """Open or create the backing collection. Idempotent."""

    @abstractmethod
    def insert(self, content: str, embedding, tags: Iterable[str] = ()) -> int:
        """Append a record and return its key once it is durable."""

    @abstractmethod
    def scan(self) -> Iterator[Record]:
        """Iterate all records in key order."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored records."""

    @abstractmethod
    def clear(self) -> None:
        """Drop the whole collection and return to the uninitialized state."""

    @abstractmethod
    def close(self) -> None:
        """Release the handle without deleting data."""

    def _require_initialized(self, operation: str) -> None:
        if not self.is_initialized:
            raise NotReadyError(f"Store '{self.name}' is not initialized ({operation})")

    def _validate_embedding(self, embedding) -> np.ndarray:
        """Coerce to float32 and check it against the established dimension."""
        vector = as_embedding(embedding)
        if vector.ndim != 1:
            raise ValueError(f"Embedding must be a 1-D vector, got shape {vector.shape}")
        if self.dimension is not None and vector.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, vector.shape[0])
        if vector.size == 0:
            raise ValueError("Cannot insert an empty embedding")
        if not np.all(np.isfinite(vector)):
            raise ValueError("Cannot insert an embedding with NaN or infinite values")
        return vector


class InMemoryRecordStore(IRecordStore):
    """Simple in-memory record store. Nothing survives the process."""

    def __init__(self, name: str = "memory", dimension: Optional[int] = None):
        self.name = name
        self._pinned_dimension = dimension
        self._dimension = dimension
        self._records: List[Record] = []
        self._next_key = 1
        self._initialized = False
        self._generation = 0
        self._lock = threading.RLock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def initialize(self) -> "InMemoryRecordStore":
        with self._lock:
            if not self._initialized:
                self._initialized = True
                logger.log_store_operation("initialize", self.name, {"provider": "memory"})
        return self

    def insert(self, content: str, embedding, tags: Iterable[str] = ()) -> int:
        with self._lock:
            self._require_initialized("insert")
            vector = self._validate_embedding(embedding)

            record = Record(
                key=self._next_key,
                content=content,
                embedding=vector.copy(),
                tags=frozenset(tags),
            )
            self._records.append(record)
            self._next_key += 1
            if self._dimension is None:
                self._dimension = vector.shape[0]
            return record.key

    def scan(self) -> Iterator[Record]:
        self._require_initialized("scan")
        return self._iter_records(self._generation, len(self._records))

    def _iter_records(self, generation: int, size: int) -> Iterator[Record]:
        # Only records that existed when the scan started are visible
        for i in range(size):
            with self._lock:
                if generation != self._generation:
                    raise NotReadyError(f"Store '{self.name}' was cleared during scan")
                record = self._records[i]
            yield record

    def count(self) -> int:
        with self._lock:
            self._require_initialized("count")
            return len(self._records)

    def clear(self) -> None:
        with self._lock:
            removed = len(self._records)
            self._records.clear()
            self._next_key = 1
            self._dimension = self._pinned_dimension
            self._initialized = False
            self._generation += 1
        logger.log_store_operation("clear", self.name, {"removed": removed})

    def close(self) -> None:
        with self._lock:
            self._initialized = False
