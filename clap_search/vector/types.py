"""
Record and result types for the embedding index.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, Tuple

import numpy as np


def as_embedding(vector) -> np.ndarray:
    """Coerce a sequence of numbers into a float32 array. Shape is left to the caller to check."""
    return np.asarray(vector, dtype=np.float32)


@dataclass(frozen=True)
class Record:
    """A stored embedding with its display label."""

    key: int
    """Store-assigned, monotonically increasing identifier"""

    content: str
    """Display label, e.g. the audio file name"""

    embedding: np.ndarray = field(repr=False)
    """float32 vector of the store's dimension"""

    tags: FrozenSet[str] = frozenset()
    """Unordered tag set, e.g. {"audio", "audio/mpeg"}"""


@dataclass(frozen=True)
class QueryResult:
    """Represents one ranked hit from a similarity query."""

    record: Record
    """The matching record"""

    similarity: float
    """Cosine similarity to the query, in [-1, 1]"""

    @property
    def key(self) -> int:
        return self.record.key

    @property
    def content(self) -> str:
        return self.record.content


class ModelState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class ClearStatus(str, Enum):
    OK = "ok"
    BLOCKED = "blocked"
    ERROR = "error"


@dataclass
class ClearOutcome:
    status: ClearStatus
    message: str

    @property
    def ok(self) -> bool:
        return self.status == ClearStatus.OK


@dataclass
class BatchSummary:
    """Result of a batch embed run."""

    processed: int = 0
    skipped: int = 0
    errors: List[Tuple[Path, Exception]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.processed + self.skipped + len(self.errors)
