"""
Embedding records, stores, ranking engines and encoder adapters.
"""

# Package initialization for vector module
from .index import IRecordStore, InMemoryRecordStore
from .sqlite_store import SqliteRecordStore
from .similarity import IQueryEngine, BruteForceQueryEngine, cosine_similarity
from .types import Record, QueryResult, ModelState, ClearOutcome, ClearStatus, BatchSummary
from .embeddings import (
    IEncoder,
    ITextEncoder,
    IAudioEncoder,
    HashTextEncoder,
    HashAudioEncoder,
    ClapTextEncoder,
    ClapAudioEncoder,
)

__all__ = [
    'IRecordStore',
    'InMemoryRecordStore',
    'SqliteRecordStore',
    'IQueryEngine',
    'BruteForceQueryEngine',
    'cosine_similarity',
    'Record',
    'QueryResult',
    'ModelState',
    'ClearOutcome',
    'ClearStatus',
    'BatchSummary',
    'IEncoder',
    'ITextEncoder',
    'IAudioEncoder',
    'HashTextEncoder',
    'HashAudioEncoder',
    'ClapTextEncoder',
    'ClapAudioEncoder',
]
