"""
Request and response models for the pipeline's command surface.
"""

from typing import List, Literal

from pydantic import BaseModel, field_validator

from ..core.config import DEFAULT_TOP_K


class SearchRequest(BaseModel):
    kind: Literal["text", "audio"]
    query: str
    k: int = DEFAULT_TOP_K

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('query cannot be empty')
        return v.strip()

    @field_validator('k')
    @classmethod
    def k_must_be_positive(cls, v):
        if v < 1:
            raise ValueError('k must be >= 1')
        return v


class SearchHit(BaseModel):
    key: int
    content: str
    similarity: float
    tags: List[str] = []


class SearchResponse(BaseModel):
    kind: str
    query: str
    results: List[SearchHit]

    @classmethod
    def from_results(cls, kind: str, query: str, results) -> "SearchResponse":
        return cls(
            kind=kind,
            query=query,
            results=[
                SearchHit(
                    key=r.record.key,
                    content=r.record.content,
                    similarity=r.similarity,
                    tags=sorted(r.record.tags),
                )
                for r in results
            ],
        )


class BatchError(BaseModel):
    file: str
    error: str


class BatchEmbedResponse(BaseModel):
    processed: int
    skipped: int
    errors: List[BatchError]

    @classmethod
    def from_summary(cls, summary) -> "BatchEmbedResponse":
        return cls(
            processed=summary.processed,
            skipped=summary.skipped,
            errors=[BatchError(file=str(path), error=str(err)) for path, err in summary.errors],
        )
