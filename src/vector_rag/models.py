"""Core data model shared by ingestion, retrieval, and the vector store."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Document(BaseModel):
    """A source document. Identity is the path-derived ``id``."""

    model_config = ConfigDict(frozen=True)

    id: str
    source_path: str
    text: str
    title: str | None = None


class Chunk(BaseModel):
    """A contiguous character window of a :class:`Document`."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    chunk_index: int = Field(ge=0)
    text: str
    char_offset: int = Field(ge=0)

    @property
    def key(self) -> str:
        return record_key(self.document_id, self.chunk_index)


class EmbeddingVector(BaseModel):
    """Fixed-dimension float32 vector.

    ``len(values) == dimension`` is enforced at construction time.
    """

    model_config = ConfigDict(frozen=True)

    dimension: int = Field(gt=0)
    values: list[float]

    @model_validator(mode="after")
    def _check_dimension(self) -> EmbeddingVector:
        if len(self.values) != self.dimension:
            raise ValueError(
                f"vector has {len(self.values)} values but dimension is {self.dimension}"
            )
        return self

    @classmethod
    def of(cls, values: list[float]) -> EmbeddingVector:
        return cls(dimension=len(values), values=list(values))


class VectorRecord(BaseModel):
    """A keyed vector plus metadata, as written to the store."""

    key: str = Field(min_length=1)
    vector: EmbeddingVector
    metadata: dict[str, Any] = Field(default_factory=dict)


def record_key(document_id: str, chunk_index: int) -> str:
    """Return the store key for chunk *chunk_index* of *document_id*."""
    return f"{document_id}-{chunk_index}"
