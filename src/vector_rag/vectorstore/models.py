"""Request/response models for the vector-store contract."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class DistanceMetric(str, Enum):
    """Distance functions supported by the store."""

    COSINE = "cosine"
    EUCLIDEAN = "euclidean"


class BucketInfo(BaseModel):
    """A vector bucket as reported by ``list_buckets``."""

    name: str
    arn: str | None = None


class IndexSummary(BaseModel):
    """An index entry returned by ``list_indexes``; see :class:`IndexInfo` for details."""

    bucket: str
    name: str
    arn: str | None = None


class IndexInfo(BaseModel):
    """Description of an index as reported by the store."""

    bucket: str
    name: str
    dimension: int
    distance_metric: DistanceMetric
    data_type: str = "float32"
    arn: str | None = None


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"document_id"``).
    operator:
        Comparison operator — one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``, ``exists``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def not_equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="ne", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)


class QueryResult(BaseModel):
    """One neighbour returned by a similarity query.

    ``distance`` and ``metadata`` are ``None`` when the caller did not ask
    for them. ``distance_metric`` is the metric of the queried index, when
    the store knows it.
    """

    key: str
    distance: float | None = None
    metadata: dict[str, Any] | None = None
    distance_metric: DistanceMetric | None = None

    @property
    def text(self) -> str | None:
        """Source text carried in metadata, if any."""
        if not self.metadata:
            return None
        value = self.metadata.get("text")
        return value if isinstance(value, str) else None

    @property
    def document_id(self) -> str | None:
        return (self.metadata or {}).get("document_id")

    @property
    def chunk_index(self) -> int | None:
        return (self.metadata or {}).get("chunk_index")

    @property
    def score(self) -> float | None:
        """Cosine similarity ``1 - distance``.

        Only defined for cosine indexes; ``None`` for euclidean results or
        when no distance was returned.
        """
        if self.distance is None or self.distance_metric is DistanceMetric.EUCLIDEAN:
            return None
        return 1.0 - self.distance

    def short_ref(self) -> str:
        """Return a compact ``[source§chunk]`` reference string."""
        meta = self.metadata or {}
        source = meta.get("source_path") or meta.get("document_id") or self.key
        chunk = self.chunk_index if self.chunk_index is not None else "?"
        return f"[{source}§{chunk}]"


class ListedVector(BaseModel):
    """A vector entry returned by ``list_vectors``."""

    key: str
    values: list[float] | None = None
    metadata: dict[str, Any] | None = None


class ListVectorsPage(BaseModel):
    """One page of ``list_vectors`` output."""

    vectors: list[ListedVector] = Field(default_factory=list)
    next_token: str | None = None
