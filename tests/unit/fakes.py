"""In-memory fakes shared by the unit tests."""

from __future__ import annotations

import hashlib
import math
import threading
from collections.abc import Sequence
from typing import Any

from vector_rag.exceptions import (
    DocumentProcessingError,
    ModelLoadError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    StoreFailure,
)
from vector_rag.models import EmbeddingVector, VectorRecord
from vector_rag.vectorstore.base import VectorStoreBase
from vector_rag.vectorstore.models import (
    BucketInfo,
    DistanceMetric,
    IndexInfo,
    IndexSummary,
    ListedVector,
    ListVectorsPage,
    QueryResult,
)
from vector_rag.vectorstore.retry import RetryPolicy

NO_WAIT = RetryPolicy(max_attempts=3, initial_backoff=0, max_backoff=0)


def _distance(a: Sequence[float], b: Sequence[float], metric: DistanceMetric) -> float:
    if metric is DistanceMetric.EUCLIDEAN:
        return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return 1.0 - dot / norm if norm else 1.0


def _matches(metadata: dict[str, Any], filter_doc: dict[str, Any] | None) -> bool:
    if not filter_doc:
        return True
    if "$and" in filter_doc:
        return all(_matches(metadata, clause) for clause in filter_doc["$and"])
    for field, cond in filter_doc.items():
        ((op, value),) = cond.items()
        if op == "$eq" and metadata.get(field) != value:
            return False
        if op == "$ne" and metadata.get(field) == value:
            return False
        if op == "$in" and metadata.get(field) not in value:
            return False
    return True


class InMemoryVectorStore(VectorStoreBase):
    """Dict-backed store with exact nearest-neighbour search.

    ``put_failures`` is consumed one entry per put call: an exception
    instance is raised, ``None`` lets the call through.
    """

    def __init__(self, retry_policy: RetryPolicy | None = None) -> None:
        super().__init__(retry_policy or NO_WAIT)
        self.buckets: set[str] = set()
        self.indexes: dict[tuple[str, str], IndexInfo] = {}
        self.vectors: dict[tuple[str, str], dict[str, tuple[list[float], dict[str, Any]]]] = {}
        self.put_batches: list[list[str]] = []
        self.put_failures: list[Exception | None] = []
        self.query_calls = 0
        self._lock = threading.Lock()

    def seed(self, bucket: str, index: str, dimension: int, metric: str = "cosine") -> None:
        self.create_bucket(bucket)
        self.create_index(bucket, index, dimension, metric)

    def _index(self, bucket: str, index: str) -> dict[str, tuple[list[float], dict[str, Any]]]:
        try:
            return self.vectors[(bucket, index)]
        except KeyError:
            raise ResourceNotFoundError(f"index {index} not found") from None

    def _create_bucket(self, bucket: str) -> None:
        if bucket in self.buckets:
            raise ResourceAlreadyExistsError(f"bucket {bucket} exists")
        self.buckets.add(bucket)

    def _create_index(self, bucket, index, dimension, distance_metric, non_filterable_keys) -> None:
        if bucket not in self.buckets:
            raise ResourceNotFoundError(f"bucket {bucket} not found")
        if (bucket, index) in self.indexes:
            raise ResourceAlreadyExistsError(f"index {index} exists")
        self.indexes[(bucket, index)] = IndexInfo(
            bucket=bucket, name=index, dimension=dimension, distance_metric=distance_metric
        )
        self.vectors[(bucket, index)] = {}

    def _get_index(self, bucket: str, index: str) -> IndexInfo:
        try:
            return self.indexes[(bucket, index)]
        except KeyError:
            raise ResourceNotFoundError(f"index {index} not found") from None

    def _put_vectors(self, bucket: str, index: str, records: Sequence[VectorRecord]) -> None:
        with self._lock:
            if self.put_failures:
                failure = self.put_failures.pop(0)
                if failure is not None:
                    raise failure
            store = self._index(bucket, index)
            for record in records:
                store[record.key] = (list(record.vector.values), dict(record.metadata))
            self.put_batches.append([r.key for r in records])

    def _query_vectors(
        self, bucket, index, query_vector, top_k, filter_doc, return_distance, return_metadata
    ) -> list[QueryResult]:
        self.query_calls += 1
        metric = self._get_index(bucket, index).distance_metric
        scored = sorted(
            (
                (_distance(query_vector, values, metric), key, metadata)
                for key, (values, metadata) in self._index(bucket, index).items()
                if _matches(metadata, filter_doc)
            ),
            key=lambda item: item[0],
        )
        return [
            QueryResult(
                key=key,
                distance=dist if return_distance else None,
                metadata=metadata if return_metadata else None,
            )
            for dist, key, metadata in scored[:top_k]
        ]

    def _list_vectors(
        self, bucket, index, max_results, next_token, segment_count, segment_index, return_data, return_metadata
    ) -> ListVectorsPage:
        items = list(self._index(bucket, index).items())
        if segment_count is not None:
            items = [item for i, item in enumerate(items) if i % segment_count == segment_index]
        offset = int(next_token) if next_token else 0
        page = items[offset : offset + max_results]
        token = str(offset + max_results) if offset + max_results < len(items) else None
        return ListVectorsPage(
            vectors=[
                ListedVector(
                    key=key,
                    values=values if return_data else None,
                    metadata=metadata if return_metadata else None,
                )
                for key, (values, metadata) in page
            ],
            next_token=token,
        )

    def _delete_vectors(self, bucket: str, index: str, keys: Sequence[str]) -> None:
        store = self._index(bucket, index)
        for key in keys:
            store.pop(key, None)

    def _list_buckets(self, prefix) -> list[BucketInfo]:
        return [BucketInfo(name=b) for b in sorted(self.buckets) if not prefix or b.startswith(prefix)]

    def _delete_bucket(self, bucket: str) -> None:
        if bucket not in self.buckets:
            raise ResourceNotFoundError(f"bucket {bucket} not found")
        if any(b == bucket for b, _ in self.indexes):
            raise StoreFailure(f"bucket {bucket} is not empty")
        self.buckets.discard(bucket)

    def _list_indexes(self, bucket: str, prefix) -> list[IndexSummary]:
        if bucket not in self.buckets:
            raise ResourceNotFoundError(f"bucket {bucket} not found")
        return [
            IndexSummary(bucket=b, name=i)
            for b, i in sorted(self.indexes)
            if b == bucket and (not prefix or i.startswith(prefix))
        ]

    def _delete_index(self, bucket: str, index: str) -> None:
        self._get_index(bucket, index)
        del self.indexes[(bucket, index)]
        del self.vectors[(bucket, index)]

    def _get_vectors(self, bucket, index, keys, return_data, return_metadata) -> list[ListedVector]:
        store = self._index(bucket, index)
        return [
            ListedVector(
                key=key,
                values=store[key][0] if return_data else None,
                metadata=store[key][1] if return_metadata else None,
            )
            for key in keys
            if key in store
        ]

    @property
    def uploaded_keys(self) -> set[str]:
        return {key for batch in self.put_batches for key in batch}


class FakeEngine:
    """Deterministic hash-based embedder with the engine's public surface.

    Texts containing ``poison`` raise :class:`DocumentProcessingError`.
    """

    def __init__(self, dimension: int = 8) -> None:
        self._dimension = dimension
        self.loads = 0
        self.embed_calls = 0

    @property
    def dimension(self) -> int:
        self.loads = 1
        return self._dimension

    def embed(self, texts: Sequence[str]) -> list[EmbeddingVector]:
        self.loads = 1
        self.embed_calls += 1
        vectors = []
        for text in texts:
            if "poison" in text:
                raise DocumentProcessingError("cannot embed poisoned text")
            digest = hashlib.sha256(text.encode("utf-8")).digest()
            values = [(digest[i % len(digest)] - 127.5) / 127.5 for i in range(self._dimension)]
            vectors.append(EmbeddingVector(dimension=self._dimension, values=values))
        return vectors

    def embed_one(self, text: str) -> EmbeddingVector:
        return self.embed([text])[0]


class BrokenEngine(FakeEngine):
    """Engine whose model never loads."""

    @property
    def dimension(self) -> int:
        raise ModelLoadError("model.safetensors missing")

    def embed(self, texts: Sequence[str]) -> list[EmbeddingVector]:
        raise ModelLoadError("model.safetensors missing")
