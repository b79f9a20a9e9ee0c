"""Chroma implementation of the vector-store abstraction.

Intended for local development against a ``chroma run`` server. Chroma
has no bucket concept, so a bucket is a collection-name prefix and each
index is the collection ``"<bucket>.<index>"``. The index dimension and
metric live in the collection metadata.
"""

from __future__ import annotations

import logging
import zlib
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

import chromadb
import httpx
from chromadb.errors import ChromaError, NotFoundError

from vector_rag.config import settings
from vector_rag.exceptions import (
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    StoreFailure,
    StoreTransientError,
)
from vector_rag.models import VectorRecord
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

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SPACE_BY_METRIC = {DistanceMetric.COSINE: "cosine", DistanceMetric.EUCLIDEAN: "l2"}


def _collection_name(bucket: str, index: str) -> str:
    return f"{bucket}.{index}"


def _split_collection_name(name: str) -> tuple[str, str] | None:
    bucket, sep, index = name.partition(".")
    return (bucket, index) if sep and bucket and index else None


def _is_missing(exc: Exception) -> bool:
    return isinstance(exc, NotFoundError) or "does not exist" in str(exc).lower()


def _is_unreachable(exc: Exception) -> bool:
    # chromadb reports a dead server as ValueError("Could not connect to a Chroma server...")
    return isinstance(exc, httpx.TransportError) or "could not connect" in str(exc).lower()


def _segment_of(key: str, segment_count: int) -> int:
    """Stable segment assignment for *key*."""
    return zlib.crc32(key.encode("utf-8")) % segment_count


def _flat_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    # Chroma metadata values must be flat str/int/float/bool
    return {k: v for k, v in metadata.items() if isinstance(v, (str, int, float, bool))}


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed store.

    Parameters
    ----------
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    client:
        Pre-built Chroma client (tests inject a mock here).
    """

    def __init__(
        self,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        client: Any = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(retry_policy)
        self._host = host
        self._port = port
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = chromadb.HttpClient(host=self._host, port=self._port)
        return self._client

    def _guard(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except (httpx.TransportError, ChromaError, ValueError) as exc:
            if _is_unreachable(exc):
                raise StoreTransientError(f"{operation}: {exc}", {"operation": operation}) from exc
            raise StoreFailure(f"{operation}: {exc}", {"operation": operation}) from exc

    def _collection(self, bucket: str, index: str) -> Any:
        name = _collection_name(bucket, index)
        try:
            return self.client.get_collection(name)
        except (ChromaError, ValueError) as exc:
            if not _is_missing(exc):
                raise
            raise ResourceNotFoundError(
                f"Index {index!r} not found in bucket {bucket!r}",
                {"bucket": bucket, "index": index},
            ) from exc

    def _collection_names(self) -> list[str]:
        # chromadb < 0.6 returns Collection objects, later releases return names
        return [getattr(c, "name", c) for c in self.client.list_collections()]

    # -- VectorStoreBase primitives -------------------------------------------

    def _create_bucket(self, bucket: str) -> None:
        logger.debug("Chroma has no buckets; %s is used as a collection prefix", bucket)

    def _create_index(
        self,
        bucket: str,
        index: str,
        dimension: int,
        distance_metric: DistanceMetric,
        non_filterable_keys: list[str],
    ) -> None:
        def _create() -> None:
            try:
                self._collection(bucket, index)
            except ResourceNotFoundError:
                pass
            else:
                raise ResourceAlreadyExistsError(
                    f"Index {index!r} already exists in bucket {bucket!r}",
                    {"bucket": bucket, "index": index},
                )
            self.client.create_collection(
                name=_collection_name(bucket, index),
                metadata={
                    "hnsw:space": _SPACE_BY_METRIC[distance_metric],
                    "dimension": dimension,
                    "distance_metric": distance_metric.value,
                },
            )

        self._guard("create_index", _create)

    def _get_index(self, bucket: str, index: str) -> IndexInfo:
        collection = self._guard("get_index", lambda: self._collection(bucket, index))
        meta = collection.metadata or {}
        if "dimension" not in meta:
            raise StoreFailure(
                f"Collection {collection.name!r} was not created by vector-rag (no dimension)",
                {"bucket": bucket, "index": index},
            )
        return IndexInfo(
            bucket=bucket,
            name=index,
            dimension=int(meta["dimension"]),
            distance_metric=DistanceMetric(meta.get("distance_metric", "cosine")),
        )

    def _put_vectors(self, bucket: str, index: str, records: Sequence[VectorRecord]) -> None:
        def _upsert() -> None:
            self._collection(bucket, index).upsert(
                ids=[r.key for r in records],
                embeddings=[r.vector.values for r in records],
                metadatas=[_flat_metadata(r.metadata) for r in records],
            )

        self._guard("put_vectors", _upsert)

    def _query_vectors(
        self,
        bucket: str,
        index: str,
        query_vector: list[float],
        top_k: int,
        filter_doc: dict[str, Any] | None,
        return_distance: bool,
        return_metadata: bool,
    ) -> list[QueryResult]:
        def _query() -> dict[str, Any]:
            return self._collection(bucket, index).query(
                query_embeddings=[query_vector],
                n_results=top_k,
                where=filter_doc,
                include=["metadatas", "distances"],
            )

        results = self._guard("query_vectors", _query)
        ids = (results.get("ids") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0] or [None] * len(ids)
        distances = (results.get("distances") or [[]])[0] or [None] * len(ids)

        hits: list[QueryResult] = []
        for key, meta, dist in zip(ids, metas, distances):
            hits.append(
                QueryResult(
                    key=key,
                    distance=float(dist) if return_distance and dist is not None else None,
                    metadata=dict(meta or {}) if return_metadata else None,
                )
            )
        return hits

    def _list_vectors(
        self,
        bucket: str,
        index: str,
        max_results: int,
        next_token: str | None,
        segment_count: int | None,
        segment_index: int | None,
        return_data: bool,
        return_metadata: bool,
    ) -> ListVectorsPage:
        offset = int(next_token) if next_token else 0
        include = []
        if return_data:
            include.append("embeddings")
        if return_metadata:
            include.append("metadatas")

        def _get() -> dict[str, Any]:
            return self._collection(bucket, index).get(limit=max_results, offset=offset, include=include)

        page = self._guard("list_vectors", _get)
        ids = page.get("ids") or []
        embeddings = page.get("embeddings")
        metadatas = page.get("metadatas")

        vectors: list[ListedVector] = []
        for i, key in enumerate(ids):
            if segment_count is not None and _segment_of(key, segment_count) != segment_index:
                continue
            values = None
            if return_data and embeddings is not None:
                values = [float(x) for x in embeddings[i]]
            metadata = None
            if return_metadata and metadatas is not None:
                metadata = dict(metadatas[i] or {})
            vectors.append(ListedVector(key=key, values=values, metadata=metadata))

        token = str(offset + len(ids)) if len(ids) == max_results else None
        return ListVectorsPage(vectors=vectors, next_token=token)

    def _delete_vectors(self, bucket: str, index: str, keys: Sequence[str]) -> None:
        self._guard("delete_vectors", lambda: self._collection(bucket, index).delete(ids=list(keys)))

    def _list_buckets(self, prefix: str | None) -> list[BucketInfo]:
        names = self._guard("list_buckets", self._collection_names)
        buckets = {parts[0] for parts in map(_split_collection_name, names) if parts}
        return [BucketInfo(name=b) for b in sorted(buckets) if not prefix or b.startswith(prefix)]

    def _delete_bucket(self, bucket: str) -> None:
        remaining = self._list_indexes(bucket, None)
        if remaining:
            raise StoreFailure(
                f"Bucket {bucket!r} still holds {len(remaining)} index(es)",
                {"bucket": bucket, "indexes": [i.name for i in remaining]},
            )
        logger.debug("Chroma has no buckets; nothing to delete for %s", bucket)

    def _list_indexes(self, bucket: str, prefix: str | None) -> list[IndexSummary]:
        names = self._guard("list_indexes", self._collection_names)
        indexes = []
        for parts in map(_split_collection_name, names):
            if parts is None or parts[0] != bucket:
                continue
            if prefix and not parts[1].startswith(prefix):
                continue
            indexes.append(IndexSummary(bucket=bucket, name=parts[1]))
        return sorted(indexes, key=lambda i: i.name)

    def _delete_index(self, bucket: str, index: str) -> None:
        def _delete() -> None:
            try:
                self.client.delete_collection(_collection_name(bucket, index))
            except (ChromaError, ValueError) as exc:
                if not _is_missing(exc):
                    raise
                raise ResourceNotFoundError(
                    f"Index {index!r} not found in bucket {bucket!r}",
                    {"bucket": bucket, "index": index},
                ) from exc

        self._guard("delete_index", _delete)

    def _get_vectors(
        self,
        bucket: str,
        index: str,
        keys: Sequence[str],
        return_data: bool,
        return_metadata: bool,
    ) -> list[ListedVector]:
        include = []
        if return_data:
            include.append("embeddings")
        if return_metadata:
            include.append("metadatas")

        def _get() -> dict[str, Any]:
            return self._collection(bucket, index).get(ids=list(keys), include=include)

        page = self._guard("get_vectors", _get)
        embeddings = page.get("embeddings")
        metadatas = page.get("metadatas")
        vectors = []
        for i, key in enumerate(page.get("ids") or []):
            vectors.append(
                ListedVector(
                    key=key,
                    values=[float(x) for x in embeddings[i]] if return_data and embeddings is not None else None,
                    metadata=dict(metadatas[i] or {}) if return_metadata and metadatas is not None else None,
                )
            )
        return vectors
