"""Abstract base class for vector-store backends.

Adding a new backend only requires subclassing :class:`VectorStoreBase`
and implementing the ``_``-prefixed primitives. The public methods on the
base class own validation and retrying, so every backend enforces the
same limits and error taxonomy:

* primitives raise :class:`StoreTransientError` for throttling / network
  blips and :class:`StoreFailure` (or a subclass) for everything else;
* public methods retry transient errors per :class:`RetryPolicy` and
  raise :class:`ConfigurationError` before any remote call whose
  arguments the store would reject.

The store is stateless per call apart from a small index-dimension cache,
so one instance is safely shared across threads.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Sequence
from typing import Any, TypeVar

from vector_rag.exceptions import ConfigurationError, ResourceAlreadyExistsError
from vector_rag.models import EmbeddingVector, VectorRecord
from vector_rag.vectorstore import validation
from vector_rag.vectorstore.filters import FilterSpec, build_filter
from vector_rag.vectorstore.models import (
    BucketInfo,
    DistanceMetric,
    IndexInfo,
    IndexSummary,
    ListedVector,
    ListVectorsPage,
    QueryResult,
)
from vector_rag.vectorstore.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VectorStoreBase(ABC):
    """Backend-agnostic bucket / index / vector interface.

    Parameters
    ----------
    retry_policy:
        Backoff applied to transient errors on every call.
    """

    def __init__(self, retry_policy: RetryPolicy | None = None) -> None:
        self.retry_policy = retry_policy or RetryPolicy()
        self._index_cache: dict[tuple[str, str], IndexInfo] = {}
        self._cache_lock = threading.Lock()

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def _create_bucket(self, bucket: str) -> None: ...

    @abstractmethod
    def _create_index(
        self,
        bucket: str,
        index: str,
        dimension: int,
        distance_metric: DistanceMetric,
        non_filterable_keys: list[str],
    ) -> None: ...

    @abstractmethod
    def _get_index(self, bucket: str, index: str) -> IndexInfo: ...

    @abstractmethod
    def _put_vectors(self, bucket: str, index: str, records: Sequence[VectorRecord]) -> None: ...

    @abstractmethod
    def _query_vectors(
        self,
        bucket: str,
        index: str,
        query_vector: list[float],
        top_k: int,
        filter_doc: dict[str, Any] | None,
        return_distance: bool,
        return_metadata: bool,
    ) -> list[QueryResult]: ...

    @abstractmethod
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
    ) -> ListVectorsPage: ...

    @abstractmethod
    def _delete_vectors(self, bucket: str, index: str, keys: Sequence[str]) -> None: ...

    @abstractmethod
    def _list_buckets(self, prefix: str | None) -> list[BucketInfo]: ...

    @abstractmethod
    def _delete_bucket(self, bucket: str) -> None: ...

    @abstractmethod
    def _list_indexes(self, bucket: str, prefix: str | None) -> list[IndexSummary]: ...

    @abstractmethod
    def _delete_index(self, bucket: str, index: str) -> None: ...

    @abstractmethod
    def _get_vectors(
        self,
        bucket: str,
        index: str,
        keys: Sequence[str],
        return_data: bool,
        return_metadata: bool,
    ) -> list[ListedVector]: ...

    # -- public API -----------------------------------------------------------

    def create_bucket(self, bucket: str) -> None:
        validation.validate_bucket_name(bucket)
        logger.info("Creating vector bucket: %s", bucket)
        self._call("create_bucket", lambda: self._create_bucket(bucket))

    def list_buckets(self, prefix: str | None = None) -> list[BucketInfo]:
        """Return every bucket, optionally only those whose name starts with *prefix*."""
        return self._call("list_buckets", lambda: self._list_buckets(prefix or None))

    def delete_bucket(self, bucket: str) -> None:
        """Delete an empty bucket; one that still holds indexes is a :class:`StoreFailure`."""
        validation.validate_bucket_name(bucket)
        logger.info("Deleting vector bucket: %s", bucket)
        self._call("delete_bucket", lambda: self._delete_bucket(bucket))
        with self._cache_lock:
            for key in [k for k in self._index_cache if k[0] == bucket]:
                del self._index_cache[key]

    def create_index(
        self,
        bucket: str,
        index: str,
        dimension: int,
        distance_metric: DistanceMetric | str = DistanceMetric.COSINE,
        *,
        non_filterable_keys: Sequence[str] = ("text",),
    ) -> None:
        validation.validate_bucket_name(bucket)
        validation.validate_index_name(index)
        validation.validate_dimension(dimension)
        metric = validation.validate_distance_metric(distance_metric)
        logger.info(
            "Creating index %s in bucket %s (dimension=%d, metric=%s)",
            index, bucket, dimension, metric.value,
        )
        self._call(
            "create_index",
            lambda: self._create_index(bucket, index, dimension, metric, list(non_filterable_keys)),
        )

    def get_index(self, bucket: str, index: str) -> IndexInfo:
        validation.validate_bucket_name(bucket)
        validation.validate_index_name(index)
        info = self._call("get_index", lambda: self._get_index(bucket, index))
        with self._cache_lock:
            self._index_cache[(bucket, index)] = info
        return info

    def index_info(self, bucket: str, index: str) -> IndexInfo:
        """Like :meth:`get_index`, but served from the cache after the first lookup."""
        with self._cache_lock:
            cached = self._index_cache.get((bucket, index))
        if cached is not None:
            return cached
        return self.get_index(bucket, index)

    def index_dimension(self, bucket: str, index: str) -> int:
        """Return the configured dimension of *index*, cached after first lookup."""
        return self.index_info(bucket, index).dimension

    def list_indexes(self, bucket: str, prefix: str | None = None) -> list[IndexSummary]:
        validation.validate_bucket_name(bucket)
        return self._call("list_indexes", lambda: self._list_indexes(bucket, prefix or None))

    def delete_index(self, bucket: str, index: str) -> None:
        """Delete *index* and every vector in it."""
        validation.validate_bucket_name(bucket)
        validation.validate_index_name(index)
        logger.info("Deleting index %s from bucket %s", index, bucket)
        self._call("delete_index", lambda: self._delete_index(bucket, index))
        with self._cache_lock:
            self._index_cache.pop((bucket, index), None)

    def put_vectors(
        self,
        bucket: str,
        index: str,
        records: Sequence[VectorRecord],
        *,
        dimension: int | None = None,
    ) -> None:
        """Upsert up to 500 *records*; keys that already exist are overwritten."""
        validation.validate_bucket_name(bucket)
        validation.validate_index_name(index)
        expected = dimension if dimension is not None else self.index_dimension(bucket, index)
        validation.validate_records(records, expected)
        logger.debug("Putting %d vectors to index %s in bucket %s", len(records), index, bucket)
        self._call("put_vectors", lambda: self._put_vectors(bucket, index, records))

    def query_vectors(
        self,
        bucket: str,
        index: str,
        query_vector: EmbeddingVector | Sequence[float],
        top_k: int,
        filter: FilterSpec = None,  # noqa: A002
        *,
        return_distance: bool = True,
        return_metadata: bool = True,
    ) -> list[QueryResult]:
        """Return up to *top_k* neighbours, best match first."""
        validation.validate_bucket_name(bucket)
        validation.validate_index_name(index)
        validation.validate_top_k(top_k)
        values = list(query_vector.values if isinstance(query_vector, EmbeddingVector) else query_vector)
        validation.validate_vector_values(values, len(values))
        filter_doc = build_filter(filter)
        metric = self.index_info(bucket, index).distance_metric
        results = self._call(
            "query_vectors",
            lambda: self._query_vectors(
                bucket, index, values, top_k, filter_doc, return_distance, return_metadata
            ),
        )
        for result in results:
            result.distance_metric = metric
        return results

    def get_vectors(
        self,
        bucket: str,
        index: str,
        keys: Sequence[str],
        *,
        return_data: bool = False,
        return_metadata: bool = True,
    ) -> list[ListedVector]:
        """Fetch up to 100 vectors by key; keys that do not exist are left out."""
        validation.validate_bucket_name(bucket)
        validation.validate_index_name(index)
        validation.validate_keys(keys, validation.MAX_GET_KEYS)
        return self._call(
            "get_vectors",
            lambda: self._get_vectors(bucket, index, list(keys), return_data, return_metadata),
        )

    def list_vectors(
        self,
        bucket: str,
        index: str,
        max_results: int = 1000,
        next_token: str | None = None,
        *,
        segment_count: int | None = None,
        segment_index: int | None = None,
        return_data: bool = False,
        return_metadata: bool = False,
    ) -> ListVectorsPage:
        """Return one page of vectors; pass ``next_token`` back until it is ``None``."""
        validation.validate_bucket_name(bucket)
        validation.validate_index_name(index)
        validation.validate_list_params(max_results, segment_count, segment_index)
        return self._call(
            "list_vectors",
            lambda: self._list_vectors(
                bucket,
                index,
                max_results,
                next_token or None,
                segment_count,
                segment_index,
                return_data,
                return_metadata,
            ),
        )

    def delete_vectors(self, bucket: str, index: str, keys: Sequence[str]) -> None:
        validation.validate_bucket_name(bucket)
        validation.validate_index_name(index)
        validation.validate_keys(keys)
        logger.info("Deleting %d vectors from index %s in bucket %s", len(keys), index, bucket)
        self._call("delete_vectors", lambda: self._delete_vectors(bucket, index, keys))

    # -- helpers built on the contract ----------------------------------------

    def iter_vectors(
        self,
        bucket: str,
        index: str,
        *,
        page_size: int = 1000,
        segment_count: int | None = None,
        segment_index: int | None = None,
        return_data: bool = False,
        return_metadata: bool = False,
    ) -> Iterator[ListedVector]:
        """Yield every vector in *index* (or one segment of it), following pagination."""
        token: str | None = None
        while True:
            page = self.list_vectors(
                bucket,
                index,
                page_size,
                token,
                segment_count=segment_count,
                segment_index=segment_index,
                return_data=return_data,
                return_metadata=return_metadata,
            )
            yield from page.vectors
            token = page.next_token
            if not token:
                return

    def is_index_empty(self, bucket: str, index: str) -> bool:
        page = self.list_vectors(bucket, index, max_results=1)
        return not page.vectors

    def ensure_bucket_and_index(
        self,
        bucket: str,
        index: str,
        dimension: int,
        distance_metric: DistanceMetric | str = DistanceMetric.COSINE,
    ) -> IndexInfo:
        """Create *bucket* and *index* unless they exist, then describe the index.

        An existing index with a different dimension is a
        :class:`ConfigurationError`.
        """
        try:
            self.create_bucket(bucket)
        except ResourceAlreadyExistsError:
            logger.info("Bucket %s already exists, using existing", bucket)
        try:
            self.create_index(bucket, index, dimension, distance_metric)
        except ResourceAlreadyExistsError:
            logger.info("Index %s already exists, using existing", index)

        info = self.get_index(bucket, index)
        if info.dimension != dimension:
            raise ConfigurationError(
                f"Index {index!r} has dimension {info.dimension}, expected {dimension}",
                {"bucket": bucket, "index": index},
            )
        return info

    def batch_put_vectors(
        self,
        bucket: str,
        index: str,
        records: Sequence[VectorRecord],
        *,
        dimension: int | None = None,
    ) -> int:
        """Upload *records* of any length in slices of at most 500."""
        total = 0
        for start in range(0, len(records), validation.MAX_BATCH_SIZE):
            batch = records[start : start + validation.MAX_BATCH_SIZE]
            self.put_vectors(bucket, index, batch, dimension=dimension)
            total += len(batch)
        logger.info("Successfully put %d vectors", total)
        return total

    # -- internals ------------------------------------------------------------

    def _call(self, operation: str, fn: Callable[[], T]) -> T:
        return call_with_retry(fn, operation=operation, policy=self.retry_policy)
