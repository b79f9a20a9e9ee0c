"""Amazon S3 Vectors implementation of the vector-store abstraction.

Metadata layout
---------------
* Filterable: ``document_id``, ``source_path``, ``title``, ``chunk_index``,
  ``total_chunks``, ``char_offset``
* Non-filterable: ``text`` (the chunk body, too large for the 2 KB
  filterable budget)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from vector_rag.config import Settings, settings
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

_TRANSIENT_CODES = frozenset(
    {
        "TooManyRequestsException",
        "ThrottlingException",
        "ServiceUnavailableException",
        "InternalServerException",
        "RequestTimeoutException",
        "SlowDown",
    }
)
_TRANSIENT_BOTOCORE = (EndpointConnectionError, ConnectionClosedError, ReadTimeoutError)


def _translate_client_error(operation: str, exc: ClientError) -> Exception:
    """Map a botocore ``ClientError`` onto the store error taxonomy."""
    error = exc.response.get("Error", {})
    code = error.get("Code", "")
    message = error.get("Message", str(exc))
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
    details = {"operation": operation, "code": code, "status": status}

    if code in _TRANSIENT_CODES or status == 429 or status >= 500:
        return StoreTransientError(f"{operation}: {message}", details)
    if code in ("NotFoundException", "ResourceNotFoundException") or status == 404:
        return ResourceNotFoundError(f"{operation}: {message}", details)
    if (code == "ConflictException" or status == 409) and operation.startswith("create"):
        return ResourceAlreadyExistsError(f"{operation}: {message}", details)
    return StoreFailure(f"{operation}: {message}", details)


class S3VectorsStore(VectorStoreBase):
    """S3 Vectors-backed store using the boto3 ``s3vectors`` client.

    Parameters
    ----------
    region:
        AWS region hosting the vector buckets.
    client:
        Pre-built boto3 client; when *None* one is created from *config*.
    config:
        Settings supplying credentials / profile when *client* is *None*.
    retry_policy:
        Backoff for transient errors. botocore's own retries are disabled
        so the policy is the single source of truth.
    """

    def __init__(
        self,
        region: str = settings.aws_region,
        *,
        client: Any = None,
        config: Settings = settings,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(retry_policy)
        self.region = region
        self._client = client if client is not None else self._build_client(region, config)

    @staticmethod
    def _build_client(region: str, config: Settings) -> Any:
        session_kwargs: dict[str, Any] = {"region_name": region}
        if config.aws_profile:
            session_kwargs["profile_name"] = config.aws_profile
        if config.aws_access_key_id and config.aws_secret_access_key:
            session_kwargs["aws_access_key_id"] = config.aws_access_key_id.get_secret_value()
            session_kwargs["aws_secret_access_key"] = config.aws_secret_access_key.get_secret_value()
            if config.aws_session_token:
                session_kwargs["aws_session_token"] = config.aws_session_token.get_secret_value()
        session = boto3.session.Session(**session_kwargs)
        return session.client(
            "s3vectors",
            config=Config(retries={"max_attempts": 1, "mode": "standard"}, connect_timeout=10, read_timeout=30),
        )

    def _invoke(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        method = getattr(self._client, operation)
        try:
            return method(**kwargs)
        except ClientError as exc:
            raise _translate_client_error(operation, exc) from exc
        except _TRANSIENT_BOTOCORE as exc:
            raise StoreTransientError(f"{operation}: {exc}", {"operation": operation}) from exc
        except BotoCoreError as exc:
            raise StoreFailure(f"{operation}: {exc}", {"operation": operation}) from exc

    # -- VectorStoreBase primitives -------------------------------------------

    def _create_bucket(self, bucket: str) -> None:
        self._invoke("create_vector_bucket", vectorBucketName=bucket)

    def _create_index(
        self,
        bucket: str,
        index: str,
        dimension: int,
        distance_metric: DistanceMetric,
        non_filterable_keys: list[str],
    ) -> None:
        kwargs: dict[str, Any] = {
            "vectorBucketName": bucket,
            "indexName": index,
            "dataType": "float32",
            "dimension": dimension,
            "distanceMetric": distance_metric.value,
        }
        if non_filterable_keys:
            kwargs["metadataConfiguration"] = {"nonFilterableMetadataKeys": non_filterable_keys}
        self._invoke("create_index", **kwargs)

    def _get_index(self, bucket: str, index: str) -> IndexInfo:
        response = self._invoke("get_index", vectorBucketName=bucket, indexName=index)
        raw = response.get("index", {})
        return IndexInfo(
            bucket=raw.get("vectorBucketName", bucket),
            name=raw.get("indexName", index),
            dimension=raw["dimension"],
            distance_metric=DistanceMetric(raw.get("distanceMetric", "cosine")),
            data_type=raw.get("dataType", "float32"),
            arn=raw.get("indexArn"),
        )

    def _put_vectors(self, bucket: str, index: str, records: Sequence[VectorRecord]) -> None:
        vectors = [
            {
                "key": record.key,
                "data": {"float32": record.vector.values},
                "metadata": record.metadata,
            }
            for record in records
        ]
        self._invoke("put_vectors", vectorBucketName=bucket, indexName=index, vectors=vectors)

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
        kwargs: dict[str, Any] = {
            "vectorBucketName": bucket,
            "indexName": index,
            "topK": top_k,
            "queryVector": {"float32": query_vector},
            "returnDistance": return_distance,
            "returnMetadata": return_metadata,
        }
        if filter_doc:
            kwargs["filter"] = filter_doc
        response = self._invoke("query_vectors", **kwargs)
        return [
            QueryResult(
                key=match["key"],
                distance=match.get("distance") if return_distance else None,
                metadata=match.get("metadata") if return_metadata else None,
            )
            for match in response.get("vectors", [])
        ]

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
        kwargs: dict[str, Any] = {
            "vectorBucketName": bucket,
            "indexName": index,
            "maxResults": max_results,
            "returnData": return_data,
            "returnMetadata": return_metadata,
        }
        if next_token:
            kwargs["nextToken"] = next_token
        if segment_count is not None:
            kwargs["segmentCount"] = segment_count
            kwargs["segmentIndex"] = segment_index
        response = self._invoke("list_vectors", **kwargs)
        vectors = [
            ListedVector(
                key=item["key"],
                values=item.get("data", {}).get("float32") if return_data else None,
                metadata=item.get("metadata") if return_metadata else None,
            )
            for item in response.get("vectors", [])
        ]
        return ListVectorsPage(vectors=vectors, next_token=response.get("nextToken") or None)

    def _delete_vectors(self, bucket: str, index: str, keys: Sequence[str]) -> None:
        self._invoke("delete_vectors", vectorBucketName=bucket, indexName=index, keys=list(keys))

    def _list_buckets(self, prefix: str | None) -> list[BucketInfo]:
        kwargs: dict[str, Any] = {"maxResults": 100}
        if prefix:
            kwargs["prefix"] = prefix
        return [
            BucketInfo(name=raw["vectorBucketName"], arn=raw.get("vectorBucketArn"))
            for raw in self._paginate("list_vector_buckets", "vectorBuckets", **kwargs)
        ]

    def _delete_bucket(self, bucket: str) -> None:
        self._invoke("delete_vector_bucket", vectorBucketName=bucket)

    def _list_indexes(self, bucket: str, prefix: str | None) -> list[IndexSummary]:
        kwargs: dict[str, Any] = {"vectorBucketName": bucket, "maxResults": 500}
        if prefix:
            kwargs["prefix"] = prefix
        return [
            IndexSummary(
                bucket=raw.get("vectorBucketName", bucket),
                name=raw["indexName"],
                arn=raw.get("indexArn"),
            )
            for raw in self._paginate("list_indexes", "indexes", **kwargs)
        ]

    def _delete_index(self, bucket: str, index: str) -> None:
        self._invoke("delete_index", vectorBucketName=bucket, indexName=index)

    def _get_vectors(
        self,
        bucket: str,
        index: str,
        keys: Sequence[str],
        return_data: bool,
        return_metadata: bool,
    ) -> list[ListedVector]:
        response = self._invoke(
            "get_vectors",
            vectorBucketName=bucket,
            indexName=index,
            keys=list(keys),
            returnData=return_data,
            returnMetadata=return_metadata,
        )
        return [
            ListedVector(
                key=item["key"],
                values=item.get("data", {}).get("float32") if return_data else None,
                metadata=item.get("metadata") if return_metadata else None,
            )
            for item in response.get("vectors", [])
        ]

    # -- internals ------------------------------------------------------------

    def _paginate(self, operation: str, items_key: str, **kwargs: Any) -> list[dict[str, Any]]:
        """Follow ``nextToken`` through every page of a list call."""
        items: list[dict[str, Any]] = []
        token: str | None = None
        while True:
            page_kwargs = dict(kwargs, nextToken=token) if token else kwargs
            response = self._invoke(operation, **page_kwargs)
            items.extend(response.get(items_key, []))
            token = response.get("nextToken")
            if not token:
                return items
