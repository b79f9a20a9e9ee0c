"""
Vector store — bucket / index / vector operations over a remote ANN service.

The rest of the package only talks to :class:`VectorStoreBase`, so the
backing service can be swapped through configuration.

Public surface
--------------
- :class:`VectorStoreBase` — abstract backend with validation and retrying.
- :class:`S3VectorsStore` — Amazon S3 Vectors backend (default).
- :class:`ChromaVectorStore` — Chroma backend for local development.
- :class:`BucketInfo`, :class:`IndexSummary`, :class:`IndexInfo`, :class:`QueryResult`, :class:`ListVectorsPage`, :class:`MetadataFilter` — data models.
- :func:`create_store` — backend factory driven by :class:`~vector_rag.config.Settings`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from vector_rag.exceptions import ConfigurationError
from vector_rag.vectorstore.base import VectorStoreBase
from vector_rag.vectorstore.models import (
    BucketInfo,
    DistanceMetric,
    IndexInfo,
    IndexSummary,
    ListedVector,
    ListVectorsPage,
    MetadataFilter,
    QueryResult,
)
from vector_rag.vectorstore.retry import RetryPolicy

if TYPE_CHECKING:
    from vector_rag.config import Settings

__all__ = [
    "BucketInfo",
    "ChromaVectorStore",
    "DistanceMetric",
    "IndexInfo",
    "IndexSummary",
    "ListVectorsPage",
    "ListedVector",
    "MetadataFilter",
    "QueryResult",
    "RetryPolicy",
    "S3VectorsStore",
    "VectorStoreBase",
    "create_store",
]


def create_store(config: Settings) -> VectorStoreBase:
    """Build the backend named by ``config.vector_store_backend``."""
    policy = RetryPolicy(
        max_attempts=config.store_max_attempts,
        initial_backoff=config.store_initial_backoff,
        max_backoff=config.store_max_backoff,
    )
    if config.vector_store_backend == "s3vectors":
        from vector_rag.vectorstore.s3vectors_store import S3VectorsStore

        return S3VectorsStore(config.aws_region, config=config, retry_policy=policy)
    if config.vector_store_backend == "chroma":
        from vector_rag.vectorstore.chroma_store import ChromaVectorStore

        return ChromaVectorStore(host=config.chroma_host, port=config.chroma_port, retry_policy=policy)
    raise ConfigurationError(f"Unknown vector store backend {config.vector_store_backend!r}")


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import backends to avoid pulling in boto3 / chromadb at import time."""
    if name == "S3VectorsStore":
        from vector_rag.vectorstore.s3vectors_store import S3VectorsStore

        return S3VectorsStore
    if name == "ChromaVectorStore":
        from vector_rag.vectorstore.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
