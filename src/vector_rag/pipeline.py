"""End-to-end facade wiring store, ingestion and retrieval from settings."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from vector_rag.config import Settings, settings
from vector_rag.exceptions import ConfigurationError
from vector_rag.ingestion.coordinator import IngestionCoordinator, WorkerPool
from vector_rag.ingestion.embedder import EmbeddingEngine
from vector_rag.ingestion.loader import list_documents
from vector_rag.ingestion.models import IngestionReport
from vector_rag.retrieval.models import RetrievalContext
from vector_rag.retrieval.retriever import QueryEngine, answer
from vector_rag.vectorstore import create_store
from vector_rag.vectorstore.base import VectorStoreBase
from vector_rag.vectorstore.filters import FilterSpec
from vector_rag.vectorstore.models import IndexInfo

logger = logging.getLogger(__name__)


class RagPipeline:
    """Ingest a directory and answer queries against one bucket / index.

    Parameters
    ----------
    config:
        Settings to build components from.
    store:
        Store backend; built with :func:`create_store` when omitted.
    engine:
        Embedding engine for queries; built from *config* when omitted.
    pool:
        Ingestion worker pool; built from *config* when omitted.
    """

    def __init__(
        self,
        config: Settings = settings,
        store: VectorStoreBase | None = None,
        *,
        engine: EmbeddingEngine | None = None,
        pool: WorkerPool | None = None,
    ) -> None:
        self.config = config
        self.store = store or create_store(config)
        self.bucket = config.vector_bucket
        self.index = config.vector_index

        def _engine() -> EmbeddingEngine:
            return EmbeddingEngine(
                config.embedding_model_dir,
                batch_size=config.embed_batch_size,
                device=config.embedding_device,
                truncation_policy=config.truncation_policy,
            )

        self.coordinator = IngestionCoordinator(
            self.store,
            self.bucket,
            self.index,
            pool=pool or WorkerPool(config.ingest_workers, _engine),
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            batch_size=config.upload_batch_size,
        )
        self.query_engine = QueryEngine(
            self.store,
            self.bucket,
            self.index,
            engine or _engine(),
            default_top_k=config.default_top_k,
        )

    def initialize(self) -> IndexInfo:
        """Create the bucket and index if needed."""
        logger.info("Initializing RAG pipeline for %s/%s", self.bucket, self.index)
        info = self.store.ensure_bucket_and_index(
            self.bucket,
            self.index,
            self.config.embedding_dimension,
            self.config.distance_metric,
        )
        logger.info("RAG pipeline initialized successfully")
        return info

    def verify(self) -> IndexInfo:
        """Check the index exists and matches the configured dimension."""
        info = self.store.get_index(self.bucket, self.index)
        if info.dimension != self.config.embedding_dimension:
            raise ConfigurationError(
                f"Index {self.index!r} has dimension {info.dimension}, "
                f"but embedding_dimension is {self.config.embedding_dimension}",
                {"bucket": self.bucket, "index": self.index},
            )
        return info

    def ingest_directory(
        self,
        path: str | Path,
        *,
        batch_size: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> IngestionReport:
        documents = list_documents(path)
        return self.coordinator.ingest(documents, batch_size=batch_size, cancel_event=cancel_event)

    def search(
        self,
        query_text: str,
        top_k: int | None = None,
        filter: FilterSpec = None,  # noqa: A002
    ) -> RetrievalContext:
        return self.query_engine.search(query_text, top_k, filter)

    def query(self, query_text: str, top_k: int | None = None) -> str:
        """Search and render the retrieval-summary response."""
        context = self.search(query_text, top_k)
        return answer(query_text, context)
