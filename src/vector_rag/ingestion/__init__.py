"""
Ingestion — document loading, chunking, embedding and batched upload.

This package converts a directory of text documents into keyed vectors
stored in the configured vector index.

Public surface
--------------
- :func:`list_documents`, :func:`extract_title` — document source.
- :func:`chunk`, :class:`FixedWindowTextSplitter` — fixed-window chunker.
- :class:`EmbeddingEngine`, :func:`install_model` — sentence-encoder inference.
- :class:`IngestionCoordinator`, :class:`WorkerPool` — parallel ingest with batched upload.
- :class:`IngestionReport` — run summary.
"""

from vector_rag.ingestion.chunker import FixedWindowTextSplitter, chunk
from vector_rag.ingestion.coordinator import IngestionCoordinator, WorkerPool
from vector_rag.ingestion.embedder import EmbeddingEngine, install_model
from vector_rag.ingestion.loader import extract_title, list_documents
from vector_rag.ingestion.models import BatchFailure, DocumentFailure, IngestionReport

__all__ = [
    "BatchFailure",
    "DocumentFailure",
    "EmbeddingEngine",
    "FixedWindowTextSplitter",
    "IngestionCoordinator",
    "IngestionReport",
    "WorkerPool",
    "chunk",
    "extract_title",
    "install_model",
    "list_documents",
]
