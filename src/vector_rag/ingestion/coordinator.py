"""Parallel ingestion: chunk and embed documents on a worker pool, upload in batches.

Threads
-------
* **Workers** (one per pool slot, at most one per document) take
  documents from a task queue, chunk and embed them with the slot's own
  :class:`EmbeddingEngine`, and post a message to the result queue.
* **Coordinator** (the calling thread) consumes those messages, groups
  records into batches of at most ``batch_size`` and uploads each batch
  with one ``put_vectors`` call.

Workers never touch the store and the coordinator never touches a model,
so the only shared objects are the two queues and the cancel event.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Union

from vector_rag.config import settings
from vector_rag.exceptions import (
    ConfigurationError,
    DocumentProcessingError,
    ModelLoadError,
    StoreFailure,
)
from vector_rag.ingestion.chunker import chunk, validate_window
from vector_rag.ingestion.embedder import EmbeddingEngine
from vector_rag.ingestion.models import BatchFailure, DocumentFailure, IngestionReport
from vector_rag.models import Chunk, Document, VectorRecord
from vector_rag.vectorstore import validation
from vector_rag.vectorstore.base import VectorStoreBase

logger = logging.getLogger(__name__)


def default_engine_factory() -> EmbeddingEngine:
    return EmbeddingEngine(
        settings.embedding_model_dir,
        batch_size=settings.embed_batch_size,
        device=settings.embedding_device,
        truncation_policy=settings.truncation_policy,
    )


class WorkerPool:
    """Fixed set of worker slots, each owning one lazily built engine.

    A slot's engine is created the first time a worker runs in that slot
    and is reused by every later :meth:`IngestionCoordinator.ingest` call,
    so each slot loads its model at most once. Only the thread currently
    running in a slot touches that slot's engine.

    Parameters
    ----------
    size:
        Number of slots; defaults to ``os.cpu_count()``.
    engine_factory:
        Zero-argument callable building an engine.
    """

    def __init__(
        self,
        size: int | None = None,
        engine_factory: Callable[[], EmbeddingEngine] = default_engine_factory,
    ) -> None:
        size = size or os.cpu_count() or 1
        if size < 1:
            raise ConfigurationError("Worker pool size must be at least 1", {"size": size})
        self.size = size
        self._engine_factory = engine_factory
        self._engines: list[EmbeddingEngine | None] = [None] * size

    def engine(self, slot: int) -> EmbeddingEngine:
        engine = self._engines[slot]
        if engine is None:
            logger.debug("Creating embedding engine for worker slot %d", slot)
            engine = self._engine_factory()
            self._engines[slot] = engine
        return engine

    @property
    def engines_created(self) -> int:
        return sum(1 for e in self._engines if e is not None)

    def reset(self) -> None:
        """Drop every engine; the next run reloads models."""
        self._engines = [None] * self.size


# -- worker → coordinator messages ---------------------------------------------


@dataclass(frozen=True)
class _DocumentDone:
    document: Document
    records: list[VectorRecord] = field(default_factory=list)


@dataclass(frozen=True)
class _DocumentFailed:
    document: Document
    error: Exception


@dataclass(frozen=True)
class _Fatal:
    error: ConfigurationError


@dataclass(frozen=True)
class _WorkerExit:
    slot: int
    dead: bool


_Message = Union[_DocumentDone, _DocumentFailed, _Fatal, _WorkerExit]

_STOP = None


def chunk_metadata(document: Document, item: Chunk, total_chunks: int) -> dict[str, Any]:
    """Metadata stored alongside each chunk vector."""
    metadata: dict[str, Any] = {
        "text": item.text,
        "document_id": document.id,
        "source_path": document.source_path,
        "chunk_index": item.chunk_index,
        "total_chunks": total_chunks,
        "char_offset": item.char_offset,
    }
    if document.title:
        metadata["title"] = document.title
    return metadata


class IngestionCoordinator:
    """Fan documents out across a :class:`WorkerPool` and upload the vectors.

    Parameters
    ----------
    store:
        Target vector store, shared by every batch upload.
    bucket, index:
        Destination of the vectors.
    pool:
        Worker pool; one is built from *workers* when omitted.
    workers:
        Pool size when *pool* is omitted.
    chunk_size, chunk_overlap:
        Chunking window, in characters.
    batch_size:
        Default records per upload (1–500).
    """

    def __init__(
        self,
        store: VectorStoreBase,
        bucket: str = settings.vector_bucket,
        index: str = settings.vector_index,
        *,
        pool: WorkerPool | None = None,
        workers: int | None = settings.ingest_workers,
        chunk_size: int = settings.chunk_size,
        chunk_overlap: int = settings.chunk_overlap,
        batch_size: int = settings.upload_batch_size,
    ) -> None:
        validate_window(chunk_size, chunk_overlap)
        validation.validate_batch_size(batch_size)
        self.store = store
        self.bucket = bucket
        self.index = index
        self.pool = pool or WorkerPool(workers)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.batch_size = batch_size

    # -- public API -----------------------------------------------------------

    def ingest(
        self,
        documents: Sequence[Document],
        *,
        batch_size: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> IngestionReport:
        """Chunk, embed and upload *documents*.

        Per-document and per-batch failures are recorded in the report and
        never stop the run. A :class:`ConfigurationError` (for instance an
        engine whose dimension differs from the index) cancels the run and
        is raised once the workers have stopped.

        Setting *cancel_event* stops workers from taking new documents and
        the coordinator from uploading further batches; embedding already
        in progress finishes but its records are not uploaded.
        """
        batch_size = self.batch_size if batch_size is None else batch_size
        validation.validate_batch_size(batch_size)
        started = time.perf_counter()
        report = IngestionReport(total_documents=len(documents))
        if not documents:
            return report

        dimension = self.store.index_dimension(self.bucket, self.index)
        cancel = cancel_event or threading.Event()
        n_workers = min(self.pool.size, len(documents))

        tasks: queue.Queue[Document | None] = queue.Queue()
        for document in documents:
            tasks.put(document)
        for _ in range(n_workers):
            tasks.put(_STOP)
        results: queue.Queue[_Message] = queue.Queue()

        logger.info(
            "Ingesting %d documents with %d workers into %s/%s (batch size %d)",
            len(documents), n_workers, self.bucket, self.index, batch_size,
        )

        pending: list[VectorRecord] = []
        fatal: ConfigurationError | None = None
        dead_workers = 0

        with ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="ingest-worker") as executor:
            for slot in range(n_workers):
                executor.submit(self._work, slot, tasks, results, cancel, dimension)

            exited = 0
            while exited < n_workers:
                message = results.get()
                if isinstance(message, _DocumentDone):
                    report.total_chunks += len(message.records)
                    pending.extend(message.records)
                    while len(pending) >= batch_size:
                        batch, pending = pending[:batch_size], pending[batch_size:]
                        self._upload(batch, report, cancel, dimension)
                elif isinstance(message, _DocumentFailed):
                    report.per_document_failures.append(_document_failure(message.document, message.error))
                elif isinstance(message, _Fatal):
                    fatal = fatal or message.error
                    cancel.set()
                elif isinstance(message, _WorkerExit):
                    exited += 1
                    dead_workers += int(message.dead)

        if pending:
            self._upload(pending, report, cancel, dimension)

        for document in _drain(tasks):
            if cancel.is_set():
                report.skipped_documents.append(document.id)
            else:
                report.per_document_failures.append(
                    _document_failure(
                        document,
                        ModelLoadError("No live workers left: every worker failed to load the model"),
                    )
                )

        report.cancelled = cancel.is_set()
        report.duration_seconds = time.perf_counter() - started
        if fatal is not None:
            raise fatal
        if dead_workers:
            logger.error("%d of %d workers died with ModelLoadError", dead_workers, n_workers)
        logger.info("Ingestion finished: %s", report.summary())
        return report

    # -- worker side ----------------------------------------------------------

    def _work(
        self,
        slot: int,
        tasks: queue.Queue[Document | None],
        results: queue.Queue[_Message],
        cancel: threading.Event,
        dimension: int,
    ) -> None:
        dead = False
        try:
            while not cancel.is_set():
                document = tasks.get()
                if document is _STOP:
                    break
                try:
                    records = self._process(document, self.pool.engine(slot), dimension)
                except ModelLoadError as exc:
                    logger.error("Worker %d cannot load the embedding model: %s", slot, exc)
                    results.put(_DocumentFailed(document, exc))
                    dead = True
                    break
                except ConfigurationError as exc:
                    results.put(_Fatal(exc))
                    break
                except DocumentProcessingError as exc:
                    logger.error("Failed to process %s: %s", document.id, exc)
                    results.put(_DocumentFailed(document, exc))
                except Exception as exc:
                    logger.exception("Unexpected error processing %s", document.id)
                    results.put(
                        _DocumentFailed(document, DocumentProcessingError(str(exc), document.id))
                    )
                else:
                    results.put(_DocumentDone(document, records))
        finally:
            results.put(_WorkerExit(slot, dead))

    def _process(self, document: Document, engine: EmbeddingEngine, dimension: int) -> list[VectorRecord]:
        chunks = chunk(document, self.chunk_size, self.chunk_overlap)
        if not chunks:
            logger.debug("Document %s is empty, nothing to embed", document.id)
            return []
        if engine.dimension != dimension:
            raise ConfigurationError(
                f"Embedding dimension {engine.dimension} does not match index dimension {dimension}",
                {"index": self.index, "engine_dimension": engine.dimension, "index_dimension": dimension},
            )

        vectors = engine.embed([c.text for c in chunks])
        if len(vectors) != len(chunks):
            raise DocumentProcessingError(
                f"Engine returned {len(vectors)} vectors for {len(chunks)} chunks", document.id
            )
        records = [
            VectorRecord(key=c.key, vector=v, metadata=chunk_metadata(document, c, len(chunks)))
            for c, v in zip(chunks, vectors)
        ]
        logger.debug("Embedded %s into %d chunks", document.id, len(records))
        return records

    # -- coordinator side -----------------------------------------------------

    def _upload(
        self,
        batch: list[VectorRecord],
        report: IngestionReport,
        cancel: threading.Event,
        dimension: int,
    ) -> None:
        if cancel.is_set():
            logger.info("Cancelled; dropping batch of %d records", len(batch))
            return
        number = report.batches_uploaded + len(report.batch_failures) + 1
        try:
            self.store.put_vectors(self.bucket, self.index, batch, dimension=dimension)
        except (StoreFailure, ConfigurationError) as exc:
            logger.error("Batch %d (%d records) failed: %s", number, len(batch), exc)
            report.batch_failures.append(
                BatchFailure(
                    batch_number=number,
                    record_count=len(batch),
                    first_key=batch[0].key,
                    last_key=batch[-1].key,
                    message=str(exc),
                )
            )
            return
        report.batches_uploaded += 1
        report.total_vectors_uploaded += len(batch)
        logger.debug("Uploaded batch %d with %d records", number, len(batch))


def _document_failure(document: Document, error: Exception) -> DocumentFailure:
    return DocumentFailure(
        document_id=document.id,
        source_path=document.source_path,
        error_type=type(error).__name__,
        message=getattr(error, "message", str(error)),
    )


def _drain(tasks: queue.Queue[Document | None]) -> list[Document]:
    left: list[Document] = []
    while True:
        try:
            item = tasks.get_nowait()
        except queue.Empty:
            return left
        if item is not _STOP:
            left.append(item)
