"""Unit tests for the ingestion coordinator and worker pool."""

from __future__ import annotations

import threading

import pytest
from fakes import BrokenEngine, FakeEngine, InMemoryVectorStore

from vector_rag.exceptions import ConfigurationError, StoreFailure, StoreTransientError
from vector_rag.ingestion.coordinator import IngestionCoordinator, WorkerPool, chunk_metadata
from vector_rag.ingestion.chunker import chunk
from vector_rag.models import Document

BUCKET = "test-bucket"
INDEX = "test-index"
DIM = 8


def _docs(count: int, chunks_each: int, size: int = 10) -> list[Document]:
    """Documents that split into exactly *chunks_each* windows of *size* (no overlap)."""
    return [
        Document(
            id=f"doc-{i:03d}.txt",
            source_path=f"/corpus/doc-{i:03d}.txt",
            text="".join(f"{i:03d}-{j:05d}|"[:size] for j in range(chunks_each)),
            title=f"Document {i}",
        )
        for i in range(count)
    ]


@pytest.fixture()
def store() -> InMemoryVectorStore:
    s = InMemoryVectorStore()
    s.seed(BUCKET, INDEX, DIM)
    return s


def _coordinator(store: InMemoryVectorStore, workers: int = 4, factory=lambda: FakeEngine(DIM)) -> IngestionCoordinator:
    return IngestionCoordinator(
        store,
        BUCKET,
        INDEX,
        pool=WorkerPool(workers, factory),
        chunk_size=10,
        chunk_overlap=0,
    )


def test_1300_chunks_upload_in_three_bounded_batches(store: InMemoryVectorStore) -> None:
    report = _coordinator(store).ingest(_docs(13, 100), batch_size=500)
    assert sorted(len(b) for b in store.put_batches) == [300, 500, 500]
    assert report.total_chunks == 1300
    assert report.total_vectors_uploaded == 1300
    assert report.batches_uploaded == 3
    assert report.succeeded


def test_two_documents_43_chunks_single_batch(store: InMemoryVectorStore) -> None:
    docs = _docs(1, 20) + [Document(id="b.txt", source_path="/corpus/b.txt", text="y" * 230)]
    report = _coordinator(store).ingest(docs, batch_size=500)
    assert len(store.put_batches) == 1
    assert len(store.put_batches[0]) == 43
    assert report.total_vectors_uploaded == 43
    assert report.per_document_failures == []


def test_no_batch_exceeds_batch_size(store: InMemoryVectorStore) -> None:
    _coordinator(store).ingest(_docs(7, 33), batch_size=50)
    assert all(len(b) <= 50 for b in store.put_batches)
    assert sum(len(b) for b in store.put_batches) == 231


@pytest.mark.parametrize("batch_size", [0, 501, 1000])
def test_batch_size_out_of_range_rejected(store: InMemoryVectorStore, batch_size: int) -> None:
    with pytest.raises(ConfigurationError):
        _coordinator(store).ingest(_docs(1, 1), batch_size=batch_size)
    assert store.put_batches == []


def test_reingest_yields_same_keys(store: InMemoryVectorStore) -> None:
    docs = _docs(3, 12)
    coordinator = _coordinator(store)
    coordinator.ingest(docs)
    first = set(store.uploaded_keys)
    store.put_batches.clear()
    coordinator.ingest(docs)
    assert store.uploaded_keys == first
    assert len(store.vectors[(BUCKET, INDEX)]) == 36


def test_document_failure_is_isolated(store: InMemoryVectorStore) -> None:
    docs = _docs(3, 5) + [Document(id="bad.txt", source_path="/corpus/bad.txt", text="poison pill")]
    report = _coordinator(store).ingest(docs)
    assert report.failed_documents == ["bad.txt"]
    assert report.per_document_failures[0].error_type == "DocumentProcessingError"
    assert report.total_vectors_uploaded == 15
    assert not report.succeeded


def test_model_load_error_marks_every_document_failed(store: InMemoryVectorStore) -> None:
    report = _coordinator(store, workers=2, factory=lambda: BrokenEngine(DIM)).ingest(_docs(5, 3))
    assert sorted(report.failed_documents) == [f"doc-{i:03d}.txt" for i in range(5)]
    assert {f.error_type for f in report.per_document_failures} == {"ModelLoadError"}
    assert report.total_vectors_uploaded == 0
    assert store.put_batches == []


def test_one_dead_worker_does_not_stop_the_others(store: InMemoryVectorStore) -> None:
    engines = iter([BrokenEngine(DIM), FakeEngine(DIM), FakeEngine(DIM)])
    lock = threading.Lock()

    def factory():
        with lock:
            return next(engines)

    report = _coordinator(store, workers=3, factory=factory).ingest(_docs(9, 2))
    assert len(report.per_document_failures) == 1
    assert report.total_vectors_uploaded == 16


def test_transient_store_error_is_retried(store: InMemoryVectorStore) -> None:
    store.put_failures = [StoreTransientError("throttled"), StoreTransientError("throttled")]
    report = _coordinator(store).ingest(_docs(2, 5))
    assert report.total_vectors_uploaded == 10
    assert report.batch_failures == []


def test_exhausted_retries_record_batch_failure(store: InMemoryVectorStore) -> None:
    store.put_failures = [StoreTransientError("throttled")] * 3
    report = _coordinator(store).ingest(_docs(3, 10), batch_size=10)
    assert len(report.batch_failures) == 1
    failure = report.batch_failures[0]
    assert failure.record_count == 10
    assert "failed after 3 attempts" in failure.message
    assert report.total_vectors_uploaded == 20
    assert report.batches_uploaded == 2


def test_permanent_store_failure_is_not_retried(store: InMemoryVectorStore) -> None:
    store.put_failures = [StoreFailure("access denied")]
    report = _coordinator(store).ingest(_docs(1, 4))
    assert len(report.batch_failures) == 1
    assert store.put_failures == []
    assert report.total_vectors_uploaded == 0


def test_dimension_mismatch_is_fatal(store: InMemoryVectorStore) -> None:
    with pytest.raises(ConfigurationError, match="does not match index dimension"):
        _coordinator(store, factory=lambda: FakeEngine(DIM + 1)).ingest(_docs(4, 2))
    assert store.put_batches == []


def test_cancelled_before_start_skips_everything(store: InMemoryVectorStore) -> None:
    cancel = threading.Event()
    cancel.set()
    report = _coordinator(store).ingest(_docs(4, 3), cancel_event=cancel)
    assert report.cancelled
    assert sorted(report.skipped_documents) == [f"doc-{i:03d}.txt" for i in range(4)]
    assert store.put_batches == []


def test_cancel_stops_new_batches(store: InMemoryVectorStore) -> None:
    cancel = threading.Event()
    original = store._put_vectors

    def put_then_cancel(bucket, index, records):
        original(bucket, index, records)
        cancel.set()

    store._put_vectors = put_then_cancel  # type: ignore[method-assign]
    report = _coordinator(store, workers=1).ingest(_docs(10, 10), batch_size=10, cancel_event=cancel)
    assert report.cancelled
    assert report.batches_uploaded == 1
    assert len(store.put_batches) == 1
    assert report.total_documents == 10


def test_engines_reused_across_runs(store: InMemoryVectorStore) -> None:
    created: list[FakeEngine] = []

    def factory() -> FakeEngine:
        engine = FakeEngine(DIM)
        created.append(engine)
        return engine

    pool = WorkerPool(2, factory)
    coordinator = IngestionCoordinator(store, BUCKET, INDEX, pool=pool, chunk_size=10, chunk_overlap=0)
    coordinator.ingest(_docs(4, 2))
    coordinator.ingest(_docs(4, 2))
    assert len(created) <= 2
    assert pool.engines_created == len(created)


def test_pool_never_exceeds_document_count(store: InMemoryVectorStore) -> None:
    pool = WorkerPool(8, lambda: FakeEngine(DIM))
    IngestionCoordinator(store, BUCKET, INDEX, pool=pool, chunk_size=10, chunk_overlap=0).ingest(_docs(1, 3))
    assert pool.engines_created == 1


def test_empty_input_returns_empty_report(store: InMemoryVectorStore) -> None:
    report = _coordinator(store).ingest([])
    assert report.total_documents == 0
    assert report.succeeded


def test_chunk_metadata_carries_provenance() -> None:
    doc = _docs(1, 3)[0]
    chunks = chunk(doc, 10, 0)
    meta = chunk_metadata(doc, chunks[1], len(chunks))
    assert meta == {
        "text": chunks[1].text,
        "document_id": doc.id,
        "source_path": doc.source_path,
        "title": "Document 0",
        "chunk_index": 1,
        "total_chunks": 3,
        "char_offset": 10,
    }


def test_invalid_window_rejected_at_construction(store: InMemoryVectorStore) -> None:
    with pytest.raises(ConfigurationError):
        IngestionCoordinator(store, BUCKET, INDEX, pool=WorkerPool(1, FakeEngine), chunk_size=10, chunk_overlap=10)
