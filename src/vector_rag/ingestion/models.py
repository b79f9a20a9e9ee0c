"""Ingestion run summary models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class DocumentFailure(BaseModel):
    """A document that could not be chunked or embedded."""

    document_id: str
    source_path: str
    error_type: str
    message: str


class BatchFailure(BaseModel):
    """An upload batch the store rejected (after retries, where applicable)."""

    batch_number: int
    record_count: int
    first_key: str
    last_key: str
    message: str


class IngestionReport(BaseModel):
    """Caller-visible outcome of one :meth:`IngestionCoordinator.ingest` call.

    Attributes
    ----------
    total_documents:
        Documents handed to the coordinator.
    total_chunks:
        Chunks produced by documents that embedded successfully.
    total_vectors_uploaded:
        Records accepted by the store.
    batches_uploaded:
        Successful put calls.
    duration_seconds:
        Wall-clock time of the run.
    per_document_failures:
        One entry per document that failed to chunk or embed.
    batch_failures:
        One entry per upload batch the store rejected.
    skipped_documents:
        Documents never processed because the run was cancelled.
    cancelled:
        Whether cancellation was requested during the run.
    """

    total_documents: int = 0
    total_chunks: int = 0
    total_vectors_uploaded: int = 0
    batches_uploaded: int = 0
    duration_seconds: float = 0.0
    per_document_failures: list[DocumentFailure] = Field(default_factory=list)
    batch_failures: list[BatchFailure] = Field(default_factory=list)
    skipped_documents: list[str] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def failed_documents(self) -> list[str]:
        return [f.document_id for f in self.per_document_failures]

    @property
    def succeeded(self) -> bool:
        """True when every document and every batch went through."""
        return (
            not self.per_document_failures
            and not self.batch_failures
            and not self.skipped_documents
            and not self.cancelled
        )

    def summary(self) -> str:
        return (
            f"{self.total_documents} documents, {self.total_chunks} chunks, "
            f"{self.total_vectors_uploaded} vectors uploaded in {self.batches_uploaded} batches "
            f"({len(self.per_document_failures)} document failures, "
            f"{len(self.batch_failures)} batch failures) in {self.duration_seconds:.2f}s"
        )
