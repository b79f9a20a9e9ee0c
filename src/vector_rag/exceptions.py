"""Exception hierarchy for the retrieval pipeline.

Every error carries a human-readable ``message`` plus a ``details`` dict
so that callers (CLI, reports, logs) can show *what* failed without
parsing strings.

Propagation rules
-----------------
* :class:`ConfigurationError` — fatal to the operation that raised it, never retried.
* :class:`ModelLoadError` — fatal for the worker that hit it; siblings continue.
* :class:`DocumentProcessingError` — isolated to one document and recorded.
* :class:`StoreTransientError` — retried with backoff; exhaustion becomes :class:`StoreFailure`.
* :class:`StoreFailure` — surfaced to the caller of the store operation.
"""

from __future__ import annotations

from typing import Any


class VectorRagError(Exception):
    """Base class for all errors raised by :mod:`vector_rag`."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(VectorRagError, ValueError):
    """Invalid chunking, model, or store parameters."""


class ModelLoadError(VectorRagError):
    """Model weights or tokenizer are missing or cannot be loaded."""


class DocumentProcessingError(VectorRagError):
    """Chunking or embedding failed for a single document."""

    def __init__(
        self,
        message: str,
        document_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if document_id is not None:
            details["document_id"] = document_id
        self.document_id = document_id
        super().__init__(message, details)


class EmptyIndexError(VectorRagError):
    """The target index holds no vectors at all."""


class StoreError(VectorRagError):
    """Base class for vector-store errors."""


class StoreTransientError(StoreError):
    """Throttling or a network blip; safe to retry."""


class StoreFailure(StoreError):
    """Non-retryable store error (validation, access denied, exhausted retries)."""


class ResourceNotFoundError(StoreFailure):
    """The bucket or index does not exist."""


class ResourceAlreadyExistsError(StoreFailure):
    """The bucket or index already exists."""
