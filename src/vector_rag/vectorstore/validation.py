"""Client-side checks for limits the store enforces.

Everything here raises :class:`ConfigurationError` so a doomed request
is never sent over the wire.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Sequence

from vector_rag.exceptions import ConfigurationError
from vector_rag.models import VectorRecord
from vector_rag.vectorstore.models import DistanceMetric

MAX_BATCH_SIZE = 500
MAX_GET_KEYS = 100
MAX_DIMENSION = 4096
MAX_TOP_K = 100
MAX_LIST_RESULTS = 1000
MAX_SEGMENT_COUNT = 16
MAX_METADATA_BYTES = 40 * 1024

_BUCKET_RE = re.compile(r"^[a-z0-9-]+$")
_INDEX_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_bucket_name(name: str) -> None:
    if not 3 <= len(name) <= 63:
        raise ConfigurationError("Bucket name must be between 3 and 63 characters long", {"bucket": name})
    if not _BUCKET_RE.match(name):
        raise ConfigurationError(
            "Bucket name can only contain lowercase letters, numbers, and hyphens", {"bucket": name}
        )
    if name.startswith("-") or name.endswith("-"):
        raise ConfigurationError("Bucket name cannot start or end with a hyphen", {"bucket": name})
    if name.startswith("xn--"):
        raise ConfigurationError("Bucket name cannot start with 'xn--'", {"bucket": name})
    if name.endswith("-s3alias"):
        raise ConfigurationError("Bucket name cannot end with '-s3alias'", {"bucket": name})


def validate_index_name(name: str) -> None:
    if not 1 <= len(name) <= 255:
        raise ConfigurationError("Index name must be between 1 and 255 characters", {"index": name})
    if not _INDEX_RE.match(name):
        raise ConfigurationError(
            "Index name can only contain alphanumeric characters, hyphens, and underscores",
            {"index": name},
        )


def validate_dimension(dimension: int) -> None:
    if not 1 <= dimension <= MAX_DIMENSION:
        raise ConfigurationError(
            f"Vector dimension must be between 1 and {MAX_DIMENSION}", {"dimension": dimension}
        )


def validate_distance_metric(metric: DistanceMetric | str) -> DistanceMetric:
    try:
        return DistanceMetric(metric)
    except ValueError:
        raise ConfigurationError(
            f"Unsupported distance metric {metric!r}; expected one of "
            f"{[m.value for m in DistanceMetric]}"
        ) from None


def validate_top_k(top_k: int) -> None:
    if not 1 <= top_k <= MAX_TOP_K:
        raise ConfigurationError(f"top_k must be between 1 and {MAX_TOP_K}", {"top_k": top_k})


def validate_batch_size(batch_size: int) -> None:
    if not 1 <= batch_size <= MAX_BATCH_SIZE:
        raise ConfigurationError(
            f"Batch size must be between 1 and {MAX_BATCH_SIZE}", {"batch_size": batch_size}
        )


def validate_keys(keys: Sequence[str], limit: int = MAX_BATCH_SIZE) -> None:
    """Check a key list for ``get_vectors`` / ``delete_vectors``."""
    if not keys:
        raise ConfigurationError("No keys provided")
    if len(keys) > limit:
        raise ConfigurationError(f"At most {limit} keys per request", {"keys": len(keys)})
    if any(not key for key in keys):
        raise ConfigurationError("Vector keys must be non-empty")


def validate_list_params(
    max_results: int,
    segment_count: int | None = None,
    segment_index: int | None = None,
) -> None:
    if not 1 <= max_results <= MAX_LIST_RESULTS:
        raise ConfigurationError(
            f"max_results must be between 1 and {MAX_LIST_RESULTS}", {"max_results": max_results}
        )
    if (segment_count is None) != (segment_index is None):
        raise ConfigurationError("segment_count and segment_index must be given together")
    if segment_count is not None and segment_index is not None:
        if not 1 <= segment_count <= MAX_SEGMENT_COUNT:
            raise ConfigurationError(
                f"segment_count must be between 1 and {MAX_SEGMENT_COUNT}",
                {"segment_count": segment_count},
            )
        if not 0 <= segment_index < segment_count:
            raise ConfigurationError(
                "segment_index must satisfy 0 <= segment_index < segment_count",
                {"segment_index": segment_index, "segment_count": segment_count},
            )


def validate_vector_values(values: Sequence[float], dimension: int) -> None:
    """Check length and finiteness of a single vector."""
    if len(values) != dimension:
        raise ConfigurationError(
            f"Vector dimension mismatch: expected {dimension}, got {len(values)}",
            {"expected": dimension, "actual": len(values)},
        )
    for i, value in enumerate(values):
        if not math.isfinite(value):
            raise ConfigurationError(f"Vector contains non-finite value at index {i}")


def validate_records(records: Sequence[VectorRecord], dimension: int) -> None:
    """Validate a put batch against the index *dimension*."""
    if not records:
        raise ConfigurationError("No vectors provided")
    validate_batch_size(len(records))
    for record in records:
        try:
            validate_vector_values(record.vector.values, dimension)
        except ConfigurationError as exc:
            exc.details["key"] = record.key
            raise
        size = len(json.dumps(record.metadata, ensure_ascii=False).encode("utf-8"))
        if size > MAX_METADATA_BYTES:
            raise ConfigurationError(
                f"Metadata size exceeds {MAX_METADATA_BYTES // 1024}KB limit: {size} bytes",
                {"key": record.key},
            )
