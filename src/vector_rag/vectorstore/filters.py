"""Translate :class:`MetadataFilter` lists into store filter documents.

S3 Vectors and Chroma share the same Mongo-style operator syntax
(``{"field": {"$eq": value}}`` combined with ``$and``), so a single
builder serves both backends.
"""

from __future__ import annotations

from typing import Any, Union

from vector_rag.exceptions import ConfigurationError
from vector_rag.vectorstore.models import MetadataFilter

FilterSpec = Union[list[MetadataFilter], dict[str, Any], None]

_OP_MAP = {
    "eq": "$eq",
    "ne": "$ne",
    "gt": "$gt",
    "gte": "$gte",
    "lt": "$lt",
    "lte": "$lte",
    "in": "$in",
    "nin": "$nin",
    "exists": "$exists",
}


def build_filter(filters: FilterSpec) -> dict[str, Any] | None:
    """Return a filter document for *filters*.

    A raw ``dict`` is passed through untouched so callers can express
    ``$or`` trees the declarative form cannot.
    """
    if not filters:
        return None
    if isinstance(filters, dict):
        return filters

    clauses: list[dict[str, Any]] = []
    for f in filters:
        op = _OP_MAP.get(f.operator)
        if op is None:
            raise ConfigurationError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}
