"""
Retrieval — query embedding, similarity search and context assembly.

Public surface
--------------
- :class:`QueryEngine` — main entry point for retrieval.
- :class:`RetrievalContext` — ordered results with prompt rendering.
- :func:`answer` — retrieval-summary response for a query.
"""

from vector_rag.retrieval.models import RetrievalContext
from vector_rag.retrieval.retriever import NO_RESULTS_MESSAGE, QueryEngine, answer

__all__ = [
    "NO_RESULTS_MESSAGE",
    "QueryEngine",
    "RetrievalContext",
    "answer",
]
