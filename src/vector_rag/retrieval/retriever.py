"""Query engine: embed a query, search the index, assemble the context.

Usage::

    from vector_rag.retrieval import QueryEngine

    engine  = QueryEngine(store, "rag-vectors-default", "documents-default", embedder)
    context = engine.search("How are chunks keyed?", top_k=5)
    for r in context:
        print(r.short_ref(), (r.text or "")[:80])
"""

from __future__ import annotations

import logging

from vector_rag.config import settings
from vector_rag.exceptions import ConfigurationError, EmptyIndexError
from vector_rag.ingestion.embedder import EmbeddingEngine
from vector_rag.retrieval.models import RetrievalContext
from vector_rag.vectorstore import validation
from vector_rag.vectorstore.base import VectorStoreBase
from vector_rag.vectorstore.filters import FilterSpec

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No relevant documents found for your query."


class QueryEngine:
    """Single-request, synchronous retrieval over one index.

    Parameters
    ----------
    store:
        Vector-store backend.
    bucket, index:
        Index to search.
    engine:
        Embedding engine; must use the same model as ingestion.
    default_top_k:
        Number of results when :meth:`search` is called without ``top_k``.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        bucket: str = settings.vector_bucket,
        index: str = settings.vector_index,
        engine: EmbeddingEngine | None = None,
        *,
        default_top_k: int = settings.default_top_k,
    ) -> None:
        validation.validate_top_k(default_top_k)
        self.store = store
        self.bucket = bucket
        self.index = index
        self.engine = engine or EmbeddingEngine()
        self.default_top_k = default_top_k

    # -- public API -----------------------------------------------------------

    def search(
        self,
        query_text: str,
        top_k: int | None = None,
        filter: FilterSpec = None,  # noqa: A002
        *,
        return_distance: bool = True,
        return_metadata: bool = True,
    ) -> RetrievalContext:
        """Retrieve the *top_k* chunks nearest to *query_text*.

        Parameters
        ----------
        query_text:
            Natural-language query; must not be blank.
        top_k:
            Number of neighbours (1–100), defaults to ``self.default_top_k``.
        filter:
            ``MetadataFilter`` list or raw filter document.
        return_distance, return_metadata:
            Forwarded to the store. Without metadata the results carry no
            text, only key and distance.

        Returns
        -------
        RetrievalContext
            Results in store order, best first. Empty when nothing
            matched in a non-empty index.

        Raises
        ------
        EmptyIndexError
            The index holds no vectors at all.
        """
        if not query_text or not query_text.strip():
            raise ConfigurationError("Query text must not be empty")
        top_k = self.default_top_k if top_k is None else top_k
        validation.validate_top_k(top_k)

        logger.info("Searching for: %s", query_text)
        vector = self.engine.embed_one(query_text)
        results = self.store.query_vectors(
            self.bucket,
            self.index,
            vector,
            top_k,
            filter,
            return_distance=return_distance,
            return_metadata=return_metadata,
        )

        if not results and self.store.is_index_empty(self.bucket, self.index):
            raise EmptyIndexError(
                f"Index {self.index!r} in bucket {self.bucket!r} contains no vectors",
                {"bucket": self.bucket, "index": self.index},
            )
        logger.info("Found %d relevant documents", len(results))
        return RetrievalContext(query=query_text, results=results[:top_k])


def answer(query: str, context: RetrievalContext) -> str:
    """Build a retrieval-summary response for *query* from *context*.

    No language model is involved; the response lists the retrieved
    context verbatim.
    """
    if context.is_empty:
        return NO_RESULTS_MESSAGE
    return (
        "Based on the retrieved context, here's a response to your query:\n\n"
        f"Query: {query}\n\n"
        f"Context Summary:\n{context.to_prompt()}"
    )
