"""Retrieval result container."""

from __future__ import annotations

from collections.abc import Iterator

from pydantic import BaseModel, Field

from vector_rag.vectorstore.models import QueryResult


class RetrievalContext(BaseModel):
    """Ordered neighbours of one query, best match first.

    Results retrieved without metadata carry no text; they still appear
    here with only their key and distance.

    Attributes
    ----------
    query:
        The query text that produced the context.
    results:
        Neighbours in the order the store returned them.
    """

    query: str
    results: list[QueryResult] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[QueryResult]:  # type: ignore[override]
        return iter(self.results)

    def __getitem__(self, i: int) -> QueryResult:
        return self.results[i]

    @property
    def is_empty(self) -> bool:
        return not self.results

    @property
    def snippets(self) -> list[str]:
        """Source text of every result that has some."""
        return [r.text for r in self.results if r.text is not None]

    def to_prompt(self) -> str:
        """Render the context as numbered ``[Document i]`` blocks."""
        blocks: list[str] = []
        for i, result in enumerate(self.results, start=1):
            if result.text is not None:
                blocks.append(f"[Document {i}]\n{result.text}\n")
            elif result.distance is not None:
                blocks.append(f"[Document {i}] {result.key} (distance {result.distance:.4f})\n")
            else:
                blocks.append(f"[Document {i}] {result.key}\n")
        return "\n".join(blocks)
