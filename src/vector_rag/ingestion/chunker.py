"""Fixed-size character windows with overlap."""

from __future__ import annotations

from typing import Any

from langchain_text_splitters import TextSplitter

from vector_rag.exceptions import ConfigurationError
from vector_rag.models import Chunk, Document


def validate_window(chunk_size: int, chunk_overlap: int) -> None:
    if chunk_size < 1:
        raise ConfigurationError("chunk_size must be at least 1", {"chunk_size": chunk_size})
    if chunk_overlap < 0:
        raise ConfigurationError("chunk_overlap cannot be negative", {"chunk_overlap": chunk_overlap})
    if chunk_overlap >= chunk_size:
        raise ConfigurationError(
            "chunk_overlap must be smaller than chunk_size",
            {"chunk_size": chunk_size, "chunk_overlap": chunk_overlap},
        )


class FixedWindowTextSplitter(TextSplitter):
    """Split text into windows of exactly ``chunk_size`` characters.

    Unlike ``RecursiveCharacterTextSplitter`` no separators are honoured:
    window *i* always starts at ``i * (chunk_size - chunk_overlap)``, so
    offsets are recoverable from the index alone.
    """

    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200, **kwargs: Any) -> None:
        validate_window(chunk_size, chunk_overlap)
        super().__init__(chunk_size=chunk_size, chunk_overlap=chunk_overlap, **kwargs)

    @property
    def step(self) -> int:
        return self._chunk_size - self._chunk_overlap

    def split_text(self, text: str) -> list[str]:
        if not text:
            return []
        windows: list[str] = []
        start = 0
        while True:
            windows.append(text[start : start + self._chunk_size])
            if start + self._chunk_size >= len(text):
                return windows
            start += self.step


def chunk(document: Document, chunk_size: int = 1000, chunk_overlap: int = 200) -> list[Chunk]:
    """Split *document* into overlapping :class:`Chunk` windows.

    Parameters
    ----------
    document:
        Source document.
    chunk_size:
        Characters per window; the last window may be shorter.
    chunk_overlap:
        Characters shared by consecutive windows. Must be smaller than
        *chunk_size*.

    Returns
    -------
    list[Chunk]
        Chunks in document order with ``chunk_index`` 0..n-1. Empty for
        an empty document.
    """
    splitter = FixedWindowTextSplitter(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
    return [
        Chunk(
            document_id=document.id,
            chunk_index=i,
            text=window,
            char_offset=i * splitter.step,
        )
        for i, window in enumerate(splitter.split_text(document.text))
    ]
