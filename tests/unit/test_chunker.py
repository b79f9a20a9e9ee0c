"""Unit tests for the chunker module."""

import math

import pytest

from vector_rag.exceptions import ConfigurationError
from vector_rag.ingestion.chunker import FixedWindowTextSplitter, chunk
from vector_rag.models import Document


def _doc(text: str) -> Document:
    return Document(id="notes/a.md", source_path="/corpus/notes/a.md", text=text)


@pytest.mark.parametrize(
    ("length", "size", "overlap"),
    [(2500, 256, 32), (1000, 100, 0), (1001, 100, 0), (999, 1000, 200), (5000, 1000, 200), (7, 3, 2)],
)
def test_chunk_count_matches_window_formula(length: int, size: int, overlap: int) -> None:
    text = "".join(chr(ord("a") + i % 26) for i in range(length))
    chunks = chunk(_doc(text), size, overlap)
    expected = max(1, math.ceil((length - overlap) / (size - overlap)))
    assert len(chunks) == expected


def test_chunk_text_matches_source_substring() -> None:
    text = "The quick brown fox jumps over the lazy dog. " * 20
    chunks = chunk(_doc(text), 50, 10)
    for c in chunks:
        assert c.text == text[c.char_offset : c.char_offset + 50]
        assert c.char_offset == c.chunk_index * 40
    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))


def test_last_chunk_may_be_shorter() -> None:
    chunks = chunk(_doc("x" * 25), 10, 0)
    assert [len(c.text) for c in chunks] == [10, 10, 5]


def test_empty_document_yields_no_chunks() -> None:
    assert chunk(_doc(""), 100, 10) == []


def test_text_shorter_than_overlap_is_one_chunk() -> None:
    chunks = chunk(_doc("abc"), 10, 5)
    assert len(chunks) == 1
    assert chunks[0].text == "abc"


def test_chunking_is_deterministic() -> None:
    text = "lorem ipsum dolor sit amet " * 50
    first = chunk(_doc(text), 64, 16)
    second = chunk(_doc(text), 64, 16)
    assert first == second
    assert [c.key for c in first] == [f"notes/a.md-{i}" for i in range(len(first))]


@pytest.mark.parametrize(("size", "overlap"), [(100, 100), (100, 150), (0, 0), (10, -1)])
def test_invalid_window_raises(size: int, overlap: int) -> None:
    with pytest.raises(ConfigurationError):
        chunk(_doc("some text"), size, overlap)


def test_splitter_ignores_separators() -> None:
    splitter = FixedWindowTextSplitter(chunk_size=4, chunk_overlap=0)
    assert splitter.split_text("ab\n\ncd ef") == ["ab\n\n", "cd e", "f"]
