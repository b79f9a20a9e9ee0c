"""Document source built on LangChain's directory loader."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from pathlib import Path

from langchain_community.document_loaders import DirectoryLoader, TextLoader

from vector_rag.exceptions import ConfigurationError
from vector_rag.models import Document

logger = logging.getLogger(__name__)

DEFAULT_SUFFIXES = (".txt", ".md")

_HEADING_RE = re.compile(r"^#\s+(.+)$")


def extract_title(text: str) -> str | None:
    """Return the first Markdown ``# `` heading, else the first non-empty line."""
    lines = text.splitlines()
    for line in lines:
        match = _HEADING_RE.match(line)
        if match:
            return match.group(1).strip()
    for line in lines:
        if line.strip():
            return line.strip()
    return None


def list_documents(
    root_path: str | Path,
    suffixes: Sequence[str] = DEFAULT_SUFFIXES,
    *,
    recursive: bool = True,
) -> list[Document]:
    """Load every text file under *root_path* as a :class:`Document`.

    Parameters
    ----------
    root_path:
        Directory containing source documents.
    suffixes:
        File extensions to pick up (case-sensitive, with the leading dot).
    recursive:
        Descend into sub-directories.

    Returns
    -------
    list[Document]
        Documents sorted by id. The id is the root-relative POSIX path,
        so it is stable across runs and machines.
    """
    root = Path(root_path)
    if not root.is_dir():
        raise ConfigurationError(f"Document directory does not exist: {root}", {"path": str(root)})

    documents: dict[str, Document] = {}
    for suffix in suffixes:
        loader = DirectoryLoader(
            str(root),
            glob=f"*{suffix}",
            recursive=recursive,
            loader_cls=TextLoader,  # type: ignore[arg-type]
            loader_kwargs={"autodetect_encoding": True},
            silent_errors=True,
            use_multithreading=True,
        )
        for lc_doc in loader.load():
            source = Path(lc_doc.metadata["source"])
            doc_id = source.relative_to(root).as_posix()
            documents[doc_id] = Document(
                id=doc_id,
                source_path=str(source),
                text=lc_doc.page_content,
                title=extract_title(lc_doc.page_content),
            )

    logger.info("Loaded %d documents from %s", len(documents), root)
    return [documents[doc_id] for doc_id in sorted(documents)]
