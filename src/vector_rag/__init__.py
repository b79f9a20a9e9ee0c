"""Chunk, embed and retrieve documents over a remote vector index."""

__version__ = "0.1.0"
