"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # AWS
    aws_region: str = "us-east-1"
    aws_profile: str | None = None
    aws_access_key_id: SecretStr | None = None
    aws_secret_access_key: SecretStr | None = None
    aws_session_token: SecretStr | None = None

    # Vector store
    vector_store_backend: Literal["s3vectors", "chroma"] = Field(
        default="s3vectors",
        description="Backend used for bucket/index operations: 's3vectors' or 'chroma' (local dev).",
    )
    vector_bucket: str = "rag-vectors-default"
    vector_index: str = "documents-default"
    distance_metric: Literal["cosine", "euclidean"] = "cosine"
    chroma_host: str = "localhost"
    chroma_port: int = 8000

    # Embedding
    embedding_model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="Hub identifier downloaded by `vector-rag install-model`.",
    )
    embedding_model_dir: Path = Field(
        default=Path("models/all-MiniLM-L6-v2"),
        description="Local directory holding config, tokenizer and weights.",
    )
    embedding_dimension: int = 384
    embedding_device: str = "cpu"
    embed_batch_size: int = 32
    truncation_policy: Literal["truncate", "warn", "error"] = Field(
        default="warn",
        description=(
            "What to do with texts longer than the model's max sequence length: "
            "'truncate' silently, 'warn' and truncate, or 'error' to reject the document."
        ),
    )

    # Chunking / ingestion
    chunk_size: int = 1000
    chunk_overlap: int = 200
    upload_batch_size: int = 500
    ingest_workers: int | None = Field(
        default=None,
        description="Worker pool size; defaults to os.cpu_count().",
    )

    # Store retries
    store_max_attempts: int = 3
    store_initial_backoff: float = 0.1
    store_max_backoff: float = 5.0

    # Query
    default_top_k: int = 5

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


# Singleton — import `settings` wherever needed.
settings = Settings()
