"""Sentence-transformer inference from a local model directory."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import numpy as np
from huggingface_hub import snapshot_download
from sentence_transformers import SentenceTransformer

from vector_rag.config import settings
from vector_rag.exceptions import ConfigurationError, DocumentProcessingError, ModelLoadError
from vector_rag.models import EmbeddingVector

logger = logging.getLogger(__name__)

TRUNCATION_POLICIES = ("truncate", "warn", "error")

# Each group needs at least one file present.
REQUIRED_MODEL_FILES: tuple[tuple[str, ...], ...] = (
    ("config.json",),
    ("tokenizer.json", "vocab.txt"),
    ("model.safetensors", "pytorch_model.bin"),
)


def missing_model_files(model_dir: Path) -> list[str]:
    """Return a description of each required file group absent from *model_dir*."""
    return [
        " or ".join(group)
        for group in REQUIRED_MODEL_FILES
        if not any((model_dir / name).is_file() for name in group)
    ]


class EmbeddingEngine:
    """One loaded sentence encoder.

    The model is loaded lazily on the first :meth:`embed` call and kept
    for the engine's lifetime. An engine is not thread-safe; the
    ingestion worker pool gives every worker slot its own instance.

    Parameters
    ----------
    model_dir:
        Directory holding ``config.json``, tokenizer and weights.
    batch_size:
        Texts per forward pass.
    device:
        Torch device string (``"cpu"``, ``"cuda"``, ...).
    truncation_policy:
        ``"truncate"`` silently cuts texts longer than the model's max
        sequence length, ``"warn"`` does the same but logs, ``"error"``
        raises :class:`DocumentProcessingError`.
    """

    def __init__(
        self,
        model_dir: str | Path = settings.embedding_model_dir,
        *,
        batch_size: int = settings.embed_batch_size,
        device: str = settings.embedding_device,
        truncation_policy: str = settings.truncation_policy,
    ) -> None:
        if truncation_policy not in TRUNCATION_POLICIES:
            raise ConfigurationError(
                f"truncation_policy must be one of {TRUNCATION_POLICIES}",
                {"truncation_policy": truncation_policy},
            )
        if batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1", {"batch_size": batch_size})
        self.model_dir = Path(model_dir)
        self.batch_size = batch_size
        self.device = device
        self.truncation_policy = truncation_policy
        self._model: SentenceTransformer | None = None
        self._load_error: ModelLoadError | None = None

    # -- model lifecycle ------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def load(self) -> SentenceTransformer:
        """Load the model once; a failed load is remembered and re-raised."""
        if self._model is not None:
            return self._model
        if self._load_error is not None:
            raise self._load_error

        missing = missing_model_files(self.model_dir)
        if not self.model_dir.is_dir() or missing:
            self._load_error = ModelLoadError(
                f"Model files not found in {self.model_dir}. Run `vector-rag install-model` first.",
                {"model_dir": str(self.model_dir), "missing": missing},
            )
            raise self._load_error

        logger.info("Loading embedding model from %s", self.model_dir)
        started = time.perf_counter()
        try:
            self._model = SentenceTransformer(str(self.model_dir), device=self.device)
        except Exception as exc:
            self._load_error = ModelLoadError(
                f"Failed to load embedding model: {exc}", {"model_dir": str(self.model_dir)}
            )
            raise self._load_error from exc
        logger.info(
            "Embedding model loaded in %.2fs (dimension=%d)",
            time.perf_counter() - started,
            self._model.get_sentence_embedding_dimension(),
        )
        return self._model

    @property
    def dimension(self) -> int:
        """Output vector length; loads the model if needed."""
        return int(self.load().get_sentence_embedding_dimension())

    @property
    def max_seq_length(self) -> int:
        return int(self.load().max_seq_length)

    # -- inference ------------------------------------------------------------

    def embed(self, texts: Sequence[str]) -> list[EmbeddingVector]:
        """Embed *texts*; one vector per input, in input order.

        Vectors are float32 and not normalized. The same text always
        yields the same vector.
        """
        if not texts:
            return []
        model = self.load()
        self._check_truncation(model, texts)
        matrix = model.encode(
            list(texts),
            batch_size=self.batch_size,
            convert_to_numpy=True,
            normalize_embeddings=False,
            show_progress_bar=False,
        )
        matrix = np.asarray(matrix, dtype=np.float32)
        dimension = matrix.shape[1]
        return [EmbeddingVector(dimension=dimension, values=row.tolist()) for row in matrix]

    def embed_one(self, text: str) -> EmbeddingVector:
        return self.embed([text])[0]

    def _check_truncation(self, model: Any, texts: Sequence[str]) -> None:
        if self.truncation_policy == "truncate":
            return
        limit = model.max_seq_length
        encoded = model.tokenizer(list(texts), add_special_tokens=True, truncation=False, verbose=False)
        too_long = [i for i, ids in enumerate(encoded["input_ids"]) if len(ids) > limit]
        if not too_long:
            return
        if self.truncation_policy == "error":
            raise DocumentProcessingError(
                f"{len(too_long)} text(s) exceed the model's max sequence length of {limit} tokens",
                details={"max_seq_length": limit, "positions": too_long},
            )
        logger.warning(
            "%d of %d text(s) exceed max sequence length %d and will be truncated",
            len(too_long),
            len(texts),
            limit,
        )


def install_model(
    model_id: str = settings.embedding_model,
    target_dir: str | Path = settings.embedding_model_dir,
    *,
    force: bool = False,
) -> Path:
    """Download *model_id* from the Hugging Face Hub into *target_dir*.

    Returns the model directory. An already complete directory is left
    alone unless *force* is set.
    """
    target = Path(target_dir)
    if not force and target.is_dir() and not missing_model_files(target):
        logger.info("Model already installed at %s", target)
        return target

    logger.info("Downloading %s to %s", model_id, target)
    target.mkdir(parents=True, exist_ok=True)
    try:
        snapshot_download(
            repo_id=model_id,
            local_dir=str(target),
            force_download=force,
            ignore_patterns=["onnx/*", "openvino/*", "*.h5", "*.msgpack", "*.ot"],
        )
    except Exception as exc:
        raise ModelLoadError(f"Failed to download model {model_id}: {exc}", {"model_id": model_id}) from exc

    missing = missing_model_files(target)
    if missing:
        raise ModelLoadError(
            f"Downloaded model {model_id} is incomplete", {"model_dir": str(target), "missing": missing}
        )
    logger.info("Model installed at %s", target)
    return target
