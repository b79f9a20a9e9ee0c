"""``vector-rag`` command-line interface."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from collections.abc import Sequence
from typing import Any

from vector_rag.config import Settings, settings
from vector_rag.exceptions import VectorRagError
from vector_rag.ingestion.embedder import install_model
from vector_rag.ingestion.models import IngestionReport
from vector_rag.pipeline import RagPipeline
from vector_rag.retrieval.retriever import answer

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ("exit", "quit")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vector-rag", description="Retrieval pipeline over a vector index")
    parser.add_argument("--bucket", help="Vector bucket (default: VECTOR_BUCKET)")
    parser.add_argument("--index", help="Vector index (default: VECTOR_INDEX)")
    parser.add_argument("--backend", choices=["s3vectors", "chroma"], help="Vector store backend")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create the bucket and index")

    ingest = sub.add_parser("ingest", help="Ingest .txt / .md files from a directory")
    ingest.add_argument("directory", help="Directory containing documents")
    ingest.add_argument("--batch-size", type=int, default=None, help="Records per upload (max 500)")

    query = sub.add_parser("query", help="Answer a single query")
    query.add_argument("text", help="Query text")
    query.add_argument("--top-k", type=int, default=None, help="Number of results")

    interactive = sub.add_parser("interactive", help="Query in a loop until 'exit'")
    interactive.add_argument("--top-k", type=int, default=None, help="Number of results")

    listing = sub.add_parser("list", help="List vectors in the index")
    listing.add_argument("--max-results", type=int, default=100, help="Page size (max 1000)")
    listing.add_argument("--all", action="store_true", help="Follow pagination to the end")
    listing.add_argument("--segment-count", type=int, default=None)
    listing.add_argument("--segment-index", type=int, default=None)

    bucket = sub.add_parser("bucket", help="List or delete vector buckets")
    bucket_sub = bucket.add_subparsers(dest="action", required=True)
    bucket_list = bucket_sub.add_parser("list", help="List vector buckets")
    bucket_list.add_argument("--prefix", default=None, help="Only buckets whose name starts with this")
    bucket_delete = bucket_sub.add_parser("delete", help="Delete an empty vector bucket")
    bucket_delete.add_argument("name", nargs="?", default=None, help="Bucket name (default: --bucket)")
    bucket_delete.add_argument("--force", action="store_true", help="Skip confirmation prompt")

    index = sub.add_parser("index", help="List, describe or delete indexes in the bucket")
    index_sub = index.add_subparsers(dest="action", required=True)
    index_list = index_sub.add_parser("list", help="List indexes in the bucket")
    index_list.add_argument("--prefix", default=None, help="Only indexes whose name starts with this")
    index_get = index_sub.add_parser("get", help="Describe an index")
    index_get.add_argument("name", nargs="?", default=None, help="Index name (default: --index)")
    index_delete = index_sub.add_parser("delete", help="Delete an index and all of its vectors")
    index_delete.add_argument("name", nargs="?", default=None, help="Index name (default: --index)")
    index_delete.add_argument("--force", action="store_true", help="Skip confirmation prompt")

    vector = sub.add_parser("vector", help="Fetch or delete vectors by key")
    vector_sub = vector.add_subparsers(dest="action", required=True)
    vector_get = vector_sub.add_parser("get", help="Fetch vectors by key (max 100)")
    vector_get.add_argument("keys", nargs="+", help="Vector keys")
    vector_get.add_argument("--data", action="store_true", help="Include vector values")
    vector_delete = vector_sub.add_parser("delete", help="Delete vectors by key (max 500)")
    vector_delete.add_argument("keys", nargs="+", help="Vector keys")
    vector_delete.add_argument("--force", action="store_true", help="Skip confirmation prompt")

    install = sub.add_parser("install-model", help="Download the embedding model")
    install.add_argument("--model", default=settings.embedding_model, help="Hub model id")
    install.add_argument("--model-dir", default=str(settings.embedding_model_dir), help="Target directory")
    install.add_argument("--force", action="store_true", help="Download even if already installed")
    return parser


def _configure(args: argparse.Namespace) -> Settings:
    update: dict[str, Any] = {}
    if args.bucket:
        update["vector_bucket"] = args.bucket
    if args.index:
        update["vector_index"] = args.index
    if args.backend:
        update["vector_store_backend"] = args.backend
    return settings.model_copy(update=update)


def _emit(args: argparse.Namespace, payload: Any, text: str) -> None:
    if args.json:
        print(json.dumps(payload, indent=2, default=str))
    else:
        print(text)


def _confirm(args: argparse.Namespace, prompt: str) -> bool:
    if args.force:
        return True
    try:
        reply = input(f"{prompt} [y/N] ").strip().lower()
    except EOFError:
        reply = ""
    if reply in ("y", "yes"):
        return True
    print("Operation cancelled")
    return False


def _ingest_exit_code(report: IngestionReport) -> int:
    """Non-zero when the run stored nothing but was not a clean no-op."""
    if report.total_vectors_uploaded:
        return 0
    failed = report.per_document_failures or report.batch_failures
    return 1 if failed or report.cancelled else 0


def _format_report(report: IngestionReport) -> str:
    lines = [f"Ingestion {'cancelled' if report.cancelled else 'complete'}: {report.summary()}"]
    for failure in report.per_document_failures:
        lines.append(f"  FAILED {failure.document_id}: {failure.error_type}: {failure.message}")
    for batch in report.batch_failures:
        lines.append(
            f"  BATCH {batch.batch_number} ({batch.record_count} records, "
            f"{batch.first_key}..{batch.last_key}): {batch.message}"
        )
    if report.skipped_documents:
        lines.append(f"  skipped {len(report.skipped_documents)} documents")
    return "\n".join(lines)


# -- commands ------------------------------------------------------------------


def _cmd_init(pipeline: RagPipeline, args: argparse.Namespace) -> int:
    info = pipeline.initialize()
    _emit(
        args,
        info.model_dump(mode="json"),
        f"Ready: {info.bucket}/{info.name} (dimension={info.dimension}, metric={info.distance_metric.value})",
    )
    return 0


def _cmd_ingest(pipeline: RagPipeline, args: argparse.Namespace) -> int:
    pipeline.verify()
    cancel = threading.Event()

    def _on_sigint(signum: int, frame: Any) -> None:
        if cancel.is_set():
            raise KeyboardInterrupt
        logger.warning("Cancelling ingestion after in-flight work; press Ctrl-C again to abort")
        cancel.set()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        report = pipeline.ingest_directory(args.directory, batch_size=args.batch_size, cancel_event=cancel)
    finally:
        signal.signal(signal.SIGINT, previous)

    _emit(args, report.model_dump(mode="json"), _format_report(report))
    return _ingest_exit_code(report)


def _cmd_query(pipeline: RagPipeline, args: argparse.Namespace) -> int:
    context = pipeline.search(args.text, args.top_k)
    _emit(args, context.model_dump(mode="json"), answer(args.text, context))
    return 0


def _cmd_interactive(pipeline: RagPipeline, args: argparse.Namespace) -> int:
    print("Interactive RAG session. Type 'exit' or 'quit' to leave.")
    while True:
        try:
            line = input("query> ").strip()
        except EOFError:
            print()
            return 0
        if not line:
            continue
        if line.lower() in EXIT_COMMANDS:
            return 0
        try:
            context = pipeline.search(line, args.top_k)
        except VectorRagError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            continue
        _emit(args, context.model_dump(mode="json"), answer(line, context))


def _cmd_list(pipeline: RagPipeline, args: argparse.Namespace) -> int:
    store = pipeline.store
    if args.all:
        vectors = list(
            store.iter_vectors(
                pipeline.bucket,
                pipeline.index,
                page_size=args.max_results,
                segment_count=args.segment_count,
                segment_index=args.segment_index,
                return_metadata=True,
            )
        )
        next_token = None
    else:
        page = store.list_vectors(
            pipeline.bucket,
            pipeline.index,
            args.max_results,
            segment_count=args.segment_count,
            segment_index=args.segment_index,
            return_metadata=True,
        )
        vectors, next_token = page.vectors, page.next_token

    lines = [f"{v.key}\t{(v.metadata or {}).get('source_path', '')}" for v in vectors]
    lines.append(f"{len(vectors)} vectors" + (" (more available)" if next_token else ""))
    _emit(
        args,
        {"vectors": [v.model_dump(mode="json") for v in vectors], "next_token": next_token},
        "\n".join(lines),
    )
    return 0


def _cmd_bucket(pipeline: RagPipeline, args: argparse.Namespace) -> int:
    store = pipeline.store
    if args.action == "list":
        buckets = store.list_buckets(args.prefix)
        lines = [b.name for b in buckets] + [f"{len(buckets)} buckets"]
        _emit(args, [b.model_dump(mode="json") for b in buckets], "\n".join(lines))
        return 0

    name = args.name or pipeline.bucket
    if not _confirm(args, f"Delete bucket {name!r}?"):
        return 0
    store.delete_bucket(name)
    _emit(args, {"deleted": name}, f"Bucket {name} deleted")
    return 0


def _cmd_index(pipeline: RagPipeline, args: argparse.Namespace) -> int:
    store = pipeline.store
    if args.action == "list":
        indexes = store.list_indexes(pipeline.bucket, args.prefix)
        lines = [i.name for i in indexes] + [f"{len(indexes)} indexes in {pipeline.bucket}"]
        _emit(args, [i.model_dump(mode="json") for i in indexes], "\n".join(lines))
        return 0

    name = args.name or pipeline.index
    if args.action == "get":
        info = store.get_index(pipeline.bucket, name)
        _emit(
            args,
            info.model_dump(mode="json"),
            f"{info.bucket}/{info.name}: dimension={info.dimension}, metric={info.distance_metric.value}",
        )
        return 0

    if not _confirm(args, f"Delete index {name!r} and all of its vectors?"):
        return 0
    store.delete_index(pipeline.bucket, name)
    _emit(args, {"deleted": name}, f"Index {pipeline.bucket}/{name} deleted")
    return 0


def _cmd_vector(pipeline: RagPipeline, args: argparse.Namespace) -> int:
    store = pipeline.store
    if args.action == "get":
        vectors = store.get_vectors(pipeline.bucket, pipeline.index, args.keys, return_data=args.data)
        lines = [f"{v.key}\t{(v.metadata or {}).get('source_path', '')}" for v in vectors]
        missing = sorted(set(args.keys) - {v.key for v in vectors})
        if missing:
            lines.append(f"not found: {', '.join(missing)}")
        _emit(args, [v.model_dump(mode="json") for v in vectors], "\n".join(lines))
        return 0

    if not _confirm(args, f"Delete {len(args.keys)} vectors from {pipeline.index!r}?"):
        return 0
    store.delete_vectors(pipeline.bucket, pipeline.index, args.keys)
    _emit(args, {"deleted": args.keys}, f"Deleted {len(args.keys)} vectors")
    return 0


_COMMANDS = {
    "init": _cmd_init,
    "ingest": _cmd_ingest,
    "query": _cmd_query,
    "interactive": _cmd_interactive,
    "list": _cmd_list,
    "bucket": _cmd_bucket,
    "index": _cmd_index,
    "vector": _cmd_vector,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = _configure(args)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "install-model":
            path = install_model(args.model, args.model_dir, force=args.force)
            _emit(args, {"model_dir": str(path)}, f"Model installed at {path}")
            return 0
        pipeline = RagPipeline(config)
        return _COMMANDS[args.command](pipeline, args)
    except VectorRagError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
