import argparse
import asyncio
import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from codeflow_context.embeddings.embedder import Embedder
from codeflow_context.embeddings.registry import get_project_index
from codeflow_context.ingestion.pipeline import IngestOptions, IngestProgress, ingest, rebuild
from codeflow_context.main import configure_logging


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Build the context index for a project.")
    parser.add_argument("root", nargs="?", default=os.getcwd(), help="Project root (default: cwd)")
    parser.add_argument("--rebuild", action="store_true", help="Clear the index before ingesting")
    parser.add_argument("--no-dedup", action="store_true", help="Disable chunk deduplication")
    parser.add_argument("--min-doc", type=int, default=12, help="Minimum markdown chunk length")
    parser.add_argument("--min-code", type=int, default=6, help="Minimum code chunk length")
    parser.add_argument("--quiet", action="store_true", help="Do not print per-file progress")
    return parser.parse_args(argv)


def print_progress(event: IngestProgress) -> None:
    print(f"[{event.files_done}/{event.files_total}] {event.file} (inserted so far: {event.chunks_inserted})")


async def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging()

    options = IngestOptions(
        min_doc_chunk_length=args.min_doc,
        min_code_chunk_length=args.min_code,
        deduplicate=not args.no_dedup,
    )

    index = get_project_index(args.root)
    embedder = Embedder()
    run = rebuild if args.rebuild else ingest

    print(f"Indexing {args.root} into {index.location}...")
    report = await run(
        args.root,
        options,
        index=index,
        embedder=embedder,
        on_progress=None if args.quiet else print_progress,
    )

    print(
        f"Done: scanned {report.files_scanned} files, inserted {report.chunks_inserted} chunks "
        f"({report.skipped_duplicate} duplicate, {report.skipped_short} too short)."
    )
    if report.failures:
        print(
            f"Failures: {report.read_failures} unreadable files, "
            f"{report.embedding_failures} embedding errors, {report.insert_failures} insert errors."
        )
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
