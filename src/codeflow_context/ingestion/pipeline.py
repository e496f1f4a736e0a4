"""
Ingestion Pipeline

Walks a project tree, chunks every matching file, embeds each chunk and
appends it to the project's vector index.

Workflow (per file)
-------------------
1. Read the file as UTF-8 (unreadable files are skipped).
2. Classify it as doc or code by extension and chunk it.
3. Drop chunks below the per-kind minimum length.
4. Drop chunks whose dedup key is already stored or already seen.
5. Embed the chunk (failures skip the chunk).
6. Insert (vector, metadata) into the index.

Nothing is ever updated or deleted by `ingest`; use `rebuild` to start
from an empty index.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from . import chunker
from ..config import settings
from ..embeddings.embedder import Embedder, EmbeddingError
from ..embeddings.index import FaissIndex, FaissIndexError
from ..embeddings.models import ChunkKind, IndexedChunk, kind_for_extension
from ..projects import resolve_project_root

logger = logging.getLogger("codeflow.ingest")


# ---------------------------------------------------------------------
# Options / Report Models
# ---------------------------------------------------------------------

class IngestOptions(BaseModel):
    """
    Tunables for one ingestion run. Invalid values fail at construction.
    """

    min_doc_chunk_length: int = Field(default=12, ge=1)
    min_code_chunk_length: int = Field(default=6, ge=1)
    deduplicate: bool = True
    max_chunk_chars: int = Field(default=chunker.DEFAULT_MAX_CHUNK_CHARS, ge=1)

    model_config = ConfigDict(extra="forbid", frozen=True)

    def min_length_for(self, kind: ChunkKind) -> int:
        if kind is ChunkKind.DOC:
            return self.min_doc_chunk_length
        return self.min_code_chunk_length


class IngestReport(BaseModel):
    """
    Aggregate outcome of a run. Always returned, even on partial failure.
    """

    files_scanned: int = 0
    chunks_inserted: int = 0
    read_failures: int = 0
    embedding_failures: int = 0
    insert_failures: int = 0
    skipped_short: int = 0
    skipped_duplicate: int = 0

    @property
    def failures(self) -> int:
        return self.read_failures + self.embedding_failures + self.insert_failures


class IngestProgress(BaseModel):
    file: str
    files_done: int
    files_total: int
    chunks_inserted: int


ProgressCallback = Callable[[IngestProgress], None]


# ---------------------------------------------------------------------
# File Discovery
# ---------------------------------------------------------------------

def discover_files(
    root: Path,
    extensions: Optional[Iterable[str]] = None,
    exclude_dirs: Optional[Iterable[str]] = None,
) -> List[Path]:
    """
    Return matching files under `root` in sorted order, skipping excluded
    directories at any depth.
    """
    wanted = {e.lower() for e in (extensions or settings.ingest_extensions)}
    excluded = set(exclude_dirs or settings.ingest_exclude_dirs)

    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        for name in sorted(filenames):
            if Path(name).suffix.lower() in wanted:
                found.append(Path(dirpath) / name)
    return found


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


# ---------------------------------------------------------------------
# Entry Points
# ---------------------------------------------------------------------

async def ingest(
    root_dir: str | Path,
    options: Optional[IngestOptions] = None,
    *,
    index: FaissIndex,
    embedder: Embedder,
    on_progress: Optional[ProgressCallback] = None,
) -> IngestReport:
    """
    Ingest every matching file under `root_dir` into `index`.

    Parameters
    ----------
    root_dir : str | Path
        Project root to walk.

    options : Optional[IngestOptions]
        Chunk length thresholds and deduplication switch.

    index : FaissIndex
        Target store; initialized here if needed.

    embedder : Embedder
        Embedding provider.

    on_progress : Optional[Callable]
        Called once per file with an IngestProgress event.

    Returns
    -------
    IngestReport
        Files scanned, chunks inserted and failure counts.

    Raises
    ------
    InvalidProjectError
        If `root_dir` is not a directory.
    """
    options = options or IngestOptions()
    root = resolve_project_root(root_dir)

    index.initialize()

    files = await asyncio.to_thread(discover_files, root)
    report = IngestReport(files_scanned=len(files))

    # Seeded from the store so a re-run over unchanged files inserts nothing.
    seen: Set[str] = index.dedup_keys() if options.deduplicate else set()

    logger.info("Ingesting %d files from %s into %s", len(files), root, index.location)

    try:
        for done, path in enumerate(files, start=1):
            rel = path.relative_to(root).as_posix()

            try:
                content = await asyncio.to_thread(_read_text, path)
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Skipping unreadable file %s: %s", rel, exc)
                report.read_failures += 1
                continue

            await _ingest_file(rel, path.suffix, content, options, index, embedder, seen, report)

            if on_progress is not None:
                on_progress(
                    IngestProgress(
                        file=rel,
                        files_done=done,
                        files_total=len(files),
                        chunks_inserted=report.chunks_inserted,
                    )
                )
    finally:
        # Chunks inserted before an abort are kept.
        index.save()

    logger.info(
        "Ingestion finished: files=%d inserted=%d read_failures=%d "
        "embedding_failures=%d insert_failures=%d",
        report.files_scanned,
        report.chunks_inserted,
        report.read_failures,
        report.embedding_failures,
        report.insert_failures,
    )
    return report


async def rebuild(
    root_dir: str | Path,
    options: Optional[IngestOptions] = None,
    *,
    index: FaissIndex,
    embedder: Embedder,
    on_progress: Optional[ProgressCallback] = None,
) -> IngestReport:
    """
    Drop everything in `index`, then ingest `root_dir` from scratch.
    """
    resolve_project_root(root_dir)
    index.initialize()
    index.clear()
    return await ingest(
        root_dir,
        options,
        index=index,
        embedder=embedder,
        on_progress=on_progress,
    )


async def _ingest_file(
    rel: str,
    extension: str,
    content: str,
    options: IngestOptions,
    index: FaissIndex,
    embedder: Embedder,
    seen: Set[str],
    report: IngestReport,
) -> None:
    kind = kind_for_extension(extension)
    min_length = options.min_length_for(kind)
    segments = chunker.chunk(content, kind, options.max_chunk_chars)

    for i, segment in enumerate(segments):
        if len(segment) < min_length:
            report.skipped_short += 1
            continue

        doc = IndexedChunk(
            text=segment,
            source_file=rel,
            extension=extension.lower(),
            sequence_index=i,
            created_at=datetime.now(timezone.utc),
        )

        if options.deduplicate:
            if doc.dedup_key in seen:
                report.skipped_duplicate += 1
                continue
            seen.add(doc.dedup_key)

        try:
            vector = await embedder.embed_one(segment)
        except EmbeddingError as exc:
            logger.warning("Embedding failed for %s#%d: %s", rel, i, exc)
            report.embedding_failures += 1
            continue
        except Exception:
            logger.exception("Unexpected embedding failure for %s#%d", rel, i)
            report.embedding_failures += 1
            continue

        try:
            index.insert(vector, doc)
        except FaissIndexError as exc:
            logger.warning("Insert failed for %s#%d: %s", rel, i, exc)
            report.insert_failures += 1
            continue
        except Exception:
            logger.exception("Unexpected insert failure for %s#%d", rel, i)
            report.insert_failures += 1
            continue

        report.chunks_inserted += 1
