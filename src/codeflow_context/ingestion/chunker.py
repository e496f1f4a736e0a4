"""
Text chunking for ingestion.

Documentation is split on section boundaries; code is split greedily by
size. The code splitter is not syntax-aware: a boundary can fall inside a
function body.
"""

from __future__ import annotations

import re
from typing import List

from ..embeddings.models import ChunkKind

DEFAULT_MAX_CHUNK_CHARS = 1200

HEADING_RE = re.compile(r"^#{1,6}\s+")


def split_markdown(content: str) -> List[str]:
    """
    Split a markdown document into sections.

    A heading line is always a chunk of its own; a blank line closes the
    current paragraph.
    """
    chunks: List[str] = []
    buf: List[str] = []

    def flush() -> None:
        joined = "\n".join(buf).strip()
        if joined:
            chunks.append(joined)
        buf.clear()

    for line in content.split("\n"):
        if HEADING_RE.match(line):
            flush()
            buf.append(line)
            flush()
        elif not line.strip():
            flush()
        else:
            buf.append(line)

    flush()
    return chunks


def split_code(content: str, max_chars: int = DEFAULT_MAX_CHUNK_CHARS) -> List[str]:
    """
    Split source code into chunks of roughly `max_chars` characters.

    Lines accumulate until their summed length reaches `max_chars`; the
    remainder becomes the last chunk.
    """
    if len(content) <= max_chars:
        whole = content.strip()
        return [whole] if whole else []

    chunks: List[str] = []
    acc: List[str] = []
    size = 0

    for line in content.split("\n"):
        acc.append(line)
        size += len(line)
        if size >= max_chars:
            chunks.append("\n".join(acc).strip())
            acc = []
            size = 0

    if acc:
        chunks.append("\n".join(acc).strip())

    return [c for c in chunks if c]


def chunk(
    content: str,
    kind: ChunkKind,
    max_chars: int = DEFAULT_MAX_CHUNK_CHARS,
) -> List[str]:
    """Split `content` according to its kind. Never raises on text input."""
    if not content:
        return []
    if kind is ChunkKind.DOC:
        return split_markdown(content)
    return split_code(content, max_chars)
