"""
Embedding Data Models

This module defines the canonical data model used to represent a single
indexed chunk stored in the FAISS vector index, and the shapes that flow
out of a similarity query.

Each IndexedChunk corresponds to ONE embedding vector and ONE chunk of text.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ChunkKind(str, Enum):
    """Closed set of chunk kinds; decides chunking and minimum length."""

    CODE = "code"
    DOC = "doc"


DOC_EXTENSIONS = frozenset({".md", ".markdown", ".mdx"})


def kind_for_extension(extension: str) -> ChunkKind:
    """
    Map a file extension (with or without the leading dot) to a ChunkKind.

    Total: unknown extensions are code.
    """
    ext = (extension or "").lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ChunkKind.DOC if ext in DOC_EXTENSIONS else ChunkKind.CODE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IndexedChunk(BaseModel):
    """
    A single indexed chunk of a project file.

    This model is the authoritative schema for:
    - FAISS index storage
    - Metadata persistence to JSON
    - Vector search result mapping
    """

    text: str = Field(
        ...,
        min_length=1,
        description="Raw text content for this embedded chunk.",
    )

    source_file: str = Field(
        ...,
        min_length=1,
        description="Path of the originating file, relative to the project root.",
    )

    extension: str = Field(
        default="",
        description="File extension including the leading dot, e.g. '.ts'.",
    )

    sequence_index: int = Field(
        ...,
        ge=0,
        description="Zero-based position among the chunks of the same file.",
    )

    created_at: datetime = Field(
        default_factory=_utcnow,
        description="Ingestion timestamp (UTC).",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    @property
    def dedup_key(self) -> str:
        return f"{self.source_file}::{self.sequence_index}::{len(self.text)}"

    @property
    def fusion_key(self) -> Tuple[str, int]:
        return (self.source_file, self.sequence_index)


class SearchHit(BaseModel):
    """
    Raw vector store result.

    Exactly one of `score` (similarity, larger is better) or `distance`
    (smaller is better) is normally set, depending on the index metric.
    """

    chunk: IndexedChunk
    score: Optional[float] = None
    distance: Optional[float] = None

    model_config = ConfigDict(frozen=True)


class RetrievedItem(BaseModel):
    """A query result normalized to a similarity score."""

    text: str
    source_file: Optional[str] = None
    extension: Optional[str] = None
    sequence_index: Optional[int] = None
    score: float

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_hit(cls, hit: SearchHit) -> "RetrievedItem":
        if hit.score is not None:
            score = hit.score
        elif hit.distance is not None:
            score = 1.0 - hit.distance
        else:
            score = 0.0

        return cls(
            text=hit.chunk.text,
            source_file=hit.chunk.source_file,
            extension=hit.chunk.extension,
            sequence_index=hit.chunk.sequence_index,
            score=float(score),
        )

    @property
    def fusion_key(self) -> Tuple[Optional[str], Optional[int]]:
        return (self.source_file, self.sequence_index)


class RetrievalResult(BaseModel):
    """Fused ranking plus the raw per-view lists for diagnostics."""

    combined: List[RetrievedItem] = Field(default_factory=list)
    by_line: List[RetrievedItem] = Field(default_factory=list)
    by_window: List[RetrievedItem] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "RetrievalResult":
        return cls()


class GenerationContext(BaseModel):
    """
    The triple handed to a downstream text generator.

    This service never calls a generator itself.
    """

    line_prefix: str
    file_path: str
    snippets: List[str] = Field(default_factory=list)


def build_generation_context(
    line_prefix: str,
    file_path: str,
    items: List[RetrievedItem],
) -> GenerationContext:
    return GenerationContext(
        line_prefix=line_prefix,
        file_path=file_path,
        snippets=[item.text for item in items if item.text],
    )
