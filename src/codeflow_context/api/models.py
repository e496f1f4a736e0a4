"""
API Models for the Context Server

This module defines all Pydantic models used for request/response
validation across indexing, retrieval and inline-session endpoints.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- Clear schema documentation
"""

from __future__ import annotations

from typing import List, Optional, Literal
from pydantic import BaseModel, Field, ConfigDict

from ..embeddings.models import GenerationContext, RetrievedItem
from ..ingestion.pipeline import IngestOptions, IngestReport
from ..retrieval.gate import InlineSuggestion


# ---------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------

class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    """
    status: Literal["cancelled", "closed", "not_found", "ok"]
    detail: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Index Models
# ---------------------------------------------------------------------

class IndexBuildRequest(BaseModel):
    """
    Request to ingest (or rebuild) a project tree.
    """
    project_root: str = Field(..., min_length=1)
    options: IngestOptions = Field(default_factory=IngestOptions)

    model_config = ConfigDict(extra="forbid")


class IndexBuildResponse(BaseModel):
    project_root: str
    report: IngestReport


class IndexStatsResponse(BaseModel):
    """
    Statistics for one project's embedding index.
    """
    location: str
    initialized: bool
    metric: str
    dimension: Optional[int] = None
    total_vectors: int = Field(..., ge=0)
    total_files: int = Field(..., ge=0)
    indexed_files: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------
# Retrieval Models
# ---------------------------------------------------------------------

class RetrieveRequest(BaseModel):
    """
    Batch (manual) retrieval request: no throttling or debouncing.
    """
    project_root: str = Field(..., min_length=1)
    file_path: str = ""
    full_text: str = ""
    line_prefix: str = ""
    line_number: int = Field(default=0, ge=0)
    top_k: Optional[int] = Field(default=None, ge=1, le=100)

    model_config = ConfigDict(extra="forbid")


class RetrieveResponse(BaseModel):
    combined: List[RetrievedItem] = Field(default_factory=list)
    by_line: List[RetrievedItem] = Field(default_factory=list)
    by_window: List[RetrievedItem] = Field(default_factory=list)
    context: GenerationContext


class InlineRequest(BaseModel):
    """
    Keystroke-driven retrieval request, routed through the session's gate.
    """
    project_root: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1, max_length=128)
    request_id: Optional[str] = Field(default=None, max_length=128)
    file_path: str = Field(..., min_length=1)
    full_text: str = ""
    line_prefix: str = ""
    line_number: int = Field(default=0, ge=0)
    manual: bool = False

    model_config = ConfigDict(extra="forbid")


class InlineResponse(BaseModel):
    suggestion: Optional[InlineSuggestion] = None
