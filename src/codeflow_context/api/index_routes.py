"""
Index Routes

This module exposes endpoints for:
- Ingesting a project tree into its vector index (append-only)
- Rebuilding a project index from scratch
- Querying index statistics

These endpoints back the offline build step; the editor normally calls
them once per project and after large changes.
"""

from fastapi import APIRouter, Depends, Query
from typing import Annotated

from .models import IndexBuildRequest, IndexBuildResponse, IndexStatsResponse
from .dependencies import IndexResolver, get_embedder, get_index_resolver
from ..embeddings.embedder import Embedder
from ..ingestion.pipeline import ingest, rebuild
from ..projects import resolve_project_root

router = APIRouter(prefix="/index", tags=["index"])


@router.post(
    "/build",
    response_model=IndexBuildResponse,
    summary="Ingest a project tree into its index",
)
async def build_index(
    req: IndexBuildRequest,
    resolve_index: Annotated[IndexResolver, Depends(get_index_resolver)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> IndexBuildResponse:
    """
    Walk the project, embed new chunks and append them to the index.

    Unchanged files insert nothing on a re-run. Per-file and per-chunk
    failures are counted in the report rather than failing the request.
    """
    root = resolve_project_root(req.project_root)
    index = resolve_index(str(root))

    report = await ingest(root, req.options, index=index, embedder=embedder)

    return IndexBuildResponse(project_root=str(root), report=report)


@router.post(
    "/rebuild",
    response_model=IndexBuildResponse,
    summary="Clear a project index and ingest it again",
)
async def rebuild_index(
    req: IndexBuildRequest,
    resolve_index: Annotated[IndexResolver, Depends(get_index_resolver)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> IndexBuildResponse:
    root = resolve_project_root(req.project_root)
    index = resolve_index(str(root))

    report = await rebuild(root, req.options, index=index, embedder=embedder)

    return IndexBuildResponse(project_root=str(root), report=report)


@router.get(
    "/stats",
    response_model=IndexStatsResponse,
    summary="Get index statistics for a project",
)
async def get_index_stats(
    project_root: Annotated[str, Query(min_length=1)],
    resolve_index: Annotated[IndexResolver, Depends(get_index_resolver)],
) -> IndexStatsResponse:
    root = resolve_project_root(project_root)
    return IndexStatsResponse(**resolve_index(str(root)).get_stats())
