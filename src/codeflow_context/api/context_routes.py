"""
Context Routes

This module defines the retrieval endpoints the editor calls:

- POST /context/retrieve  manual/batch retrieval, no gating
- POST /context/inline    keystroke-driven retrieval through the session's
                          Interaction Gate

Both hand back the GenerationContext triple for the downstream generator.
"""

from fastapi import APIRouter, Depends
from typing import Annotated

from .models import InlineRequest, InlineResponse, RetrieveRequest, RetrieveResponse
from .dependencies import (
    IndexResolver,
    build_retriever,
    get_embedder,
    get_gate_settings,
    get_index_resolver,
    get_session_store,
)
from ..config import settings
from ..embeddings.embedder import Embedder
from ..embeddings.models import build_generation_context
from ..projects import project_key, resolve_project_root
from ..retrieval.gate import GateSettings, InteractionGate, RequestContext
from ..sessions.store import SessionStore

router = APIRouter(prefix="/context", tags=["context"])


@router.post(
    "/retrieve",
    response_model=RetrieveResponse,
    summary="Fused two-view retrieval for a cursor position",
)
async def retrieve_context(
    req: RetrieveRequest,
    resolve_index: Annotated[IndexResolver, Depends(get_index_resolver)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> RetrieveResponse:
    """
    Run the Multi-View Retriever directly.

    Failures of a single view degrade to an empty list for that view; an
    uninitialized index yields empty results.
    """
    root = resolve_project_root(req.project_root)
    retriever = build_retriever(resolve_index(str(root)), embedder)

    result = await retriever.retrieve(
        req.full_text,
        req.line_prefix,
        req.line_number,
        top_k=req.top_k or settings.default_top_k,
    )

    return RetrieveResponse(
        combined=result.combined,
        by_line=result.by_line,
        by_window=result.by_window,
        context=build_generation_context(req.line_prefix, req.file_path, result.combined),
    )


@router.post(
    "/inline",
    response_model=InlineResponse,
    summary="Gated inline suggestion for a cursor position",
)
async def inline_suggestion(
    req: InlineRequest,
    resolve_index: Annotated[IndexResolver, Depends(get_index_resolver)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
    sessions: Annotated[SessionStore, Depends(get_session_store)],
    gate_settings: Annotated[GateSettings, Depends(get_gate_settings)],
) -> InlineResponse:
    """
    Return zero or one suggestion to insert at the cursor.

    Rejected, throttled, debounced-away and cancelled requests all answer
    with `suggestion: null`.
    """
    root = resolve_project_root(req.project_root)

    gate = sessions.get_gate(
        req.session_id,
        project_key(root),
        lambda: InteractionGate(
            build_retriever(resolve_index(str(root)), embedder),
            gate_settings,
        ),
    )

    token = sessions.begin_request(req.session_id, req.request_id)
    try:
        suggestion = await gate.retrieve_interactive(
            req.full_text,
            req.line_prefix,
            req.line_number,
            RequestContext(file_path=req.file_path, manual=req.manual, token=token),
        )
    finally:
        sessions.end_request(req.session_id, req.request_id)

    return InlineResponse(suggestion=suggestion)
