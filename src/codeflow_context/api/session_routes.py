"""
Session Routes

Lifecycle endpoints for inline editor sessions: cancelling a pending
request and closing a session (which drops its cached state).
"""

from fastapi import APIRouter, Depends
from typing import Annotated

from .models import OperationResult
from .dependencies import get_session_store
from ..sessions.store import SessionStore

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post(
    "/{session_id}/cancel/{request_id}",
    response_model=OperationResult,
    summary="Cancel an in-flight inline request",
)
async def cancel_request(
    session_id: str,
    request_id: str,
    sessions: Annotated[SessionStore, Depends(get_session_store)],
) -> OperationResult:
    if sessions.cancel(session_id, request_id):
        return OperationResult(status="cancelled")
    return OperationResult(status="not_found", detail="request already finished or unknown")


@router.delete(
    "/{session_id}",
    response_model=OperationResult,
    summary="Close an editor session",
)
async def close_session(
    session_id: str,
    sessions: Annotated[SessionStore, Depends(get_session_store)],
) -> OperationResult:
    if sessions.close(session_id):
        return OperationResult(status="closed")
    return OperationResult(status="not_found")
