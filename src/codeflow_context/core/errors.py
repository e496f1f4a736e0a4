"""
Global Error Handling

This module defines application-wide exception handlers for the context
server.

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

from ..projects import InvalidProjectError

logger = logging.getLogger("codeflow.errors")


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def invalid_project_handler(
    request: Request,
    exc: InvalidProjectError,
) -> JSONResponse:
    """
    Map an unusable project root to a 400 response.

    The message names the offending path only, which the client sent.
    """
    logger.info(
        "Rejected project root on %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )

    payload: Dict[str, Any] = {
        "error": "invalid_project",
        "detail": str(exc),
    }

    return JSONResponse(
        status_code=400,
        content=payload,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
