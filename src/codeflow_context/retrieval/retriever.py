"""
Multi-View Retriever

Answers "which indexed chunks are most relevant to what is being typed?"
with two similarity queries per request:

- line view:   the text typed so far on the cursor line
- window view: the lines surrounding the cursor

Both views are embedded and queried concurrently, then fused into a
single ranking (see `fusion.fuse`). A failure in one view degrades that
view to no results; it never fails the request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional

from .cancellation import CancellationToken, check
from .fusion import LINE_WEIGHT, WINDOW_WEIGHT, fuse
from ..embeddings.embedder import Embedder, EmbeddingError
from ..embeddings.index import FaissIndex, FaissIndexError
from ..embeddings.models import RetrievalResult, RetrievedItem

logger = logging.getLogger("codeflow.retriever")

DEFAULT_RADIUS = 40


def extract_window(full_text: str, line_number: int, radius: int = DEFAULT_RADIUS) -> str:
    """
    Return lines [line_number - radius, line_number + radius] of `full_text`,
    clamped to the file.
    """
    lines = full_text.split("\n")
    start = max(0, line_number - radius)
    end = min(len(lines), line_number + radius + 1)
    if start >= end:
        return ""
    return "\n".join(lines[start:end])


class MultiViewRetriever:
    """
    Two-view similarity search over one project's index.

    The retriever holds no per-request state and is safe to share between
    concurrent requests.
    """

    def __init__(
        self,
        index: FaissIndex,
        embedder: Embedder,
        radius: int = DEFAULT_RADIUS,
        line_weight: float = LINE_WEIGHT,
        window_weight: float = WINDOW_WEIGHT,
    ) -> None:
        if radius < 0:
            raise ValueError(f"radius must be >= 0, got {radius}")
        self._index = index
        self._embedder = embedder
        self.radius = radius
        self.line_weight = line_weight
        self.window_weight = window_weight

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        full_text: str,
        line_prefix: str,
        line_number: int,
        top_k: int = 5,
        token: Optional[CancellationToken] = None,
    ) -> RetrievalResult:
        """
        Run both views and fuse them.

        Raises
        ------
        RequestCancelled
            If `token` is cancelled before or between the suspension points.
        """
        q_window = extract_window(full_text, line_number, self.radius).strip()
        q_line = line_prefix.strip()

        if not q_line and not q_window:
            return RetrievalResult.empty()

        try:
            ready = self._index.is_initialized()
        except FaissIndexError as exc:
            logger.warning("Index at %s could not be reloaded: %s", self._index.location, exc)
            return RetrievalResult.empty()

        if not ready:
            logger.warning("Index at %s is not initialized", self._index.location)
            return RetrievalResult.empty()

        started = time.perf_counter()

        by_line, by_window = await asyncio.gather(
            self._run_view("line", q_line, top_k, token),
            self._run_view("window", q_window, top_k, token),
        )

        check(token)

        combined = fuse(
            by_line,
            by_window,
            top_k,
            line_weight=self.line_weight,
            window_weight=self.window_weight,
        )

        logger.debug(
            "Retrieved %d fused items (line=%d window=%d) in %.3fs",
            len(combined),
            len(by_line),
            len(by_window),
            time.perf_counter() - started,
        )

        return RetrievalResult(combined=combined, by_line=by_line, by_window=by_window)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_view(
        self,
        view: str,
        query: str,
        top_k: int,
        token: Optional[CancellationToken],
    ) -> List[RetrievedItem]:
        if not query:
            return []

        check(token)
        try:
            vector = await self._embedder.embed_one(query)
        except EmbeddingError as exc:
            logger.warning("Embedding failed for %s view: %s", view, exc)
            return []
        except Exception:
            logger.exception("Unexpected embedding failure for %s view", view)
            return []

        check(token)
        try:
            hits = await asyncio.to_thread(self._index.query, vector, top_k)
        except FaissIndexError as exc:
            logger.warning("Query failed for %s view: %s", view, exc)
            return []
        except Exception:
            logger.exception("Unexpected query failure for %s view", view)
            return []

        return [RetrievedItem.from_hit(hit) for hit in hits]
