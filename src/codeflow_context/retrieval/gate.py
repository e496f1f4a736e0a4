"""
Interaction Gate

Sits in front of the Multi-View Retriever on the inline (as-you-type)
path and decides, per keystroke-driven request, whether retrieval runs at
all:

1. Reject prefixes with too few meaningful characters.
2. Reject comment lines.
3. Throttle: within `throttle_ms` of the last real query, replay the
   cached suggestion for an identical request key, otherwise answer
   nothing.
4. Debounce: unless manually invoked, wait `pause_ms` and give up if the
   user kept typing or the request was cancelled.
5. Retrieve, build a suggestion from the best fused chunk and cache it.

One gate belongs to one editor session. Errors never escape
`retrieve_interactive`; the worst case is no suggestion.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .cancellation import CancellationToken, RequestCancelled
from .retriever import MultiViewRetriever
from ..config import Settings
from ..embeddings.models import GenerationContext, RetrievedItem, build_generation_context

logger = logging.getLogger("codeflow.gate")

_SYMBOLS_RE = re.compile(r"[\s(){}\[\];,.]")

RequestKey = Tuple[str, int, str]


# ---------------------------------------------------------------------
# Settings / Request / Result Models
# ---------------------------------------------------------------------

class GateSettings(BaseModel):
    """
    Per-gate tunables. Invalid values fail at construction.
    """

    min_prefix: int = Field(default=3, ge=0)
    pause_ms: int = Field(default=300, ge=0)
    throttle_ms: int = Field(default=800, ge=0)
    max_lines: int = Field(default=12, ge=1)
    top_k: int = Field(default=5, ge=1)
    comment_pattern: str = r"^\s*(//|/\*)"

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("comment_pattern")
    @classmethod
    def _compilable(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as exc:
            raise ValueError(f"comment_pattern is not a valid regex: {exc}") from exc
        return v

    @classmethod
    def from_settings(cls, s: Settings) -> "GateSettings":
        return cls(
            min_prefix=s.inline_min_prefix,
            pause_ms=s.inline_pause_ms,
            throttle_ms=s.inline_throttle_ms,
            max_lines=s.inline_max_lines,
            top_k=s.default_top_k,
            comment_pattern=s.inline_comment_pattern,
        )


class Position(BaseModel):
    line: int = Field(..., ge=0)
    character: int = Field(..., ge=0)


class InlineSuggestion(BaseModel):
    """
    Text to insert at `anchor`. Insertion only; typed text is never replaced.
    """

    text: str
    anchor: Position
    context: GenerationContext


@dataclass
class RequestContext:
    file_path: str
    manual: bool = False
    token: CancellationToken = field(default_factory=CancellationToken)
    # Re-reads the current line prefix after the debounce wait.
    read_prefix: Optional[Callable[[], str]] = None


# ---------------------------------------------------------------------
# Prefix Heuristics
# ---------------------------------------------------------------------

def meaningful_length(prefix: str) -> int:
    return len(_SYMBOLS_RE.sub("", prefix))


def build_suggestion_text(item: RetrievedItem, line_prefix: str, max_lines: int) -> str:
    text = "\n".join(item.text.split("\n")[:max_lines])

    for typed in (line_prefix, line_prefix.lstrip()):
        if typed and text.startswith(typed):
            text = text[len(typed):]
            break

    return text.lstrip()


# ---------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------

class InteractionGate:
    """
    Throttle/debounce/cancellation front for one editor session.
    """

    def __init__(
        self,
        retriever: MultiViewRetriever,
        settings: Optional[GateSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._retriever = retriever
        self.settings = settings or GateSettings()
        self._comment_re = re.compile(self.settings.comment_pattern)
        self._clock = clock

        self._last_run_at: Optional[float] = None
        self._last_key: Optional[RequestKey] = None
        self._last_result: Optional[InlineSuggestion] = None
        self._latest: Dict[str, Tuple[int, str]] = {}

    @property
    def last_result(self) -> Optional[InlineSuggestion]:
        return self._last_result

    def looks_like_comment(self, prefix: str) -> bool:
        return bool(self._comment_re.match(prefix))

    def reset(self) -> None:
        """Forget cached results and typing state (session close)."""
        self._last_run_at = None
        self._last_key = None
        self._last_result = None
        self._latest.clear()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def retrieve_interactive(
        self,
        full_text: str,
        line_prefix: str,
        line_number: int,
        request: RequestContext,
    ) -> Optional[InlineSuggestion]:
        """
        Return at most one suggestion for the cursor position, or None.
        """
        token = request.token
        self._latest[request.file_path] = (line_number, line_prefix)

        if meaningful_length(line_prefix) < self.settings.min_prefix:
            return None
        if self.looks_like_comment(line_prefix):
            return None

        key: RequestKey = (request.file_path, line_number, line_prefix)

        if self._throttled():
            if key == self._last_key:
                return self._last_result
            return None

        if not request.manual:
            if not await token.sleep(self.settings.pause_ms / 1000.0):
                return None
            if self._current_prefix(request, line_number) != line_prefix:
                logger.debug("Prefix changed during pause; abandoning request")
                return None

        if token.is_cancelled:
            return None

        try:
            result = await self._retriever.retrieve(
                full_text,
                line_prefix,
                line_number,
                top_k=self.settings.top_k,
                token=token,
            )
        except RequestCancelled:
            return None
        except Exception:
            logger.exception("Inline retrieval failed for %s:%d", request.file_path, line_number)
            return None

        if token.is_cancelled or not result.combined:
            return None

        text = build_suggestion_text(result.combined[0], line_prefix, self.settings.max_lines)
        if not text:
            return None

        suggestion = InlineSuggestion(
            text=text,
            anchor=Position(line=line_number, character=len(line_prefix)),
            context=build_generation_context(line_prefix, request.file_path, result.combined),
        )

        self._last_run_at = self._clock()
        self._last_key = key
        self._last_result = suggestion
        return suggestion

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _throttled(self) -> bool:
        if self._last_run_at is None:
            return False
        elapsed_ms = (self._clock() - self._last_run_at) * 1000.0
        return elapsed_ms < self.settings.throttle_ms

    def _current_prefix(self, request: RequestContext, line_number: int) -> Optional[str]:
        if request.read_prefix is not None:
            return request.read_prefix()
        latest = self._latest.get(request.file_path)
        if latest is None or latest[0] != line_number:
            return None
        return latest[1]
