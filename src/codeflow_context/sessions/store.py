"""
Session Store

In-memory registry of editor sessions for the inline retrieval path.

Each session owns one InteractionGate (and therefore its own throttle and
debounce state) plus the cancellation tokens of its in-flight requests, so
a separate call can cancel a pending request by id.

Design choices
--------------
- In-memory only (no persistence across process restarts).
- Gates are created lazily on first use and dropped on session close.
- Sessions idle for longer than `idle_seconds` with no request in flight
  are evicted the next time any gate is requested.
- Thread-safe access using a re-entrant lock.
- Global singleton `session_store` for typical application use, while still
  allowing custom instances to be created for tests.
"""

from __future__ import annotations

import logging
import time
from threading import RLock
from typing import Callable, Dict, List, Optional, Tuple

from ..config import settings
from ..retrieval.cancellation import CancellationToken
from ..retrieval.gate import InteractionGate

logger = logging.getLogger("codeflow.sessions")

GateFactory = Callable[[], InteractionGate]


class SessionStore:
    """
    In-memory store mapping session IDs to InteractionGate instances.
    """

    def __init__(
        self,
        idle_seconds: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if idle_seconds <= 0:
            raise ValueError(f"idle_seconds must be > 0, got {idle_seconds}")
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._gates: Dict[str, Tuple[str, InteractionGate]] = {}
        self._last_used: Dict[str, float] = {}
        self._tokens: Dict[Tuple[str, str], CancellationToken] = {}
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def get_gate(
        self,
        session_id: str,
        project_key: str,
        factory: GateFactory,
    ) -> InteractionGate:
        """
        Return the gate for `session_id`, creating it with `factory` if the
        session is new or has switched to another project.
        """
        now = self._clock()
        with self._lock:
            evicted = self._evict_idle(now, keep=session_id)
            entry = self._gates.get(session_id)
            if entry is None or entry[0] != project_key:
                entry = (project_key, factory())
                self._gates[session_id] = entry
            self._last_used[session_id] = now

        for gate in evicted:
            gate.reset()
        return entry[1]

    def close(self, session_id: str) -> bool:
        """
        Drop a session, resetting its gate and cancelling its pending
        requests. Returns True if the session existed.
        """
        with self._lock:
            entry = self._gates.pop(session_id, None)
            self._last_used.pop(session_id, None)
            for key in [k for k in self._tokens if k[0] == session_id]:
                self._tokens.pop(key).cancel()

        if entry is None:
            return False
        entry[1].reset()
        return True

    # ------------------------------------------------------------------
    # Request tokens
    # ------------------------------------------------------------------

    def begin_request(self, session_id: str, request_id: Optional[str]) -> CancellationToken:
        """
        Create the cancellation token for a new request. Requests without
        an id can not be cancelled remotely.
        """
        token = CancellationToken()
        if request_id:
            with self._lock:
                self._tokens[(session_id, request_id)] = token
        return token

    def end_request(self, session_id: str, request_id: Optional[str]) -> None:
        if request_id:
            with self._lock:
                self._tokens.pop((session_id, request_id), None)

    def cancel(self, session_id: str, request_id: str) -> bool:
        """
        Cancel an in-flight request. Returns False if it is unknown or
        already finished.
        """
        with self._lock:
            token = self._tokens.pop((session_id, request_id), None)
        if token is None:
            return False
        token.cancel()
        return True

    # ------------------------------------------------------------------
    # Utility operations
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        """
        Remove all sessions. Intended for test setup/teardown or resets.
        """
        with self._lock:
            for token in self._tokens.values():
                token.cancel()
            self._tokens.clear()
            self._gates.clear()
            self._last_used.clear()

    def has_session(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._gates

    def __len__(self) -> int:
        with self._lock:
            return len(self._gates)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _evict_idle(self, now: float, keep: str) -> List[InteractionGate]:
        """
        Drop sessions unused for longer than `idle_seconds`. Sessions with a
        request in flight are kept. Caller must hold the lock.
        """
        busy = {sid for sid, _ in self._tokens}
        stale = [
            sid
            for sid, used in self._last_used.items()
            if sid != keep and sid not in busy and now - used > self.idle_seconds
        ]

        evicted: List[InteractionGate] = []
        for sid in stale:
            self._last_used.pop(sid, None)
            entry = self._gates.pop(sid, None)
            if entry is not None:
                evicted.append(entry[1])

        if stale:
            logger.info("Evicted %d idle sessions", len(stale))
        return evicted


# Global singleton used by the application.
session_store = SessionStore(idle_seconds=settings.session_idle_seconds)
