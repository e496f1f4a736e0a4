"""
Cooperative cancellation for retrieval requests.

A token is created per request and passed explicitly to every suspension
point. Nothing is interrupted preemptively; code checks the token and
returns early.
"""

from __future__ import annotations

import asyncio
from typing import Optional


class RequestCancelled(Exception):
    """Raised inside a request once its token has been cancelled."""


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled()

    async def sleep(self, seconds: float) -> bool:
        """
        Wait up to `seconds`, waking early on cancellation.

        Returns True if the full delay elapsed, False if cancelled.
        """
        if self._event.is_set():
            return False
        if seconds <= 0:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False


def check(token: Optional[CancellationToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()
