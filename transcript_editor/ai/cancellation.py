"""Cooperative cancellation bound to a single AI run.

WHY: A feature run spans many awaits (one provider call per batch). When
the user starts a new run or presses cancel, the old run must stop at the
next safe point and any in-flight HTTP call should be abandoned promptly.
Reading a shared "current controller" slot would let a new run's token be
mistaken for the old one's; each run therefore owns its own token.

HOW: CancellationToken wraps an asyncio.Event. Batch loops call
raise_if_cancelled() before each unit of work. guard() races an awaitable
against the token and cancels the awaitable if the token fires first.

RULES:
- One token per run; tokens are never reset or reused
- cancel() is idempotent
- guard() raises AICancellationError, never asyncio.CancelledError
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from transcript_editor.ai.errors import AICancellationError

T = TypeVar("T")


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Operation cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AICancellationError(self.reason or "Operation cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await the given awaitable unless the token fires first."""
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            work.cancel()
            raise
        finally:
            waiter.cancel()
        if work.done():
            return work.result()
        work.cancel()
        raise AICancellationError(self.reason or "Operation cancelled")
