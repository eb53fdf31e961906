"""
Cooperative cancellation shared by every stage of a terrain request.

A single CancellationToken is threaded from the TerrainManager down to each
fetch loop and retry delay. Cancellation surfaces as TerrainCancelledError,
which adapters must re-raise rather than treat as a data failure.
"""

import asyncio
import contextlib
from collections.abc import Awaitable
from typing import TypeVar

from ..constants import ErrorMessages

T = TypeVar("T")


class TerrainCancelledError(Exception):
    """Raised when a terrain request is cancelled by its caller."""

    def __init__(self, message: str = ErrorMessages.CANCELLED) -> None:
        super().__init__(message)


class CancellationToken:
    """Caller-owned cancellation signal."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TerrainCancelledError()

    async def sleep(self, seconds: float) -> None:
        """Sleep for `seconds`, waking early and raising if cancelled."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise TerrainCancelledError()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, abandoning it as soon as the token is cancelled.

        The in-flight task is cancelled and its result discarded.
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task
        raise TerrainCancelledError()
