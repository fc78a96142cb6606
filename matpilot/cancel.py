"""Cooperative cancellation for the suspend points of motion programs."""
from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

T = TypeVar("T")


class Cancelled(Exception):
    """Raised inside a cancellable wait once its scope has been cancelled."""


class CancelScope:
    """Cancellation signal shared by every wait of one program run.

    Waits raise :class:`Cancelled` as soon as :meth:`cancel` is called, so the
    owning program can fall through to its ``finally`` block and stop the
    robot.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def check(self) -> None:
        if self._event.is_set():
            raise Cancelled()

    async def sleep(self, seconds: float) -> None:
        self.check()
        if seconds <= 0:
            await asyncio.sleep(0)
            self.check()
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise Cancelled()

    async def wait(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the scope is cancelled first."""
        self.check()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task in done:
            return task.result()
        task.cancel()
        raise Cancelled()


__all__ = ["Cancelled", "CancelScope"]
