"""Single-assignment result slot.

A OneShot is settled by whichever writer gets there first; later writers
are ignored. Teardown callbacks registered with on_settle() run exactly
once, at the moment of the first settlement or when the slot is closed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OneShot(Generic[T]):
    """A future that only the first writer can settle."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future[T] = self._loop.create_future()
        self._teardown: list[Callable[[], None]] = []
        self._closed = False

    @property
    def settled(self) -> bool:
        return self._future.done()

    def on_settle(self, callback: Callable[[], None]) -> None:
        """Register a teardown callback.

        If the slot is already settled or closed the callback runs immediately.
        """
        if self._closed:
            callback()
            return
        self._teardown.append(callback)

    def settle(self, value: T) -> bool:
        """Settle the slot.

        Returns:
            True if this call settled the slot, False if it was already settled
        """
        if self._future.done():
            return False
        self._future.set_result(value)
        self.close()
        return True

    def close(self) -> None:
        """Run teardown callbacks without settling."""
        if self._closed:
            return
        self._closed = True
        callbacks, self._teardown = self._teardown, []
        for callback in reversed(callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Teardown callback failed")

    async def wait(self) -> T:
        return await self._future
