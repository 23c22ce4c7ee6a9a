"""Progress calculation utility.

Centralizes progress mapping for single-job and two-phase exports and
provides the stream the state machine consumes progress from.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

from epc.models.export_job import ProgressUpdate

# Progress mapping constants
PROGRESS_START = 0
PROGRESS_MASTER_STARTED = 10  # Master generation submitted
PROGRESS_PHASE_SPLIT = 50  # Master ready, conversion starts
PROGRESS_CONVERT_SUBMITTED = 60
PROGRESS_CONVERT_PROCESSING = 70
PROGRESS_COMPLETED = 100

ProgressSink = Callable[[ProgressUpdate], None]


def clamp_progress(value: float) -> int:
    """Clamp a progress value into the integer range 0-100."""
    return max(PROGRESS_START, min(PROGRESS_COMPLETED, int(value)))


def scale_progress(value: float, low: int, high: int) -> int:
    """Map a 0-100 progress value onto [low, high].

    Args:
        value: Progress reported by one phase (0-100)
        low: Lower bound of the caller-visible range
        high: Upper bound of the caller-visible range

    Returns:
        Scaled integer progress
    """
    fraction = clamp_progress(value) / PROGRESS_COMPLETED
    return clamp_progress(low + fraction * (high - low))


class MonotonicProgress:
    """Forwards progress updates, never letting the value go backwards.

    Updates whose value is lower than one already delivered are forwarded
    with the previous value so the step text still changes.
    """

    def __init__(self, sink: ProgressSink):
        self._sink = sink
        self._last = PROGRESS_START

    @property
    def last(self) -> int:
        return self._last

    def __call__(self, update: ProgressUpdate) -> None:
        self._last = max(self._last, clamp_progress(update.progress))
        self._sink(ProgressUpdate(progress=self._last, message=update.message))


class ProgressStream:
    """Async stream of progress updates.

    Producers call emit(); one consumer iterates with `async for` until
    close() is called. Must be created and used on a single event loop.
    """

    _CLOSED = object()

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def emit(self, update: ProgressUpdate) -> None:
        if not self._closed:
            self._queue.put_nowait(update)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> AsyncIterator[ProgressUpdate]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressUpdate]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item
