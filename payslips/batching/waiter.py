"""
Chunk Barrier

Waits for every document task in a chunk to settle, up to a ceiling.
"""

import time
from collections.abc import Callable, Sequence
from concurrent.futures import Future, wait
from typing import Protocol

import structlog

log = structlog.get_logger()


class ChunkWaiter(Protocol):
    """Barrier between chunks."""

    def wait(self, futures: Sequence[Future], timeout: float) -> bool:
        """Return True when all futures settled before `timeout` seconds."""


class FuturesChunkWaiter:
    """
    Joins chunk futures in poll-interval slices until a deadline.

    The clock is injectable so timeouts can be simulated without sleeping
    for the full ceiling.
    """

    def __init__(
        self,
        poll_interval: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._poll_interval = poll_interval
        self._clock = clock

    def wait(self, futures: Sequence[Future], timeout: float) -> bool:
        deadline = self._clock() + timeout
        pending = set(futures)
        while pending:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return False
            _done, pending = wait(pending, timeout=min(self._poll_interval, remaining))
            if pending:
                log.debug(
                    "chunk_waiting",
                    settled=len(futures) - len(pending),
                    pending=len(pending),
                )
        return True
