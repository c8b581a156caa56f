"""
Ordering gate for relay submissions.

A monotonic cursor over batch indices: each message waits for its turn,
so submissions reach the destination in source order no matter when
their finality polls complete. Holding a turn is also the mutual
exclusion point for destination submission.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class OrderingGate:
    """Serializes work by index, in increasing order."""

    def __init__(self) -> None:
        self._cursor = 0
        self._condition = asyncio.Condition()
        self._holder: tuple[str, int] | None = None
        self._aborted_by: tuple[str, int] | None = None

    @property
    def cursor(self) -> int:
        """Index of the next turn to be granted."""
        return self._cursor

    @property
    def holder(self) -> tuple[str, int] | None:
        """Key of the message currently holding its turn, if any."""
        return self._holder

    @property
    def aborted_by(self) -> tuple[str, int] | None:
        """Key of the first message that aborted the remaining turns."""
        return self._aborted_by

    def abort(self, key: tuple[str, int]) -> None:
        """Record a failure that later turns should observe. The first one wins."""
        if self._aborted_by is None:
            logger.warning(f"Ordering gate aborted by sequence {key[1]} from {key[0]}")
            self._aborted_by = key

    @asynccontextmanager
    async def turn(self, index: int, key: tuple[str, int] | None = None) -> AsyncIterator[None]:
        """
        Wait until every lower index has finished its turn, then hold the gate.

        The cursor advances when the block exits, whether or not it raised.

        Args:
            index: Position of the caller in source order
            key: Message key reported as the holder while the turn is held

        Raises:
            RuntimeError: If the index has already passed through the gate
        """
        async with self._condition:
            if index < self._cursor:
                raise RuntimeError(f"Turn {index} already passed (cursor at {self._cursor})")
            await self._condition.wait_for(lambda: self._cursor == index)
            self._holder = key

        try:
            yield
        finally:
            self._holder = None
            async with self._condition:
                self._cursor += 1
                self._condition.notify_all()
