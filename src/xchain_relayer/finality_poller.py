"""
Finality polling against the destination message bus.

Repeatedly asks the destination chain whether a message is finalized,
on a fixed interval, until it is or the per-message deadline elapses.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Awaitable, Callable

from .errors import PollError
from .models import CrossChainMessage, FinalityTimeout, FinalizedMessage

if TYPE_CHECKING:
    from .ledgers import DestinationLedger

logger = logging.getLogger(__name__)


class FinalityPoller:
    """Waits for the destination chain to report messages as finalized."""

    DEFAULT_POLL_INTERVAL = 1.0  # seconds
    DEFAULT_DEADLINE = 30.0  # seconds

    def __init__(
        self,
        destination: "DestinationLedger",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        deadline: float = DEFAULT_DEADLINE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the poller.

        Args:
            destination: Destination ledger exposing verify_message_finalized
            poll_interval: Default seconds between attempts
            deadline: Default seconds allowed from the first attempt
            clock: Monotonic time source
            sleep: Coroutine used to wait between attempts
        """
        if poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {poll_interval}")
        if deadline <= 0:
            raise ValueError(f"Deadline must be positive, got {deadline}")

        self.destination = destination
        self.poll_interval = poll_interval
        self.deadline = deadline
        self._clock = clock
        self._sleep = sleep

    async def await_finality(
        self,
        message: CrossChainMessage,
        deadline: float | None = None,
        poll_interval: float | None = None,
    ) -> FinalizedMessage | FinalityTimeout:
        """
        Poll until the message is finalized or the deadline elapses.

        The first query is issued immediately. A query error aborts the
        poll rather than being retried.

        Args:
            message: Message to check
            deadline: Seconds allowed, measured from the first attempt
            poll_interval: Seconds between attempts

        Returns:
            FinalizedMessage on success, FinalityTimeout if the deadline elapsed

        Raises:
            PollError: If a finality query fails
        """
        deadline = self.deadline if deadline is None else deadline
        poll_interval = self.poll_interval if poll_interval is None else poll_interval

        logger.info(
            f"Waiting for finality of {message} "
            f"(deadline {deadline}s, interval {poll_interval}s)"
        )

        started = self._clock()
        attempts = 0

        while True:
            attempts += 1
            remaining = deadline - (self._clock() - started)

            query = asyncio.ensure_future(self.destination.verify_message_finalized(message))
            try:
                done, _ = await asyncio.wait({query}, timeout=max(0.0, remaining))
            finally:
                if not query.done():
                    query.cancel()

            if not done:
                elapsed = self._clock() - started
                logger.warning(
                    f"Finality query for {message} still pending at deadline "
                    f"after {attempts} attempt(s)"
                )
                return FinalityTimeout(message=message, attempts=attempts, elapsed=elapsed)

            try:
                finalized = query.result()
            except Exception as e:
                logger.error(f"Finality query for {message} failed on attempt {attempts}: {e}")
                raise PollError(message.key, str(e)) from e

            elapsed = self._clock() - started

            if finalized:
                logger.info(f"{message} finalized after {attempts} attempt(s), {elapsed:.1f}s")
                return FinalizedMessage(message=message, attempts=attempts, elapsed=elapsed)

            logger.debug(f"{message} not finalized yet (attempt {attempts}), retrying...")

            if elapsed + poll_interval >= deadline:
                # The next attempt would start past the deadline
                await self._sleep(max(0.0, deadline - elapsed))
                elapsed = self._clock() - started
                logger.warning(
                    f"Timed out waiting for finality of {message} "
                    f"after {attempts} attempt(s), {elapsed:.1f}s"
                )
                return FinalityTimeout(message=message, attempts=attempts, elapsed=elapsed)

            await self._sleep(poll_interval)
