"""
Relay pipeline orchestration.

Extracts messages from source receipts, polls each one for finality
concurrently and relays them to the destination strictly in source
order, collecting one outcome per message.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import PollError, RelayError
from .extractor import MessageExtractor
from .finality_poller import FinalityPoller
from .models import (
    CrossChainMessage,
    FinalityTimeout,
    FinalizedMessage,
    MessageState,
    PollFailed,
    RelayBatch,
    Relayed,
    RelayFailed,
    RelayOutcome,
    RelaySkipped,
    RelayUnconfirmed,
)
from .ordering_gate import OrderingGate
from .relay_executor import RelayExecutor

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    """What happens to later messages once one message fails."""

    ABORT_REMAINING = "abort-remaining"
    SKIP_AND_CONTINUE = "skip-and-continue"


@dataclass
class _BatchRun:
    """Everything one run_batch call owns. Nothing here is shared between runs."""

    batch: RelayBatch
    gate: OrderingGate = field(default_factory=OrderingGate)
    states: dict[tuple[str, int], MessageState] = field(default_factory=dict)
    outcomes: list[RelayOutcome | None] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.states = {message.key: MessageState.EXTRACTED for message in self.batch}
        self.outcomes = [None] * len(self.batch)

    def first_unfinished(self) -> tuple[str, int] | None:
        """Key of the earliest message in source order that has no outcome yet."""
        for message, outcome in zip(self.batch, self.outcomes):
            if outcome is None:
                return message.key
        return None


class RelayPipeline:
    """
    Runs extract -> wait-for-finality -> relay for one batch at a time.

    Finality polls fan out, one task per message. Relays go through an
    ordering gate so the destination sees messages in source order even
    when later messages finalize first. Concurrent runs on the same
    pipeline are independent.
    """

    def __init__(
        self,
        extractor: MessageExtractor,
        poller: FinalityPoller,
        executor: RelayExecutor,
        failure_policy: FailurePolicy = FailurePolicy.ABORT_REMAINING,
        run_timeout: float | None = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            extractor: Turns source receipts into a batch
            poller: Waits for destination finality
            executor: Submits finalized messages
            failure_policy: Whether a failure stops later relays
            run_timeout: Optional overall deadline for one batch, in seconds
        """
        self.extractor = extractor
        self.poller = poller
        self.executor = executor
        self.failure_policy = FailurePolicy(failure_policy)
        self.run_timeout = run_timeout

        # Snapshot of the most recently completed run, by message key
        self.states: dict[tuple[str, int], MessageState] = {}

    async def run(self, receipts: Iterable[Mapping[str, Any]]) -> list[RelayOutcome]:
        """
        Relay every message emitted in the given source receipts.

        Args:
            receipts: Source transaction receipts, in submission order

        Returns:
            One outcome per extracted message, in source order

        Raises:
            ExtractionError: If any message log could not be decoded or a
                source transaction failed
        """
        try:
            batch = self.extractor.extract_batch(receipts)
        except Exception:
            self.states = {}
            logger.error("Extraction failed, nothing will be relayed")
            raise

        return await self.run_batch(batch)

    async def run_batch(self, batch: RelayBatch) -> list[RelayOutcome]:
        """
        Poll and relay an already extracted batch.

        Args:
            batch: Messages in source order

        Returns:
            One outcome per message, in batch order
        """
        run = _BatchRun(batch)

        if not batch:
            logger.info("Empty batch, nothing to relay")
            self.states = run.states
            return []

        logger.info(
            f"Relaying batch of {len(batch)} message(s) "
            f"(policy: {self.failure_policy.value})"
        )

        tasks = [
            asyncio.create_task(self._process(run, index, message))
            for index, message in enumerate(batch)
        ]

        done, pending = await asyncio.wait(tasks, timeout=self.run_timeout)

        # Taken before cancelling: cancellation releases the gate
        blocker = run.gate.holder or run.first_unfinished()

        if pending:
            logger.error(f"Run timeout of {self.run_timeout}s reached with {len(pending)} message(s) unfinished")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            # Surface unexpected bugs rather than returning a partial list
            if (error := task.exception()) is not None:
                raise error

        for index, message in enumerate(batch):
            if run.outcomes[index] is None:
                run.outcomes[index] = self._unfinished_outcome(run, message, blocker)

        self.states = run.states
        self._log_summary(run.outcomes)
        return run.outcomes

    def _unfinished_outcome(
        self,
        run: _BatchRun,
        message: CrossChainMessage,
        blocker: tuple[str, int] | None,
    ) -> RelayOutcome:
        """Outcome for a message cut off by the run timeout."""
        match run.states[message.key]:
            case MessageState.RELAYING:
                # The submission thread cannot be stopped; the transaction may still be mined
                run.states[message.key] = MessageState.RELAY_UNCONFIRMED
                return RelayUnconfirmed(
                    message=message,
                    reason=f"run timeout of {self.run_timeout}s reached while relaying, result unknown",
                )
            case MessageState.FINALIZED if blocker is not None and blocker != message.key:
                run.states[message.key] = MessageState.SKIPPED
                return RelaySkipped(message=message, blocked_by=blocker)
            case MessageState.FINALIZED:
                run.states[message.key] = MessageState.RELAY_FAILED
                return RelayFailed(
                    message=message,
                    reason=f"run timeout of {self.run_timeout}s reached before submission",
                )
            case _:
                run.states[message.key] = MessageState.FINALITY_TIMED_OUT
                return FinalityTimeout(message=message, attempts=0, elapsed=float(self.run_timeout or 0))

    async def _process(self, run: _BatchRun, index: int, message: CrossChainMessage) -> None:
        poll_result = await self._poll(run, message)
        if not isinstance(poll_result, FinalizedMessage):
            # Terminal already; the turn is still taken to keep the cursor moving
            run.outcomes[index] = poll_result

        async with run.gate.turn(index, message.key):
            outcome = await self._settle(run, message, poll_result)
            run.outcomes[index] = outcome

            if not outcome.succeeded and self.failure_policy is FailurePolicy.ABORT_REMAINING:
                run.gate.abort(message.key)

    async def _poll(
        self, run: _BatchRun, message: CrossChainMessage
    ) -> FinalizedMessage | FinalityTimeout | PollFailed:
        run.states[message.key] = MessageState.POLLING
        try:
            result = await self.poller.await_finality(message)
        except PollError as e:
            run.states[message.key] = MessageState.POLL_FAILED
            return PollFailed(message=message, reason=e.reason)

        if isinstance(result, FinalizedMessage):
            run.states[message.key] = MessageState.FINALIZED
        else:
            run.states[message.key] = MessageState.FINALITY_TIMED_OUT
        return result

    async def _settle(
        self,
        run: _BatchRun,
        message: CrossChainMessage,
        poll_result: FinalizedMessage | FinalityTimeout | PollFailed,
    ) -> RelayOutcome:
        """Turn a poll result into an outcome while holding the gate."""
        if not isinstance(poll_result, FinalizedMessage):
            return poll_result

        if (blocked_by := run.gate.aborted_by) is not None:
            logger.warning(f"Not relaying {message}: blocked by earlier failure of sequence {blocked_by[1]}")
            run.states[message.key] = MessageState.SKIPPED
            return RelaySkipped(message=message, blocked_by=blocked_by)

        run.states[message.key] = MessageState.RELAYING
        try:
            tx_id = await self.executor.relay(poll_result)
        except RelayError as e:
            run.states[message.key] = MessageState.RELAY_FAILED
            return RelayFailed(message=message, reason=e.reason)

        run.states[message.key] = MessageState.RELAYED
        return Relayed(message=message, transaction_id=tx_id)

    def _log_summary(self, outcomes: list[RelayOutcome | None]) -> None:
        relayed = sum(1 for outcome in outcomes if outcome is not None and outcome.succeeded)
        if relayed == len(outcomes):
            logger.info(f"✓ All {relayed} message(s) relayed")
        else:
            logger.error(f"✗ Relayed {relayed} of {len(outcomes)} message(s)")

    def get_stats(self) -> dict[str, int]:
        """
        Count messages of the most recently completed run by state.

        Returns:
            Dictionary keyed by state name
        """
        counts = Counter(state.value for state in self.states.values())
        return {state.value: counts.get(state.value, 0) for state in MessageState}
