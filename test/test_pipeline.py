#!/usr/bin/env python3
"""Tests for the RelayPipeline orchestration."""

import asyncio

import pytest

from conftest import OTHER_SENDER, make_message, make_receipt
from xchain_relayer.errors import ExtractionError, PollError, RelayError
from xchain_relayer.extractor import MessageExtractor
from xchain_relayer.models import (
    FinalityTimeout,
    FinalizedMessage,
    MessageState,
    PollFailed,
    RelayBatch,
    Relayed,
    RelayFailed,
    RelaySkipped,
    RelayUnconfirmed,
)
from xchain_relayer.pipeline import FailurePolicy, RelayPipeline, _BatchRun

TIMEOUT = "timeout"
HANG = "hang"


class ScriptedPoller:
    """Finality poller with a scripted result and delay per sequence."""

    def __init__(self, results=None, delays=None):
        self.results = results or {}
        self.delays = delays or {}
        self.finalized_order: list[int] = []

    async def await_finality(self, message):
        await asyncio.sleep(self.delays.get(message.sequence, 0))
        result = self.results.get(message.sequence, True)

        if result == HANG:
            await asyncio.Event().wait()
        if isinstance(result, Exception):
            raise result
        if result == TIMEOUT:
            return FinalityTimeout(message=message, attempts=3, elapsed=3.0)

        self.finalized_order.append(message.sequence)
        return FinalizedMessage(message=message, attempts=1, elapsed=0.0)


class RecordingExecutor:
    """Relay executor that records submissions and fails or stalls the given sequences."""

    def __init__(self, failing=(), hanging=()):
        self.failing = set(failing)
        self.hanging = set(hanging)
        self.relayed_order: list[int] = []

    async def relay(self, finalized):
        message = finalized.message
        self.relayed_order.append(message.sequence)
        await asyncio.sleep(0)
        if message.sequence in self.hanging:
            await asyncio.Event().wait()
        if message.sequence in self.failing:
            raise RelayError(message.key, "execution reverted")
        return f"0x{message.sequence:064x}"


def make_pipeline(poller=None, executor=None, **kwargs):
    return RelayPipeline(
        extractor=MessageExtractor(),
        poller=poller or ScriptedPoller(),
        executor=executor or RecordingExecutor(),
        **kwargs,
    )


@pytest.fixture
def batch(messages):
    return RelayBatch(messages)


class TestOrdering:
    """Relays reach the destination in source order."""

    @pytest.mark.asyncio
    async def test_later_message_finalizing_first_waits(self, batch):
        """m2 finalizing before m1 is still relayed after m1."""
        poller = ScriptedPoller(delays={1: 0.05, 2: 0.0, 3: 0.02})
        executor = RecordingExecutor()
        pipeline = make_pipeline(poller, executor)

        outcomes = await pipeline.run_batch(batch)

        assert poller.finalized_order == [2, 3, 1]
        assert executor.relayed_order == [1, 2, 3]
        assert all(isinstance(outcome, Relayed) for outcome in outcomes)
        assert [outcome.message for outcome in outcomes] == list(batch)
        assert outcomes[1].transaction_id == f"0x{2:064x}"

    @pytest.mark.asyncio
    async def test_order_across_senders(self):
        """Batch order decides, not sender or sequence number."""
        batch = RelayBatch([make_message(5), make_message(1, sender=OTHER_SENDER)])
        executor = RecordingExecutor()
        pipeline = make_pipeline(ScriptedPoller(delays={5: 0.02}), executor)

        await pipeline.run_batch(batch)

        assert executor.relayed_order == [5, 1]

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        """Nothing to relay gives no outcomes."""
        pipeline = make_pipeline()
        assert await pipeline.run_batch(RelayBatch(())) == []


class TestAbortRemaining:
    """Default policy: the first failure blocks every later relay."""

    @pytest.mark.asyncio
    async def test_relay_failure_skips_later_messages(self, batch, messages):
        """After m2 fails, m3 is finalized but never submitted."""
        executor = RecordingExecutor(failing={2})
        pipeline = make_pipeline(executor=executor)

        outcomes = await pipeline.run_batch(batch)

        assert isinstance(outcomes[0], Relayed)
        assert isinstance(outcomes[1], RelayFailed)
        assert outcomes[1].reason == "execution reverted"
        assert isinstance(outcomes[2], RelaySkipped)
        assert outcomes[2].blocked_by == messages[1].key
        assert executor.relayed_order == [1, 2]

        assert pipeline.states[messages[1].key] is MessageState.RELAY_FAILED
        assert pipeline.states[messages[2].key] is MessageState.SKIPPED

    @pytest.mark.asyncio
    async def test_finality_timeout_blocks_later_messages(self, batch, messages):
        """A message that never finalizes blocks the ones behind it."""
        executor = RecordingExecutor()
        pipeline = make_pipeline(ScriptedPoller(results={1: TIMEOUT}), executor)

        outcomes = await pipeline.run_batch(batch)

        assert isinstance(outcomes[0], FinalityTimeout)
        assert outcomes[0].attempts == 3
        assert [type(o) for o in outcomes[1:]] == [RelaySkipped, RelaySkipped]
        assert all(o.blocked_by == messages[0].key for o in outcomes[1:])
        assert executor.relayed_order == []

    @pytest.mark.asyncio
    async def test_poll_error_reported_as_poll_failed(self, batch, messages):
        """A failing finality query is its own outcome, distinct from a timeout."""
        poller = ScriptedPoller(results={2: PollError(messages[1].key, "rpc unavailable")})
        executor = RecordingExecutor()
        pipeline = make_pipeline(poller, executor)

        outcomes = await pipeline.run_batch(batch)

        assert isinstance(outcomes[0], Relayed)
        assert isinstance(outcomes[1], PollFailed)
        assert outcomes[1].reason == "rpc unavailable"
        assert isinstance(outcomes[2], RelaySkipped)
        assert executor.relayed_order == [1]
        assert pipeline.states[messages[1].key] is MessageState.POLL_FAILED

    @pytest.mark.asyncio
    async def test_later_own_failure_kept(self, batch):
        """A blocked message that also failed its own poll reports its own failure."""
        pipeline = make_pipeline(
            ScriptedPoller(results={3: TIMEOUT}),
            RecordingExecutor(failing={1}),
        )

        outcomes = await pipeline.run_batch(batch)

        assert [type(o) for o in outcomes] == [RelayFailed, RelaySkipped, FinalityTimeout]


class TestSkipAndContinue:
    """Optional policy: failures are isolated to their own message."""

    @pytest.mark.asyncio
    async def test_relay_failure_does_not_block(self, batch):
        """m3 is still relayed after m2 fails."""
        executor = RecordingExecutor(failing={2})
        pipeline = make_pipeline(
            executor=executor, failure_policy=FailurePolicy.SKIP_AND_CONTINUE
        )

        outcomes = await pipeline.run_batch(batch)

        assert [type(o) for o in outcomes] == [Relayed, RelayFailed, Relayed]
        assert executor.relayed_order == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_policy_accepts_string_value(self, batch):
        """The policy can be given by its configuration value."""
        pipeline = make_pipeline(failure_policy="skip-and-continue")
        assert pipeline.failure_policy is FailurePolicy.SKIP_AND_CONTINUE


class TestRun:
    """Tests for the receipts-to-outcomes entry point."""

    @pytest.mark.asyncio
    async def test_run_extracts_and_relays(self, message_log):
        """Receipts go through extraction, finality and relay."""
        receipt = make_receipt([message_log(make_message(1)), message_log(make_message(2))])
        executor = RecordingExecutor()
        pipeline = make_pipeline(executor=executor)

        outcomes = await pipeline.run([receipt])

        assert [o.message.sequence for o in outcomes] == [1, 2]
        assert executor.relayed_order == [1, 2]

        stats = pipeline.get_stats()
        assert stats['relayed'] == 2
        assert stats['relay_failed'] == 0
        assert set(stats) == {state.value for state in MessageState}

    @pytest.mark.asyncio
    async def test_extraction_error_propagates(self, message_log):
        """Nothing is relayed when any log fails to decode."""
        bad = message_log(make_message(2))
        bad['data'] = bad['data'][:32]
        receipt = make_receipt([message_log(make_message(1)), bad])
        executor = RecordingExecutor()
        pipeline = make_pipeline(executor=executor)

        with pytest.raises(ExtractionError):
            await pipeline.run([receipt])

        assert executor.relayed_order == []
        assert pipeline.states == {}

    @pytest.mark.asyncio
    async def test_no_messages(self):
        """A receipt without message events yields no outcomes."""
        pipeline = make_pipeline()
        assert await pipeline.run([make_receipt([])]) == []


class TestRunTimeout:
    """Tests for the optional whole-batch deadline."""

    @pytest.mark.asyncio
    async def test_unfinished_messages_get_outcomes(self, batch, messages):
        """Messages cut off by the run timeout still get an outcome each."""
        executor = RecordingExecutor()
        pipeline = make_pipeline(
            ScriptedPoller(results={1: HANG}),
            executor,
            run_timeout=0.1,
        )

        outcomes = await pipeline.run_batch(batch)

        assert isinstance(outcomes[0], FinalityTimeout)
        assert outcomes[0].attempts == 0
        assert all(isinstance(o, RelaySkipped) for o in outcomes[1:])
        assert all(o.blocked_by == messages[0].key for o in outcomes[1:])
        assert executor.relayed_order == []
        assert all(state.is_terminal for state in pipeline.states.values())

    @pytest.mark.asyncio
    async def test_last_message_cut_off_while_relaying(self):
        """A submission still in flight at the deadline is reported as unconfirmed."""
        message = make_message(1)
        executor = RecordingExecutor(hanging={1})
        pipeline = make_pipeline(executor=executor, run_timeout=0.05)

        outcomes = await pipeline.run_batch(RelayBatch([message]))

        assert len(outcomes) == 1
        assert isinstance(outcomes[0], RelayUnconfirmed)
        assert "result unknown" in outcomes[0].reason
        assert not outcomes[0].succeeded
        assert executor.relayed_order == [1]
        assert pipeline.states[message.key] is MessageState.RELAY_UNCONFIRMED

    @pytest.mark.asyncio
    async def test_messages_behind_stalled_relay_blocked_by_it(self, batch, messages):
        """Finalized messages queued behind an in-flight relay name it as the blocker."""
        executor = RecordingExecutor(hanging={1})
        pipeline = make_pipeline(executor=executor, run_timeout=0.05)

        outcomes = await pipeline.run_batch(batch)

        assert isinstance(outcomes[0], RelayUnconfirmed)
        assert [type(o) for o in outcomes[1:]] == [RelaySkipped, RelaySkipped]
        assert all(o.blocked_by == messages[0].key for o in outcomes[1:])
        assert executor.relayed_order == [1]

    @pytest.mark.asyncio
    async def test_stalled_relay_in_middle_of_batch(self, batch, messages):
        """Earlier relays keep their outcome; later ones are blocked by the stalled one."""
        executor = RecordingExecutor(hanging={2})
        pipeline = make_pipeline(executor=executor, run_timeout=0.05)

        outcomes = await pipeline.run_batch(batch)

        assert isinstance(outcomes[0], Relayed)
        assert isinstance(outcomes[1], RelayUnconfirmed)
        assert isinstance(outcomes[2], RelaySkipped)
        assert outcomes[2].blocked_by == messages[1].key

    @pytest.mark.parametrize("blocker_index", [0, None])
    def test_finalized_head_of_line_never_blocked_by_itself(self, batch, messages, blocker_index):
        """The earliest finalized message cut off before its turn is a failure, not a self-skip."""
        pipeline = make_pipeline(run_timeout=5)
        run = _BatchRun(batch)
        run.states[messages[0].key] = MessageState.FINALIZED
        blocker = messages[0].key if blocker_index == 0 else None

        outcome = pipeline._unfinished_outcome(run, messages[0], blocker)

        assert isinstance(outcome, RelayFailed)
        assert "before submission" in outcome.reason
        assert run.states[messages[0].key] is MessageState.RELAY_FAILED


class TestConcurrentRuns:
    """Runs on a shared pipeline do not share state."""

    @pytest.mark.asyncio
    async def test_concurrent_timeouts_are_independent(self):
        """Two runs timing out at once each report their own messages."""
        first = RelayBatch([make_message(1)])
        second = RelayBatch([make_message(2), make_message(3)])
        pipeline = make_pipeline(
            ScriptedPoller(results={1: HANG, 2: HANG}),
            run_timeout=0.05,
        )

        outcomes_first, outcomes_second = await asyncio.gather(
            pipeline.run_batch(first),
            pipeline.run_batch(second),
        )

        assert [o.message for o in outcomes_first] == list(first)
        assert [o.message for o in outcomes_second] == list(second)
        assert isinstance(outcomes_first[0], FinalityTimeout)
        assert isinstance(outcomes_second[0], FinalityTimeout)
        assert isinstance(outcomes_second[1], RelaySkipped)

    @pytest.mark.asyncio
    async def test_stats_reflect_one_complete_run(self):
        """get_stats counts the last completed run, never a mix of runs."""
        first = RelayBatch([make_message(1)])
        second = RelayBatch([make_message(2), make_message(3)])
        pipeline = make_pipeline(ScriptedPoller(delays={1: 0.02}))

        await asyncio.gather(pipeline.run_batch(first), pipeline.run_batch(second))

        # The slower single-message run finishes last
        assert set(pipeline.states) == {make_message(1).key}
        assert pipeline.get_stats()['relayed'] == 1
