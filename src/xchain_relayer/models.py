"""
Shared data models for the cross-chain relayer.

This module contains the immutable message types that flow through the
relay pipeline and the per-message outcome variants returned to callers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from web3 import Web3

UINT64_MAX = 2**64 - 1
UINT32_MAX = 2**32 - 1
UINT8_MAX = 2**8 - 1


@dataclass(frozen=True, slots=True)
class CrossChainMessage:
    """A message published on the source chain by the message bus.

    Attributes:
        sender: Checksummed address of the publishing contract
        sequence: Per-sender ordering key, also the destination-side identity
        nonce: Source-assigned disambiguator (not unique per sender)
        topic: Application-level message category
        payload: Opaque bytes interpreted only by the destination executor
        consistency_level: Finality requirement requested by the publisher
    """

    sender: str
    sequence: int
    nonce: int
    topic: int
    payload: bytes
    consistency_level: int

    def __post_init__(self) -> None:
        if not Web3.is_address(self.sender):
            raise ValueError(f"Invalid sender address: {self.sender}")
        checksummed = Web3.to_checksum_address(self.sender)
        if checksummed != self.sender:
            object.__setattr__(self, 'sender', checksummed)

        for name, value, upper in (
            ("sequence", self.sequence, UINT64_MAX),
            ("nonce", self.nonce, UINT32_MAX),
            ("topic", self.topic, UINT32_MAX),
            ("consistency_level", self.consistency_level, UINT8_MAX),
        ):
            if not 0 <= value <= upper:
                raise ValueError(f"{name} out of range: {value}")

        if not isinstance(self.payload, bytes):
            object.__setattr__(self, 'payload', bytes(self.payload))

    def __str__(self) -> str:
        return f"CrossChainMessage(sender={self.sender[:10]}..., sequence={self.sequence})"

    @property
    def key(self) -> tuple[str, int]:
        """Identity of the message across its whole lifecycle."""
        return (self.sender, self.sequence)

    def to_struct(self) -> dict[str, Any]:
        """Convert to the Structs.CrossChainMessage tuple expected by the contracts."""
        return {
            'sender': self.sender,
            'sequence': self.sequence,
            'nonce': self.nonce,
            'topic': self.topic,
            'payload': self.payload,
            'consistencyLevel': self.consistency_level,
        }


@dataclass(frozen=True, slots=True)
class FinalizedMessage:
    """A message the destination chain has reported as finalized.

    Only the finality poller creates these; the relay executor refuses
    anything else.
    """

    message: CrossChainMessage
    attempts: int
    elapsed: float


@dataclass(frozen=True, slots=True)
class RelayBatch:
    """Ordered messages from one triggering action.

    Order is receipt order, then log order within each receipt.
    """

    messages: tuple[CrossChainMessage, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.messages, tuple):
            object.__setattr__(self, 'messages', tuple(self.messages))

        seen: set[tuple[str, int]] = set()
        for message in self.messages:
            if message.key in seen:
                raise ValueError(
                    f"Duplicate message in batch: sender={message.sender} sequence={message.sequence}"
                )
            seen.add(message.key)

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self):
        return iter(self.messages)

    def __getitem__(self, index: int) -> CrossChainMessage:
        return self.messages[index]


class MessageState(str, Enum):
    """Lifecycle of one message inside a pipeline run."""

    EXTRACTED = "extracted"
    POLLING = "polling"
    FINALIZED = "finalized"
    RELAYING = "relaying"
    RELAYED = "relayed"
    EXTRACTION_FAILED = "extraction_failed"
    FINALITY_TIMED_OUT = "finality_timed_out"
    POLL_FAILED = "poll_failed"
    RELAY_FAILED = "relay_failed"
    RELAY_UNCONFIRMED = "relay_unconfirmed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self not in _ACTIVE_STATES


_ACTIVE_STATES = frozenset({
    MessageState.EXTRACTED,
    MessageState.POLLING,
    MessageState.FINALIZED,
    MessageState.RELAYING,
})


@dataclass(frozen=True, slots=True)
class Relayed:
    """The message was executed on the destination chain."""

    message: CrossChainMessage
    transaction_id: str

    @property
    def succeeded(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class FinalityTimeout:
    """Finality was not observed before the poll deadline."""

    message: CrossChainMessage
    attempts: int
    elapsed: float

    @property
    def succeeded(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class PollFailed:
    """The destination could not be queried while waiting for finality."""

    message: CrossChainMessage
    reason: str

    @property
    def succeeded(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class RelayFailed:
    """Destination execution reverted or returned a non-success status."""

    message: CrossChainMessage
    reason: str

    @property
    def succeeded(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class RelaySkipped:
    """Not submitted because an earlier message in source order failed."""

    message: CrossChainMessage
    blocked_by: tuple[str, int]

    @property
    def succeeded(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class RelayUnconfirmed:
    """Submission was cut off before its receipt was seen; it may still land."""

    message: CrossChainMessage
    reason: str

    @property
    def succeeded(self) -> bool:
        return False


RelayOutcome = Union[Relayed, FinalityTimeout, PollFailed, RelayFailed, RelayUnconfirmed, RelaySkipped]
