"""Shared fixtures and helpers for the relayer tests."""

from typing import Any

import pytest
from hexbytes import HexBytes
from web3 import Web3

from xchain_relayer.codec import MessageCodec
from xchain_relayer.models import CrossChainMessage

SENDER = Web3.to_checksum_address("0x" + "aa" * 20)
OTHER_SENDER = Web3.to_checksum_address("0x85bfe05492afc3d04ff3b2ca6771acf6f853d90d")
MESSAGE_BUS = Web3.to_checksum_address("0x742d35cc6634c0532925a3b844bc9e7595f0beb7")
MESSENGER = Web3.to_checksum_address("0x" + "42" * 20)


def make_message(sequence: int, sender: str = SENDER, **overrides: Any) -> CrossChainMessage:
    """Build a message with sensible defaults."""
    fields = {
        'sender': sender,
        'sequence': sequence,
        'nonce': 7,
        'topic': 1,
        'payload': b"whitelist:" + str(sequence).encode(),
        'consistency_level': 1,
    }
    fields.update(overrides)
    return CrossChainMessage(**fields)


def make_receipt(
    logs: list[dict[str, Any]],
    tx_hash: str = "0x" + "ab" * 32,
    status: int = 1,
) -> dict[str, Any]:
    """Build a transaction receipt in web3's shape."""
    return {
        'transactionHash': HexBytes(tx_hash),
        'status': status,
        'logs': [dict(log, logIndex=index) for index, log in enumerate(logs)],
    }


def unrelated_log() -> dict[str, Any]:
    """A Transfer log that must never be picked up as a message."""
    return {
        'address': MESSAGE_BUS,
        'topics': [
            HexBytes("0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"),
            HexBytes("0x" + "00" * 32),
        ],
        'data': HexBytes("0x" + "00" * 31 + "01"),
    }


@pytest.fixture
def messages() -> list[CrossChainMessage]:
    """Three messages from the same sender, in source order."""
    return [make_message(sequence) for sequence in (1, 2, 3)]


@pytest.fixture
def message_log():
    """Factory turning a message into a log emitted by the message bus."""
    def _log(message: CrossChainMessage, address: str = MESSAGE_BUS) -> dict[str, Any]:
        return MessageCodec.to_log(message, address=address)
    return _log
