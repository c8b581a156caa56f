"""
Codec for LogMessagePublished events.

Decodes raw log entries emitted by the source message bus into
CrossChainMessage values using a statically declared field schema,
and encodes messages back into log form.
"""

import logging
from collections.abc import Mapping
from typing import Any, Union

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError, EncodingError
from hexbytes import HexBytes
from web3 import Web3

from .errors import DecodeError
from .models import CrossChainMessage

logger = logging.getLogger(__name__)


class MessageCodec:
    """Encoding and decoding of cross-chain message logs."""

    EVENT_SIGNATURE = "LogMessagePublished(address,uint64,uint32,uint32,bytes,uint8)"
    EVENT_TOPIC: bytes = bytes(Web3.keccak(text=EVENT_SIGNATURE))

    # Order matches the event signature
    FIELDS: tuple[tuple[str, str], ...] = (
        ("sender", "address"),
        ("sequence", "uint64"),
        ("nonce", "uint32"),
        ("topic", "uint32"),
        ("payload", "bytes"),
        ("consistency_level", "uint8"),
    )
    FIELD_TYPES: tuple[str, ...] = tuple(abi_type for _, abi_type in FIELDS)

    @staticmethod
    def to_bytes_safe(value: Union[HexBytes, bytes, str]) -> bytes:
        """
        Convert HexBytes, bytes or a hex string to bytes.

        Args:
            value: Value to convert

        Returns:
            Bytes representation
        """
        if isinstance(value, HexBytes):
            return bytes(value)
        elif isinstance(value, bytes):
            return value
        else:
            return Web3.to_bytes(hexstr=value)

    @classmethod
    def matches(cls, log: Mapping[str, Any]) -> bool:
        """Check whether the log's first topic is the event topic."""
        topics = log.get('topics') or []
        if not topics:
            return False
        return cls.to_bytes_safe(topics[0]) == cls.EVENT_TOPIC

    @classmethod
    def decode(cls, log: Mapping[str, Any]) -> CrossChainMessage:
        """
        Decode a LogMessagePublished log into a CrossChainMessage.

        The data must be the canonical ABI encoding of exactly the declared
        fields; truncated, padded or over-long data is rejected.

        Args:
            log: Log entry with 'topics' and 'data'

        Returns:
            The decoded message

        Raises:
            DecodeError: If the log is not a LogMessagePublished event or
                its data does not match the field schema
        """
        log_index = log.get('logIndex')
        if not cls.matches(log):
            raise DecodeError("first topic is not LogMessagePublished", log_index)

        try:
            data = cls.to_bytes_safe(log.get('data', b''))
        except ValueError as e:
            raise DecodeError(f"data is not valid hex: {e}", log_index) from e

        try:
            values = abi_decode(list(cls.FIELD_TYPES), data)
        except (DecodingError, ValueError) as e:
            raise DecodeError(str(e), log_index) from e

        if len(values) != len(cls.FIELDS):
            raise DecodeError(
                f"expected {len(cls.FIELDS)} fields, got {len(values)}", log_index
            )

        # Anything beyond the declared fields shows up as a length mismatch
        if abi_encode(list(cls.FIELD_TYPES), list(values)) != data:
            raise DecodeError(
                f"data is not the canonical encoding of {cls.EVENT_SIGNATURE} "
                f"({len(data)} bytes)",
                log_index,
            )

        fields = dict(zip((name for name, _ in cls.FIELDS), values))
        try:
            return CrossChainMessage(**fields)
        except ValueError as e:
            raise DecodeError(str(e), log_index) from e

    @classmethod
    def encode(cls, message: CrossChainMessage) -> bytes:
        """ABI encode the message fields as LogMessagePublished data."""
        values = [getattr(message, name) for name, _ in cls.FIELDS]
        try:
            return abi_encode(list(cls.FIELD_TYPES), values)
        except EncodingError as e:
            raise ValueError(f"Cannot encode {message}: {e}") from e

    @classmethod
    def to_log(cls, message: CrossChainMessage, address: str | None = None) -> dict[str, Any]:
        """Build a log entry as the message bus would emit it."""
        log: dict[str, Any] = {
            'topics': [HexBytes(cls.EVENT_TOPIC)],
            'data': HexBytes(cls.encode(message)),
        }
        if address is not None:
            log['address'] = Web3.to_checksum_address(address)
        return log
