"""
Message extraction from source transaction receipts.

Scans receipt logs for LogMessagePublished events and decodes them,
in source order, into the batch the relay pipeline consumes.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from web3 import Web3

from .codec import MessageCodec
from .errors import DecodeError, ExtractionError, SourceTransactionFailed
from .models import CrossChainMessage, RelayBatch

logger = logging.getLogger(__name__)

SUCCESS_STATUS = 1


class MessageExtractor:
    """Extracts cross-chain messages from transaction receipts."""

    def __init__(self, emitter: str | None = None, codec: type[MessageCodec] = MessageCodec) -> None:
        """
        Initialize the extractor.

        Args:
            emitter: Source message bus address; when set, logs from any
                other contract are ignored
            codec: Codec used to decode matching logs
        """
        self.emitter = Web3.to_checksum_address(emitter) if emitter else None
        self.codec = codec

    def _is_candidate(self, log: Mapping[str, Any]) -> bool:
        if not self.codec.matches(log):
            return False
        if self.emitter is None:
            return True
        address = log.get('address')
        return address is not None and Web3.to_checksum_address(address) == self.emitter

    def extract(self, receipt: Mapping[str, Any]) -> list[CrossChainMessage]:
        """
        Extract the messages published in a receipt, in log order.

        Args:
            receipt: Transaction receipt with 'status' and 'logs'

        Returns:
            Decoded messages; empty if the receipt has no matching logs

        Raises:
            SourceTransactionFailed: If the receipt status is not success
            ExtractionError: If any matching log fails to decode
        """
        tx_hash = _format_tx_hash(receipt.get('transactionHash'))

        status = receipt.get('status', SUCCESS_STATUS)
        if status != SUCCESS_STATUS:
            raise SourceTransactionFailed(
                f"Source transaction {tx_hash} failed with status={status}"
            )

        messages: list[CrossChainMessage] = []
        errors: list[DecodeError] = []

        for position, log in enumerate(receipt.get('logs') or []):
            if not self._is_candidate(log):
                continue
            try:
                messages.append(self.codec.decode(log))
            except DecodeError as e:
                if e.log_index is None:
                    e.log_index = position
                logger.error(f"Malformed message log in {tx_hash}: {e}")
                errors.append(e)

        if errors:
            raise ExtractionError(
                f"{len(errors)} message log(s) in {tx_hash} could not be decoded",
                errors=errors,
            )

        if not messages:
            logger.warning(f"No cross-chain messages found in {tx_hash}")
        else:
            logger.info(f"Extracted {len(messages)} message(s) from {tx_hash}")

        return messages

    def extract_batch(self, receipts: Iterable[Mapping[str, Any]]) -> RelayBatch:
        """
        Build a relay batch from several receipts, preserving receipt order.

        A receipt whose transaction hash was already seen is skipped.

        Args:
            receipts: Receipts in the order their transactions were submitted

        Returns:
            RelayBatch with all messages in source order
        """
        seen_tx_hashes: set[str] = set()
        messages: list[CrossChainMessage] = []

        for receipt in receipts:
            tx_hash = receipt.get('transactionHash')
            if tx_hash is not None:
                tx_hash = _format_tx_hash(tx_hash)
                if tx_hash in seen_tx_hashes:
                    logger.warning(f"Skipping duplicate receipt {tx_hash}")
                    continue
                seen_tx_hashes.add(tx_hash)

            messages.extend(self.extract(receipt))

        return RelayBatch(tuple(messages))


def _format_tx_hash(tx_hash: Any) -> str:
    match tx_hash:
        case None:
            return "<unknown tx>"
        case bytes() as tx_hash_bytes:
            return Web3.to_hex(tx_hash_bytes)
        case str():
            return tx_hash
        case _:
            return str(tx_hash)
