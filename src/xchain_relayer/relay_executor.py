"""
Relay of finalized messages to the destination executor.

Submits each message to CrossChainMessenger.relayMessage and checks the
execution status of the resulting receipt.
"""

import logging
from typing import TYPE_CHECKING, Any

from web3 import Web3

from .errors import RelayError
from .models import FinalizedMessage

if TYPE_CHECKING:
    from .ledgers import DestinationLedger

logger = logging.getLogger(__name__)


class RelayExecutor:
    """Submits finalized messages to the destination chain."""

    SUCCESS_STATUS = 1

    def __init__(self, destination: "DestinationLedger") -> None:
        """
        Initialize the RelayExecutor.

        Args:
            destination: Destination ledger exposing relay_message
        """
        self.destination = destination

    async def relay(self, finalized: FinalizedMessage) -> str:
        """
        Relay a finalized message.

        Args:
            finalized: Message whose finality has been observed

        Returns:
            Destination transaction id as a hex string

        Raises:
            TypeError: If given anything but a FinalizedMessage
            RelayError: If submission fails or the receipt status is not success
        """
        if not isinstance(finalized, FinalizedMessage):
            raise TypeError(
                f"relay() requires a FinalizedMessage, got {type(finalized).__name__}"
            )

        message = finalized.message
        logger.info(f"Relaying {message}")

        try:
            receipt = await self.destination.relay_message(message)
        except Exception as e:
            logger.error(f"Relay submission for {message} failed: {e}")
            raise RelayError(message.key, str(e)) from e

        tx_id = _format_tx_id(receipt.get('transactionHash'))

        if (status := receipt.get('status', 0)) != self.SUCCESS_STATUS:
            logger.error(f"✗ Relay of {message} failed in {tx_id} with status={status}")
            raise RelayError(message.key, f"transaction {tx_id} failed with status={status}")

        logger.info(f"✓ Relayed {message} in {tx_id}")
        return tx_id


def _format_tx_id(tx_hash: Any) -> str:
    match tx_hash:
        case bytes() as tx_hash_bytes:
            return Web3.to_hex(tx_hash_bytes)
        case str():
            return tx_hash
        case _:
            return str(tx_hash)
