"""
Web3 adapters for the source and destination ledgers.

The blocking web3 HTTP calls run in worker threads so that concurrent
finality polls never stall each other or the event loop.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from hexbytes import HexBytes
from web3 import Web3
from web3.types import TxParams, TxReceipt

from .models import CrossChainMessage

if TYPE_CHECKING:
    from .utils.contract_utility import ContractUtility

logger = logging.getLogger(__name__)


def discover_message_bus_address(w3: Web3) -> str:
    """
    Ask the destination node for its message bus address via net_config.

    Args:
        w3: Web3 connected to the destination chain

    Returns:
        Checksummed L2MessageBusAddress

    Raises:
        ValueError: If the node does not report a message bus address
    """
    response = w3.provider.make_request("net_config", [])
    if error := response.get("error"):
        raise ValueError(f"net_config request failed: {error}")

    network_config = response.get("result") or {}
    address = network_config.get("L2MessageBusAddress")
    if not address:
        raise ValueError("Failed to retrieve L2MessageBusAddress from network config")

    logger.info(f"Loaded message bus address = {address}")
    return Web3.to_checksum_address(address)


class SourceLedger:
    """Source chain access: trigger submission and receipt retrieval."""

    def __init__(self, w3: Web3, receipt_timeout: int = 120) -> None:
        """
        Initialize the SourceLedger.

        Args:
            w3: Web3 connected to the source chain
            receipt_timeout: Seconds to wait for a transaction receipt
        """
        self.w3 = w3
        self.receipt_timeout = receipt_timeout

    async def get_receipt(self, tx_hash: str | bytes) -> TxReceipt:
        """Fetch the receipt of a source transaction, waiting if it is pending."""
        if isinstance(tx_hash, str):
            tx_hash = HexBytes(tx_hash)
        return await asyncio.to_thread(
            self.w3.eth.wait_for_transaction_receipt, tx_hash, timeout=self.receipt_timeout
        )

    async def submit(self, function_call: Any, tx_params: TxParams | None = None) -> TxReceipt:
        """
        Submit a contract call on the source chain and wait for its receipt.

        Args:
            function_call: Bound contract function, e.g. bridge.functions.whitelistToken(...)
            tx_params: Optional transaction parameters

        Returns:
            Transaction receipt
        """
        def _submit() -> TxReceipt:
            tx_hash = function_call.transact(tx_params or {})
            logger.info(f"Source transaction submitted: {Web3.to_hex(tx_hash)}")
            return self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)

        return await asyncio.to_thread(_submit)


class DestinationLedger:
    """Destination chain access: finality checks and message relay."""

    def __init__(
        self,
        contract_util: "ContractUtility",
        message_bus_address: str,
        messenger_address: str,
        gas_estimate_multiplier: float = 1.5,
        relay_gas_limit: int = 5_000_000,
        receipt_timeout: int = 120,
    ) -> None:
        """
        Initialize the DestinationLedger.

        Args:
            contract_util: Connection to the destination chain (with signing)
            message_bus_address: Address of the destination MessageBus
            messenger_address: Address of the CrossChainMessenger executor
            gas_estimate_multiplier: Headroom applied to the finality call estimate
            relay_gas_limit: Gas limit for relayMessage transactions
            receipt_timeout: Seconds to wait for a relay receipt
        """
        self.contract_util = contract_util
        self.w3 = contract_util.w3
        self.gas_estimate_multiplier = gas_estimate_multiplier
        self.relay_gas_limit = relay_gas_limit
        self.receipt_timeout = receipt_timeout

        self.message_bus = contract_util.get_contract("MessageBus", message_bus_address)
        self.messenger = contract_util.get_contract("CrossChainMessenger", messenger_address)

        logger.info("DestinationLedger initialized")
        logger.info(f"  MessageBus: {self.message_bus.address}")
        logger.info(f"  CrossChainMessenger: {self.messenger.address}")

    def _call_params(self) -> TxParams:
        if account := self.contract_util.account:
            return {'from': account.address}
        return {}

    def _verify_message_finalized(self, message: CrossChainMessage) -> bool:
        call = self.message_bus.functions.verifyMessageFinalized(message.to_struct())
        params = self._call_params()

        # Estimate first, then execute the view with headroom
        gas_estimate = call.estimate_gas(params)
        gas_limit = int(gas_estimate * self.gas_estimate_multiplier)

        return bool(call.call({**params, 'gas': gas_limit}))

    async def verify_message_finalized(self, message: CrossChainMessage) -> bool:
        """Query the message bus for whether the message is finalized."""
        return await asyncio.to_thread(self._verify_message_finalized, message)

    def _relay_message(self, message: CrossChainMessage) -> TxReceipt:
        tx_hash = self.messenger.functions.relayMessage(message.to_struct()).transact({
            'gas': self.relay_gas_limit,
        })
        logger.info(f"Relay transaction submitted: {Web3.to_hex(tx_hash)}")
        return self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)

    async def relay_message(self, message: CrossChainMessage) -> TxReceipt:
        """Send relayMessage for the message and wait for the receipt."""
        return await asyncio.to_thread(self._relay_message, message)
