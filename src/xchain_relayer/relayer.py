"""
Cross-chain relayer service.

This module wires the ledger adapters and pipeline components from
configuration and exposes the relay entry points used by orchestration
code and the CLI.
"""

import logging
from collections.abc import Iterable
from typing import Any

from web3 import Web3
from web3.types import TxParams, TxReceipt

from .config import RelayerConfig
from .extractor import MessageExtractor
from .finality_poller import FinalityPoller
from .ledgers import DestinationLedger, SourceLedger, discover_message_bus_address
from .models import RelayOutcome
from .pipeline import RelayPipeline
from .relay_executor import RelayExecutor
from .utils.contract_utility import ContractUtility

logger = logging.getLogger(__name__)


class CrossChainRelayer:
    """
    Relays the cross-chain messages produced by source transactions.

    This class focuses on wiring and entry points, delegating the relay
    logic to the RelayPipeline.
    """

    def __init__(self, config: RelayerConfig) -> None:
        """
        Initialize the relayer.

        Args:
            config: Relayer configuration
        """
        self.config = config

        logger.debug(f"Connecting to source chain at {config.source_chain.rpc_url}")
        self.w3_source = Web3(Web3.HTTPProvider(
            config.source_chain.rpc_url,
            request_kwargs={'timeout': config.polling.request_timeout}
        ))
        self.source = SourceLedger(self.w3_source, receipt_timeout=config.polling.receipt_timeout)

        logger.debug(f"Connecting to target chain at {config.target_chain.rpc_url}")
        self.contract_util = ContractUtility(
            rpc_url=config.target_chain.rpc_url,
            secret=config.target_chain.private_key,
            request_timeout=config.polling.request_timeout,
        )

        message_bus_address = (
            config.target_chain.message_bus_address
            or discover_message_bus_address(self.contract_util.w3)
        )

        self.destination = DestinationLedger(
            contract_util=self.contract_util,
            message_bus_address=message_bus_address,
            messenger_address=config.target_chain.messenger_address,
            gas_estimate_multiplier=config.polling.gas_estimate_multiplier,
            relay_gas_limit=config.polling.relay_gas_limit,
            receipt_timeout=config.polling.receipt_timeout,
        )

        self.pipeline = RelayPipeline(
            extractor=MessageExtractor(emitter=config.source_chain.message_bus_address),
            poller=FinalityPoller(
                self.destination,
                poll_interval=config.polling.poll_interval,
                deadline=config.polling.finality_timeout,
            ),
            executor=RelayExecutor(self.destination),
            failure_policy=config.failure_policy,
            run_timeout=config.polling.run_timeout,
        )

        if account := self.contract_util.account:
            logger.info(f"Relaying messages using account {account.address}")

    @classmethod
    def from_env(cls) -> "CrossChainRelayer":
        """
        Create a CrossChainRelayer from environment variables.

        Returns:
            Configured CrossChainRelayer instance

        Raises:
            ValueError: If required environment variables are missing
        """
        config = RelayerConfig.from_env()
        config.log_config()
        return cls(config)

    async def relay_transactions(self, tx_hashes: Iterable[str]) -> list[RelayOutcome]:
        """
        Relay the messages emitted by already mined source transactions.

        Args:
            tx_hashes: Source transaction hashes, in the order they were sent

        Returns:
            One outcome per message, in source order
        """
        receipts: list[TxReceipt] = []
        for tx_hash in tx_hashes:
            logger.info(f"Fetching source receipt {tx_hash}")
            receipts.append(await self.source.get_receipt(tx_hash))

        return await self.pipeline.run(receipts)

    async def submit_and_relay(
        self,
        function_calls: Iterable[Any],
        tx_params: TxParams | None = None,
    ) -> list[RelayOutcome]:
        """
        Submit triggering calls on the source chain, then relay what they emitted.

        Calls are submitted one after another so their messages keep the
        submission order.

        Args:
            function_calls: Bound source contract functions that publish messages
            tx_params: Transaction parameters shared by every call

        Returns:
            One outcome per message, in source order

        Raises:
            SourceTransactionFailed: If a triggering transaction reverted
        """
        receipts: list[TxReceipt] = []
        for function_call in function_calls:
            receipt = await self.source.submit(function_call, tx_params)
            receipts.append(receipt)

        return await self.pipeline.run(receipts)
