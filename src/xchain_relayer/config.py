"""Configuration management for the cross-chain relayer.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables with sensible defaults
where appropriate.
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from web3 import Web3

from .pipeline import FailurePolicy

# Get logger for this module
logger = logging.getLogger(__name__)


def _validate_rpc_url(rpc_url: str, name: str) -> None:
    if not rpc_url:
        raise ValueError(f"{name} is required")

    parsed = urlparse(rpc_url)
    if parsed.scheme not in ('http', 'https'):
        raise ValueError(
            f"Invalid RPC URL scheme for {name}: {parsed.scheme}. "
            "Expected http or https"
        )


def _checksum(address: str, label: str) -> str:
    if not Web3.is_address(address):
        raise ValueError(f"Invalid {label} address: {address}")
    return Web3.to_checksum_address(address)


@dataclass(frozen=True, slots=True)
class SourceChainConfig:
    """Configuration for the source chain.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint for the source chain
        message_bus_address: Source MessageBus; when set, only its logs are relayed
    """

    rpc_url: str
    message_bus_address: str | None = None

    def __post_init__(self) -> None:
        """Validate source chain configuration."""
        _validate_rpc_url(self.rpc_url, "Source RPC URL (SOURCE_RPC_URL)")

        if self.message_bus_address:
            object.__setattr__(
                self, 'message_bus_address',
                _checksum(self.message_bus_address, "source message bus"),
            )


@dataclass(frozen=True, slots=True)
class TargetChainConfig:
    """Configuration for the destination chain.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint for the destination chain
        messenger_address: CrossChainMessenger that executes relayed messages
        message_bus_address: Destination MessageBus (discovered via net_config if unset)
        private_key: Key of the relaying account
    """

    rpc_url: str
    messenger_address: str
    message_bus_address: str | None = None
    private_key: str = field(default="", repr=False)

    def __post_init__(self) -> None:
        """Validate target chain configuration."""
        _validate_rpc_url(self.rpc_url, "Target RPC URL (TARGET_RPC_URL)")

        if not self.messenger_address:
            raise ValueError(
                "Messenger address is required (MESSENGER_ADDRESS)"
            )
        object.__setattr__(
            self, 'messenger_address', _checksum(self.messenger_address, "messenger")
        )

        if self.message_bus_address:
            object.__setattr__(
                self, 'message_bus_address',
                _checksum(self.message_bus_address, "message bus"),
            )

        if not self.private_key:
            raise ValueError(
                "Private key is required (PRIVATE_KEY). "
                "This is used to sign relay transactions on the target chain"
            )

        # Basic private key validation (64 hex chars, optionally with 0x prefix)
        key = self.private_key.removeprefix('0x')
        if len(key) != 64:
            raise ValueError(
                f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
            )
        try:
            int(key, 16)
        except ValueError:
            raise ValueError(
                "Invalid private key format. Must be hexadecimal"
            ) from None


@dataclass(frozen=True, slots=True)
class PollingConfig:
    """Configuration for finality polling and relay submission."""
    poll_interval: float = 1.0  # seconds between finality queries
    finality_timeout: float = 30.0  # seconds allowed per message
    gas_estimate_multiplier: float = 1.5  # headroom on the finality call estimate
    relay_gas_limit: int = 5_000_000
    receipt_timeout: int = 120  # seconds to wait for a receipt
    request_timeout: int = 30  # HTTP request timeout in seconds
    run_timeout: float | None = None  # optional deadline for a whole batch

    def __post_init__(self) -> None:
        """Validate polling configuration."""
        if self.poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {self.poll_interval}")
        if self.poll_interval > 60:
            raise ValueError(f"Poll interval too long (max 60s), got {self.poll_interval}")

        if self.finality_timeout <= 0:
            raise ValueError(f"Finality timeout must be positive, got {self.finality_timeout}")
        if self.finality_timeout > 3600:
            raise ValueError(f"Finality timeout too long (max 3600s), got {self.finality_timeout}")
        if self.finality_timeout < self.poll_interval:
            raise ValueError(
                f"Finality timeout ({self.finality_timeout}s) must not be shorter "
                f"than the poll interval ({self.poll_interval}s)"
            )

        if self.gas_estimate_multiplier < 1:
            raise ValueError(
                f"Gas estimate multiplier must be at least 1, got {self.gas_estimate_multiplier}"
            )
        if self.relay_gas_limit <= 0:
            raise ValueError(f"Relay gas limit must be positive, got {self.relay_gas_limit}")
        if self.receipt_timeout <= 0:
            raise ValueError(f"Receipt timeout must be positive, got {self.receipt_timeout}")
        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.run_timeout is not None and self.run_timeout <= 0:
            raise ValueError(f"Run timeout must be positive, got {self.run_timeout}")


@dataclass(frozen=True, slots=True)
class RelayerConfig:
    """Main configuration for the relayer.

    Attributes:
        source_chain: Configuration for the source chain
        target_chain: Configuration for the destination chain
        polling: Finality polling and submission settings
        failure_policy: Whether one failure stops the relay of later messages
    """

    source_chain: SourceChainConfig
    target_chain: TargetChainConfig
    polling: PollingConfig = field(default_factory=PollingConfig)
    failure_policy: FailurePolicy = FailurePolicy.ABORT_REMAINING

    @classmethod
    def from_env(cls) -> "RelayerConfig":
        """Load configuration from environment variables.

        Returns:
            RelayerConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        source_rpc_url = os.environ.get("SOURCE_RPC_URL", "")
        if not source_rpc_url:
            raise ValueError(
                "SOURCE_RPC_URL environment variable is required. "
                "Example: http://127.0.0.1:8025"
            )

        source_config = SourceChainConfig(
            rpc_url=source_rpc_url,
            message_bus_address=os.environ.get("SOURCE_MESSAGE_BUS_ADDRESS") or None,
        )

        target_rpc_url = os.environ.get("TARGET_RPC_URL", "")
        if not target_rpc_url:
            raise ValueError(
                "TARGET_RPC_URL environment variable is required. "
                "Example: http://127.0.0.1:80"
            )

        target_config = TargetChainConfig(
            rpc_url=target_rpc_url,
            messenger_address=os.environ.get("MESSENGER_ADDRESS", ""),
            message_bus_address=os.environ.get("MESSAGE_BUS_ADDRESS") or None,
            private_key=os.environ.get("PRIVATE_KEY", ""),
        )

        run_timeout = os.environ.get("RUN_TIMEOUT")
        polling_config = PollingConfig(
            poll_interval=float(os.environ.get("POLL_INTERVAL", "1")),
            finality_timeout=float(os.environ.get("FINALITY_TIMEOUT", "30")),
            gas_estimate_multiplier=float(os.environ.get("GAS_ESTIMATE_MULTIPLIER", "1.5")),
            relay_gas_limit=int(os.environ.get("RELAY_GAS_LIMIT", "5000000")),
            receipt_timeout=int(os.environ.get("RECEIPT_TIMEOUT", "120")),
            request_timeout=int(os.environ.get("REQUEST_TIMEOUT", "30")),
            run_timeout=float(run_timeout) if run_timeout else None,
        )

        policy_name = os.environ.get("FAILURE_POLICY", FailurePolicy.ABORT_REMAINING.value)
        try:
            failure_policy = FailurePolicy(policy_name)
        except ValueError:
            raise ValueError(
                f"Invalid FAILURE_POLICY: {policy_name}. "
                f"Expected one of: {', '.join(p.value for p in FailurePolicy)}"
            ) from None

        return cls(
            source_chain=source_config,
            target_chain=target_config,
            polling=polling_config,
            failure_policy=failure_policy,
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format (hiding sensitive data)."""
        logger.info("=" * 60)
        logger.info("Cross-Chain Relayer Configuration")
        logger.info("=" * 60)

        logger.info("Source Chain:")
        logger.info(f"  RPC URL: {self.source_chain.rpc_url}")
        logger.info(f"  MessageBus: {self.source_chain.message_bus_address or '[ANY]'}")

        logger.info("Target Chain:")
        logger.info(f"  RPC URL: {self.target_chain.rpc_url}")
        logger.info(f"  CrossChainMessenger: {self.target_chain.messenger_address}")
        logger.info(f"  MessageBus: {self.target_chain.message_bus_address or '[FROM net_config]'}")
        logger.info(f"  Private Key: {'[SET]' if self.target_chain.private_key else '[NOT SET]'}")

        logger.info("Polling Settings:")
        logger.info(f"  Poll Interval: {self.polling.poll_interval}s")
        logger.info(f"  Finality Timeout: {self.polling.finality_timeout}s")
        logger.info(f"  Gas Estimate Multiplier: {self.polling.gas_estimate_multiplier}")
        logger.info(f"  Relay Gas Limit: {self.polling.relay_gas_limit}")
        logger.info(f"  Receipt Timeout: {self.polling.receipt_timeout}s")
        if self.polling.run_timeout:
            logger.info(f"  Run Timeout: {self.polling.run_timeout}s")

        logger.info(f"Failure Policy: {self.failure_policy.value}")
        logger.info("=" * 60)
