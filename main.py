#!/usr/bin/env python3
"""Entry point for the cross-chain relayer.

Relays the messages published by the given source transactions to the
destination chain and exits non-zero unless every message was relayed.
"""

import argparse
import asyncio
import logging
import os
import sys


# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# Get logger for this module
logger = logging.getLogger(__name__)

from xchain_relayer.errors import ExtractionError
from xchain_relayer.models import RelayOutcome, Relayed
from xchain_relayer.relayer import CrossChainRelayer


def describe(outcome: RelayOutcome) -> str:
    """One-line summary of a relay outcome."""
    message = outcome.message
    prefix = f"sequence={message.sequence} sender={message.sender}"
    match outcome:
        case Relayed(transaction_id=tx_id):
            return f"RELAYED     {prefix} tx={tx_id}"
        case _:
            detail = getattr(outcome, 'reason', None) or getattr(outcome, 'blocked_by', '')
            return f"{type(outcome).__name__.upper():<11} {prefix} {detail}".rstrip()


def build_parser() -> argparse.ArgumentParser:
    """Create the command line parser, listing every environment variable read."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Cross-chain relayer - relay finalized bridge messages to the destination chain",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  SOURCE_RPC_URL             - RPC endpoint for the source chain
  TARGET_RPC_URL             - RPC endpoint for the destination chain
  MESSENGER_ADDRESS          - CrossChainMessenger on the destination chain
  PRIVATE_KEY                - Key of the relaying account
  MESSAGE_BUS_ADDRESS        - Destination MessageBus (default: from net_config)
  SOURCE_MESSAGE_BUS_ADDRESS - Only relay logs from this source MessageBus
  POLL_INTERVAL              - Seconds between finality checks (default: 1)
  FINALITY_TIMEOUT           - Seconds to wait for finality (default: 30)
  GAS_ESTIMATE_MULTIPLIER    - Headroom on the finality call gas estimate (default: 1.5)
  RELAY_GAS_LIMIT            - Gas limit for relayMessage (default: 5000000)
  RECEIPT_TIMEOUT            - Seconds to wait for a receipt (default: 120)
  REQUEST_TIMEOUT            - HTTP request timeout in seconds (default: 30)
  RUN_TIMEOUT                - Overall deadline for a batch in seconds (default: none)
  FAILURE_POLICY             - abort-remaining (default) or skip-and-continue
  LOG_LEVEL                  - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--tx",
        dest="tx_hashes",
        action="append",
        required=True,
        metavar="HASH",
        help="Source transaction hash to relay messages from (repeatable, in source order)"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    return parser


async def main() -> int:
    """Main entry point for the relayer.

    Parses arguments, loads configuration from the environment and relays
    the messages emitted by the given source transactions.

    Returns:
        Process exit code
    """
    args: argparse.Namespace = build_parser().parse_args()

    setup_logging(args.log_level)
    logger.info("=== Cross-Chain Relayer Starting ===")

    try:
        relayer = CrossChainRelayer.from_env()
        outcomes = await relayer.relay_transactions(args.tx_hashes)

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - SOURCE_RPC_URL: RPC endpoint for the source chain")
        logger.error("  - TARGET_RPC_URL: RPC endpoint for the destination chain")
        logger.error("  - MESSENGER_ADDRESS: CrossChainMessenger contract address")
        logger.error("  - PRIVATE_KEY: Key used to sign relay transactions")
        return 1

    except ExtractionError as e:
        logger.error(f"Extraction failed: {e}")
        for error in e.errors:
            logger.error(f"  - {error}")
        return 1

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        return 1

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        return 1

    for outcome in outcomes:
        print(describe(outcome))

    if not outcomes:
        logger.warning("No cross-chain messages found in the given transactions")

    if any(not outcome.succeeded for outcome in outcomes):
        logger.error("Unable to relay messages")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
