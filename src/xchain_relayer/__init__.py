"""
Cross-chain relayer package.

Relays bridge messages published on a source chain to the destination
chain's message executor, in order, once they are finalized.
"""

from .codec import MessageCodec
from .config import RelayerConfig
from .extractor import MessageExtractor
from .finality_poller import FinalityPoller
from .models import (
    CrossChainMessage,
    FinalityTimeout,
    FinalizedMessage,
    PollFailed,
    RelayBatch,
    Relayed,
    RelayFailed,
    RelayOutcome,
    RelaySkipped,
    RelayUnconfirmed,
)
from .pipeline import FailurePolicy, RelayPipeline
from .relay_executor import RelayExecutor
from .relayer import CrossChainRelayer

__all__ = [
    "CrossChainMessage",
    "CrossChainRelayer",
    "FailurePolicy",
    "FinalityPoller",
    "FinalityTimeout",
    "FinalizedMessage",
    "MessageCodec",
    "MessageExtractor",
    "PollFailed",
    "RelayBatch",
    "RelayExecutor",
    "RelayFailed",
    "RelayOutcome",
    "RelayPipeline",
    "RelaySkipped",
    "RelayUnconfirmed",
    "Relayed",
    "RelayerConfig",
]
__version__ = "0.1.0"
