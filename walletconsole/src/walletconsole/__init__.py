"""
walletconsole - Console services around the PSBT core

Provides configuration, the UTXO indexer client, rate limiting, UTXO
selection, the wallet-extension bridge and the command-line front end.
"""

__version__ = "0.1.0"

from walletconsole.indexer import (
    IndexedUtxo,
    IndexerAPIError,
    IndexerClient,
    IndexerError,
    UnrecognizedResponseShape,
    UtxoStatus,
)
from walletconsole.rate_limiter import RateLimitExceeded, SlidingWindowRateLimiter
from walletconsole.service import FetchInProgressError, UtxoService
from walletconsole.utxos import UtxoBuckets, UtxoSelection, UtxoWithStatus

__all__ = [
    "FetchInProgressError",
    "IndexedUtxo",
    "IndexerAPIError",
    "IndexerClient",
    "IndexerError",
    "RateLimitExceeded",
    "SlidingWindowRateLimiter",
    "UnrecognizedResponseShape",
    "UtxoBuckets",
    "UtxoSelection",
    "UtxoService",
    "UtxoStatus",
    "UtxoWithStatus",
]
