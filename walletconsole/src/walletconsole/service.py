"""
UTXO fetch orchestration: validation, rate limiting and status reconciliation.
"""

from __future__ import annotations

from loguru import logger

from psbtcore.address import decode_address
from psbtcore.network import MAINNET, NetworkParams

from walletconsole.indexer import DEFAULT_STATUS_BATCH_SIZE, IndexerClient
from walletconsole.rate_limiter import RateLimitExceeded, SlidingWindowRateLimiter
from walletconsole.utxos import UtxoBuckets, attach_statuses, partition_utxos


class FetchInProgressError(Exception):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"UTXO fetch already in progress for {address}")


class UtxoService:
    """
    Fetches and classifies the UTXOs of an address.

    The rate limiter is shared across calls so repeated refreshes of the
    same address are throttled.
    """

    def __init__(
        self,
        indexer: IndexerClient,
        rate_limiter: SlidingWindowRateLimiter,
        network: NetworkParams = MAINNET,
        status_batch_size: int = DEFAULT_STATUS_BATCH_SIZE,
    ):
        self.indexer = indexer
        self.rate_limiter = rate_limiter
        self.network = network
        self.status_batch_size = status_batch_size
        self.current_address: str | None = None
        self._in_flight: set[str] = set()

    async def fetch_utxos(self, address: str, with_status: bool = False) -> UtxoBuckets:
        """
        Fetch the UTXOs of `address` and sort them into buckets.

        Args:
            address: Address on the service's network
            with_status: Also fetch the spent/locked status of every UTXO

        Raises:
            InvalidAddressError: address is malformed or on another network
            RateLimitExceeded: too many fetches for this address
            FetchInProgressError: a fetch for this address is still running
            IndexerError: the indexer request failed
        """
        address = decode_address(address, self.network).address
        key = address.lower()

        if key in self._in_flight:
            raise FetchInProgressError(address)
        if not self.rate_limiter.check(key):
            raise RateLimitExceeded(key, self.rate_limiter.seconds_until_next(key))

        self._in_flight.add(key)
        self.current_address = address
        try:
            utxos = await self.indexer.get_utxos(address)
            status_map = None
            if with_status and utxos:
                status_map = await self.indexer.batch_get_utxo_status(
                    utxos, batch_size=self.status_batch_size
                )
                logger.debug(f"Fetched {len(status_map)}/{len(utxos)} UTXO statuses")
        finally:
            self._in_flight.discard(key)

        buckets = partition_utxos(attach_statuses(utxos, status_map))
        logger.info(
            f"{address}: {len(buckets.spendable)} spendable ({buckets.total_spendable} sats), "
            f"{len(buckets.locked)} locked, {len(buckets.spent)} spent"
        )
        return buckets

    async def refresh(self, with_status: bool = False) -> UtxoBuckets | None:
        """Refetch the last requested address, if any."""
        if self.current_address is None:
            return None
        return await self.fetch_utxos(self.current_address, with_status=with_status)
