"""
Timestamp to block number lookup for an EVM chain.
"""

import logging

from web3 import AsyncWeb3


class BlockFinder:
    """
    Finds the latest block at or before a given timestamp.

    Uses binary search over block numbers and caches both block timestamps
    and resolved lookups, since quote timestamps repeat across relays.
    """

    def __init__(self, w3: AsyncWeb3) -> None:
        """
        Initialize the block finder.

        Args:
            w3: Connected AsyncWeb3 instance for the chain to search
        """
        self.w3 = w3
        self.block_timestamps: dict[int, int] = {}
        self.resolved: dict[int, int] = {}
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def _get_timestamp(self, block_number: int) -> int:
        if block_number not in self.block_timestamps:
            block = await self.w3.eth.get_block(block_number)
            self.block_timestamps[block_number] = int(block["timestamp"])
        return self.block_timestamps[block_number]

    async def get_block_for_timestamp(self, timestamp: int) -> int:
        """
        Get the highest block number whose timestamp is <= `timestamp`.

        Args:
            timestamp: Unix timestamp to resolve

        Returns:
            Block number

        Raises:
            ValueError: If the timestamp predates the first block
        """
        if timestamp in self.resolved:
            return self.resolved[timestamp]

        latest = await self.w3.eth.get_block("latest")
        latest_number = int(latest["number"])
        self.block_timestamps[latest_number] = int(latest["timestamp"])

        if timestamp >= self.block_timestamps[latest_number]:
            # Not cached: a newer block may still be mined at this timestamp
            return latest_number

        if timestamp < await self._get_timestamp(0):
            raise ValueError(f"Timestamp {timestamp} is before the first block")

        low, high = 0, latest_number
        while low < high:
            mid = (low + high + 1) // 2
            if await self._get_timestamp(mid) <= timestamp:
                low = mid
            else:
                high = mid - 1

        self.logger.debug(f"Resolved timestamp {timestamp} to block {low}")
        self.resolved[timestamp] = low
        return low
