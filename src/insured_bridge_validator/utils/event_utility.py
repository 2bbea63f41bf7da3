"""
Helpers for fetching and reading contract event logs.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from hexbytes import HexBytes
from web3 import Web3
from web3.types import EventData

logger = logging.getLogger(__name__)


async def fetch_event_logs(
    event: Any,
    from_block: int,
    to_block: int,
    max_block_range: int = 2000
) -> list[EventData]:
    """
    Fetch logs for one contract event, splitting the range into chunks.

    Args:
        event: Async contract event object, e.g. ``contract.events.Foo``
        from_block: First block to query (inclusive)
        to_block: Last block to query (inclusive)
        max_block_range: Maximum number of blocks per eth_getLogs request

    Returns:
        Decoded events in block order
    """
    if max_block_range <= 0:
        raise ValueError(f"max_block_range must be positive, got {max_block_range}")

    events: list[EventData] = []
    start = from_block
    while start <= to_block:
        end = min(start + max_block_range - 1, to_block)
        chunk = await event.get_logs(from_block=start, to_block=end)
        events.extend(chunk)
        start = end + 1

    return events


def next_from_block(last_processed_block: int | None, latest_block: int, lookback_blocks: int) -> int:
    """First block to fetch on the next incremental sync."""
    if last_processed_block is None:
        return max(0, latest_block - lookback_blocks)
    return last_processed_block + 1


def to_hex32(value: HexBytes | bytes | str) -> str:
    """Normalize a bytes32 value to lowercase hex with 0x prefix."""
    match value:
        case bytes() as raw:
            return Web3.to_hex(raw)
        case str() as text:
            text = text.lower()
            return text if text.startswith("0x") else "0x" + text
        case _:
            raise TypeError(f"Unexpected bytes32 value type: {type(value).__name__}")


def struct_field(struct: Mapping[str, Any] | Sequence[Any], name: str, index: int) -> Any:
    """
    Read a field from a decoded struct argument.

    Depending on the web3 version, tuple arguments decode either to a
    mapping keyed by component name or to a plain tuple.
    """
    if isinstance(struct, Mapping):
        return struct[name]
    return struct[index]


def sort_events(events: list[EventData]) -> list[EventData]:
    """Order events from several event types by their position on chain."""
    return sorted(events, key=lambda event: (event["blockNumber"], event["logIndex"]))
