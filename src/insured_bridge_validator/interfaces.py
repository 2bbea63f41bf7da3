"""
Capability interfaces for price feeds and the bridge clients they read from.

The validator depends on these protocols rather than concrete clients, so
any object with matching methods can be wired in by the caller.
"""

from collections.abc import Sequence
from typing import Protocol, Union, runtime_checkable

from hexbytes import HexBytes

from .models import Deposit, Relay


@runtime_checkable
class PriceFeed(Protocol):
    """Anything that can answer a price request for given ancillary data."""

    async def get_verdict(self, time: int, ancillary_data: Union[HexBytes, bytes, str]) -> int:
        ...

    async def update(self) -> None:
        ...

    def get_decimals(self) -> int:
        ...


class L1Client(Protocol):
    """Read-only view of relays on the L1 bridge pools."""

    def get_pending_relays(self) -> Sequence[Relay]:
        ...

    async def calculate_realized_lp_fee_pct(self, deposit: Deposit) -> int:
        ...

    async def update(self) -> None:
        ...


class L2Client(Protocol):
    """Read-only view of deposits on the L2 deposit box."""

    def get_all_deposits(self) -> Sequence[Deposit]:
        ...

    async def update(self) -> None:
        ...
