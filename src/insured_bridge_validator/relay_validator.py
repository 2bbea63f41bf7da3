"""
Relay validator price feed.

Answers "relay" price requests raised on L1 when a relayer claims to have
fulfilled an L2 deposit. The answer is YES (1e18) if the relay faithfully
represents a real deposit and NO (0) otherwise.
"""

import asyncio
import logging
import time as time_module
from typing import Union

from hexbytes import HexBytes

from .exceptions import RefreshError
from .interfaces import L1Client, L2Client
from .models import Deposit, Relay, RelayValidity
from .utils.ancillary_data import decode_relay_hash

logger = logging.getLogger(__name__)


class RelayValidator:
    """
    Price feed that validates relays against L2 deposits.

    Checks are applied in a fixed order and the first decisive one wins:
    unknown relay (NO), settleable relay (YES), unknown deposit (NO),
    wrong realized LP fee (NO), otherwise YES.
    """

    DECIMALS: int = 18

    def __init__(self, l1_client: L1Client, l2_client: L2Client) -> None:
        """
        Initialize the validator.

        Args:
            l1_client: Fetches and returns latest state of L1 bridge pools
            l2_client: Fetches and returns latest state of the L2 deposit box
        """
        self.l1_client = l1_client
        self.l2_client = l2_client

        # Swapped together on each successful update
        self.relays: tuple[Relay, ...] = ()
        self.deposits: tuple[Deposit, ...] = ()
        self.last_update_time: int | None = None

        self._update_lock = asyncio.Lock()

    async def get_verdict(self, time: int, ancillary_data: Union[HexBytes, bytes, str]) -> int:
        """
        Decide whether the relay identified by `ancillary_data` is valid.

        Args:
            time: Request timestamp; unused since relay ancillary data
                fully identifies the relay
            ancillary_data: Ancillary data of the relay price request

        Returns:
            1e18 if the relay is valid, 0 otherwise

        Raises:
            DecodeError: If the ancillary data cannot be parsed
        """
        relay_ancillary_data_hash = decode_relay_hash(ancillary_data)
        return (await self._validate(relay_ancillary_data_hash)).to_price()

    async def _validate(self, relay_ancillary_data_hash: str) -> RelayValidity:
        relay = next(
            (r for r in self.relays if r.relay_ancillary_data_hash == relay_ancillary_data_hash),
            None
        )
        if relay is None:
            logger.debug(
                "No relay found matching provided ancillary data. Has the relay been finalized already? "
                f"relay_ancillary_data_hash={relay_ancillary_data_hash}"
            )
            return RelayValidity.NO

        if relay.settleable:
            logger.debug(
                "Relay liveness has expired, cannot dispute so the relay is validated: "
                f"{relay.to_dict()}"
            )
            return RelayValidity.YES

        # Never matches if the L2 client points at the wrong network
        deposit = next((d for d in self.deposits if d.deposit_hash == relay.deposit_hash), None)
        if deposit is None:
            logger.debug(
                "No deposit found matching relay. Are you using the correct L2 network? "
                f"{relay.to_dict()}"
            )
            return RelayValidity.NO

        expected_realized_lp_fee_pct = await self.l1_client.calculate_realized_lp_fee_pct(deposit)
        if str(expected_realized_lp_fee_pct) != str(relay.realized_lp_fee_pct):
            logger.debug(
                "Matched deposit realized fee % is incorrect: "
                f"expected={expected_realized_lp_fee_pct} relay={relay.to_dict()}"
            )
            return RelayValidity.NO

        return RelayValidity.YES

    async def update(self) -> None:
        """
        Refresh both clients concurrently and cache their snapshots.

        Raises:
            RefreshError: If either client fails; cached state is left as is
        """
        async with self._update_lock:
            results = await asyncio.gather(
                self.l1_client.update(),
                self.l2_client.update(),
                return_exceptions=True
            )

            for name, result in zip(("L1", "L2"), results):
                if isinstance(result, BaseException):
                    logger.error(f"{name} client update failed: {result}")
                    raise RefreshError(f"{name} client update failed: {result}") from result

            relays = tuple(self.l1_client.get_pending_relays())
            deposits = tuple(self.l2_client.get_all_deposits())

            self.relays, self.deposits = relays, deposits
            self.last_update_time = int(time_module.time())

            logger.debug(f"Validator updated: {len(relays)} pending relays, {len(deposits)} deposits")

    def get_decimals(self) -> int:
        return self.DECIMALS

    def get_last_update_time(self) -> int | None:
        """Unix time of the last successful update, or None."""
        return self.last_update_time

    def get_lookback(self) -> int | None:
        return None

    def get_current_price(self) -> int | None:
        # A relay verdict only exists for a specific price request
        return None
