#!/usr/bin/env python3
"""L1 bridge pool client.

Tracks pending relays across the configured BridgePool contracts and
computes the realized LP fee a relay for a given deposit should carry.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import Any

from web3 import Web3
from web3.contract import AsyncContract
from web3.types import EventData

from .models import Deposit, RateModel, Relay
from .utils.block_finder import BlockFinder
from .utils.contract_utility import ContractUtility
from .utils.event_utility import (
    fetch_event_logs,
    next_from_block,
    sort_events,
    struct_field,
    to_hex32,
)
from .utils.fee_calculator import calculate_realized_lp_fee_pct

logger = logging.getLogger(__name__)

RELAY_EVENTS = ("DepositRelayed", "RelaySettled", "RelayDisputed", "RelayCanceled")


class InsuredBridgeL1Client:
    """Reads relay state from L1 BridgePool contracts."""

    def __init__(
        self,
        contract_util: ContractUtility,
        bridge_pool_addresses: Iterable[str],
        rate_models: Mapping[str, RateModel],
        optimistic_oracle_liveness: int = 7200,
        lookback_blocks: int = 10_000,
        max_block_range: int = 2_000,
        block_finder: BlockFinder | None = None
    ) -> None:
        """
        Initialize the L1 client.

        Args:
            contract_util: Read-only contract utility connected to L1
            bridge_pool_addresses: BridgePool contracts to track
            rate_models: Rate model per L1 token address
            optimistic_oracle_liveness: Dispute window of a relay in seconds
            lookback_blocks: Blocks to look back on the first sync
            max_block_range: Maximum block span per log request
            block_finder: Timestamp lookup, created from the utility if omitted
        """
        self.w3 = contract_util.w3
        self.bridge_pools: dict[str, AsyncContract] = {
            Web3.to_checksum_address(address): contract_util.get_contract(address, "BridgePool")
            for address in bridge_pool_addresses
        }
        if not self.bridge_pools:
            raise ValueError("At least one bridge pool address is required")

        self.rate_models: dict[str, RateModel] = {
            Web3.to_checksum_address(token): model for token, model in rate_models.items()
        }
        self.optimistic_oracle_liveness = optimistic_oracle_liveness
        self.lookback_blocks = lookback_blocks
        self.max_block_range = max_block_range
        self.block_finder = block_finder or BlockFinder(self.w3)

        self.pool_l1_tokens: dict[str, str] = {}
        # Keyed by (bridge pool, deposit hash)
        self.relays: dict[tuple[str, str], Relay] = {}
        self.last_processed_block: int | None = None

    @staticmethod
    def parse_relay_event(event: EventData, bridge_pool: str, l1_token: str) -> Relay:
        """Build a Relay from a decoded DepositRelayed event."""
        args: Mapping[str, Any] = event["args"]
        deposit_data = args["depositData"]
        relay_data = args["relay"]

        return Relay(
            relay_ancillary_data_hash=to_hex32(args["relayAncillaryDataHash"]),
            deposit_hash=to_hex32(args["depositHash"]),
            settleable=False,
            realized_lp_fee_pct=int(struct_field(relay_data, "realizedLpFeePct", 3)),
            chain_id=int(struct_field(deposit_data, "chainId", 0)),
            deposit_id=int(struct_field(deposit_data, "depositId", 1)),
            l1_token=l1_token,
            slow_relayer=Web3.to_checksum_address(struct_field(relay_data, "slowRelayer", 1)),
            relay_id=int(struct_field(relay_data, "relayId", 2)),
            price_request_time=int(struct_field(relay_data, "priceRequestTime", 4)),
            bridge_pool=bridge_pool
        )

    def _apply_event(
        self,
        relays: dict[tuple[str, str], Relay],
        bridge_pool: str,
        l1_token: str,
        event: EventData
    ) -> None:
        deposit_hash = to_hex32(event["args"]["depositHash"])
        key = (bridge_pool, deposit_hash)

        match event["event"]:
            case "DepositRelayed":
                relays[key] = self.parse_relay_event(event, bridge_pool, l1_token)
            case "RelaySettled" | "RelayDisputed" | "RelayCanceled":
                if relays.pop(key, None) is not None:
                    logger.debug(f"{event['event']} removed relay for deposit {deposit_hash[:10]}...")
            case other:
                logger.warning(f"Ignoring unexpected event {other} from {bridge_pool}")

    async def _fetch_pool_events(self, contract: AsyncContract, from_block: int, to_block: int) -> list[EventData]:
        events: list[EventData] = []
        for event_name in RELAY_EVENTS:
            events.extend(await fetch_event_logs(
                getattr(contract.events, event_name),
                from_block,
                to_block,
                self.max_block_range
            ))
        return sort_events(events)

    def _is_settleable(self, relay: Relay, now: int) -> bool:
        return relay.price_request_time + self.optimistic_oracle_liveness <= now

    async def update(self) -> None:
        """
        Sync relay state for every bridge pool up to the latest block.

        All pools are synced onto copies of the current state; nothing is
        committed unless every pool succeeds.
        """
        latest = await self.w3.eth.get_block("latest")
        to_block = int(latest["number"])
        now = int(latest["timestamp"])
        from_block = next_from_block(self.last_processed_block, to_block, self.lookback_blocks)

        pool_l1_tokens = dict(self.pool_l1_tokens)
        relays = dict(self.relays)

        for bridge_pool, contract in self.bridge_pools.items():
            if bridge_pool not in pool_l1_tokens:
                l1_token = await contract.functions.l1Token().call()
                pool_l1_tokens[bridge_pool] = Web3.to_checksum_address(l1_token)

            if from_block > to_block:
                continue

            for event in await self._fetch_pool_events(contract, from_block, to_block):
                self._apply_event(relays, bridge_pool, pool_l1_tokens[bridge_pool], event)

        relays = {
            key: replace(relay, settleable=self._is_settleable(relay, now))
            for key, relay in relays.items()
        }

        self.pool_l1_tokens = pool_l1_tokens
        self.relays = relays
        self.last_processed_block = max(to_block, self.last_processed_block or 0)

        settleable = sum(1 for relay in relays.values() if relay.settleable)
        logger.info(
            f"L1 sync to block {to_block}: {len(relays)} pending relays "
            f"({settleable} settleable)"
        )

    def get_pending_relays(self) -> tuple[Relay, ...]:
        """Return all relays that have not been settled, disputed or canceled."""
        return tuple(self.relays.values())

    def get_bridge_pool_for_token(self, l1_token: str) -> str | None:
        """Find the bridge pool that holds liquidity for an L1 token."""
        l1_token = Web3.to_checksum_address(l1_token)
        for bridge_pool, token in self.pool_l1_tokens.items():
            if token == l1_token:
                return bridge_pool
        return None

    async def calculate_realized_lp_fee_pct(self, deposit: Deposit) -> int:
        """
        Compute the realized LP fee a relay of `deposit` must carry.

        Pool utilization is read at the L1 block matching the deposit's quote
        timestamp, before and after relaying the deposit amount.

        Args:
            deposit: Deposit being relayed

        Returns:
            Realized LP fee as an 18-decimal fixed-point integer

        Raises:
            ValueError: If no pool or rate model is known for the deposit's token
        """
        l1_token = Web3.to_checksum_address(deposit.l1_token)

        bridge_pool = self.get_bridge_pool_for_token(l1_token)
        if bridge_pool is None:
            raise ValueError(f"No bridge pool tracked for L1 token {l1_token}")

        rate_model = self.rate_models.get(l1_token)
        if rate_model is None:
            raise ValueError(f"No rate model configured for L1 token {l1_token}")

        block_number = await self.block_finder.get_block_for_timestamp(deposit.quote_timestamp)
        contract = self.bridge_pools[bridge_pool]

        utilization_before = await contract.functions.liquidityUtilizationCurrent().call(
            block_identifier=block_number
        )
        utilization_after = await contract.functions.liquidityUtilizationPostRelay(deposit.amount).call(
            block_identifier=block_number
        )

        realized_lp_fee_pct = calculate_realized_lp_fee_pct(
            rate_model,
            int(utilization_before),
            int(utilization_after)
        )
        logger.debug(
            f"Expected realized LP fee for {deposit}: {realized_lp_fee_pct} "
            f"(block {block_number}, utilization {utilization_before} -> {utilization_after})"
        )
        return realized_lp_fee_pct
