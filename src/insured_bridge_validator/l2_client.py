#!/usr/bin/env python3
"""L2 deposit box client.

Maintains a snapshot of all FundsDeposited events emitted by the L2
BridgeDepositBox, synced incrementally from a lookback window.
"""

import logging
from collections.abc import Mapping
from typing import Any

from eth_abi import encode
from web3 import Web3
from web3.types import EventData

from .models import Deposit
from .utils.contract_utility import ContractUtility
from .utils.event_utility import fetch_event_logs, next_from_block

logger = logging.getLogger(__name__)

DEPOSIT_HASH_TYPES = [
    "uint256",  # chainId
    "uint64",   # depositId
    "address",  # l1Recipient
    "address",  # l2Sender
    "uint256",  # amount
    "uint64",   # slowRelayFeePct
    "uint64",   # instantRelayFeePct
    "uint32",   # quoteTimestamp
]


def compute_deposit_hash(
    chain_id: int,
    deposit_id: int,
    l1_recipient: str,
    l2_sender: str,
    amount: int,
    slow_relay_fee_pct: int,
    instant_relay_fee_pct: int,
    quote_timestamp: int
) -> str:
    """Compute the deposit hash the L1 bridge pool keys relays by.

    Returns:
        keccak256 of the ABI-encoded deposit data, as 0x-prefixed hex
    """
    encoded = encode(
        DEPOSIT_HASH_TYPES,
        [
            chain_id,
            deposit_id,
            Web3.to_checksum_address(l1_recipient),
            Web3.to_checksum_address(l2_sender),
            amount,
            slow_relay_fee_pct,
            instant_relay_fee_pct,
            quote_timestamp
        ]
    )
    return Web3.to_hex(Web3.keccak(encoded))


class InsuredBridgeL2Client:
    """Reads deposits from the L2 BridgeDepositBox contract."""

    def __init__(
        self,
        contract_util: ContractUtility,
        deposit_box_address: str,
        lookback_blocks: int = 10_000,
        max_block_range: int = 2_000
    ) -> None:
        """
        Initialize the L2 client.

        Args:
            contract_util: Read-only contract utility connected to the L2
            deposit_box_address: Address of the BridgeDepositBox contract
            lookback_blocks: Blocks to look back on the first sync
            max_block_range: Maximum block span per log request
        """
        self.w3 = contract_util.w3
        self.deposit_box_address = Web3.to_checksum_address(deposit_box_address)
        self.contract = contract_util.get_contract(self.deposit_box_address, "BridgeDepositBox")
        self.lookback_blocks = lookback_blocks
        self.max_block_range = max_block_range

        # Insertion order is first-seen order
        self.deposits: dict[str, Deposit] = {}
        self.last_processed_block: int | None = None

    @staticmethod
    def parse_deposit_event(event: EventData) -> Deposit:
        """Build a Deposit from a decoded FundsDeposited event.

        Raises:
            KeyError: If the event is missing a required argument
        """
        args: Mapping[str, Any] = event["args"]

        chain_id = int(args["chainId"])
        deposit_id = int(args["depositId"])
        l1_recipient = Web3.to_checksum_address(args["l1Recipient"])
        l2_sender = Web3.to_checksum_address(args["l2Sender"])
        amount = int(args["amount"])
        slow_relay_fee_pct = int(args["slowRelayFeePct"])
        instant_relay_fee_pct = int(args["instantRelayFeePct"])
        quote_timestamp = int(args["quoteTimestamp"])

        return Deposit(
            deposit_hash=compute_deposit_hash(
                chain_id,
                deposit_id,
                l1_recipient,
                l2_sender,
                amount,
                slow_relay_fee_pct,
                instant_relay_fee_pct,
                quote_timestamp
            ),
            chain_id=chain_id,
            deposit_id=deposit_id,
            l1_recipient=l1_recipient,
            l2_sender=l2_sender,
            l1_token=Web3.to_checksum_address(args["l1Token"]),
            l2_token=Web3.to_checksum_address(args["l2Token"]),
            amount=amount,
            slow_relay_fee_pct=slow_relay_fee_pct,
            instant_relay_fee_pct=instant_relay_fee_pct,
            quote_timestamp=quote_timestamp
        )

    async def update(self) -> None:
        """
        Fetch deposits emitted since the last sync.

        The new snapshot is assembled on a copy and only replaces the
        current one once every log request has succeeded.
        """
        latest = await self.w3.eth.get_block("latest")
        to_block = int(latest["number"])
        from_block = next_from_block(self.last_processed_block, to_block, self.lookback_blocks)

        if from_block > to_block:
            logger.debug(f"No new L2 blocks since {self.last_processed_block}")
            return

        events = await fetch_event_logs(
            self.contract.events.FundsDeposited,
            from_block,
            to_block,
            self.max_block_range
        )

        deposits = dict(self.deposits)
        for event in events:
            deposit = self.parse_deposit_event(event)
            deposits.setdefault(deposit.deposit_hash, deposit)

        new_count = len(deposits) - len(self.deposits)
        self.deposits = deposits
        self.last_processed_block = to_block

        logger.info(
            f"L2 sync blocks {from_block}-{to_block}: "
            f"{new_count} new deposits, {len(self.deposits)} total"
        )

    def get_all_deposits(self) -> tuple[Deposit, ...]:
        """Return every known deposit in first-seen order."""
        return tuple(self.deposits.values())
