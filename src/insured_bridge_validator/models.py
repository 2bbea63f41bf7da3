#!/usr/bin/env python3
"""Data models for the insured bridge relay validator.

This module provides immutable data classes for the relay and deposit
records read from the L1 and L2 bridge contracts, plus the verdict and
rate model types used during adjudication.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from web3 import Web3


class RelayValidity(IntEnum):
    """Answer to a relay price request."""
    NO = 0
    YES = 1

    def to_price(self) -> int:
        """Scale the verdict to an 18-decimal fixed-point price."""
        return Web3.to_wei(int(self), "ether")


@dataclass(frozen=True, slots=True)
class Deposit:
    """Represents a FundsDeposited event from the L2 deposit box.

    Attributes:
        deposit_hash: Hash identifying the deposit (with 0x prefix)
        chain_id: Chain ID of the L2 the deposit was made on
        deposit_id: Sequence number assigned by the deposit box
        l1_recipient: Address receiving funds on L1
        l2_sender: Address that deposited on L2
        l1_token: L1 token the deposit is bridged to
        l2_token: L2 token that was deposited
        amount: Deposited amount in token base units
        slow_relay_fee_pct: Slow relay fee, 18-decimal fixed point
        instant_relay_fee_pct: Instant relay fee, 18-decimal fixed point
        quote_timestamp: Timestamp the LP fee is quoted at
    """

    deposit_hash: str
    chain_id: int
    deposit_id: int
    l1_recipient: str
    l2_sender: str
    l1_token: str
    l2_token: str
    amount: int
    slow_relay_fee_pct: int
    instant_relay_fee_pct: int
    quote_timestamp: int

    def __str__(self) -> str:
        """Human-readable string representation."""
        return (
            f"Deposit(chain={self.chain_id}, "
            f"id={self.deposit_id}, "
            f"hash={self.deposit_hash[:10]}...)"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "deposit_hash": self.deposit_hash,
            "chain_id": self.chain_id,
            "deposit_id": self.deposit_id,
            "l1_recipient": self.l1_recipient,
            "l2_sender": self.l2_sender,
            "l1_token": self.l1_token,
            "l2_token": self.l2_token,
            "amount": str(self.amount),
            "slow_relay_fee_pct": str(self.slow_relay_fee_pct),
            "instant_relay_fee_pct": str(self.instant_relay_fee_pct),
            "quote_timestamp": self.quote_timestamp
        }


@dataclass(frozen=True, slots=True)
class Relay:
    """Represents a pending relay on an L1 bridge pool.

    Attributes:
        relay_ancillary_data_hash: Hash carried in the price request's
            ancillary data (with 0x prefix)
        deposit_hash: Hash of the deposit this relay claims to fulfil
        settleable: True once the dispute window has elapsed
        realized_lp_fee_pct: Claimed LP fee, 18-decimal fixed point
        chain_id: Chain ID of the originating L2
        deposit_id: Deposit sequence number on the L2
        l1_token: L1 token of the bridge pool
        slow_relayer: Address that proposed the relay
        relay_id: Relay counter within the pool
        price_request_time: Time the price request was made
        bridge_pool: Address of the bridge pool holding the relay
    """

    relay_ancillary_data_hash: str
    deposit_hash: str
    settleable: bool
    realized_lp_fee_pct: int
    chain_id: int = 0
    deposit_id: int = 0
    l1_token: str = ""
    slow_relayer: str = ""
    relay_id: int = 0
    price_request_time: int = 0
    bridge_pool: str = ""

    def __str__(self) -> str:
        return (
            f"Relay(deposit={self.deposit_hash[:10]}..., "
            f"relay_id={self.relay_id}, "
            f"settleable={self.settleable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "relay_ancillary_data_hash": self.relay_ancillary_data_hash,
            "deposit_hash": self.deposit_hash,
            "settleable": self.settleable,
            "realized_lp_fee_pct": str(self.realized_lp_fee_pct),
            "chain_id": self.chain_id,
            "deposit_id": self.deposit_id,
            "l1_token": self.l1_token,
            "slow_relayer": self.slow_relayer,
            "relay_id": self.relay_id,
            "price_request_time": self.price_request_time,
            "bridge_pool": self.bridge_pool
        }


@dataclass(frozen=True, slots=True)
class RateModel:
    """Piecewise-linear LP interest rate curve for one L1 token.

    All values are 18-decimal fixed point. `u_bar` is the utilization
    kink, `r0` the base rate, `r1` the slope up to the kink and `r2` the
    slope past it.
    """

    u_bar: int
    r0: int
    r1: int
    r2: int

    def __post_init__(self) -> None:
        """Validate rate model parameters."""
        one = Web3.to_wei(1, "ether")
        if not 0 < self.u_bar < one:
            raise ValueError(f"UBar must be strictly between 0 and 1e18, got {self.u_bar}")
        for name, value in (("R0", self.r0), ("R1", self.r1), ("R2", self.r2)):
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RateModel":
        """Build a rate model from a `{"UBar", "R0", "R1", "R2"}` mapping."""
        try:
            return cls(
                u_bar=int(data["UBar"]),
                r0=int(data["R0"]),
                r1=int(data["R1"]),
                r2=int(data["R2"])
            )
        except KeyError as e:
            raise ValueError(f"Rate model is missing key {e}") from None
