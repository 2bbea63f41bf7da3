#!/usr/bin/env python3
"""Configuration management for the insured bridge relay validator.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables with sensible defaults
where appropriate.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from web3 import Web3

from .models import RateModel

# Get logger for this module
logger = logging.getLogger(__name__)

RPC_URL_SCHEMES = ('http', 'https', 'ws', 'wss')


def _validate_rpc_url(rpc_url: str, env_name: str) -> None:
    if not rpc_url:
        raise ValueError(f"RPC URL is required ({env_name})")

    parsed = urlparse(rpc_url)
    if parsed.scheme not in RPC_URL_SCHEMES:
        raise ValueError(
            f"Invalid RPC URL scheme for {env_name}: {parsed.scheme}. "
            "Expected http, https, ws, or wss"
        )


def _checksum_address(address: str, env_name: str) -> str:
    if not address:
        raise ValueError(f"Contract address is required ({env_name})")
    if not Web3.is_address(address):
        raise ValueError(f"Invalid contract address in {env_name}: {address}")
    return Web3.to_checksum_address(address)


def parse_rate_models(raw: str) -> dict[str, RateModel]:
    """Parse the RATE_MODELS JSON mapping of L1 token to rate model.

    Args:
        raw: JSON like ``{"0xToken": {"UBar": "...", "R0": "...", "R1": "...", "R2": "..."}}``

    Returns:
        Rate models keyed by checksummed token address

    Raises:
        ValueError: If the JSON or any rate model is invalid
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"RATE_MODELS is not valid JSON: {e}") from None

    if not isinstance(data, dict):
        raise ValueError("RATE_MODELS must be a JSON object keyed by L1 token address")

    rate_models: dict[str, RateModel] = {}
    for token, model in data.items():
        checksummed = _checksum_address(token, "RATE_MODELS")
        if not isinstance(model, dict):
            raise ValueError(f"Rate model for {checksummed} must be a JSON object")
        rate_models[checksummed] = RateModel.from_dict(model)
    return rate_models


@dataclass(frozen=True, slots=True)
class L1ChainConfig:
    """Configuration for the L1 chain holding the bridge pools.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint for L1
        bridge_pool_addresses: Checksummed BridgePool contract addresses
        rate_models: Rate model per checksummed L1 token address
        optimistic_oracle_liveness: Relay dispute window in seconds
    """

    rpc_url: str
    bridge_pool_addresses: tuple[str, ...]
    rate_models: dict[str, RateModel] = field(default_factory=dict)
    optimistic_oracle_liveness: int = 7200

    def __post_init__(self) -> None:
        """Validate L1 chain configuration."""
        _validate_rpc_url(self.rpc_url, "L1_RPC_URL")

        if not self.bridge_pool_addresses:
            raise ValueError("At least one bridge pool address is required (BRIDGE_POOL_ADDRESSES)")

        checksummed = tuple(
            _checksum_address(address, "BRIDGE_POOL_ADDRESSES")
            for address in self.bridge_pool_addresses
        )
        # Use object.__setattr__ since dataclass is frozen
        object.__setattr__(self, 'bridge_pool_addresses', checksummed)

        if self.optimistic_oracle_liveness <= 0:
            raise ValueError(
                f"Optimistic oracle liveness must be positive, got {self.optimistic_oracle_liveness}"
            )


@dataclass(frozen=True, slots=True)
class L2ChainConfig:
    """Configuration for the L2 chain holding the deposit box.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint for the L2
        deposit_box_address: Checksummed BridgeDepositBox contract address
        lookback_blocks: L2 blocks to look back on startup; must span at
            least as much time as the L1 lookback
    """

    rpc_url: str
    deposit_box_address: str
    lookback_blocks: int = 100_000

    def __post_init__(self) -> None:
        """Validate L2 chain configuration."""
        _validate_rpc_url(self.rpc_url, "L2_RPC_URL")
        object.__setattr__(
            self,
            'deposit_box_address',
            _checksum_address(self.deposit_box_address, "DEPOSIT_BOX_ADDRESS")
        )

        if self.lookback_blocks <= 0:
            raise ValueError(f"L2 lookback blocks must be positive, got {self.lookback_blocks}")


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Configuration for the refresh loop and RPC access."""
    polling_interval: int = 60  # seconds between refreshes
    lookback_blocks: int = 10_000  # L1 blocks to look back on startup
    request_timeout: int = 30  # HTTP request timeout in seconds
    max_block_range: int = 2_000  # max blocks per eth_getLogs request

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if self.polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {self.polling_interval}")
        if self.polling_interval > 3600:
            raise ValueError(f"Polling interval too long (max 3600s), got {self.polling_interval}")

        if self.lookback_blocks <= 0:
            raise ValueError(f"Lookback blocks must be positive, got {self.lookback_blocks}")

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")

        if self.max_block_range <= 0:
            raise ValueError(f"Max block range must be positive, got {self.max_block_range}")


def _int_from_env(name: str, default: str) -> int:
    value = os.environ.get(name, default)
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


@dataclass(frozen=True, slots=True)
class ValidatorConfig:
    """Main configuration for the relay validator service."""

    l1_chain: L1ChainConfig
    l2_chain: L2ChainConfig
    monitoring: MonitoringConfig

    @classmethod
    def from_env(cls) -> "ValidatorConfig":
        """Load configuration from environment variables.

        Returns:
            ValidatorConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        l1_rpc_url = os.environ.get("L1_RPC_URL", "")
        if not l1_rpc_url:
            raise ValueError(
                "L1_RPC_URL environment variable is required. "
                "Example: https://ethereum.publicnode.com"
            )

        bridge_pools = [
            address.strip()
            for address in os.environ.get("BRIDGE_POOL_ADDRESSES", "").split(",")
            if address.strip()
        ]

        l1_config = L1ChainConfig(
            rpc_url=l1_rpc_url,
            bridge_pool_addresses=tuple(bridge_pools),
            rate_models=parse_rate_models(os.environ.get("RATE_MODELS", "{}")),
            optimistic_oracle_liveness=_int_from_env("OPTIMISTIC_ORACLE_LIVENESS", "7200")
        )

        l2_rpc_url = os.environ.get("L2_RPC_URL", "")
        if not l2_rpc_url:
            raise ValueError(
                "L2_RPC_URL environment variable is required. "
                "This should point at the L2 hosting the BridgeDepositBox."
            )

        l2_config = L2ChainConfig(
            rpc_url=l2_rpc_url,
            deposit_box_address=os.environ.get("DEPOSIT_BOX_ADDRESS", ""),
            lookback_blocks=_int_from_env("L2_LOOKBACK_BLOCKS", "100000")
        )

        monitoring_config = MonitoringConfig(
            polling_interval=_int_from_env("POLLING_INTERVAL", "60"),
            lookback_blocks=_int_from_env("LOOKBACK_BLOCKS", "10000"),
            request_timeout=_int_from_env("REQUEST_TIMEOUT", "30"),
            max_block_range=_int_from_env("MAX_BLOCK_RANGE", "2000")
        )

        return cls(
            l1_chain=l1_config,
            l2_chain=l2_config,
            monitoring=monitoring_config
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Insured Bridge Relay Validator Configuration")
        logger.info("=" * 60)

        logger.info("L1 Chain:")
        logger.info(f"  RPC URL: {self.l1_chain.rpc_url}")
        for address in self.l1_chain.bridge_pool_addresses:
            logger.info(f"  Bridge Pool: {address}")
        logger.info(f"  Rate Models: {', '.join(self.l1_chain.rate_models) or '[NONE]'}")
        logger.info(f"  Liveness: {self.l1_chain.optimistic_oracle_liveness} seconds")

        logger.info("L2 Chain:")
        logger.info(f"  RPC URL: {self.l2_chain.rpc_url}")
        logger.info(f"  Deposit Box: {self.l2_chain.deposit_box_address}")
        logger.info(f"  Lookback Blocks: {self.l2_chain.lookback_blocks}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Polling Interval: {self.monitoring.polling_interval} seconds")
        logger.info(f"  Lookback Blocks: {self.monitoring.lookback_blocks}")
        logger.info(f"  Request Timeout: {self.monitoring.request_timeout} seconds")
        logger.info(f"  Max Block Range: {self.monitoring.max_block_range}")

        logger.info("=" * 60)
