import asyncio
import logging

from .config import ValidatorConfig
from .exceptions import DecodeError, RefreshError
from .l1_client import InsuredBridgeL1Client
from .l2_client import InsuredBridgeL2Client
from .models import Relay, RelayValidity
from .relay_validator import RelayValidator
from .utils.ancillary_data import relay_ancillary_data
from .utils.contract_utility import ContractUtility

# Get logger for this module
logger = logging.getLogger(__name__)


class RelayMonitor:
    """
    Relay monitor that periodically refreshes bridge state and checks
    every pending relay, reporting the ones that should be disputed.
    """

    def __init__(self, config: ValidatorConfig, validator: RelayValidator | None = None) -> None:
        """
        Initialize the RelayMonitor with configuration.

        :param config: Validator configuration object
        :param validator: Pre-built validator; built from config if omitted
        """
        self.config = config
        self.running = False
        self.shutdown_event = asyncio.Event()

        if validator is None:
            validator = self._build_validator(config)
        self.validator = validator

        # Metrics tracking
        self.cycles_completed = 0
        self.refresh_failures = 0
        self.invalid_relays_seen = 0

    @staticmethod
    def _build_validator(config: ValidatorConfig) -> RelayValidator:
        logger.debug(f"Connecting to L1 at {config.l1_chain.rpc_url}")
        l1_contract_util = ContractUtility(config.l1_chain.rpc_url, config.monitoring.request_timeout)
        l1_client = InsuredBridgeL1Client(
            contract_util=l1_contract_util,
            bridge_pool_addresses=config.l1_chain.bridge_pool_addresses,
            rate_models=config.l1_chain.rate_models,
            optimistic_oracle_liveness=config.l1_chain.optimistic_oracle_liveness,
            lookback_blocks=config.monitoring.lookback_blocks,
            max_block_range=config.monitoring.max_block_range
        )

        logger.debug(f"Connecting to L2 at {config.l2_chain.rpc_url}")
        l2_contract_util = ContractUtility(config.l2_chain.rpc_url, config.monitoring.request_timeout)
        l2_client = InsuredBridgeL2Client(
            contract_util=l2_contract_util,
            deposit_box_address=config.l2_chain.deposit_box_address,
            lookback_blocks=config.l2_chain.lookback_blocks,
            max_block_range=config.monitoring.max_block_range
        )

        return RelayValidator(l1_client=l1_client, l2_client=l2_client)

    async def check_relay(self, relay: Relay) -> RelayValidity | None:
        """
        Adjudicate one pending relay through its price request ancillary data.

        :param relay: Pending relay to check
        :return: Verdict, or None if the relay could not be adjudicated
        """
        try:
            ancillary_data = relay_ancillary_data(relay.relay_ancillary_data_hash)
            price = await self.validator.get_verdict(relay.price_request_time, ancillary_data)
        except DecodeError as e:
            logger.error(f"Could not decode ancillary data for {relay}: {e}")
            return None
        except Exception as e:
            logger.error(f"Could not adjudicate {relay}: {e}", exc_info=True)
            return None

        verdict = RelayValidity.YES if price == RelayValidity.YES.to_price() else RelayValidity.NO
        if verdict is RelayValidity.NO:
            self.invalid_relays_seen += 1
            logger.warning(f"Invalid relay, dispute candidate: {relay.to_dict()}")
        else:
            logger.debug(f"Relay is valid: {relay}")
        return verdict

    async def run_once(self) -> list[tuple[Relay, RelayValidity]]:
        """
        Refresh bridge state and check every pending relay.

        :return: (relay, verdict) pairs for each relay that could be adjudicated
        :raises RefreshError: If either client failed to refresh
        """
        await self.validator.update()

        results: list[tuple[Relay, RelayValidity]] = []
        for relay in self.validator.relays:
            if (verdict := await self.check_relay(relay)) is not None:
                results.append((relay, verdict))

        self.cycles_completed += 1
        invalid = sum(1 for _, verdict in results if verdict is RelayValidity.NO)
        logger.info(
            f"Checked {len(results)} pending relays against "
            f"{len(self.validator.deposits)} deposits: {invalid} invalid"
        )
        return results

    async def run(self) -> None:
        """
        Main entry point for the RelayMonitor.
        Runs a check cycle every polling interval until stopped.
        """
        self.running = True
        interval = self.config.monitoring.polling_interval
        logger.info(f"Starting RelayMonitor with {interval} second interval...")

        try:
            while self.running:
                try:
                    await self.run_once()
                except RefreshError as e:
                    self.refresh_failures += 1
                    logger.error(f"Refresh failed, keeping previous state: {e}")

                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=interval)
                    break  # Shutdown requested
                except asyncio.TimeoutError:
                    pass  # Next cycle
        finally:
            self.running = False
            logger.info(
                f"RelayMonitor stopped after {self.cycles_completed} cycles "
                f"({self.refresh_failures} refresh failures, "
                f"{self.invalid_relays_seen} invalid relays seen)"
            )

    def stop(self) -> None:
        """Stop the monitor loop."""
        self.running = False
        self.shutdown_event.set()
