#!/usr/bin/env python3
"""Entry point for the insured bridge relay validator service.

This module provides the main entry point for the service that checks
pending L1 relays against L2 deposits and reports dispute candidates.
It can also answer a single relay price request given its ancillary data.
"""

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv


# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

# Get logger for this module
logger = logging.getLogger(__name__)

from insured_bridge_validator.config import ValidatorConfig
from insured_bridge_validator.exceptions import DecodeError, RefreshError
from insured_bridge_validator.relay_monitor import RelayMonitor


async def main() -> None:
    """Main entry point for the relay validator service.

    Parses startup arguments, loads configuration from environment,
    and either answers one price request or runs the monitor loop.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    load_dotenv()

    # Parse startup arguments
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Insured Bridge Relay Validator - Check L1 relays against L2 deposits",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  L1_RPC_URL                 - RPC endpoint for L1
  BRIDGE_POOL_ADDRESSES      - Comma separated BridgePool contract addresses
  RATE_MODELS                - JSON rate models keyed by L1 token address
  OPTIMISTIC_ORACLE_LIVENESS - Relay dispute window in seconds (default: 7200)
  L2_RPC_URL                 - RPC endpoint for the L2
  DEPOSIT_BOX_ADDRESS        - BridgeDepositBox contract address on the L2
  POLLING_INTERVAL           - Seconds between check cycles (default: 60)
  LOOKBACK_BLOCKS            - L1 blocks to sync on startup (default: 10000)
  L2_LOOKBACK_BLOCKS         - L2 blocks to sync on startup (default: 100000)
  LOG_LEVEL                  - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--once",
        action="store_true",
        default=False,
        help="Run a single check cycle and exit"
    )
    parser.add_argument(
        "--ancillary-data",
        default=None,
        help="Hex ancillary data of one relay price request to answer, then exit"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    # Set up logging with specified level
    setup_logging(args.log_level)

    logger.info("=== Insured Bridge Relay Validator Starting ===")
    logger.info("Loading configuration from environment...")

    try:
        config: ValidatorConfig = ValidatorConfig.from_env()
        config.log_config()

        monitor: RelayMonitor = RelayMonitor(config)

        if args.ancillary_data:
            await monitor.validator.update()
            price: int = await monitor.validator.get_verdict(0, args.ancillary_data)
            print(price)
        elif args.once:
            await monitor.run_once()
        else:
            await monitor.run()

    except DecodeError as e:
        logger.error(f"Malformed ancillary data: {e}")
        sys.exit(2)

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - L1_RPC_URL: RPC endpoint for L1")
        logger.error("  - BRIDGE_POOL_ADDRESSES: BridgePool contract addresses")
        logger.error("  - RATE_MODELS: JSON rate models keyed by L1 token")
        logger.error("  - L2_RPC_URL: RPC endpoint for the L2")
        logger.error("  - DEPOSIT_BOX_ADDRESS: BridgeDepositBox contract address")
        sys.exit(1)

    except RefreshError as e:
        logger.error(f"Could not refresh bridge state: {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("\nReceived interrupt signal, shutting down gracefully...")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    # Run the main async function
    asyncio.run(main())
