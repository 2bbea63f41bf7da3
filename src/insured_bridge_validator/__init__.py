"""
Insured bridge relay validator package.

Answers optimistic oracle price requests for L1 relays of L2 bridge deposits.
"""

from .config import ValidatorConfig
from .exceptions import DecodeError, InsuredBridgeError, RefreshError
from .interfaces import L1Client, L2Client, PriceFeed
from .l1_client import InsuredBridgeL1Client
from .l2_client import InsuredBridgeL2Client
from .models import Deposit, RateModel, Relay, RelayValidity
from .relay_monitor import RelayMonitor
from .relay_validator import RelayValidator

__all__ = [
    "ValidatorConfig",
    "DecodeError",
    "InsuredBridgeError",
    "RefreshError",
    "L1Client",
    "L2Client",
    "PriceFeed",
    "InsuredBridgeL1Client",
    "InsuredBridgeL2Client",
    "Deposit",
    "RateModel",
    "Relay",
    "RelayValidity",
    "RelayMonitor",
    "RelayValidator",
]
__version__ = "0.1.0"
