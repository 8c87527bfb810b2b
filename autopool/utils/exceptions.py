"""
Exception handling utilities.

Defines categorized exception types for the compensation engine and
helpers to decide how a failure is handled.
"""

from decimal import Decimal

from sqlalchemy.exc import OperationalError
from web3.exceptions import Web3Exception


class AutoPoolError(Exception):
    """Base class for engine errors."""

    pass


class ConfigurationError(AutoPoolError):
    """Missing payment-rail address, platform wallet or signing key. Fatal."""

    pass


class InsufficientFundsError(AutoPoolError):
    """Payment rail balance is below the requested payout total."""

    def __init__(self, required: Decimal, available: Decimal) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient payout balance: required {required}, available {available}"
        )


class CapacityError(AutoPoolError):
    """Pool level reached its cap of concurrently open trees."""

    def __init__(self, pool_level: int, open_trees: int, max_open_trees: int) -> None:
        self.pool_level = pool_level
        self.open_trees = open_trees
        self.max_open_trees = max_open_trees
        super().__init__(
            f"Pool level {pool_level} has {open_trees} open trees "
            f"(max {max_open_trees})"
        )


class GatewayUnavailableError(AutoPoolError):
    """Payment rail balance or status could not be read."""

    pass


class PaymentBatchError(AutoPoolError):
    """Malformed payout batch (length mismatch, empty, oversized)."""

    pass


class PlacementError(AutoPoolError):
    """Participant cannot be placed (already placed, lock not acquired)."""

    pass


class EventValidationError(AutoPoolError):
    """Qualifying event payload is malformed or references unknown data."""

    pass


# Exception categories based on handling strategy

# Replayable - event is rolled back and may be delivered again
REPLAYABLE = (
    InsufficientFundsError,
    CapacityError,
    GatewayUnavailableError,
    PlacementError,  # Placement lock not acquired in time
    OperationalError,  # Database unavailable
    Web3Exception,  # Blockchain RPC errors
)
