"""
Business constants.

Single source of truth for the fixed compensation rules: pool geometry,
layer split, level-income schedule and reward tags written to the payout
contract.
"""

from decimal import Decimal
from enum import StrEnum

# ========================================================================
# AUTO-POOL GEOMETRY
# ========================================================================

# Completed nodes that close a tree. A closed tree takes no further
# placements; the level continues in a newer tree.
POOL_SIZE = 15

# Number of final completers re-entered at the next level
LAST_COMPLETERS_COUNT = 4

# ========================================================================
# LAYERED INCOME (share of pool entry value)
# ========================================================================

# Layer 1 = parent of the completing node, layer 2 = grandparent, ...
POOL_LAYER_SHARES: tuple[Decimal, ...] = (
    Decimal("0.50"),
    Decimal("0.25"),
    Decimal("0.15"),
)
POOL_PLATFORM_FEE_SHARE = Decimal("0.10")

assert sum(POOL_LAYER_SHARES) + POOL_PLATFORM_FEE_SHARE == Decimal("1"), (
    "Pool layer split must distribute exactly the entry value"
)

# ========================================================================
# LEVEL INCOME (retopup waterfall, basis points of retopup price)
# ========================================================================

LEVEL_INCOME_BPS: tuple[int, ...] = (
    3000, 1500, 1000, 500, 500, 500, 500, 500, 1000, 1000,
)
BPS_DENOMINATOR = 10000

assert sum(LEVEL_INCOME_BPS) == BPS_DENOMINATOR, (
    "Level income schedule must sum to 10000 bps"
)

LEVEL_INCOME_DEPTH = len(LEVEL_INCOME_BPS)

# Money precision used for every computed share
MONEY_QUANT = Decimal("0.00000001")


class RewardTag(StrEnum):
    """Reward tags submitted alongside each payout line."""

    DIRECT_INCOME = "DIRECT_INCOME"
    COMPANY_FEE = "COMPANY_FEE"
    AUTO_POOL_INCOME = "AUTO_POOL_INCOME"
    COMPANY_FEE_RETOPUP = "COMPANY_FEE_RETOPUP"


def level_income_tag(level: int) -> str:
    """Tag for a paid level-income share (1-indexed)."""
    return f"LEVEL_INCOME_{level}"


def level_income_forfeited_tag(level: int) -> str:
    """Tag for a level-income share forfeited to the platform."""
    return f"LEVEL_INCOME_FORFEITED_{level}"


def unassigned_layer_tag(layer: int) -> str:
    """Tag for a pool layer share with no ancestor to receive it."""
    return f"AUTO_POOL_UNASSIGNED_LAYER_{layer}"
