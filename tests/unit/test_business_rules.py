"""
Tests for compensation rules.

Covers:
- Pool split and level-income schedule constants
- Level share computation per ancestor depth
- Entry value doubling per pool level
- Payout plan bookkeeping and batching
"""

from decimal import Decimal

import pytest

from autopool.config.business_constants import (
    LEVEL_INCOME_BPS,
    LEVEL_INCOME_DEPTH,
    POOL_LAYER_SHARES,
    POOL_PLATFORM_FEE_SHARE,
    POOL_SIZE,
    RewardTag,
    level_income_forfeited_tag,
    level_income_tag,
    unassigned_layer_tag,
)
from autopool.config.settings import settings
from autopool.models.enums import IncomeCategory
from autopool.models.pool_node import PoolNode
from autopool.services.level_income import level_share
from autopool.services.payout.plan import PayoutPlan

PLATFORM = "0x9999999999999999999999999999999999999999"


class TestPoolConstants:
    """Fixed pool geometry and split."""

    def test_pool_split_sums_to_entry_value(self):
        """Layer shares plus platform fee distribute the whole entry."""
        assert sum(POOL_LAYER_SHARES) + POOL_PLATFORM_FEE_SHARE == Decimal("1")

    def test_layer_split_values(self):
        """Parent 50%, grandparent 25%, great-grandparent 15%."""
        assert POOL_LAYER_SHARES == (
            Decimal("0.50"),
            Decimal("0.25"),
            Decimal("0.15"),
        )
        assert POOL_PLATFORM_FEE_SHARE == Decimal("0.10")

    def test_tree_closes_at_fifteen_completions(self):
        assert POOL_SIZE == 15

    @pytest.mark.parametrize(
        "completion_seq,expected",
        [(None, False), (1, False), (11, False), (12, True), (15, True)],
    )
    def test_last_completer_designation(self, completion_seq, expected):
        """Final four completion slots of a tree designate its last four."""
        assert PoolNode(completion_seq=completion_seq).is_last_completer is expected

    def test_level_income_schedule(self):
        """Ten depths summing to 100%."""
        assert LEVEL_INCOME_DEPTH == 10
        assert sum(LEVEL_INCOME_BPS) == 10000
        assert LEVEL_INCOME_BPS[0] == 3000
        assert LEVEL_INCOME_BPS[-2:] == (1000, 1000)

    def test_reward_tags(self):
        assert level_income_tag(3) == "LEVEL_INCOME_3"
        assert level_income_forfeited_tag(10) == "LEVEL_INCOME_FORFEITED_10"
        assert unassigned_layer_tag(2) == "AUTO_POOL_UNASSIGNED_LAYER_2"
        assert RewardTag.AUTO_POOL_INCOME == "AUTO_POOL_INCOME"


class TestLevelShare:
    """Share of a retopup price per ancestor depth."""

    def test_first_depth_of_default_price(self):
        """30% of 40 is 12."""
        assert level_share(Decimal("40"), 1) == Decimal("12")

    def test_all_depths_sum_to_price(self):
        price = Decimal("40")
        total = sum(level_share(price, d) for d in range(1, LEVEL_INCOME_DEPTH + 1))
        assert total == price

    def test_middle_depths(self):
        assert level_share(Decimal("40"), 2) == Decimal("6")
        assert level_share(Decimal("40"), 5) == Decimal("2")
        assert level_share(Decimal("40"), 9) == Decimal("4")

    @pytest.mark.parametrize("depth", [0, 11, -1])
    def test_depth_out_of_range(self, depth):
        with pytest.raises(ValueError):
            level_share(Decimal("40"), depth)


class TestEntryValue:
    """Entry value doubles each level."""

    def test_doubling(self):
        config = settings.model_copy(update={"base_entry_value": Decimal("20")})
        assert config.entry_value(1) == Decimal("20")
        assert config.entry_value(2) == Decimal("40")
        assert config.entry_value(3) == Decimal("80")
        assert config.entry_value(10) == Decimal("10240")

    def test_level_below_one_rejected(self):
        with pytest.raises(ValueError):
            settings.entry_value(0)


class TestPayoutPlan:
    """Payout lines of one event."""

    def test_add_normalizes_and_totals(self):
        plan = PayoutPlan(event_key="evt-1", platform_wallet=PLATFORM)

        plan.add(
            recipient_address="0xABCDEF0000000000000000000000000000000001",
            amount=Decimal("18"),
            reward_tag=RewardTag.DIRECT_INCOME,
            category=IncomeCategory.DIRECT,
            participant_id=7,
        )
        plan.add_platform(Decimal("2"), RewardTag.COMPANY_FEE)

        assert plan.total == Decimal("20")
        assert plan.lines[0].recipient_address == (
            "0xabcdef0000000000000000000000000000000001"
        )
        assert plan.lines[0].reward_tag == "DIRECT_INCOME"
        assert plan.lines[1].is_platform
        assert plan.lines[1].recipient_address == PLATFORM
        assert plan.lines_for(7) == [plan.lines[0]]

    def test_zero_amount_dropped(self):
        plan = PayoutPlan(event_key="evt-2", platform_wallet=PLATFORM)

        line = plan.add_platform(Decimal("0"), RewardTag.COMPANY_FEE)

        assert line is None
        assert plan.is_empty

    def test_chunks_preserve_order(self):
        plan = PayoutPlan(event_key="evt-3", platform_wallet=PLATFORM)
        for i in range(1, 121):
            plan.add_platform(Decimal(i), RewardTag.COMPANY_FEE)

        chunks = plan.chunks(50)

        assert [len(c) for c in chunks] == [50, 50, 20]
        assert chunks[0][0].amount == Decimal("1")
        assert chunks[2][-1].amount == Decimal("120")

    def test_chunks_reject_non_positive_size(self):
        plan = PayoutPlan(event_key="evt-4", platform_wallet=PLATFORM)
        with pytest.raises(ValueError):
            plan.chunks(0)

    def test_total_by_tag_prefix(self):
        plan = PayoutPlan(event_key="evt-5", platform_wallet=PLATFORM)
        plan.add_platform(Decimal("4"), level_income_forfeited_tag(2))
        plan.add_platform(Decimal("6"), level_income_forfeited_tag(3))
        plan.add_platform(Decimal("1"), RewardTag.COMPANY_FEE_RETOPUP)

        assert plan.total_by_tag_prefix("LEVEL_INCOME_FORFEITED") == Decimal("10")
