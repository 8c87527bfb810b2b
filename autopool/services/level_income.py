"""
Level-income waterfall.

On every retopup the price is split over up to ten referral ancestors by a
fixed basis-point schedule:

    depth:  1     2     3     4    5    6    7    8    9     10
    bps:    3000  1500  1000  500  500  500  500  500  1000  1000

An ancestor who has never retopped forfeits the share to the platform
wallet. Depths beyond the end of the chain are routed to the platform
wallet as well, so one retopup always distributes exactly its price.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.config.business_constants import (
    BPS_DENOMINATOR,
    LEVEL_INCOME_BPS,
    LEVEL_INCOME_DEPTH,
    MONEY_QUANT,
    RewardTag,
    level_income_forfeited_tag,
    level_income_tag,
)
from autopool.config.settings import Settings, settings
from autopool.models.enums import IncomeCategory
from autopool.models.participant import Participant
from autopool.repositories.participant_repository import ParticipantRepository
from autopool.services.ancestry import AncestryChain
from autopool.services.payout.plan import PayoutPlan


@dataclass
class RetopupDistribution:
    """Outcome of one retopup waterfall."""

    price: Decimal
    paid: dict[int, Decimal] = field(default_factory=dict)  # depth -> amount
    forfeited: dict[int, Decimal] = field(default_factory=dict)
    platform_remainder: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return (
            sum(self.paid.values(), Decimal("0"))
            + sum(self.forfeited.values(), Decimal("0"))
            + self.platform_remainder
        )


def level_share(price: Decimal, depth: int) -> Decimal:
    """Share of retopup price for ancestor depth (1-indexed)."""
    if not 1 <= depth <= LEVEL_INCOME_DEPTH:
        raise ValueError(f"Level income depth out of range: {depth}")
    return (price * LEVEL_INCOME_BPS[depth - 1] / BPS_DENOMINATOR).quantize(MONEY_QUANT)


class LevelIncomeWaterfall:
    """Distributes retopup price up the referral chain."""

    def __init__(self, session: AsyncSession, config: Settings | None = None) -> None:
        self.session = session
        self.config = config or settings
        self.participant_repo = ParticipantRepository(session)
        self.ancestry = AncestryChain(session)

    async def distribute_retopup(
        self, participant: Participant, plan: PayoutPlan
    ) -> RetopupDistribution:
        """
        Record a retopup and append its waterfall to the plan.

        Args:
            participant: Participant performing the retopup
            plan: Event payout plan

        Returns:
            Per-depth outcome
        """
        price = self.config.retopup_price
        result = RetopupDistribution(price=price)

        await self.participant_repo.record_retopup(participant.id)

        ancestors = await self.ancestry.get_ancestors(participant, LEVEL_INCOME_DEPTH)

        for index, ancestor in enumerate(ancestors):
            depth = index + 1
            share = level_share(price, depth)

            if ancestor.has_retopup:
                plan.add(
                    recipient_address=ancestor.wallet_address,
                    amount=share,
                    reward_tag=level_income_tag(depth),
                    category=IncomeCategory.LEVEL,
                    participant_id=ancestor.id,
                    description=f"Level {depth} income from participant {participant.id}",
                )
                result.paid[depth] = share
            else:
                plan.add_platform(
                    share,
                    level_income_forfeited_tag(depth),
                    description=(
                        f"Level {depth} share of participant {ancestor.id} forfeited "
                        f"(no retopup)"
                    ),
                )
                result.forfeited[depth] = share

        remainder = price - result.total
        if remainder > 0:
            plan.add_platform(
                remainder,
                RewardTag.COMPANY_FEE_RETOPUP,
                description=f"Retopup remainder for {len(ancestors)} ancestors",
            )
            result.platform_remainder = remainder

        logger.info(
            f"Retopup of participant {participant.id}: price={price}, "
            f"paid={len(result.paid)}, forfeited={len(result.forfeited)}, "
            f"remainder={result.platform_remainder}"
        )
        return result
