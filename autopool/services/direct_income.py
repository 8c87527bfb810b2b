"""
Registration and direct income.

A registration pays its referrer direct income plus a platform fee, except
for the referrer's second referral, whose entry value instead places the
new participant into auto-pool level 1.
"""

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.config.business_constants import RewardTag
from autopool.config.settings import Settings, settings
from autopool.models.enums import IncomeCategory
from autopool.models.participant import Participant
from autopool.repositories.participant_repository import ParticipantRepository
from autopool.services.payout.plan import PayoutPlan
from autopool.utils.exceptions import EventValidationError

# Referral count that turns a registration into a SecondReferral
SECOND_REFERRAL_COUNT = 2


@dataclass
class RegistrationOutcome:
    """Result of registering a participant."""

    participant: Participant
    referrer: Participant | None
    referral_number: int | None
    is_second_referral: bool


class RegistrationService:
    """Creates participants and decides direct income."""

    def __init__(self, session: AsyncSession, config: Settings | None = None) -> None:
        self.session = session
        self.config = config or settings
        self.participant_repo = ParticipantRepository(session)

    async def register(
        self,
        public_id: str,
        wallet_address: str,
        referrer_public_id: str | None,
    ) -> RegistrationOutcome:
        """
        Create participant and bump referrer's direct referral count.

        Raises:
            EventValidationError: Duplicate wallet/public id or unknown referrer
        """
        if await self.participant_repo.get_by_public_id(public_id):
            raise EventValidationError(f"Participant {public_id} already registered")
        if await self.participant_repo.get_by_wallet(wallet_address):
            raise EventValidationError(f"Wallet {wallet_address} already registered")

        referrer = None
        if referrer_public_id:
            referrer = await self.participant_repo.get_by_public_id(referrer_public_id)
            if referrer is None:
                raise EventValidationError(f"Unknown referrer {referrer_public_id}")

        participant = await self.participant_repo.create(
            public_id=public_id,
            wallet_address=wallet_address.lower(),
            referrer_id=referrer.id if referrer else None,
        )

        referral_number = None
        if referrer:
            referral_number = await self.participant_repo.increment_direct_referrals(
                referrer.id
            )

        is_second = referral_number == SECOND_REFERRAL_COUNT
        logger.info(
            f"Registered participant {participant.id} ({public_id}), "
            f"referrer={referrer.id if referrer else None}, "
            f"referral #{referral_number}"
            + (" -> auto-pool" if is_second else "")
        )
        return RegistrationOutcome(
            participant=participant,
            referrer=referrer,
            referral_number=referral_number,
            is_second_referral=is_second,
        )

    def add_direct_income(
        self, participant: Participant, referrer: Participant, plan: PayoutPlan
    ) -> None:
        """Append direct income and platform fee for a registration."""
        plan.add(
            recipient_address=referrer.wallet_address,
            amount=self.config.direct_income,
            reward_tag=RewardTag.DIRECT_INCOME,
            category=IncomeCategory.DIRECT,
            participant_id=referrer.id,
            description=f"Direct income from participant {participant.id}",
        )
        plan.add_platform(
            self.config.direct_company_fee,
            RewardTag.COMPANY_FEE,
            description=f"Registration fee of participant {participant.id}",
        )
