"""
Participant repository.

Data access layer for Participant model.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.models.enums import IncomeCategory
from autopool.models.participant import Participant
from autopool.repositories.base import BaseRepository


# Income category -> total column on Participant
_INCOME_COLUMNS = {
    IncomeCategory.DIRECT: Participant.total_direct_income,
    IncomeCategory.LEVEL: Participant.total_level_income,
    IncomeCategory.AUTOPOOL: Participant.total_autopool_income,
}


class ParticipantRepository(BaseRepository[Participant]):
    """Participant repository with specific methods."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize participant repository."""
        super().__init__(Participant, session)

    async def get_by_public_id(self, public_id: str) -> Participant | None:
        """Get participant by external identifier."""
        return await self.get_by(public_id=public_id)

    async def get_by_wallet(self, wallet_address: str) -> Participant | None:
        """Get participant by payment address (case-insensitive)."""
        return await self.get_by(wallet_address=wallet_address.lower())

    async def increment_direct_referrals(self, participant_id: int) -> int:
        """
        Atomically increment direct referral count.

        Args:
            participant_id: Referrer ID

        Returns:
            Count after the increment
        """
        stmt = (
            update(Participant)
            .where(Participant.id == participant_id)
            .values(
                direct_referral_count=Participant.direct_referral_count + 1
            )
        )
        await self.session.execute(stmt)

        result = await self.session.execute(
            select(Participant.direct_referral_count).where(
                Participant.id == participant_id
            )
        )
        return result.scalar_one()

    async def record_retopup(self, participant_id: int) -> None:
        """Set retopup flag and increment retopup count atomically."""
        stmt = (
            update(Participant)
            .where(Participant.id == participant_id)
            .values(
                has_retopup=True,
                retopup_count=Participant.retopup_count + 1,
            )
        )
        await self.session.execute(stmt)

    async def mark_entered_autopool(self, participant_id: int) -> bool:
        """
        Flag participant as entered into auto-pool.

        Returns:
            True if the flag changed, False if already set
        """
        stmt = (
            update(Participant)
            .where(
                Participant.id == participant_id,
                Participant.has_entered_autopool.is_(False),
            )
            .values(has_entered_autopool=True)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def add_income(
        self,
        participant_id: int,
        category: IncomeCategory,
        amount: Decimal,
    ) -> None:
        """
        Atomically increment an income total.

        Args:
            participant_id: Recipient
            category: Income category (platform lines are not tracked here)
            amount: Confirmed amount
        """
        column = _INCOME_COLUMNS.get(category)
        if column is None:
            return

        stmt = (
            update(Participant)
            .where(Participant.id == participant_id)
            .values({column.key: column + amount})
        )
        await self.session.execute(stmt)

    async def count_with_retopup(self) -> int:
        """Count participants with at least one retopup."""
        result = await self.session.execute(
            select(func.count(Participant.id)).where(
                Participant.has_retopup.is_(True)
            )
        )
        return result.scalar() or 0

    async def count_created_since(self, since: datetime) -> int:
        """Count participants registered since timestamp."""
        result = await self.session.execute(
            select(func.count(Participant.id)).where(
                Participant.created_at >= since
            )
        )
        return result.scalar() or 0
