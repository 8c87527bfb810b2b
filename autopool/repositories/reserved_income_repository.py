"""
ReservedIncome repository.

Balance mutations are single atomic deltas, never read-modify-write.
"""

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.models.reserved_income import ReservedIncome
from autopool.repositories.base import BaseRepository


class ReservedIncomeRepository(BaseRepository[ReservedIncome]):
    """ReservedIncome repository with specific methods."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize reserved income repository."""
        super().__init__(ReservedIncome, session)

    async def get_balance(self, participant_id: int, pool_level: int) -> Decimal:
        """Current reserved balance (0 if no reservation row)."""
        result = await self.session.execute(
            select(ReservedIncome.balance).where(
                ReservedIncome.participant_id == participant_id,
                ReservedIncome.pool_level == pool_level,
            )
        )
        balance = result.scalar_one_or_none()
        return Decimal(str(balance)) if balance is not None else Decimal("0")

    async def ensure_row(self, participant_id: int, pool_level: int) -> ReservedIncome:
        """Get or create the reservation row for (participant, level)."""
        stmt = (
            select(ReservedIncome)
            .where(
                ReservedIncome.participant_id == participant_id,
                ReservedIncome.pool_level == pool_level,
            )
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        if row:
            return row
        return await self.create(
            participant_id=participant_id,
            pool_level=pool_level,
            balance=Decimal("0"),
            total_reserved=Decimal("0"),
            total_consumed=Decimal("0"),
        )

    async def credit(
        self, participant_id: int, pool_level: int, amount: Decimal
    ) -> None:
        """Atomically add to reserved balance."""
        row = await self.ensure_row(participant_id, pool_level)
        stmt = (
            update(ReservedIncome)
            .where(ReservedIncome.id == row.id)
            .values(
                balance=ReservedIncome.balance + amount,
                total_reserved=ReservedIncome.total_reserved + amount,
            )
        )
        await self.session.execute(stmt)

    async def debit(
        self, participant_id: int, pool_level: int, amount: Decimal
    ) -> bool:
        """
        Atomically subtract from reserved balance.

        The WHERE clause refuses a debit above the available balance.

        Returns:
            True if debited, False if balance was insufficient
        """
        stmt = (
            update(ReservedIncome)
            .where(
                ReservedIncome.participant_id == participant_id,
                ReservedIncome.pool_level == pool_level,
                ReservedIncome.balance >= amount,
            )
            .values(
                balance=ReservedIncome.balance - amount,
                total_consumed=ReservedIncome.total_consumed + amount,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def find_by_participant(self, participant_id: int) -> list[ReservedIncome]:
        """All reservations of a participant ordered by level."""
        result = await self.session.execute(
            select(ReservedIncome)
            .where(ReservedIncome.participant_id == participant_id)
            .order_by(ReservedIncome.pool_level)
        )
        return list(result.scalars().all())
