"""
Reserved-income ledger.

Withheld layer income per (participant, pool level), spent on re-entry
into the next level.
"""

from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from autopool.repositories.reserved_income_repository import ReservedIncomeRepository


class ReservedIncomeLedger:
    """Credit and debit reserved balances with atomic deltas."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.repo = ReservedIncomeRepository(session)

    async def balance(self, participant_id: int, pool_level: int) -> Decimal:
        """Available reserved balance."""
        return await self.repo.get_balance(participant_id, pool_level)

    async def credit(
        self, participant_id: int, pool_level: int, amount: Decimal
    ) -> Decimal:
        """
        Reserve an amount.

        Returns:
            Balance after the credit
        """
        if amount <= 0:
            raise ValueError(f"Reserve credit must be positive, got {amount}")

        await self.repo.credit(participant_id, pool_level, amount)
        balance = await self.repo.get_balance(participant_id, pool_level)
        logger.info(
            f"Reserved {amount} for participant {participant_id} at level {pool_level} "
            f"(balance {balance})"
        )
        return balance

    async def debit(
        self, participant_id: int, pool_level: int, amount: Decimal
    ) -> bool:
        """
        Consume reserved balance.

        Returns:
            True if debited, False if the balance was insufficient
        """
        if amount <= 0:
            raise ValueError(f"Reserve debit must be positive, got {amount}")

        debited = await self.repo.debit(participant_id, pool_level, amount)
        if debited:
            logger.info(
                f"Consumed {amount} reserved income of participant {participant_id} "
                f"at level {pool_level}"
            )
        else:
            logger.warning(
                f"Refused reserve debit of {amount} for participant {participant_id} "
                f"at level {pool_level}: insufficient balance"
            )
        return debited
