"""
Payout plan.

Ordered payout lines decided while processing one qualifying event. The
plan is recorded as pending intent and submitted to the payment gateway
in batches of at most max_batch_size lines.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from autopool.config.business_constants import MONEY_QUANT
from autopool.models.enums import IncomeCategory


@dataclass(frozen=True)
class PayoutLine:
    """One (recipient, amount, tag) triple."""

    recipient_address: str
    amount: Decimal
    reward_tag: str
    category: IncomeCategory
    participant_id: int | None = None
    pool_level: int | None = None
    description: str | None = None

    @property
    def is_platform(self) -> bool:
        """Line pays the platform wallet."""
        return self.category == IncomeCategory.PLATFORM


@dataclass
class PayoutPlan:
    """Payout lines of one event."""

    event_key: str
    platform_wallet: str
    lines: list[PayoutLine] = field(default_factory=list)

    def add(
        self,
        recipient_address: str,
        amount: Decimal,
        reward_tag: str,
        category: IncomeCategory,
        participant_id: int | None = None,
        pool_level: int | None = None,
        description: str | None = None,
    ) -> PayoutLine | None:
        """
        Append a line. Zero amounts are dropped.

        Returns:
            The appended line or None
        """
        amount = Decimal(amount).quantize(MONEY_QUANT)
        if amount <= 0:
            return None
        line = PayoutLine(
            recipient_address=recipient_address.lower(),
            amount=amount,
            reward_tag=str(reward_tag),
            category=category,
            participant_id=participant_id,
            pool_level=pool_level,
            description=description,
        )
        self.lines.append(line)
        return line

    def add_platform(
        self,
        amount: Decimal,
        reward_tag: str,
        pool_level: int | None = None,
        description: str | None = None,
    ) -> PayoutLine | None:
        """Append a line paying the platform wallet."""
        return self.add(
            recipient_address=self.platform_wallet,
            amount=amount,
            reward_tag=reward_tag,
            category=IncomeCategory.PLATFORM,
            pool_level=pool_level,
            description=description,
        )

    @property
    def total(self) -> Decimal:
        """Sum of all lines."""
        return sum((line.amount for line in self.lines), Decimal("0"))

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def chunks(self, max_size: int) -> list[list[PayoutLine]]:
        """Split lines into gateway batches preserving order."""
        if max_size < 1:
            raise ValueError("max_size must be positive")
        return [
            self.lines[i:i + max_size]
            for i in range(0, len(self.lines), max_size)
        ]

    def lines_for(self, participant_id: int) -> list[PayoutLine]:
        """Lines addressed to a participant."""
        return [line for line in self.lines if line.participant_id == participant_id]

    def total_by_tag_prefix(self, prefix: str) -> Decimal:
        """Sum of lines whose tag starts with prefix."""
        return sum(
            (line.amount for line in self.lines if line.reward_tag.startswith(prefix)),
            Decimal("0"),
        )
