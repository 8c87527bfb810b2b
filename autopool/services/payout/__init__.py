"""
Payout module.

- plan.py - Payout lines decided for one event
- settlement.py - Recorded intent and batch settlement
- reconciliation.py - Repair of unsettled batches and DLQ
"""

from autopool.services.payout.plan import PayoutLine, PayoutPlan
from autopool.services.payout.reconciliation import PayoutReconciliationService
from autopool.services.payout.settlement import (
    PayoutSettlementService,
    SettlementResult,
)

__all__ = [
    "PayoutLine",
    "PayoutPlan",
    "PayoutReconciliationService",
    "PayoutSettlementService",
    "SettlementResult",
]
