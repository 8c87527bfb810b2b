"""
Dramatiq actors.

Importing this package sets the Redis broker and registers every actor.
Run workers with:

    dramatiq jobs.tasks
"""

from jobs.broker import broker  # noqa: F401
from jobs.tasks.payout_reconciliation import reconcile_payouts
from jobs.tasks.qualifying_events import process_qualifying_event

__all__ = [
    "process_qualifying_event",
    "reconcile_payouts",
]
