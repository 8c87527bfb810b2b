"""
Application constants.

Centralized operational constants: timeouts, locks and retry policy.
"""

# ========================================================================
# BLOCKCHAIN CONSTANTS
# ========================================================================

# Fallback gas limit when estimation fails (batch payouts are expensive)
DEFAULT_BATCH_GAS_LIMIT = 3_000_000
GAS_ESTIMATE_MULTIPLIER = 1.2

# ========================================================================
# LOCKS
# ========================================================================

DISTRIBUTED_LOCK_TIMEOUT = 30  # Lock timeout in seconds
DISTRIBUTED_LOCK_BLOCKING_TIMEOUT = 5.0  # Time to wait for lock acquisition

# Per-level placement guard; held for one event unit
PLACEMENT_LOCK_TIMEOUT = 120
PLACEMENT_LOCK_BLOCKING_TIMEOUT = 30.0

# Reconciliation job lock
RECONCILIATION_LOCK_TIMEOUT = 300

# ========================================================================
# REDIS KEYS
# ========================================================================

PLACEMENT_QUEUE_KEY = "autopool:placement_queue:{level}"
PLACEMENT_LOCK_KEY = "autopool:placement_lock:{level}"

# ========================================================================
# PAYOUT RECONCILIATION
# ========================================================================

PAYOUT_RETRY_MAX_ATTEMPTS = 5  # Attempts before a batch is moved to DLQ
PAYOUT_RECONCILIATION_BATCH = 100  # Batches examined per reconciliation pass
