"""
Dramatiq broker configuration.

Redis-based message broker for qualifying events and reconciliation.
Replayable rejections (short balance, full level, lock timeout) are
redelivered with exponential backoff; configuration and validation
errors are not.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from autopool.config.settings import settings
from autopool.utils.exceptions import (
    ConfigurationError,
    EventValidationError,
    PaymentBatchError,
)
from autopool.utils.redis_utils import get_redis_url_masked

MAX_EVENT_RETRIES = 3

# Never fixed by redelivering the same message
NON_RETRYABLE = (ConfigurationError, EventValidationError, PaymentBatchError)


def should_retry(retries_so_far: int, exception: Exception) -> bool:
    """Retries middleware predicate."""
    if isinstance(exception, NON_RETRYABLE):
        logger.warning(f"Not retrying {type(exception).__name__}: {exception}")
        return False
    return retries_so_far < MAX_EVENT_RETRIES


redis_broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password if settings.redis_password else None,
    db=settings.redis_db,
)

redis_broker.add_middleware(ShutdownNotifications())
redis_broker.add_middleware(CurrentMessage())
redis_broker.add_middleware(
    Retries(
        max_retries=MAX_EVENT_RETRIES,
        min_backoff=1000,  # 1 second
        max_backoff=60000,  # 1 minute
        retry_when=should_retry,
    )
)

dramatiq.set_broker(redis_broker)

broker = redis_broker

logger.info(f"Dramatiq broker initialized: {get_redis_url_masked()}")
