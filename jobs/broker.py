"""
Dramatiq broker configuration.

Redis-backed broker for the ledger's background actors.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from referral_ledger.config.settings import settings


redis_broker = RedisBroker(
    host=settings.redis_host,
    port=settings.redis_port,
    password=settings.redis_password or None,
    db=settings.redis_db,
)

# ShutdownNotifications: lets a running sweep stop between rows
# CurrentMessage: exposes the message id for log correlation
# Retries: exponential backoff, 1s to 1min
redis_broker.add_middleware(ShutdownNotifications())
redis_broker.add_middleware(CurrentMessage())
redis_broker.add_middleware(
    Retries(
        max_retries=3,
        min_backoff=1000,
        max_backoff=60000,
    )
)

dramatiq.set_broker(redis_broker)

broker = redis_broker

logger.info(
    f"Dramatiq broker initialized: "
    f"redis://{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
)
