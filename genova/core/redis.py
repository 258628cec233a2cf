# genova/core/redis.py
"""
Sync Redis client shared by the check-in code store.
"""

import logging
from typing import Optional

from redis import Redis

from .config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[Redis] = None


def get_redis_client() -> Redis:
    """Get or create the process-wide Redis client."""
    global _redis_client

    if _redis_client is None:
        _redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
        logger.info("[REDIS] Client initialized")
    return _redis_client


def close_redis_client() -> None:
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None
        logger.info("[REDIS] Client closed")
