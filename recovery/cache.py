"""Shared Redis connection used by the paid-flag store and the durable queue."""
from __future__ import annotations

import redis

from recovery.config import QUEUE_SETTINGS
from recovery.utils import get_logger

logger = get_logger(__name__)


def create_redis_client(url: str | None = None) -> redis.Redis:
    """Build a client; connecting is lazy, so an unreachable server only shows up on first use."""
    redis_url = url or str(QUEUE_SETTINGS.get("redis_url", "redis://localhost:6379/0"))
    timeout = float(QUEUE_SETTINGS.get("redis_health_check_timeout", 2.0))
    logger.info("Creating Redis client", url=redis_url)
    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=timeout,
        socket_timeout=timeout * 2,
    )


def check_redis_health(client: redis.Redis | None) -> bool:
    if client is None:
        return False
    try:
        client.ping()
        return True
    except redis.RedisError as e:
        logger.warning("Redis health check: Redis is unavailable", error=str(e))
        return False


__all__ = ["create_redis_client", "check_redis_health"]
