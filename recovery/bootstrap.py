"""Process composition: build the shared Redis client, paid-flag store, queue,
scheduler and intake once, for either the API process or the standalone worker.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import redis

from recovery.config import QUEUE_SETTINGS
from recovery.jobs.queue import DelayQueue
from recovery.jobs.redis_queue import RedisDelayQueue
from recovery.jobs.worker_reconciliation import ReconciliationWorker, create_queue
from recovery.parsers.registry import ParserRegistry, default_registry
from recovery.services.paid_flags import InMemoryPaidFlagStore, PaidFlagStore, RedisPaidFlagStore
from recovery.services.scheduler import VerificationScheduler
from recovery.services.webhook_intake import WebhookIntake
from recovery.utils import get_logger

logger = get_logger(__name__)


@dataclass
class Components:
    registry: ParserRegistry
    flags: PaidFlagStore
    queue: Union[DelayQueue, RedisDelayQueue]
    scheduler: VerificationScheduler
    intake: WebhookIntake
    redis_client: Optional[redis.Redis] = None

    def make_worker(self) -> ReconciliationWorker:
        return ReconciliationWorker(self.queue, self.flags)


def build_components(redis_client: Optional[redis.Redis] = None) -> Components:
    use_redis = bool(QUEUE_SETTINGS.get("use_redis", False))
    if use_redis and redis_client is None:
        from recovery.cache import create_redis_client
        redis_client = create_redis_client()

    flags: PaidFlagStore
    if use_redis:
        flags = RedisPaidFlagStore(redis_client)
    else:
        flags = InMemoryPaidFlagStore()

    queue = create_queue(redis_client if use_redis else None)
    scheduler = VerificationScheduler(queue)
    registry = default_registry()
    intake = WebhookIntake(registry, flags, scheduler)
    logger.info(
        "Recovery components built",
        backend="redis" if use_redis else "memory",
        platforms=registry.platforms(),
    )
    return Components(
        registry=registry,
        flags=flags,
        queue=queue,
        scheduler=scheduler,
        intake=intake,
        redis_client=redis_client if use_redis else None,
    )


__all__ = ["Components", "build_components"]
