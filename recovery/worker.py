"""Standalone reconciliation worker process.

    python -m recovery.worker

Consumes the durable ``recovery-queue`` independently of the API process.
Run exactly one instance per queue: on startup it re-queues jobs a previous
instance left in flight.
"""
from __future__ import annotations

import os
import signal

from recovery.bootstrap import build_components
from recovery.database import Base, engine
from recovery.jobs.redis_queue import RedisDelayQueue
from recovery.utils import get_logger, setup_logging


def main() -> None:
    setup_logging(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("WORKER_LOG_FILE", "logs/worker.log"),
        enable_console=True,
    )
    logger = get_logger(__name__)

    Base.metadata.create_all(bind=engine)
    components = build_components()
    if isinstance(components.queue, RedisDelayQueue):
        components.queue.recover_stalled()
    else:
        logger.warning("Standalone worker running on the in-memory queue; it will only see its own jobs")

    worker = components.make_worker()

    def _handle_signal(signum, _frame):
        logger.info("Shutdown signal received", signal=signum)
        worker.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    logger.info("Reconciliation worker waiting for jobs", backend=type(components.queue).__name__)
    worker.run_forever()
    components.queue.shutdown()
    logger.info("Reconciliation worker stopped")


if __name__ == "__main__":
    main()
