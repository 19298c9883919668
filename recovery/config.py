"""Core application configuration & tunable recovery rules.

Everything that shapes the reconciliation window (grace delay, paid-flag TTL,
queue naming, retry/backoff) lives here so it can be adjusted without touching
service logic. Values come from environment variables with sane defaults and
are kept as module-level dicts so tests can monkeypatch them.
"""
from __future__ import annotations

import os


def _env_bool(name: str, default: bool) -> bool:
	raw = os.getenv(name)
	if raw is None or not raw.strip():
		return default
	return raw.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+pysqlite:///./recovery.db")
REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# ------------------------------ Reconciliation ----------------------------- #
RECOVERY_SETTINGS: dict[str, int | str] = {
	# Grace window between a pending order and the paid/unpaid decision.
	"verification_delay_seconds": int(os.getenv("VERIFICATION_DELAY_SECONDS", "600")),
	# Paid flag must outlive the grace window so an approval that lands right at
	# enqueue time is still visible when the worker checks.
	"paid_flag_ttl_seconds": int(os.getenv("PAID_FLAG_TTL_SECONDS", "900")),
	"paid_flag_key_prefix": "paid:",
}

if int(RECOVERY_SETTINGS["paid_flag_ttl_seconds"]) <= int(RECOVERY_SETTINGS["verification_delay_seconds"]):
	raise ValueError("PAID_FLAG_TTL_SECONDS must be greater than VERIFICATION_DELAY_SECONDS")

# --------------------------------- Backoff -------------------------------- #
BACKOFF_POLICY: dict[str, int | float] = {
	"base_seconds": 30,
	"factor": 2,
	"max_seconds": 900,
	"jitter_pct": 0.10,
}

# --------------------------------- Queue ---------------------------------- #
_USE_REDIS = _env_bool("USE_REDIS", True)

QUEUE_SETTINGS: dict[str, int | float | str | bool] = {
	"name": "recovery-queue",
	"use_redis": _USE_REDIS,
	"redis_url": REDIS_URL,
	"redis_health_check_timeout": 2.0,
	"poll_timeout_seconds": 5.0,
	# Total deliveries of one job before it is dropped as terminally failed.
	"max_attempts": int(os.getenv("JOB_MAX_ATTEMPTS", "5")),
	"warn_depth": 1000,
	"max_in_memory": 5000,
	# Run the consumer inside the API process. Required for the in-memory queue;
	# off by default with Redis, where `python -m recovery.worker` is the one consumer.
	"embedded_worker": _env_bool("EMBEDDED_WORKER", not _USE_REDIS),
}

# ------------------------------- HTTP surface ----------------------------- #
# Shared secret for the lead administration endpoints. Unset disables the check
# (local development only).
ADMIN_API_TOKEN: str | None = os.getenv("ADMIN_API_TOKEN") or None

# Base used when advertising webhook URLs for each platform.
PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")

__all__ = [
	"DATABASE_URL",
	"REDIS_URL",
	"RECOVERY_SETTINGS",
	"BACKOFF_POLICY",
	"QUEUE_SETTINGS",
	"ADMIN_API_TOKEN",
	"PUBLIC_BASE_URL",
]
