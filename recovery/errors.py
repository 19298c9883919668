"""Domain errors for webhook intake and reconciliation.

Each error carries the HTTP status the API maps it to and whether the failure
is worth retrying (by the webhook sender for intake errors, by the queue for
worker errors).
"""
from __future__ import annotations


class RecoveryError(Exception):
    status_code: int = 500
    retryable: bool = False
    error_code: str = "RECOVERY_ERROR"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class MissingTransactionId(RecoveryError):
    status_code = 400
    error_code = "MISSING_TRANSACTION_ID"

    def __init__(self) -> None:
        super().__init__("Webhook payload has no transaction identifier")


class UnsupportedPlatform(RecoveryError):
    status_code = 400
    error_code = "UNSUPPORTED_PLATFORM"

    def __init__(self, platform: str) -> None:
        super().__init__(f"Unsupported webhook platform: {platform}")
        self.platform = platform


class SchedulingUnavailable(RecoveryError):
    status_code = 503
    retryable = True
    error_code = "SCHEDULING_UNAVAILABLE"


class FastFlagUnavailable(RecoveryError):
    status_code = 503
    retryable = True
    error_code = "FAST_FLAG_UNAVAILABLE"


class LeadInsertFailed(RecoveryError):
    status_code = 500
    retryable = True
    error_code = "LEAD_INSERT_FAILED"


__all__ = [
    "RecoveryError",
    "MissingTransactionId",
    "UnsupportedPlatform",
    "SchedulingUnavailable",
    "FastFlagUnavailable",
    "LeadInsertFailed",
]
