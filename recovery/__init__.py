"""Cart and payment recovery service.

Webhook intake, delayed payment reconciliation and the recovery lead store.
"""

__all__: list[str] = []
