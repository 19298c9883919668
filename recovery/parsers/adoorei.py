"""
Adoorei checkout webhooks.

Every event wraps the order in ``resource``:

    {"event": "order.created",
     "resource": {"status": "pending",
                  "gateway_transaction_id": "...",
                  "customer": {"name" | "first_name"/"last_name", "email", "phone"},
                  "items": [{"name": ...}],
                  "value_total": 197.0,
                  "currency": "BRL",
                  "payment_method": "pix"}}
"""
from typing import Any, Dict, Optional

from recovery.models.schemas.leads import NormalizedLead
from .base import WebhookParser, dig, dig_text, scalar


def _customer_name(resource: Any) -> Optional[str]:
    name = dig_text(resource, "customer", "name")
    if name:
        return name
    parts = [dig_text(resource, "customer", "first_name"), dig_text(resource, "customer", "last_name")]
    joined = " ".join(p for p in parts if p)
    return joined or None


def _product_name(resource: Any) -> Optional[str]:
    return (
        dig_text(resource, "items", 0, "name")
        or dig_text(resource, "products", 0, "name")
        or dig_text(resource, "product", "name")
    )


class AdooreiParser(WebhookParser):
    platform_name = "adoorei"

    def normalize(self, raw: Dict[str, Any]) -> NormalizedLead:
        resource = raw.get("resource") or {}
        total = scalar(dig(resource, "value_total"))
        if total is None:
            total = scalar(dig(resource, "total_price"))
        return NormalizedLead(
            customer_name=_customer_name(resource),
            customer_email=dig_text(resource, "customer", "email"),
            customer_phone=dig_text(resource, "customer", "phone"),
            product_name=_product_name(resource),
            total_value=total,
            currency=dig_text(resource, "currency"),
            payment_method=dig_text(resource, "payment_method"),
            status=dig_text(resource, "status"),
        )
