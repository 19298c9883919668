"""
Generic checkout payload: the shape documented for stores without a dedicated parser.

    {"event_type": "ABANDONED_CART",
     "customer": {"name", "email", "phone"},
     "product": {"name"},
     "transaction": {"value", "currency", "payment_method"}}
"""
from typing import Any, Dict

from recovery.models.schemas.leads import NormalizedLead
from .base import WebhookParser, dig, dig_text, scalar, text


class GenericParser(WebhookParser):
    platform_name = "generic"

    def normalize(self, raw: Dict[str, Any]) -> NormalizedLead:
        return NormalizedLead(
            customer_name=dig_text(raw, "customer", "name"),
            customer_email=dig_text(raw, "customer", "email"),
            customer_phone=dig_text(raw, "customer", "phone"),
            product_name=dig_text(raw, "product", "name"),
            total_value=scalar(dig(raw, "transaction", "value")),
            currency=dig_text(raw, "transaction", "currency"),
            payment_method=dig_text(raw, "transaction", "payment_method"),
            status=text(raw.get("event_type")),
        )
