"""
Hotmart purchase webhooks.

Buyer phone arrives split into area code and number; it is joined only when
the local-code marker is present.
"""
from typing import Any, Dict, Optional

from recovery.models.schemas.leads import NormalizedLead
from .base import WebhookParser, dig, dig_text, scalar, text


def _buyer_phone(raw: Dict[str, Any]) -> Optional[str]:
    if not dig(raw, "buyer", "phone_local_code"):
        return None
    area = dig_text(raw, "buyer", "phone_area_code") or ""
    number = dig_text(raw, "buyer", "phone_number") or ""
    return f"{area}{number}" or None


class HotmartParser(WebhookParser):
    platform_name = "hotmart"

    def normalize(self, raw: Dict[str, Any]) -> NormalizedLead:
        return NormalizedLead(
            customer_name=dig_text(raw, "buyer", "name"),
            customer_email=dig_text(raw, "buyer", "email"),
            customer_phone=_buyer_phone(raw),
            product_name=dig_text(raw, "product", "name"),
            total_value=scalar(dig(raw, "purchase", "price", "value")),
            currency=dig_text(raw, "purchase", "price", "currency_code"),
            payment_method=dig_text(raw, "purchase", "payment", "type"),
            status=text(raw.get("event")),
        )
