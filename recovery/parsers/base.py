from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from recovery.models.schemas.leads import NormalizedLead


def dig(payload: Any, *path: str | int) -> Any:
    """Walk nested dicts/lists, returning None as soon as a step is missing."""
    current = payload
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
        elif not isinstance(current, dict):
            return None
        try:
            current = current[step]
        except (KeyError, IndexError):
            return None
    return current


def scalar(value: Any) -> Any:
    """Drop nested structures; a field is either a plain value or absent."""
    if isinstance(value, (dict, list)):
        return None
    return value


def text(value: Any) -> Optional[str]:
    """Render a plain value as a string (phones and codes often arrive as numbers)."""
    value = scalar(value)
    if value is None or isinstance(value, str):
        return value
    return str(value)


def dig_text(payload: Any, *path: str | int) -> Optional[str]:
    return text(dig(payload, *path))


class WebhookParser(ABC):
    platform_name: str = ""

    @abstractmethod
    def normalize(self, raw: Dict[str, Any]) -> NormalizedLead:
        """Map a platform payload onto the NormalizedLead shape."""
        pass
