"""
Parser registry: platform name -> WebhookParser.

The classifier only ever talks to the registry, so supporting a new checkout
platform means registering one more parser here (or at startup).
"""
from typing import Any, Dict, List

from recovery.errors import UnsupportedPlatform
from recovery.models.schemas.leads import NormalizedLead
from recovery.utils import get_logger
from .base import WebhookParser
from .generic import GenericParser
from .hotmart import HotmartParser
from .adoorei import AdooreiParser

logger = get_logger(__name__)

class ParserRegistry:
    """Lookup of webhook parsers keyed by lower-cased platform name."""

    def __init__(self, parsers: Dict[str, WebhookParser] | None = None):
        self._parsers: Dict[str, WebhookParser] = {}
        for name, parser in (parsers or {}).items():
            self.register(name, parser)

    def register(self, name: str, parser: WebhookParser) -> None:
        key = name.strip().lower()
        if not key:
            raise ValueError("Platform name must not be empty")
        self._parsers[key] = parser
        logger.debug("Webhook parser registered", platform=key, parser=type(parser).__name__)

    def get(self, platform: str) -> WebhookParser:
        parser = self._parsers.get((platform or "").lower())
        if parser is None:
            logger.warning(
                "No parser for webhook platform",
                platform=platform,
                supported_platforms=self.platforms()
            )
            raise UnsupportedPlatform(platform)
        return parser

    def normalize(self, platform: str, raw: Dict[str, Any]) -> NormalizedLead:
        return self.get(platform).normalize(raw)

    def platforms(self) -> List[str]:
        return sorted(self._parsers)

    def __contains__(self, platform: str) -> bool:
        return (platform or "").lower() in self._parsers


def default_registry() -> ParserRegistry:
    return ParserRegistry({
        "generic": GenericParser(),
        "hotmart": HotmartParser(),
        "adoorei": AdooreiParser(),
    })


__all__ = ["ParserRegistry", "default_registry"]
