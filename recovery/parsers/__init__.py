"""
Webhook parsers package.
Exports the per-platform parsers and the registry that dispatches to them.
"""
from .base import WebhookParser
from .generic import GenericParser
from .hotmart import HotmartParser
from .adoorei import AdooreiParser
from .registry import ParserRegistry, default_registry

__all__ = [
    "WebhookParser",
    "GenericParser",
    "HotmartParser",
    "AdooreiParser",
    "ParserRegistry",
    "default_registry",
]
