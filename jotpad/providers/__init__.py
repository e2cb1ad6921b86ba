"""AI providers: capability protocol, concrete backends, and factory."""

from .base import AIProvider, ProviderRegistry, get_registry
from .factory import create_provider

__all__ = ["AIProvider", "ProviderRegistry", "create_provider", "get_registry"]
