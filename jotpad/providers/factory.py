"""
Provider factory: map a provider id and optional credential to a provider.
"""

from typing import Optional

from ..types import LOCAL_PROVIDER, normalize_provider_id
from .base import AIProvider, get_registry


def create_provider(
    identifier: Optional[str],
    credential: Optional[str] = None,
    params: Optional[dict[str, dict]] = None,
) -> AIProvider:
    """
    Build the provider for ``identifier``.

    Unknown, empty, "local" and "ollama" ids all yield the local Ollama
    provider, which ignores ``credential``. Vendor ids yield that vendor's
    provider constructed with ``credential``; without one, every operation
    of the returned provider fails fast without network access.

    Args:
        identifier: Provider id (ollama, openai, claude, gemini)
        credential: User-supplied API key for a vendor
        params: Provider id -> extra constructor kwargs (model, base_url)
            from configuration

    Returns:
        A new provider instance (no caching)
    """
    name = normalize_provider_id(identifier)
    kwargs = dict((params or {}).get(name, {}))
    if name != LOCAL_PROVIDER:
        kwargs["api_key"] = credential
    return get_registry().create(name, kwargs)
