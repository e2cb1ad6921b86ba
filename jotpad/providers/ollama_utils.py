"""
Shared Ollama utilities: endpoint resolution and availability check.
"""

import logging
import os

import requests

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"

# The availability check must never hang the caller; expiry counts as "unavailable"
PROBE_TIMEOUT = 2.0


def ollama_base_url(explicit: str | None = None) -> str:
    """Resolve the Ollama endpoint: explicit value, then OLLAMA_HOST, then default.

    OLLAMA_HOST may be given without a scheme (``127.0.0.1:11434``), as the
    Ollama CLI accepts it.
    """
    url = explicit or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_URL
    if "://" not in url:
        url = f"http://{url}"
    return url.rstrip("/")


def ollama_list_models(base_url: str, timeout: float = PROBE_TIMEOUT) -> list[str]:
    """Return installed model names, or an empty list if Ollama is unreachable."""
    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=timeout)
        resp.raise_for_status()
        return [m["name"] for m in resp.json().get("models", [])]
    except (requests.RequestException, ValueError, KeyError, TypeError) as e:
        logger.debug("Ollama not reachable at %s: %s", base_url, e)
        return []


def ollama_available(base_url: str, timeout: float = PROBE_TIMEOUT) -> bool:
    """Liveness check with a short bounded wait.

    Any error, non-success status or timeout means unavailable.
    """
    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=timeout)
    except requests.RequestException as e:
        logger.debug("Ollama availability check failed at %s: %s", base_url, e)
        return False
    return resp.ok


def ollama_has_model(base_url: str, model: str) -> bool:
    """Check if a model is installed; Ollama lists models as "name:tag"."""
    installed = set(ollama_list_models(base_url))
    bare = model.split(":")[0]
    return bool(installed & {model, f"{model}:latest", bare, f"{bare}:latest"})
