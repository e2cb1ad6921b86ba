"""
AI providers backed by LLMs: a local Ollama server and three hosted vendors.

Each provider implements a single hook, ``_complete(system, prompt)``, that
performs the vendor-specific request. LLMProvider turns that hook into the
five assistant operations and owns the error policy: nothing raises past
the provider, every failure becomes a failure result.
"""

import logging

import requests

from ..types import ProviderResult, TaskListResult, TaskResult
from .base import (
    build_prompt,
    clean_output,
    get_registry,
    normalize_task_phrase,
    parse_task_lines,
)
from .ollama_utils import ollama_available, ollama_base_url

logger = logging.getLogger(__name__)

# Hosted SDK request timeout (seconds)
VENDOR_TIMEOUT = 60.0


class LLMProvider:
    """
    Shared operation logic for prompt-driven providers.

    Subclasses implement ``_complete`` and, when they need credentials,
    ``_configuration_error``.
    """

    label = "LLM"

    def _complete(self, system: str, prompt: str) -> str:
        """Send one system+user prompt to the backend and return raw text."""
        raise NotImplementedError

    def _configuration_error(self) -> str | None:
        """Describe why the provider cannot make requests, or None if it can."""
        return None

    def _generate(self, operation: str, text: str) -> ProviderResult:
        problem = self._configuration_error()
        if problem:
            return ProviderResult.fail(problem)

        system, prompt = build_prompt(operation, text)
        try:
            raw = self._complete(system, prompt)
        except Exception as e:
            logger.warning("%s %s failed: %s", self.label, operation, e)
            return ProviderResult.fail(f"{self.label} request failed: {e}")

        if not isinstance(raw, str) or not raw.strip():
            logger.warning("%s %s returned an empty response", self.label, operation)
            return ProviderResult.fail(f"{self.label} returned an empty response")
        return ProviderResult.ok(raw)

    def _content(self, operation: str, text: str) -> ProviderResult:
        result = self._generate(operation, text)
        if not result.success:
            return result
        content = clean_output(result.content)
        if not content:
            return ProviderResult.fail(f"{self.label} returned an empty response")
        return ProviderResult.ok(content)

    def summarize(self, text: str) -> ProviderResult:
        """Condense text, preserving key points and structure."""
        return self._content("summarize", text)

    def rewrite_and_format(self, text: str) -> ProviderResult:
        """Improve grammar, clarity and structure."""
        return self._content("rewrite_and_format", text)

    def format_as_blog_post(self, text: str) -> ProviderResult:
        """Restructure into an h2/h3/h4 blog post, keeping every point."""
        return self._content("format_as_blog_post", text)

    def extract_tasks(self, text: str) -> TaskListResult:
        """Extract actionable task lines."""
        result = self._generate("extract_tasks", text)
        if not result.success:
            return TaskListResult(success=False, error=result.error)
        return TaskListResult(success=True, tasks=parse_task_lines(result.content))

    def speech_to_task(self, text: str) -> TaskResult:
        """Normalize a transcript into one task phrase."""
        result = self._generate("speech_to_task", text)
        if not result.success:
            return TaskResult(success=False, error=result.error)
        task = normalize_task_phrase(result.content)
        if not task:
            return TaskResult(success=False, error=f"{self.label} returned no task")
        return TaskResult(success=True, task=task)

    def is_available(self) -> bool:
        return self._configuration_error() is None


class OllamaProvider(LLMProvider):
    """
    Provider using Ollama's local generate API.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    """

    label = "Ollama"

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str | None = None,
        timeout: float = 300.0,
    ):
        self.model = model
        self.base_url = ollama_base_url(base_url)
        self.timeout = timeout

    def _complete(self, system: str, prompt: str) -> str:
        response = requests.post(
            f"{self.base_url}/api/generate",
            json={
                "model": self.model,
                "system": system,
                "prompt": prompt,
                "stream": False,
            },
            timeout=(10, self.timeout),  # (connect, read), generation can be slow
        )
        if not response.ok:
            detail = response.text[:200] if response.text else ""
            raise RuntimeError(
                f"HTTP {response.status_code} from {self.base_url} "
                f"(model={self.model}). {detail}"
            )
        return response.json()["response"]

    def is_available(self) -> bool:
        """Probe the server with a short timeout."""
        return ollama_available(self.base_url)


class _VendorProvider(LLMProvider):
    """
    Hosted vendor provider. The SDK is imported only when a key is given,
    so local-only installs don't need the vendor packages.
    """

    extra = ""

    def __init__(self):
        self._client = None
        self._setup_error: str | None = None

    def _connect(self, api_key: str | None, factory) -> None:
        """Create the SDK client with ``factory()`` if a key is present."""
        if not api_key:
            return
        try:
            self._client = factory()
        except ImportError:
            self._setup_error = (
                f"{self.label} requires the '{self.extra}' library "
                f"(pip install 'jotpad[{self.extra}]')"
            )
            logger.warning(self._setup_error)

    def _configuration_error(self) -> str | None:
        if self._setup_error:
            return self._setup_error
        if self._client is None:
            return f"{self.label} API key not configured"
        return None


class OpenAIProvider(_VendorProvider):
    """
    Provider using OpenAI's chat completions API with a user-supplied key.

    Default model is gpt-4.1-mini. Without a key every operation fails
    immediately and no client is created.
    """

    label = "OpenAI"
    extra = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4.1-mini",
        base_url: str | None = None,
        max_tokens: int = 2048,
    ):
        super().__init__()
        self.model = model
        self.max_tokens = max_tokens

        def client():
            from openai import OpenAI
            return OpenAI(api_key=api_key, base_url=base_url, timeout=VENDOR_TIMEOUT)

        self._connect(api_key, client)

        # GPT-5+ and reasoning models use a different API surface:
        # - max_completion_tokens instead of max_tokens
        # - temperature must be omitted (only default=1 supported)
        self._new_api = self.model.startswith(("gpt-5", "o3", "o4"))

    def _completion_kwargs(self) -> dict:
        """Return model-appropriate kwargs for token limit and temperature."""
        if self._new_api:
            return {"max_completion_tokens": self.max_tokens}
        return {"max_tokens": self.max_tokens, "temperature": 0.3}

    def _complete(self, system: str, prompt: str) -> str:
        response = self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            **self._completion_kwargs(),
        )
        return response.choices[0].message.content


class AnthropicProvider(_VendorProvider):
    """
    Provider using Anthropic's Claude messages API with a user-supplied key.

    Default model is claude-haiku-4-5, the best quality/cost trade-off for
    short editing tasks.
    """

    label = "Claude"
    extra = "claude"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-haiku-4-5-20251001",
        base_url: str | None = None,
        max_tokens: int = 2048,
    ):
        super().__init__()
        self.model = model
        self.max_tokens = max_tokens

        def client():
            from anthropic import Anthropic
            return Anthropic(api_key=api_key, base_url=base_url, timeout=VENDOR_TIMEOUT)

        self._connect(api_key, client)

    def _complete(self, system: str, prompt: str) -> str:
        response = self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )


class GeminiProvider(_VendorProvider):
    """
    Provider using Google's Gemini API (Google AI Studio key).

    Default model is gemini-2.5-flash.
    """

    label = "Gemini"
    extra = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gemini-2.5-flash",
        base_url: str | None = None,
        max_tokens: int = 2048,
    ):
        super().__init__()
        self.model = model
        self.max_tokens = max_tokens

        def client():
            from google import genai
            from google.genai import types
            http_options = types.HttpOptions(base_url=base_url) if base_url else None
            return genai.Client(api_key=api_key, http_options=http_options)

        self._connect(api_key, client)

    def _complete(self, system: str, prompt: str) -> str:
        from google.genai import types

        response = self._client.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=system,
                max_output_tokens=self.max_tokens,
            ),
        )
        return response.text


# Register providers
_registry = get_registry()
_registry.register("ollama", OllamaProvider)
_registry.register("openai", OpenAIProvider)
_registry.register("claude", AnthropicProvider)
_registry.register("gemini", GeminiProvider)
