"""
Base provider protocol, prompts, and registry.

AIProvider defines the capability interface every AI backend implements.
Using Protocol for structural subtyping - no explicit inheritance required.

Prompts are shared by all backends: the meaning of each operation is fixed
system-wide, only the transport differs.
"""

import re
from typing import Protocol, runtime_checkable

from ..types import ProviderResult, TaskListResult, TaskResult


# Inputs beyond this are truncated before being sent to any backend
MAX_INPUT_CHARS = 50_000


# -----------------------------------------------------------------------------
# Capability interface
# -----------------------------------------------------------------------------

@runtime_checkable
class AIProvider(Protocol):
    """
    AI assistant capabilities over user-selected text.

    Implementations never raise: transport errors, non-success statuses and
    malformed responses are all reported as failure results.

    Example implementation:
        class EchoProvider:
            def summarize(self, text: str) -> ProviderResult:
                return ProviderResult.ok(text[:200])
            ...
    """

    def summarize(self, text: str) -> ProviderResult:
        """Condense text, preserving key points and structure."""
        ...

    def rewrite_and_format(self, text: str) -> ProviderResult:
        """Improve grammar, clarity and structure without changing meaning."""
        ...

    def format_as_blog_post(self, text: str) -> ProviderResult:
        """
        Restructure text into a blog post.

        Uses a fixed heading hierarchy (h2 section, h3 subsection, h4
        sub-subsection) and turns enumerable content into lists. Every
        original point is preserved; structure is added, content is not
        dropped.
        """
        ...

    def extract_tasks(self, text: str) -> TaskListResult:
        """
        Extract actionable items.

        Returns:
            One task per entry, with list markup and numbering stripped
        """
        ...

    def speech_to_task(self, text: str) -> TaskResult:
        """Normalize a speech transcript into one imperative task phrase."""
        ...

    def is_available(self) -> bool:
        """True if the backend can be used right now."""
        ...


# -----------------------------------------------------------------------------
# Prompts
# -----------------------------------------------------------------------------

OPERATIONS = (
    "summarize",
    "rewrite_and_format",
    "format_as_blog_post",
    "extract_tasks",
    "speech_to_task",
)

SYSTEM_PROMPTS = {
    "summarize": """Summarize the content the user provides.

Condense it while maintaining the key points and the overall structure.

Begin with the subject directly - do not start with meta-phrases like "Here is a summary" or "This text describes".

Respond with the summary only.""",

    "rewrite_and_format": """Rewrite and format the content the user provides so it is clear, well-structured and professional.

Improve grammar, readability and organization. Keep the meaning, facts and voice of the original.

Respond with the rewritten content only.""",

    "format_as_blog_post": """Format the content the user provides as a blog post in HTML.

Rules:
- Use <h2> for sections, <h3> for subsections and <h4> for sub-subsections. Do not use other heading levels.
- Convert enumerable content (steps, options, examples) into <ul> or <ol> lists.
- Wrap prose in <p> elements; use <strong> and <em> for emphasis.
- Preserve EVERY point, fact and example from the original. Add structure only; never drop or shorten content.

Respond with the HTML only, without a surrounding document or code fences.""",

    "extract_tasks": """Extract actionable tasks from the content the user provides.

Return only the task items, one per line, without numbers, bullet points or checkboxes.
Write each task as a short imperative phrase. If there are no actionable tasks, return nothing.""",

    "speech_to_task": """Convert the speech transcript the user provides into a single clear, actionable task.

Write one short imperative phrase, for example "Call the dentist to book a cleaning".

Respond with the task only, without quotes or explanation.""",
}

_PROMPT_LABELS = {
    "summarize": "Content",
    "rewrite_and_format": "Content",
    "format_as_blog_post": "Content",
    "extract_tasks": "Content",
    "speech_to_task": "Transcript",
}


def truncate_input(text: str) -> str:
    """Bound the payload sent to a backend."""
    return text[:MAX_INPUT_CHARS] if len(text) > MAX_INPUT_CHARS else text


def build_prompt(operation: str, text: str) -> tuple[str, str]:
    """
    Build the (system, user) prompt pair for an operation.

    Args:
        operation: One of OPERATIONS
        text: The user-selected text

    Returns:
        Tuple of system prompt and user prompt
    """
    system = SYSTEM_PROMPTS[operation]
    label = _PROMPT_LABELS[operation]
    return system, f"{label}:\n{truncate_input(text)}"


# -----------------------------------------------------------------------------
# Output post-processing
# -----------------------------------------------------------------------------

_PREAMBLES = [
    r"^here is (a|the) (concise |brief |short )?(summary|rewritten (version|content)|formatted (version|content)|blog post|task)[^:\n]*:\s*",
    r"^here's (a|the) (summary|rewritten version|blog post|task)[^:\n]*:\s*",
    r"^(summary|formatted content|rewritten content|task|tasks):\s*",
    r"^sure[,!.]?\s+here[^:\n]*:\s*",
]

_CODE_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n(.*?)\n?```\s*$", re.DOTALL)

# Bullets, numbering and checkboxes at the start of an extracted task line
_LIST_MARKER_RE = re.compile(
    r"^\s*(?:[-*•+]\s+|\d+[.)]\s+)?(?:\[[ xX]?\]\s*)?"
)


def strip_preamble(text: str) -> str:
    """
    Remove common LLM lead-ins from generated text.

    Many models add introductory phrases despite instructions not to.
    """
    result = text.strip()
    for pattern in _PREAMBLES:
        result = re.sub(pattern, "", result, flags=re.IGNORECASE)
    return result.strip()


def strip_code_fence(text: str) -> str:
    """Unwrap output that a model enclosed in a markdown code fence."""
    match = _CODE_FENCE_RE.match(text.strip())
    if match:
        return match.group(1).strip()
    return text.strip()


def clean_output(text: str) -> str:
    """Normalize raw model output for content-producing operations."""
    return strip_preamble(strip_code_fence(text))


def parse_task_lines(text: str) -> list[str]:
    """
    Split model output into task strings.

    Strips list markup and numbering, drops blank lines and header lines
    such as "Tasks:".
    """
    tasks = []
    for line in strip_code_fence(text).splitlines():
        line = _LIST_MARKER_RE.sub("", line).strip()
        if not line:
            continue
        if line.endswith(":") and line.lower().rstrip(":").strip() in ("tasks", "task list", "action items"):
            continue
        tasks.append(line)
    return tasks


def normalize_task_phrase(text: str) -> str:
    """Reduce model output to a single task phrase."""
    for line in clean_output(text).splitlines():
        line = _LIST_MARKER_RE.sub("", line).strip()
        if line:
            return line.strip("\"'“” ").strip()
    return ""


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating AI providers.

    Providers are registered by id so configuration and user settings can
    name a provider rather than requiring code changes.

    Example:
        registry = get_registry()
        provider = registry.create("openai", {"api_key": "sk-..."})
    """

    def __init__(self):
        self._providers: dict[str, type] = {}
        self._loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Import the concrete provider module so it registers itself."""
        if self._loaded:
            return
        self._loaded = True
        from . import llm  # noqa: F401

    def register(self, name: str, provider_class: type) -> None:
        """Register a provider class under an id."""
        self._providers[name] = provider_class

    def create(self, name: str, params: dict | None = None) -> AIProvider:
        """
        Create a provider instance.

        Raises:
            ValueError: If no provider is registered under ``name``
        """
        self._ensure_providers_loaded()
        if name not in self._providers:
            available = ", ".join(self._providers.keys()) or "none"
            raise ValueError(
                f"Unknown AI provider: '{name}'. "
                f"Available providers: {available}."
            )
        return self._providers[name](**(params or {}))

    def name_of(self, provider: object) -> str | None:
        """Registered id for a provider instance, if any."""
        self._ensure_providers_loaded()
        for name, cls in self._providers.items():
            if type(provider) is cls:
                return name
        return None

    def list_providers(self) -> list[str]:
        """List registered provider ids."""
        self._ensure_providers_loaded()
        return list(self._providers.keys())


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
