"""Tests for jotpad.providers: prompt handling and the four LLM backends."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests

from jotpad.providers.base import (
    MAX_INPUT_CHARS,
    SYSTEM_PROMPTS,
    AIProvider,
    build_prompt,
    clean_output,
    get_registry,
    normalize_task_phrase,
    parse_task_lines,
    strip_code_fence,
    strip_preamble,
)
from jotpad.providers.llm import (
    AnthropicProvider,
    GeminiProvider,
    OllamaProvider,
    OpenAIProvider,
)
from jotpad.providers.ollama_utils import (
    PROBE_TIMEOUT,
    ollama_available,
    ollama_base_url,
    ollama_has_model,
    ollama_list_models,
)


def ollama_response(text, status_code=200):
    resp = MagicMock()
    resp.ok = status_code < 400
    resp.status_code = status_code
    resp.text = "" if resp.ok else "internal error"
    resp.json.return_value = {"response": text}
    return resp


def openai_completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def claude_message(*texts):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=t) for t in texts])


class TestPrompts:
    def test_prompt_per_operation(self):
        system, prompt = build_prompt("summarize", "Meeting notes")
        assert system == SYSTEM_PROMPTS["summarize"]
        assert prompt.endswith("Meeting notes")

    def test_speech_prompt_labels_transcript(self):
        _, prompt = build_prompt("speech_to_task", "um call mom")
        assert prompt.startswith("Transcript:")

    def test_blog_prompt_fixes_heading_levels(self):
        system = SYSTEM_PROMPTS["format_as_blog_post"]
        assert "<h2>" in system and "<h3>" in system and "<h4>" in system

    def test_long_input_truncated(self):
        text = "x" * (MAX_INPUT_CHARS + 500)
        _, prompt = build_prompt("summarize", text)
        assert prompt.count("x") == MAX_INPUT_CHARS


class TestOutputCleanup:
    @pytest.mark.parametrize("raw", [
        "Here is the summary: The plan is ready.",
        "Here's a summary of the text: The plan is ready.",
        "Summary: The plan is ready.",
        "Sure! Here you go: The plan is ready.",
    ])
    def test_strip_preamble(self, raw):
        assert strip_preamble(raw) == "The plan is ready."

    def test_strip_code_fence(self):
        assert strip_code_fence("```html\n<h2>Intro</h2>\n```") == "<h2>Intro</h2>"

    def test_clean_output_leaves_plain_text(self):
        assert clean_output("  Plain answer.  ") == "Plain answer."

    def test_parse_task_lines_strips_markup(self):
        raw = "Tasks:\n1. Buy milk\n- [ ] Call Bob\n\n* [x] Send invoice\n2) Book flights"
        assert parse_task_lines(raw) == ["Buy milk", "Call Bob", "Send invoice", "Book flights"]

    def test_parse_task_lines_empty(self):
        assert parse_task_lines("\n\n") == []

    def test_normalize_task_phrase(self):
        assert normalize_task_phrase('Task: "Call the dentist"\nExtra line') == "Call the dentist"


class TestOllamaProvider:
    def test_summarize_posts_generate_request(self):
        with patch("jotpad.providers.llm.requests.post") as post:
            post.return_value = ollama_response("Short version.")
            result = OllamaProvider(base_url="http://ollama:11434").summarize("Long text")

        assert result.success
        assert result.content == "Short version."
        url = post.call_args[0][0]
        payload = post.call_args[1]["json"]
        assert url == "http://ollama:11434/api/generate"
        assert payload["model"] == "llama3.2"
        assert payload["stream"] is False
        assert payload["system"] == SYSTEM_PROMPTS["summarize"]
        assert "Long text" in payload["prompt"]

    def test_connection_error_is_failure_result(self):
        with patch("jotpad.providers.llm.requests.post") as post:
            post.side_effect = requests.ConnectionError("refused")
            result = OllamaProvider().summarize("text")

        assert not result.success
        assert "refused" in result.error

    def test_http_error_is_failure_result(self):
        with patch("jotpad.providers.llm.requests.post") as post:
            post.return_value = ollama_response("", status_code=500)
            result = OllamaProvider().rewrite_and_format("text")

        assert not result.success
        assert "HTTP 500" in result.error

    def test_empty_response_is_failure(self):
        with patch("jotpad.providers.llm.requests.post") as post:
            post.return_value = ollama_response("   ")
            result = OllamaProvider().format_as_blog_post("text")

        assert not result.success

    def test_malformed_response_is_failure(self):
        resp = ollama_response("")
        resp.json.return_value = {"unexpected": True}
        with patch("jotpad.providers.llm.requests.post", return_value=resp):
            result = OllamaProvider().summarize("text")

        assert not result.success

    def test_extract_tasks(self):
        with patch("jotpad.providers.llm.requests.post") as post:
            post.return_value = ollama_response("1. Buy milk\n2. Call Bob\n")
            result = OllamaProvider().extract_tasks("We need milk and Bob wants a call")

        assert result.success
        assert result.tasks == ["Buy milk", "Call Bob"]

    def test_extract_tasks_failure(self):
        with patch("jotpad.providers.llm.requests.post", side_effect=requests.Timeout("slow")):
            result = OllamaProvider().extract_tasks("text")

        assert not result.success
        assert result.tasks == []

    def test_speech_to_task(self):
        with patch("jotpad.providers.llm.requests.post") as post:
            post.return_value = ollama_response('"Pick up the dry cleaning"')
            result = OllamaProvider().speech_to_task("uh I need to pick up the dry cleaning")

        assert result.success
        assert result.task == "Pick up the dry cleaning"

    def test_base_url_from_env(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_HOST", "10.0.0.5:11434")
        assert OllamaProvider().base_url == "http://10.0.0.5:11434"

    def test_is_available_uses_bounded_check(self):
        with patch("jotpad.providers.ollama_utils.requests.get") as get:
            get.return_value = MagicMock(ok=True)
            assert OllamaProvider(base_url="http://ollama:11434").is_available()

        get.assert_called_once_with("http://ollama:11434/api/tags", timeout=PROBE_TIMEOUT)

    def test_is_available_false_on_timeout(self):
        with patch("jotpad.providers.ollama_utils.requests.get", side_effect=requests.Timeout()):
            assert not OllamaProvider().is_available()


class TestOllamaUtils:
    def test_default_url(self):
        assert ollama_base_url() == "http://localhost:11434"

    def test_explicit_url_wins(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_HOST", "elsewhere:1")
        assert ollama_base_url("http://mine:2/") == "http://mine:2"

    def test_list_models(self):
        resp = MagicMock()
        resp.json.return_value = {"models": [{"name": "llama3.2:latest"}]}
        with patch("jotpad.providers.ollama_utils.requests.get", return_value=resp):
            assert ollama_list_models("http://x") == ["llama3.2:latest"]

    def test_list_models_unreachable(self):
        with patch("jotpad.providers.ollama_utils.requests.get",
                   side_effect=requests.ConnectionError()):
            assert ollama_list_models("http://x") == []

    @pytest.mark.parametrize("model,installed", [
        ("llama3.2", True),
        ("llama3.2:latest", True),
        ("mistral", False),
    ])
    def test_has_model(self, model, installed):
        resp = MagicMock()
        resp.json.return_value = {"models": [{"name": "llama3.2:latest"}]}
        with patch("jotpad.providers.ollama_utils.requests.get", return_value=resp):
            assert ollama_has_model("http://x", model) is installed

    def test_available_false_on_error_status(self):
        with patch("jotpad.providers.ollama_utils.requests.get",
                   return_value=MagicMock(ok=False)):
            assert not ollama_available("http://x")


class TestOpenAIProvider:
    def test_missing_key_fails_fast_without_client(self):
        with patch("openai.OpenAI") as client_cls:
            provider = OpenAIProvider(api_key=None)
            result = provider.summarize("text")

        client_cls.assert_not_called()
        assert not result.success
        assert result.error == "OpenAI API key not configured"
        assert not provider.is_available()

    def test_missing_library_is_configuration_failure(self):
        with patch.dict("sys.modules", {"openai": None}):
            provider = OpenAIProvider(api_key="key123")
            result = provider.summarize("text")

        assert not result.success
        assert "'openai' library" in result.error
        assert "jotpad[openai]" in result.error
        assert not provider.is_available()

    def test_summarize(self):
        with patch("openai.OpenAI") as client_cls:
            client = client_cls.return_value
            client.chat.completions.create.return_value = openai_completion(
                "Here is the summary: Key points."
            )
            provider = OpenAIProvider(api_key="key123")
            result = provider.summarize("text")

        assert result.success
        assert result.content == "Key points."
        kwargs = client.chat.completions.create.call_args[1]
        assert kwargs["model"] == "gpt-4.1-mini"
        assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPTS["summarize"]}
        assert kwargs["max_tokens"] == 2048
        assert provider.is_available()

    def test_new_models_use_completion_tokens(self):
        with patch("openai.OpenAI") as client_cls:
            client = client_cls.return_value
            client.chat.completions.create.return_value = openai_completion("ok")
            OpenAIProvider(api_key="key123", model="gpt-5-mini").summarize("text")

        kwargs = client.chat.completions.create.call_args[1]
        assert "max_completion_tokens" in kwargs
        assert "temperature" not in kwargs

    def test_sdk_error_is_failure_result(self):
        with patch("openai.OpenAI") as client_cls:
            client_cls.return_value.chat.completions.create.side_effect = RuntimeError("401")
            result = OpenAIProvider(api_key="bad").rewrite_and_format("text")

        assert not result.success
        assert "401" in result.error

    def test_null_content_is_failure(self):
        with patch("openai.OpenAI") as client_cls:
            client_cls.return_value.chat.completions.create.return_value = openai_completion(None)
            result = OpenAIProvider(api_key="key").summarize("text")

        assert not result.success


class TestAnthropicProvider:
    def test_missing_key(self):
        with patch("anthropic.Anthropic") as client_cls:
            result = AnthropicProvider().extract_tasks("text")

        client_cls.assert_not_called()
        assert not result.success
        assert result.error == "Claude API key not configured"

    def test_extract_tasks(self):
        with patch("anthropic.Anthropic") as client_cls:
            client = client_cls.return_value
            client.messages.create.return_value = claude_message("- Buy milk\n", "- Call Bob")
            result = AnthropicProvider(api_key="key").extract_tasks("text")

        assert result.tasks == ["Buy milk", "Call Bob"]
        kwargs = client.messages.create.call_args[1]
        assert kwargs["system"] == SYSTEM_PROMPTS["extract_tasks"]
        assert kwargs["model"] == "claude-haiku-4-5-20251001"


class TestGeminiProvider:
    def test_missing_key(self):
        with patch("google.genai.Client") as client_cls:
            result = GeminiProvider().speech_to_task("text")

        client_cls.assert_not_called()
        assert not result.success
        assert result.error == "Gemini API key not configured"

    def test_missing_library(self):
        with patch.dict("sys.modules", {"google.genai": None}):
            result = GeminiProvider(api_key="key").summarize("text")

        assert not result.success
        assert "jotpad[gemini]" in result.error

    def test_speech_to_task(self):
        with patch("google.genai.Client") as client_cls:
            client = client_cls.return_value
            client.models.generate_content.return_value = SimpleNamespace(text='"Call the dentist"')
            result = GeminiProvider(api_key="key").speech_to_task("remind me to call the dentist")

        assert result.task == "Call the dentist"
        kwargs = client.models.generate_content.call_args[1]
        assert kwargs["model"] == "gemini-2.5-flash"
        assert kwargs["config"].system_instruction == SYSTEM_PROMPTS["speech_to_task"]


class TestRegistry:
    def test_registered_ids(self):
        assert set(get_registry().list_providers()) >= {"ollama", "openai", "claude", "gemini"}

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown AI provider"):
            get_registry().create("nope")

    def test_name_of(self):
        assert get_registry().name_of(OllamaProvider()) == "ollama"

    @pytest.mark.parametrize("cls", [OllamaProvider, OpenAIProvider, AnthropicProvider, GeminiProvider])
    def test_providers_satisfy_protocol(self, cls):
        assert isinstance(cls(), AIProvider)
