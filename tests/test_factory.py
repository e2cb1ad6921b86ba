"""Tests for jotpad.providers.factory."""

from unittest.mock import patch

import pytest

from jotpad.providers import create_provider
from jotpad.providers.llm import (
    AnthropicProvider,
    GeminiProvider,
    OllamaProvider,
    OpenAIProvider,
)


@pytest.mark.parametrize("identifier", [None, "", "local", "ollama", "OLLAMA", "mystery-ai"])
def test_local_and_unknown_ids_give_ollama(identifier):
    provider = create_provider(identifier, "ignored-credential")
    assert isinstance(provider, OllamaProvider)


@pytest.mark.parametrize("identifier,cls", [
    ("openai", OpenAIProvider),
    ("claude", AnthropicProvider),
    ("gemini", GeminiProvider),
])
def test_vendor_ids(identifier, cls):
    assert isinstance(create_provider(identifier, None), cls)


def test_vendor_without_credential_never_touches_network():
    with patch("openai.OpenAI") as client_cls, \
         patch("jotpad.providers.llm.requests.post") as post:
        provider = create_provider("openai", None)
        results = [
            provider.summarize("a"),
            provider.rewrite_and_format("a"),
            provider.format_as_blog_post("a"),
            provider.extract_tasks("a"),
            provider.speech_to_task("a"),
        ]

    assert not any(r.success for r in results)
    client_cls.assert_not_called()
    post.assert_not_called()


def test_credential_passed_to_vendor():
    with patch("openai.OpenAI") as client_cls:
        create_provider("openai", "key123")

    assert client_cls.call_args[1]["api_key"] == "key123"


def test_params_from_configuration():
    provider = create_provider("ollama", params={"ollama": {"model": "mistral", "base_url": "http://gpu:11434"}})
    assert provider.model == "mistral"
    assert provider.base_url == "http://gpu:11434"


def test_params_not_mutated():
    params = {"claude": {"model": "claude-sonnet-4-5"}}
    with patch("anthropic.Anthropic"):
        provider = create_provider("claude", "key", params=params)

    assert provider.model == "claude-sonnet-4-5"
    assert params == {"claude": {"model": "claude-sonnet-4-5"}}


def test_no_caching():
    assert create_provider("ollama") is not create_provider("ollama")
