"""
Unit tests for the provider factory.
"""

from unittest.mock import patch

import pytest

from docdetect.providers.base import CompletionSettings, InferenceProvider
from docdetect.providers.factory import ProviderFactory
from docdetect.providers.ollama_provider import OllamaProvider


class EchoProvider(InferenceProvider):
    def __init__(self, config=None):
        self.config = config or {}

    def complete(self, prompt, settings):
        return prompt

    def health_check(self):
        return True

    def get_name(self):
        return "echo"

    @property
    def is_local(self):
        return True


@pytest.fixture
def echo_registered():
    ProviderFactory.register("echo", EchoProvider)
    yield
    ProviderFactory._providers.pop("echo", None)


class TestProviderFactory:
    """Tests for ProviderFactory."""

    @pytest.mark.parametrize("name", ["ollama", "openai", "anthropic"])
    def test_builtin_providers_registered(self, name):
        assert name in ProviderFactory._providers

    def test_create_ollama(self):
        provider = ProviderFactory.create("ollama", {"model": "mistral"})

        assert isinstance(provider, OllamaProvider)
        assert provider.model == "mistral"

    def test_instances_cached_per_config(self):
        first = ProviderFactory.create("ollama", {"model": "llama3"})

        assert ProviderFactory.create("ollama", {"model": "llama3"}) is first
        assert ProviderFactory.create("ollama", {"model": "mistral"}) is not first

    def test_clear_cache(self):
        first = ProviderFactory.create("ollama")
        ProviderFactory.clear_cache()

        assert ProviderFactory.create("ollama") is not first

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            ProviderFactory.create("gemini")

    @patch("docdetect.utils.secrets.keyring")
    def test_missing_api_key_propagates(self, mock_keyring):
        mock_keyring.get_password.return_value = None

        with pytest.raises(ValueError, match="API key"):
            ProviderFactory.create("openai", {"api_key": ""})

    def test_registered_provider(self, echo_registered):
        provider = ProviderFactory.create("echo", {"prefix": ">"})

        assert provider.config == {"prefix": ">"}
        assert provider("hello", CompletionSettings()) == "hello"
