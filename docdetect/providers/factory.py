"""
Provider factory: turns the configured provider name into the AI caller
handed to the orchestrator.
"""

import json
import logging
from typing import Dict, Optional, Type

from .anthropic_provider import AnthropicProvider
from .base import InferenceProvider
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)


class ProviderFactory:
    """
    Builds inference providers by name and reuses one instance per
    (name, config) pair, so repeated CLI or library calls do not repeat
    keyring lookups.
    """

    _providers: Dict[str, Type[InferenceProvider]] = {}
    _instances: Dict[str, InferenceProvider] = {}

    @classmethod
    def register(cls, name: str, provider_class: Type[InferenceProvider]) -> None:
        """Make provider_class available under `name` (e.g. a self-hosted gateway)."""
        cls._providers[name] = provider_class

    @classmethod
    def create(cls, name: str, config: Optional[Dict] = None) -> InferenceProvider:
        """
        Get the provider for `name` configured with `config`.

        Raises:
            ValueError: Unknown provider name, or a provider that cannot be
                configured (missing API key)
        """
        config = config or {}
        key = f"{name}:{json.dumps(config, sort_keys=True, default=str)}"
        if key in cls._instances:
            return cls._instances[key]

        provider_class = cls._providers.get(name)
        if provider_class is None:
            raise ValueError(
                f"Unknown provider: '{name}'. Choose one of {sorted(cls._providers)}"
            )

        try:
            provider = provider_class(config)
        except ValueError as e:
            logger.error(f"Cannot configure provider '{name}': {e}")
            raise

        cls._instances[key] = provider
        logger.info(f"Inference provider ready: {name} (local={provider.is_local})")
        return provider

    @classmethod
    def clear_cache(cls) -> None:
        """Forget every provider instance built so far."""
        cls._instances.clear()


for _name, _provider_class in (
    ("ollama", OllamaProvider),
    ("openai", OpenAIProvider),
    ("anthropic", AnthropicProvider),
):
    ProviderFactory.register(_name, _provider_class)
