"""
Inference providers for docdetect's Stage 3.

Every provider implements InferenceProvider.complete(prompt, settings) -> str
and can be passed directly to the orchestrator as its AI caller:
- Ollama: Local inference (free, keeps text on-host)
- OpenAI: gpt-4o-mini and friends (cloud)
- Anthropic: Claude models (cloud)

Use the ProviderFactory for creating provider instances:
    from docdetect.providers import ProviderFactory
    provider = ProviderFactory.create("ollama", config)
"""

from .anthropic_provider import AnthropicProvider
from .base import CompletionSettings, InferenceProvider
from .factory import ProviderFactory
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "CompletionSettings",
    "InferenceProvider",
    "ProviderFactory",
    "OllamaProvider",
    "OpenAIProvider",
    "AnthropicProvider",
]
