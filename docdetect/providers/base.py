"""
Base provider interface for Stage 3 inference.

A provider turns a prompt into raw model text. It knows nothing about
policies or verdicts; parsing happens in the AI classifier gateway.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CompletionSettings:
    """
    Deterministic generation settings for classification calls.

    Attributes:
        temperature: Sampling temperature (0 for reproducible answers)
        max_tokens: Output token budget, a verdict needs very little
        timeout: Per-request timeout in seconds
    """
    temperature: float = 0.0
    max_tokens: int = 150
    timeout: float = 30.0


class InferenceProvider(ABC):
    """
    Abstract base class for inference providers (model agnostic).

    Implementations raise InferenceError on transport or API failures and
    return the model's text otherwise, even if it is not valid JSON.
    Instances are callable, so a provider can be passed directly as the
    orchestrator's ai_caller.
    """

    @abstractmethod
    def complete(self, prompt: str, settings: CompletionSettings) -> str:
        """
        Run one completion.

        Args:
            prompt: Fully rendered prompt
            settings: Generation settings

        Returns:
            Raw model output text

        Raises:
            InferenceError: On timeout, rate limit or HTTP error
        """

    @abstractmethod
    def health_check(self) -> bool:
        """Check if the provider service is available."""

    @abstractmethod
    def get_name(self) -> str:
        """Return provider identifier for logging and metrics."""

    @property
    @abstractmethod
    def is_local(self) -> bool:
        """Whether provider runs locally (no cloud costs)."""

    def __call__(self, prompt: str, settings: CompletionSettings) -> str:
        return self.complete(prompt, settings)
