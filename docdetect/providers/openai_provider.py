"""
OpenAI provider for cloud inference.

Uses the chat completions endpoint in JSON mode so the verdict object comes
back without surrounding prose.
"""

import time
from typing import Dict, Optional

import requests

from .base import CompletionSettings, InferenceProvider
from ..core.errors import InferenceError
from ..utils.logger import logger
from ..utils.secrets import get_api_key


class OpenAIProvider(InferenceProvider):
    """
    OpenAI provider for cloud inference.

    Features:
    - gpt-4o-mini by default (cheapest model that follows the JSON format)
    - JSON mode for structured output
    - Automatic API key retrieval from keyring
    """

    SYSTEM_PROMPT = (
        "You classify documents attached to emails. "
        "You MUST respond with a single valid JSON object and nothing else."
    )

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize OpenAI provider.

        Args:
            config: Provider configuration with:
                - model: Model name (default: gpt-4o-mini)
                - api_key: API key (or retrieved from keyring)
                - base_url: API base URL (for Azure/proxies)
        """
        config = config or {}
        self.model = config.get("model", "gpt-4o-mini")
        self.api_key = config.get("api_key") or get_api_key("openai")
        self.base_url = config.get("base_url", "https://api.openai.com/v1")

        if not self.api_key:
            raise ValueError(
                "OpenAI API key not configured. "
                "Set it via keyring: python -c \"from docdetect.utils.secrets import set_api_key; set_api_key('openai', 'sk-...')\""
            )

    def get_name(self) -> str:
        return "openai"

    @property
    def is_local(self) -> bool:
        return False

    def health_check(self) -> bool:
        """
        Check if OpenAI API is accessible.
        Uses the models endpoint for a lightweight check.
        """
        try:
            response = requests.get(
                f"{self.base_url}/models",
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=10,
            )

            if response.status_code == 401:
                logger.error("OpenAI API key is invalid")
                return False

            if response.status_code == 429:
                logger.warning("OpenAI rate limit hit during health check")
                return True  # API is reachable, just rate limited

            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.warning(f"OpenAI health check failed: {e}")
            return False

    def complete(self, prompt: str, settings: CompletionSettings) -> str:
        """Run one chat completion and return the message content."""
        start_time = time.time()

        try:
            response = requests.post(
                f"{self.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": self.SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    "response_format": {"type": "json_object"},
                    "max_tokens": settings.max_tokens,
                    "temperature": settings.temperature,
                },
                timeout=settings.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise InferenceError("OpenAI request timed out") from e
        except requests.exceptions.RequestException as e:
            raise InferenceError(f"OpenAI request failed: {e}") from e

        if response.status_code == 429:
            raise InferenceError("OpenAI rate limit exceeded")
        if response.status_code >= 400:
            raise InferenceError(f"OpenAI HTTP {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise InferenceError(f"Unexpected OpenAI response shape: {e}") from e

        tokens_used = data.get("usage", {}).get("total_tokens", 0)
        latency_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"OpenAI completion: {tokens_used} tokens in {latency_ms}ms")
        return content or ""
