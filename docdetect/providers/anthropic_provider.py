"""
Anthropic provider for Claude inference.

Uses the Messages API. Claude has no JSON mode, so the system prompt asks
for a bare JSON object and the gateway strips any fence it adds anyway.
"""

import time
from typing import Dict, Optional

import requests

from .base import CompletionSettings, InferenceProvider
from ..core.errors import InferenceError
from ..utils.logger import logger
from ..utils.secrets import get_api_key

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(InferenceProvider):
    """
    Anthropic provider for Claude inference.

    Cost Optimization:
    - Uses claude-3-haiku by default (cheapest Claude model)
    - Output budget from CompletionSettings (small for a verdict)
    """

    SYSTEM_PROMPT = (
        "You classify documents attached to emails. "
        "You MUST respond with valid JSON only, no other text."
    )

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize Anthropic provider.

        Args:
            config: Provider configuration with:
                - model: Model name (default: claude-3-haiku-20240307)
                - api_key: API key (or retrieved from keyring)
                - base_url: API base URL
        """
        config = config or {}
        self.model = config.get("model", "claude-3-haiku-20240307")
        self.api_key = config.get("api_key") or get_api_key("anthropic")
        self.base_url = config.get("base_url", "https://api.anthropic.com/v1")

        if not self.api_key:
            raise ValueError(
                "Anthropic API key not configured. "
                "Set it via keyring: python -c \"from docdetect.utils.secrets import set_api_key; set_api_key('anthropic', 'sk-ant-...')\""
            )

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def get_name(self) -> str:
        return "anthropic"

    @property
    def is_local(self) -> bool:
        return False

    def health_check(self) -> bool:
        """
        Check if Anthropic API is accessible.
        Anthropic has no health endpoint, so this sends a 1-token request.
        """
        try:
            response = requests.post(
                f"{self.base_url}/messages",
                headers=self._headers(),
                json={
                    "model": self.model,
                    "max_tokens": 1,
                    "messages": [{"role": "user", "content": "hi"}],
                },
                timeout=10,
            )

            if response.status_code == 401:
                logger.error("Anthropic API key is invalid")
                return False

            if response.status_code == 429:
                logger.warning("Anthropic rate limit hit during health check")
                return True  # API is reachable, just rate limited

            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.warning(f"Anthropic health check failed: {e}")
            return False

    def complete(self, prompt: str, settings: CompletionSettings) -> str:
        """Send one message and return the text of the first content block."""
        start_time = time.time()

        try:
            response = requests.post(
                f"{self.base_url}/messages",
                headers=self._headers(),
                json={
                    "model": self.model,
                    "max_tokens": settings.max_tokens,
                    "temperature": settings.temperature,
                    "system": self.SYSTEM_PROMPT,
                    "messages": [{"role": "user", "content": prompt}],
                },
                timeout=settings.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise InferenceError("Anthropic request timed out") from e
        except requests.exceptions.RequestException as e:
            raise InferenceError(f"Anthropic request failed: {e}") from e

        if response.status_code == 429:
            raise InferenceError("Anthropic rate limit exceeded")
        if response.status_code >= 400:
            raise InferenceError(f"Anthropic HTTP {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise InferenceError(f"Anthropic returned invalid JSON: {e}") from e

        content_blocks = data.get("content") or []
        if not content_blocks:
            raise InferenceError("Empty response from Anthropic")

        # Anthropic reports input_tokens + output_tokens separately
        usage = data.get("usage", {})
        tokens_used = usage.get("input_tokens", 0) + usage.get("output_tokens", 0)
        latency_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"Anthropic completion: {tokens_used} tokens in {latency_ms}ms")
        return content_blocks[0].get("text", "")
