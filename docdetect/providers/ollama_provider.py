"""
Ollama provider for local inference.

Uses Ollama's HTTP API. Zero cloud cost, handy for development and for
deployments that must not send attachment text off-host.
"""

import time
from typing import Dict, Optional

import requests

from .base import CompletionSettings, InferenceProvider
from ..core.errors import InferenceError
from ..utils.logger import logger


class OllamaProvider(InferenceProvider):
    """
    Ollama provider for local inference.

    Features:
    - Zero cloud cost (runs locally)
    - Supports various models (llama3, mistral, gemma, etc.)
    - JSON output format requested from the server
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize Ollama provider.

        Args:
            config: Provider configuration dict with:
                - base_url: Ollama API URL (default: http://localhost:11434)
                - model: Model name (default: llama3)
        """
        config = config or {}
        self.base_url = config.get("base_url", "http://localhost:11434")
        self.model = config.get("model", "llama3")
        self.api_endpoint = f"{self.base_url}/api/generate"

    def get_name(self) -> str:
        return "ollama"

    @property
    def is_local(self) -> bool:
        return True

    def health_check(self) -> bool:
        """
        Check if Ollama is running and the model is available.
        Uses the /api/tags endpoint to verify connectivity.
        """
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=5)
            if response.status_code != 200:
                logger.warning(f"Ollama health check returned status {response.status_code}")
                return False

            names = [m.get("name", "") for m in response.json().get("models", [])]
            if self.model not in {n.split(":")[0] for n in names} and self.model not in names:
                # Ollama is up, the model will be pulled on first use
                logger.warning(f"Model '{self.model}' not found in Ollama. Available: {names}")

            return True
        except requests.exceptions.ConnectionError:
            logger.warning("Could not connect to Ollama - is it running?")
            return False
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Ollama health check failed: {e}")
            return False

    def complete(self, prompt: str, settings: CompletionSettings) -> str:
        """Run one non-streaming generation and return the response text."""
        start_time = time.time()

        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": settings.temperature,
                "num_predict": settings.max_tokens,
            },
        }

        try:
            response = requests.post(self.api_endpoint, json=payload, timeout=settings.timeout)
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.Timeout as e:
            raise InferenceError("Ollama request timed out") from e
        except requests.exceptions.RequestException as e:
            raise InferenceError(f"Ollama inference error: {e}") from e
        except ValueError as e:
            raise InferenceError(f"Ollama returned invalid JSON: {e}") from e

        latency_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"Ollama completion: {result.get('eval_count', 0)} tokens in {latency_ms}ms")
        return (result.get("response") or "").strip()
