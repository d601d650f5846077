"""
Ollama client for local models.

Default: http://localhost:11434 with qwen2.5:7b.
"""

import logging
from typing import Optional

import httpx

from geoquery.errors import LLMResponseError, LLMUnavailableError

logger = logging.getLogger(__name__)


class OllamaClient:
    """Completion client for the Ollama /api/generate endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "qwen2.5:7b",
        temperature: float = 0.1,
        max_tokens: int = 2000,
        timeout_seconds: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _remediation(self):
        return [
            "Make sure Ollama is installed and running",
            f"Check that the model is pulled: ollama pull {self.model}",
        ]

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
        )

    async def complete(self, prompt: str) -> str:
        """
        Complete a prompt with a non-streaming generate call.

        Raises:
            LLMUnavailableError: Ollama is not reachable or the model is missing
            LLMResponseError: Error status or incomplete response
        """
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }

        try:
            async with self._client() as client:
                response = await client.post("/api/generate", json=payload)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            raise LLMUnavailableError(
                f"Cannot connect to Ollama at {self.base_url}. Is Ollama running?",
                remediation=self._remediation(),
            ) from e
        except httpx.TimeoutException as e:
            raise LLMUnavailableError(
                f"Ollama at {self.base_url} timed out after {self.timeout_seconds}s",
                remediation=self._remediation(),
            ) from e

        if response.status_code == 404:
            raise LLMUnavailableError(
                f"Ollama model {self.model} not found: {response.text}",
                remediation=self._remediation(),
            )
        if response.status_code >= 400:
            raise LLMResponseError(f"Ollama API error ({response.status_code}): {response.text}")

        try:
            data = response.json()
        except ValueError as e:
            raise LLMResponseError(f"Ollama returned non-JSON body: {e}") from e

        if not data.get("done"):
            raise LLMResponseError("Ollama response incomplete")

        return data.get("response", "")

    async def health_check(self) -> bool:
        """Check if Ollama is available."""
        try:
            async with self._client() as client:
                response = await client.get("/api/tags")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"Ollama health check failed: {e}")
            return False
