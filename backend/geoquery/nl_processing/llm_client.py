"""
LLM client interface and provider selection.

The intent parser only needs text in, text out. Providers raise
LLMUnavailableError when the service cannot be reached (with remediation
hints for the operator) and LLMResponseError when it answered with
something unusable.
"""

import logging
from typing import Protocol

from geoquery.config import Settings

logger = logging.getLogger(__name__)


class LLMClient(Protocol):
    """Minimal completion interface shared by all providers"""

    async def complete(self, prompt: str) -> str:
        ...

    async def health_check(self) -> bool:
        ...


def create_llm_client(settings: Settings) -> LLMClient:
    """
    Build the client for the configured provider.

    Args:
        settings: Application settings (llm_provider selects the backend)

    Returns:
        ClaudeClient or OllamaClient
    """
    provider = settings.llm_provider.lower()

    if provider == "ollama":
        from geoquery.nl_processing.ollama_client import OllamaClient
        logger.info(f"Using Ollama at {settings.ollama_base_url} ({settings.ollama_model})")
        return OllamaClient(
            base_url=settings.ollama_base_url,
            model=settings.ollama_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.claude_max_tokens,
            timeout_seconds=settings.llm_timeout_seconds,
        )

    if provider != "anthropic":
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider}. Use 'anthropic' or 'ollama'.")

    from geoquery.nl_processing.claude_client import ClaudeClient
    logger.info(f"Using Claude model {settings.claude_model}")
    return ClaudeClient(
        api_key=settings.anthropic_api_key,
        model=settings.claude_model,
        max_tokens=settings.claude_max_tokens,
        temperature=settings.llm_temperature,
        timeout_seconds=settings.llm_timeout_seconds,
    )
