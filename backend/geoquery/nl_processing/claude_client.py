"""
Claude API client for natural language query parsing.

Sends the parser prompt as a single user message and returns the text of
the reply. Retries are disabled: a failed call surfaces immediately as
LLMUnavailableError (service unreachable or misconfigured) or
LLMResponseError (reply unusable).
"""

import logging
from typing import List, Optional

import anthropic

from geoquery.errors import LLMResponseError, LLMUnavailableError

logger = logging.getLogger(__name__)

REMEDIATION = [
    "Check that ANTHROPIC_API_KEY is set and valid",
    "Check network access to api.anthropic.com",
    "Or set LLM_PROVIDER=ollama to use a local model",
]


class ClaudeClient:
    """
    Client for Claude API completions.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 2000,
        temperature: float = 0.1,
        timeout_seconds: float = 60.0,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        """
        Initialize Claude client.

        Args:
            api_key: Anthropic API key
            model: Model name
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature; low for structured output
            timeout_seconds: Request timeout
            client: Optional preconfigured AsyncAnthropic instance
        """
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

        if client is not None:
            self.client = client
        elif api_key:
            self.client = anthropic.AsyncAnthropic(
                api_key=api_key,
                max_retries=0,
                timeout=timeout_seconds,
            )
        else:
            logger.warning("No Anthropic API key configured!")
            self.client = None

    async def complete(self, prompt: str) -> str:
        """
        Complete a prompt.

        Args:
            prompt: Full parser prompt

        Returns:
            Reply text

        Raises:
            LLMUnavailableError: API unreachable, unauthorized or overloaded
            LLMResponseError: Reply was empty, truncated or rejected
        """
        if self.client is None:
            raise LLMUnavailableError("No Anthropic API key configured", remediation=list(REMEDIATION))

        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[
                    {"role": "user", "content": prompt}
                ]
            )
        except anthropic.APIConnectionError as e:
            raise LLMUnavailableError(f"Cannot connect to Claude API: {e}", remediation=list(REMEDIATION)) from e
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
            raise LLMUnavailableError(f"Claude API rejected credentials: {e}", remediation=list(REMEDIATION)) from e
        except (anthropic.RateLimitError, anthropic.InternalServerError) as e:
            raise LLMUnavailableError(f"Claude API is unavailable: {e}", remediation=list(REMEDIATION)) from e
        except anthropic.APIStatusError as e:
            raise LLMResponseError(f"Claude API error ({e.status_code}): {e.message}") from e

        if message.stop_reason == "max_tokens":
            raise LLMResponseError("Claude response incomplete (max_tokens reached)")

        text = self._extract_text(message.content)
        if not text:
            raise LLMResponseError("Claude returned an empty response")

        logger.debug(f"Claude completion: {len(text)} chars, stop_reason={message.stop_reason}")
        return text

    async def health_check(self) -> bool:
        """Check whether the API is reachable with the configured key."""
        if self.client is None:
            return False
        try:
            await self.client.models.list(limit=1)
            return True
        except anthropic.APIError as e:
            logger.warning(f"Claude health check failed: {e}")
            return False

    @staticmethod
    def _extract_text(blocks: List) -> str:
        return "".join(getattr(block, "text", "") for block in blocks if getattr(block, "type", None) == "text")
