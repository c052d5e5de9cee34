"""
Completion providers for answer generation.

The orchestrator only needs ``complete(system_prompt, user_prompt) -> text``.
Failures are never retried here: they surface as ``CompletionError``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..errors import CompletionError

logger = logging.getLogger(__name__)


class CompletionProvider(ABC):
    """Generates text from a system prompt and a user prompt."""

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the completion text or raise ``CompletionError``."""


class GeminiCompletionProvider(CompletionProvider):
    """Google Gemini completions through the google-genai async client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash-lite",
        timeout: float = 20.0,
        temperature: float = 0.2,
        max_output_tokens: int = 1000,
        client: Optional[object] = None,
    ):
        if client is None:
            from google import genai
            client = genai.Client(api_key=api_key)
        self.client = client
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        from google.genai import types

        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=self.model,
                    contents=user_prompt,
                    config=types.GenerateContentConfig(
                        system_instruction=system_prompt,
                        temperature=self.temperature,  # type: ignore
                        max_output_tokens=self.max_output_tokens,  # type: ignore
                    ),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise CompletionError(f"{self.model} timed out after {self.timeout}s") from e
        except Exception as e:
            raise CompletionError(f"{self.model} failed: {e}") from e

        text = (response.text or "").strip()
        if not text:
            raise CompletionError(f"{self.model} returned an empty response")
        return text


class UnconfiguredCompletionProvider(CompletionProvider):
    """Stand-in used when no API key is configured; every call fails."""

    def __init__(self, reason: str = "GEMINI_API_KEY not set"):
        self.reason = reason

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        raise CompletionError(f"Completion provider unavailable: {self.reason}")
