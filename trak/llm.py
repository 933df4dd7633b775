"""Thin wrapper around the OpenAI chat completions API."""

from __future__ import annotations

import logging
import os
from typing import Protocol

import openai

from .config import TrakSettings
from .errors import BackendError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


class CompletionClient(Protocol):
    def complete(
        self,
        system: str,
        prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> str: ...


class LLMClient:
    """Chat-completion client. Every failure surfaces as BackendError."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, timeout: float = 60.0):
        self.model = model
        self._client = openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=1)

    def complete(
        self,
        system: str,
        prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.OpenAIError as e:
            raise BackendError(f"AI backend call failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise BackendError("AI backend returned an empty response")
        return content


def create_llm_client(settings: TrakSettings | None = None) -> LLMClient | None:
    """Build a client from OPENAI_API_KEY, or None when no backend is configured."""
    api_key = os.environ.get("OPENAI_API_KEY", "").strip()
    if not api_key:
        logger.debug("OPENAI_API_KEY not set; AI backend disabled")
        return None
    model = os.environ.get("TRAK_AI_MODEL") or (settings.ai_model if settings else DEFAULT_MODEL)
    return LLMClient(api_key=api_key, model=model)
