"""LLM collaborator: ``complete(system_prompt, user_prompt) -> str``."""

from __future__ import annotations

import logging
from typing import Protocol

from anthropic import Anthropic
from anthropic.types import TextBlock

from src.config import Settings

logger = logging.getLogger(__name__)


class LLMClient(Protocol):
    """Anything that turns a system + user prompt into completion text."""

    def complete(self, system_prompt: str, user_prompt: str) -> str: ...


class AnthropicLLMClient:
    """Claude-backed :class:`LLMClient`. One request per call, no retries."""

    def __init__(self, client: Anthropic, model: str, max_tokens: int = 4096) -> None:
        self._client = client
        self._model = model
        self._max_tokens = max_tokens

    @classmethod
    def from_settings(cls, settings: Settings) -> AnthropicLLMClient:
        return cls(
            client=Anthropic(api_key=settings.anthropic_api_key, max_retries=0),
            model=settings.llm_model,
            max_tokens=settings.llm_max_tokens,
        )

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        response = self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )

        # We never request tools, so every block should be text.
        parts: list[str] = []
        for block in response.content:
            if not isinstance(block, TextBlock):
                raise ValueError(f"Expected TextBlock from Claude, got {type(block).__name__}")
            parts.append(block.text)

        logger.info(
            "LLM completion: %d input tokens, %d output tokens",
            response.usage.input_tokens,
            response.usage.output_tokens,
        )
        return "".join(parts)
