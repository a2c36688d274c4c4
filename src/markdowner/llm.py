"""Optional language-model pass that strips boilerplate from extracted markdown."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol

import structlog
from openai import AsyncOpenAI

from markdowner.errors import LLM_FILTER_TIMED_OUT

if TYPE_CHECKING:
    from markdowner.ratelimit import RateLimiter

log = structlog.get_logger()

FILTER_PROMPT = """You are an AI assistant that converts webpage content to markdown while filtering out unnecessary information. Please follow these guidelines:
Remove any inappropriate content, ads, or irrelevant information
If unsure about including something, err on the side of keeping it
Answer in English. Include all points in markdown in sufficient detail to be useful.
Aim for clean, readable markdown.
Return the markdown and nothing else.
Input: {markdown}
Output:```markdown
"""  # noqa: E501


class CompletionModel(Protocol):
    async def complete(self, prompt: str) -> str: ...


class OpenAIModel:
    """Any OpenAI-compatible chat completion endpoint."""

    def __init__(self, client: AsyncOpenAI, model: str) -> None:
        self._client = client
        self._model = model

    async def complete(self, prompt: str) -> str:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.choices[0].message.content or ""


def strip_fence(text: str) -> str:
    """Remove a wrapping ```markdown fence the model may echo back."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


class LLMFilter:
    def __init__(
        self,
        model: CompletionModel,
        limiter: RateLimiter,
        rate_limit_cost: int = 60,
        timeout_seconds: float = 60,
    ) -> None:
        self._model = model
        self._limiter = limiter
        self._cost = rate_limit_cost
        self._timeout = timeout_seconds

    async def filter(self, markdown: str, ip: str) -> str:
        """Charge the caller, then return the model's cleaned-up markdown.

        The charge is taken before the call and is not refunded on failure.
        Model errors propagate; only a timeout is turned into a sentinel.
        """
        await self._limiter.charge(ip, self._cost)
        try:
            answer = await asyncio.wait_for(
                self._model.complete(FILTER_PROMPT.format(markdown=markdown)),
                timeout=self._timeout,
            )
        except TimeoutError:
            log.warning("llm_filter_timeout", timeout=self._timeout)
            return LLM_FILTER_TIMED_OUT
        return strip_fence(answer)
