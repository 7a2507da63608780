"""LLM client wrapper for Switchboard agents.

Provides a thin wrapper around the Anthropic API with:
- Model profile resolution from configuration
- Rate limiting per provider
- Token usage tracking and cost estimation in logs
- Optional image URLs alongside the prompt
"""

from __future__ import annotations

import asyncio
import os
import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

from switchboard.logging import get_logger

if TYPE_CHECKING:
    from anthropic import AsyncAnthropic

    from switchboard.config import Config

log = get_logger("llm")

DEFAULT_PROVIDER = "anthropic"
DEFAULT_MODEL = "claude-sonnet-4-5"


@dataclass
class Usage:
    """Token usage from an LLM call."""

    input_tokens: int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        """Total tokens used."""
        return self.input_tokens + self.output_tokens


@dataclass
class CompletionResult:
    """Result from an LLM completion."""

    text: str
    usage: Usage
    model: str
    provider: str


class RateLimiter:
    """Allow at most ``calls_per_minute`` calls in any sixty second window."""

    WINDOW_SECONDS = 60.0

    def __init__(self, calls_per_minute: int = 50) -> None:
        self.calls_per_minute = calls_per_minute
        self.calls: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _expire(self, now: float) -> None:
        while self.calls and now - self.calls[0] >= self.WINDOW_SECONDS:
            self.calls.popleft()

    async def acquire(self) -> None:
        """Wait for a free slot, then claim it."""
        async with self._lock:
            now = time.monotonic()
            self._expire(now)

            if len(self.calls) >= self.calls_per_minute:
                wait_seconds = self.WINDOW_SECONDS - (now - self.calls[0])
                log.debug(
                    "rate_limit_waiting",
                    wait_seconds=round(wait_seconds, 2),
                    calls_in_window=len(self.calls),
                )
                await asyncio.sleep(wait_seconds)
                now = time.monotonic()
                self._expire(now)

            self.calls.append(now)


# USD per million tokens (input, output) for the models the agents use
MODEL_PRICES: dict[str, tuple[float, float]] = {
    "claude-sonnet-4-5": (3.0, 15.0),
    "claude-haiku-4-5": (1.0, 5.0),
}
FALLBACK_PRICE = (1.0, 3.0)


def estimate_cost(
    provider: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
) -> float:
    """Rough USD cost of one completion, for logging only."""
    input_price, output_price = (
        MODEL_PRICES.get(model, FALLBACK_PRICE)
        if provider == "anthropic"
        else FALLBACK_PRICE
    )
    return (input_tokens * input_price + output_tokens * output_price) / 1_000_000


class ModelClient:
    """Thin wrapper for LLM calls.

    Provider clients are created lazily on first use, so agents that
    never call the model never need an API key.
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self._anthropic: AsyncAnthropic | None = None
        self._rate_limiters: dict[str, RateLimiter] = {}

    def _get_anthropic(self) -> AsyncAnthropic:
        """Get or create the Anthropic client.

        Raises:
            ValueError: If API key not found in environment.
        """
        if self._anthropic is None:
            from anthropic import AsyncAnthropic

            api_key = self._get_api_key("anthropic")
            if not api_key:
                raise ValueError(
                    "Anthropic API key not found. Set ANTHROPIC_API_KEY environment variable."
                )
            self._anthropic = AsyncAnthropic(api_key=api_key)
        return self._anthropic

    def _get_api_key(self, provider: str) -> str | None:
        if self.config.models is None:
            return os.environ.get(f"{provider.upper()}_API_KEY")
        return self.config.models.get_api_key(provider)

    def _get_rate_limiter(self, provider: str) -> RateLimiter:
        if provider not in self._rate_limiters:
            self._rate_limiters[provider] = RateLimiter(calls_per_minute=50)
        return self._rate_limiters[provider]

    def _resolve(self, model_profile: str) -> tuple[str, str]:
        if self.config.models is None:
            return DEFAULT_PROVIDER, DEFAULT_MODEL
        profile = self.config.resolve_model_profile(model_profile)
        return profile.provider, profile.model

    async def complete(
        self,
        prompt: str,
        model_profile: str = "simple",
        max_tokens: int = 500,
        temperature: float = 0.7,
        *,
        system: str | None = None,
        image_urls: Sequence[str] = (),
    ) -> CompletionResult:
        """Complete a text prompt.

        Args:
            prompt: The prompt text to complete.
            model_profile: Name of the model profile to use.
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature (0-1).
            system: Optional system prompt.
            image_urls: Images to attach after the prompt text.

        Returns:
            CompletionResult with text, usage, and metadata.

        Raises:
            ValueError: If model profile not found or provider unsupported.
        """
        provider, model = self._resolve(model_profile)
        if provider != "anthropic":
            raise ValueError(f"Unsupported provider: {provider}")

        await self._get_rate_limiter(provider).acquire()

        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        for url in image_urls:
            content.append({"type": "image", "source": {"type": "url", "url": url}})

        return await self._anthropic_complete(
            content, model, max_tokens, temperature, system
        )

    async def _anthropic_complete(
        self,
        content: list[dict[str, Any]],
        model: str,
        max_tokens: int,
        temperature: float,
        system: str | None,
    ) -> CompletionResult:
        import anthropic

        client = self._get_anthropic()

        log.debug(
            "llm_call_start",
            provider="anthropic",
            model=model,
            blocks=len(content),
        )

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": content}],
        }
        if system:
            kwargs["system"] = system

        try:
            response = await client.messages.create(**kwargs)
        except anthropic.RateLimitError:
            log.warning("rate_limit_hit", provider="anthropic")
            # Wait and retry once
            await asyncio.sleep(60)
            response = await client.messages.create(**kwargs)
        except anthropic.APIError as e:
            log.error("api_error", provider="anthropic", error=str(e))
            raise

        usage = Usage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

        log.debug(
            "llm_call_complete",
            provider="anthropic",
            model=model,
            tokens_in=usage.input_tokens,
            tokens_out=usage.output_tokens,
            cost_usd=estimate_cost("anthropic", model, usage.input_tokens, usage.output_tokens),
        )

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        return CompletionResult(
            text=text,
            usage=usage,
            model=model,
            provider="anthropic",
        )

    async def close(self) -> None:
        """Close the client and release resources."""
        if self._anthropic is not None:
            await self._anthropic.close()
            self._anthropic = None
