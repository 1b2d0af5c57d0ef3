"""Anthropic Claude agent using anthropic SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import Sequence

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from cram.models import AgentCapabilities, AgentResponse, CompanyRole, Message, TokenUsage
from cram.providers.base import (
    Agent,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    chat_history,
)

logger = logging.getLogger(__name__)


class AnthropicProvider(Agent):
    """Anthropic Claude agent via anthropic SDK."""

    sdk = "anthropic"

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def capabilities(self) -> AgentCapabilities:
        return AgentCapabilities(
            supports_streaming=True,
            supports_system_messages=True,
            max_context_tokens=200_000,
            supported_roles=(
                CompanyRole.CEO,
                CompanyRole.CTO,
                CompanyRole.LEAD_ARCHITECT,
                CompanyRole.MARKETING_STRATEGIST,
            ),
        )

    async def send_message(self, messages: Sequence[Message], system_prompt: str) -> AgentResponse:
        start = time.monotonic()
        kwargs = {
            "model": self._config.model,
            "max_tokens": self._config.max_tokens,
            "system": system_prompt,
            "messages": chat_history(messages),
        }
        if self._config.temperature is not None:
            kwargs["temperature"] = self._config.temperature
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderTimeoutError(self._config.name, self._config.timeout_sec) from exc
        except anthropic_sdk.AuthenticationError as exc:
            raise ProviderAuthError(self._config.name, str(exc)) from exc
        except anthropic_sdk.RateLimitError as exc:
            raise ProviderRateLimitError(self._config.name, str(exc)) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        text_blocks = [b.text for b in (response.content or []) if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        usage = TokenUsage()
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )

        logger.info("Anthropic call: %.2fs, %d tokens", latency, usage.total_tokens)

        return AgentResponse(
            content="\n".join(text_blocks),
            agent=self._config.name,
            model=response.model or self._config.model,
            tokens_used=usage,
            latency_sec=latency,
            raw=response,
        )
