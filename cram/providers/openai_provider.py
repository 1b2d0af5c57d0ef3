"""OpenAI agent using openai SDK with native async.

Also covers any OpenAI-compatible endpoint (Mistral, Together, Ollama, vLLM,
LM Studio) when the model config carries a ``base_url``.
"""

import asyncio
import logging
import os
import time
from collections.abc import Sequence

import openai
from openai import AsyncOpenAI

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


class OpenAIProvider(Agent):
    """OpenAI (or OpenAI-compatible) agent via openai SDK."""

    sdk = "openai"

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key and not config.base_url:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        # Local compatible servers accept any key
        self._client = AsyncOpenAI(api_key=api_key or "not-needed", base_url=config.base_url)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def capabilities(self) -> AgentCapabilities:
        if self._config.base_url:
            return AgentCapabilities(
                supports_streaming=True,
                supports_system_messages=True,
                max_context_tokens=32_000,
                supported_roles=tuple(CompanyRole),
            )
        return AgentCapabilities(
            supports_streaming=True,
            supports_system_messages=True,
            max_context_tokens=128_000,
            supported_roles=(
                CompanyRole.SENIOR_DEVELOPER,
                CompanyRole.FRONTEND_DEVELOPER,
                CompanyRole.BACKEND_DEVELOPER,
                CompanyRole.SEO_SPECIALIST,
            ),
        )

    async def send_message(self, messages: Sequence[Message], system_prompt: str) -> AgentResponse:
        start = time.monotonic()
        kwargs = {
            "model": self._config.model,
            "messages": [{"role": "system", "content": system_prompt}, *chat_history(messages)],
            "max_tokens": self._config.max_tokens,
        }
        if self._config.temperature is not None:
            kwargs["temperature"] = self._config.temperature
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderTimeoutError(self._config.name, self._config.timeout_sec) from exc
        except openai.AuthenticationError as exc:
            raise ProviderAuthError(self._config.name, str(exc)) from exc
        except openai.RateLimitError as exc:
            raise ProviderRateLimitError(self._config.name, str(exc)) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        usage = TokenUsage()
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                total_tokens=response.usage.total_tokens or 0,
            )

        logger.info("OpenAI call (%s): %.2fs, %d tokens", self._config.name, latency, usage.total_tokens)

        return AgentResponse(
            content=choice.message.content,
            agent=self._config.name,
            model=response.model or self._config.model,
            tokens_used=usage,
            latency_sec=latency,
            raw=response,
        )
