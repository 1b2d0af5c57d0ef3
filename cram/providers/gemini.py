"""Gemini agent using google-genai SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import Sequence

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

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


class GeminiProvider(Agent):
    """Google Gemini agent via google-genai SDK."""

    sdk = "gemini"

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def capabilities(self) -> AgentCapabilities:
        return AgentCapabilities(
            supports_streaming=True,
            supports_system_messages=True,
            max_context_tokens=1_000_000,
            supported_roles=(
                CompanyRole.QA_ENGINEER,
                CompanyRole.SECURITY_AUDITOR,
                CompanyRole.DEVOPS_ENGINEER,
                CompanyRole.PERFORMANCE_ENGINEER,
            ),
        )

    async def send_message(self, messages: Sequence[Message], system_prompt: str) -> AgentResponse:
        start = time.monotonic()
        contents = [
            genai_types.Content(
                role="user" if m["role"] == "user" else "model",
                parts=[genai_types.Part(text=m["content"])],
            )
            for m in chat_history(messages)
        ]
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._config.model,
                    contents=contents,
                    config=genai_types.GenerateContentConfig(
                        system_instruction=system_prompt,
                        max_output_tokens=self._config.max_tokens,
                        temperature=self._config.temperature,
                    ),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderTimeoutError(self._config.name, self._config.timeout_sec) from exc
        except genai_errors.ClientError as exc:
            if exc.code in (401, 403):
                raise ProviderAuthError(self._config.name, str(exc)) from exc
            if exc.code == 429:
                raise ProviderRateLimitError(self._config.name, str(exc)) from exc
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        usage = TokenUsage()
        if response.usage_metadata:
            meta = response.usage_metadata
            usage = TokenUsage(
                prompt_tokens=meta.prompt_token_count or 0,
                completion_tokens=meta.candidates_token_count or 0,
                total_tokens=meta.total_token_count or 0,
            )

        logger.info("Gemini call: %.2fs, %d tokens", latency, usage.total_tokens)

        return AgentResponse(
            content=response.text,
            agent=self._config.name,
            model=self._config.model,
            tokens_used=usage,
            latency_sec=latency,
            raw=response,
        )
