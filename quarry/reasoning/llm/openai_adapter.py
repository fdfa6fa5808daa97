"""
OpenAI LLM Adapter

Implementation for the OpenAI chat completions API.
Also works with OpenAI-compatible APIs (Azure, local servers).

Design decisions:
- Uses official openai library for stability
- The system prompt goes in a system message; the augmented prompt in a user message
- SDK retries disabled; failures surface immediately
"""

from collections.abc import AsyncIterator
from typing import Any

from quarry.config.settings import LLMSettings
from quarry.core.exceptions import (
    LLMConnectionError,
    LLMResponseError,
    LLMTimeoutError,
)
from quarry.reasoning.llm.base import BaseLLMAdapter

# Lazy import to avoid requiring openai if not used
_openai_module = None


def _get_openai():
    global _openai_module
    if _openai_module is None:
        try:
            import openai

            _openai_module = openai
        except ImportError:
            raise ImportError("openai package required. Install with: pip install openai")
    return _openai_module


def _messages(prompt: str, system_prompt: str) -> list[dict[str, str]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


class OpenAIAdapter(BaseLLMAdapter):
    """OpenAI API adapter."""

    def __init__(self, settings: LLMSettings):
        super().__init__(settings)

        openai = _get_openai()

        client_kwargs: dict[str, Any] = {
            "timeout": settings.request_timeout,
            "max_retries": 0,
        }

        if settings.openai_api_key:
            client_kwargs["api_key"] = settings.openai_api_key.get_secret_value()

        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_model

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        return self._model

    def _translate(self, error: Exception) -> Exception:
        openai = _get_openai()
        context = {"provider": "openai", "model": self._model}

        if isinstance(error, openai.APITimeoutError):
            return LLMTimeoutError(str(error), context=context, cause=error)
        if isinstance(error, openai.APIConnectionError):
            return LLMConnectionError(str(error), context=context, cause=error)
        return LLMResponseError(str(error), context=context, cause=error)

    async def _do_complete(
        self,
        prompt: str,
        *,
        system_prompt: str,
        max_tokens: int,
    ) -> str:
        openai = _get_openai()

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=_messages(prompt, system_prompt),
                max_tokens=max_tokens,
            )
        except openai.APIError as e:
            raise self._translate(e) from e

        if not response.choices:
            raise LLMResponseError("OpenAI returned no choices", context={"model": self._model})
        return response.choices[0].message.content or ""

    async def _do_stream(
        self,
        prompt: str,
        *,
        system_prompt: str,
        max_tokens: int,
    ) -> AsyncIterator[str]:
        openai = _get_openai()

        try:
            stream = await self._client.chat.completions.create(
                model=self._model,
                messages=_messages(prompt, system_prompt),
                max_tokens=max_tokens,
                stream=True,
            )
        except openai.APIError as e:
            raise self._translate(e) from e

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield delta.content
        except openai.APIError as e:
            raise self._translate(e) from e
        finally:
            # Closing aborts the HTTP response when the consumer is cancelled
            await stream.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.close()
