"""
Ollama LLM Adapter

Implementation for a self-hosted Ollama server (/api/generate).

Design decisions:
- httpx streaming; the server sends one JSON object per line
- Connection failures map to LLMConnectionError before any token
- The streamed response is closed on every exit path, including cancellation
"""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from quarry.config.settings import LLMSettings
from quarry.core.exceptions import (
    LLMConnectionError,
    LLMResponseError,
    LLMTimeoutError,
)
from quarry.reasoning.llm.base import BaseLLMAdapter


class OllamaAdapter(BaseLLMAdapter):
    """
    Ollama generate-API adapter.

    Request body: {"model", "prompt", "system", "stream", "options": {"num_predict"}}.
    Streamed lines: {"response": "<token>", "done": false} ... {"done": true}.
    """

    def __init__(self, settings: LLMSettings, client: httpx.AsyncClient | None = None):
        super().__init__(settings)
        self._endpoint = settings.ollama_generate_endpoint
        self._model = settings.ollama_model
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout)
        self._owns_client = client is None

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def model(self) -> str:
        return self._model

    def _payload(self, prompt: str, system_prompt: str, max_tokens: int, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._model,
            "prompt": prompt,
            "stream": stream,
            "options": {"num_predict": max_tokens},
        }
        if system_prompt:
            payload["system"] = system_prompt
        return payload

    def _context(self) -> dict[str, Any]:
        return {"provider": "ollama", "model": self._model, "endpoint": self._endpoint}

    async def _do_complete(
        self,
        prompt: str,
        *,
        system_prompt: str,
        max_tokens: int,
    ) -> str:
        try:
            response = await self._client.post(
                self._endpoint,
                json=self._payload(prompt, system_prompt, max_tokens, stream=False),
            )
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(str(e), context=self._context(), cause=e) from e
        except httpx.TransportError as e:
            raise LLMConnectionError(str(e), context=self._context(), cause=e) from e

        if response.status_code != 200:
            raise LLMResponseError(
                f"Ollama returned HTTP {response.status_code}",
                context={**self._context(), "body": response.text[:500]},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise LLMResponseError("Ollama returned invalid JSON", context=self._context(), cause=e) from e

        if not isinstance(data, dict) or "response" not in data:
            raise LLMResponseError("Ollama response has no 'response' field", context=self._context())
        return data["response"] or ""

    async def _do_stream(
        self,
        prompt: str,
        *,
        system_prompt: str,
        max_tokens: int,
    ) -> AsyncIterator[str]:
        request = self._client.build_request(
            "POST",
            self._endpoint,
            json=self._payload(prompt, system_prompt, max_tokens, stream=True),
        )

        try:
            response = await self._client.send(request, stream=True)
        except httpx.TransportError as e:
            raise LLMConnectionError(str(e), context=self._context(), cause=e) from e

        try:
            if response.status_code != 200:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise LLMConnectionError(
                    f"Ollama returned HTTP {response.status_code}",
                    context={**self._context(), "body": body[:500]},
                )

            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError as e:
                    raise LLMResponseError(
                        "Malformed stream line from Ollama",
                        context={**self._context(), "line": line[:200]},
                        cause=e,
                    ) from e

                if data.get("error"):
                    raise LLMResponseError(str(data["error"]), context=self._context())

                token = data.get("response")
                if token:
                    yield token

                if data.get("done"):
                    break
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(str(e), context=self._context(), cause=e) from e
        except httpx.TransportError as e:
            raise LLMResponseError(
                f"Stream interrupted: {e}", context=self._context(), cause=e
            ) from e
        finally:
            await response.aclose()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
