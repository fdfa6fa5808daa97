"""
Base LLM Adapter

Defines the abstract interface for all generation backends.

Design decisions:
- Async-first: All methods are async for non-blocking I/O
- Streaming as first-class: AsyncIterator of token strings
- Provider-agnostic: Common interface hides provider differences
- Failing to open the stream raises LLMConnectionError before any token
- Cancellation is task cancellation; adapters must let CancelledError through
- No retries: a failed generation is surfaced, not replayed
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from quarry.config.settings import LLMSettings
from quarry.core.exceptions import LLMTimeoutError


class BaseLLMAdapter(ABC):
    """
    Abstract base class for generation backends.

    All generation goes through this interface, enabling:
    - Provider switching without code changes
    - Consistent error handling
    - Unified streaming interface
    """

    def __init__(self, settings: LLMSettings):
        self.settings = settings
        self._timeout = settings.request_timeout
        self._system_prompt = settings.system_prompt
        self._max_tokens = settings.max_tokens

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Current model identifier."""

    @abstractmethod
    async def _do_complete(
        self,
        prompt: str,
        *,
        system_prompt: str,
        max_tokens: int,
    ) -> str:
        """Provider-specific non-streaming completion."""

    @abstractmethod
    def _do_stream(
        self,
        prompt: str,
        *,
        system_prompt: str,
        max_tokens: int,
    ) -> AsyncIterator[str]:
        """Provider-specific streaming implementation. Yields token text."""

    async def complete(
        self,
        prompt: str,
        *,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
    ) -> str:
        """
        Generate a full response.

        Raises:
            LLMConnectionError: Cannot reach provider
            LLMTimeoutError: Request timed out
            LLMResponseError: Provider returned an error or unusable body
        """
        try:
            return await asyncio.wait_for(
                self._do_complete(
                    prompt,
                    system_prompt=self._system_prompt if system_prompt is None else system_prompt,
                    max_tokens=max_tokens or self._max_tokens,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise LLMTimeoutError(
                f"Request timed out after {self._timeout}s",
                context={"provider": self.provider_name, "model": self.model},
                cause=e,
            ) from e

    async def stream(
        self,
        prompt: str,
        *,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[str]:
        """
        Stream a response token by token.

        Note: a stream that fails midway raises from the iterator;
        tokens already yielded stay valid. Closing this iterator early
        closes the provider stream immediately.
        """
        tokens = self._do_stream(
            prompt,
            system_prompt=self._system_prompt if system_prompt is None else system_prompt,
            max_tokens=max_tokens or self._max_tokens,
        )
        try:
            async for token in tokens:
                if token:
                    yield token
        finally:
            await tokens.aclose()

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (connection pools, etc)."""

    async def __aenter__(self) -> "BaseLLMAdapter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
