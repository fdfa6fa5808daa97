"""
Stub LLM Adapter

A deterministic, offline-capable generation backend for testing and CI.

Design decisions:
- Implements the GenerationBackendProtocol interface
- Returns scripted, deterministic responses
- Supports streaming (simulated word by word with delays)
- NEVER makes external network calls

Usage:
    # Explicitly
    from quarry.reasoning.llm.stub_adapter import StubLLMAdapter
    adapter = StubLLMAdapter()

    # Via environment
    LLM_PROVIDER=stub
"""

import asyncio
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass

from quarry.core.exceptions import LLMConnectionError, LLMResponseError


@dataclass
class StubResponse:
    """A scripted response for the stub adapter."""

    pattern: str | None = None  # Regex matched against the prompt
    content: str = ""

    def matches(self, prompt: str) -> bool:
        if self.pattern is None:
            return True
        return bool(re.search(self.pattern, prompt, re.IGNORECASE))


DEFAULT_RESPONSES: list[StubResponse] = [
    # Derived Q/A requests during ingestion
    StubResponse(
        pattern=r"generate one concise question",
        content=(
            "Question: What is the main topic of this document?\n"
            "Answer: The document describes the uploaded content in summary form."
        ),
    ),
    StubResponse(
        pattern=r"^Context \d+ \[",
        content="Based on the provided context, here is a concise answer. [STUB: Context Response]",
    ),
    StubResponse(
        pattern=None,
        content="Hello! This is a deterministic stub response running in offline mode. [STUB: General Response]",
    ),
]


def split_tokens(content: str) -> list[str]:
    """Split content into word tokens, keeping the separating spaces."""
    words = content.split()
    return [word + (" " if i < len(words) - 1 else "") for i, word in enumerate(words)]


class StubLLMAdapter:
    """
    A deterministic generation backend for offline use.

    Features:
    - No external API calls
    - Pattern-based response selection
    - Simulated streaming with configurable delay
    """

    def __init__(
        self,
        model: str = "stub-model-v1",
        responses: list[StubResponse] | None = None,
        stream_delay_ms: int = 20,
        default_response: str | None = None,
    ):
        self._model = model
        self._responses = list(responses) if responses is not None else DEFAULT_RESPONSES.copy()
        self._stream_delay = stream_delay_ms / 1000.0
        self._call_count = 0

        if default_response:
            self._responses.insert(0, StubResponse(pattern=None, content=default_response))

    @property
    def model(self) -> str:
        return self._model

    @property
    def provider_name(self) -> str:
        return "stub"

    @property
    def call_count(self) -> int:
        return self._call_count

    def add_response(self, response: StubResponse) -> None:
        """Add a custom response pattern with highest priority."""
        self._responses.insert(0, response)

    def _find_response(self, prompt: str) -> StubResponse:
        for response in self._responses:
            if response.matches(prompt):
                return response
        return StubResponse(content="")

    async def complete(
        self,
        prompt: str,
        *,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
    ) -> str:
        self._call_count += 1
        await asyncio.sleep(0)
        return self._find_response(prompt).content

    async def stream(
        self,
        prompt: str,
        *,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[str]:
        self._call_count += 1
        for token in split_tokens(self._find_response(prompt).content):
            yield token
            await asyncio.sleep(self._stream_delay)

    async def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"StubLLMAdapter(model={self._model!r}, calls={self._call_count})"


# =============================================================================
# Scripted streams for tests
# =============================================================================


class ScriptedLLMAdapter(StubLLMAdapter):
    """
    An adapter that streams a fixed token list.

    Useful for testing cancellation and failure paths:
    - fail_to_start raises LLMConnectionError before the first token
    - fail_after raises LLMResponseError after that many tokens
    - completions are returned by complete() in order
    """

    def __init__(
        self,
        tokens: list[str] | None = None,
        completions: list[str] | None = None,
        model: str = "scripted-model-v1",
        stream_delay_ms: int = 0,
        fail_to_start: bool = False,
        fail_after: int | None = None,
        complete_error: Exception | None = None,
    ):
        super().__init__(model=model, responses=[], stream_delay_ms=stream_delay_ms)
        self._tokens = list(tokens or [])
        self._completions = list(completions or [])
        self._completion_index = 0
        self._fail_to_start = fail_to_start
        self._fail_after = fail_after
        self._complete_error = complete_error

        self.prompts: list[str] = []
        self.tokens_sent = 0
        self.cancelled = False

    async def complete(
        self,
        prompt: str,
        *,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
    ) -> str:
        self._call_count += 1
        self.prompts.append(prompt)

        if self._complete_error is not None:
            raise self._complete_error

        if self._completion_index < len(self._completions):
            content = self._completions[self._completion_index]
            self._completion_index += 1
            return content
        return ""

    async def stream(
        self,
        prompt: str,
        *,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[str]:
        self._call_count += 1
        self.prompts.append(prompt)

        if self._fail_to_start:
            raise LLMConnectionError("connection refused", context={"provider": "scripted"})

        try:
            for i, token in enumerate(self._tokens):
                if self._fail_after is not None and i >= self._fail_after:
                    raise LLMResponseError("stream interrupted", context={"provider": "scripted"})
                self.tokens_sent += 1
                yield token
                await asyncio.sleep(self._stream_delay)
        except (asyncio.CancelledError, GeneratorExit):
            self.cancelled = True
            raise
