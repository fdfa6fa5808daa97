"""
Embedding Service

Generate vector embeddings for text.
Abstracts the managed and self-hosted embedding providers.

Design decisions:
- Provider-agnostic interface, one provider selected at startup
- Providers may raise; the gateway converts every failure to None
- Inputs are truncated before they leave the process
- No automatic retries; callers skip the item instead
"""

import asyncio
import hashlib
import math
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import httpx

from quarry.config.settings import EmbeddingSettings
from quarry.core.exceptions import EmbeddingError
from quarry.observability.logging import get_logger

logger = get_logger(__name__)


class EmbeddingProvider(ABC):
    """
    Abstract embedding provider.

    Generates dense vector representations of text
    for semantic similarity search.
    """

    name: str = "base"

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate embedding for single text."""

    async def close(self) -> None:
        """Release network resources."""


class OpenAIEmbeddings(EmbeddingProvider):
    """Managed provider using the OpenAI embeddings API."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "text-embedding-ada-002",
        base_url: str | None = None,
    ):
        self._model = model
        self._api_key = api_key
        self._base_url = base_url
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError:
                raise ImportError("openai package required. Install with: pip install openai")

            kwargs: dict[str, Any] = {}
            if self._api_key:
                kwargs["api_key"] = self._api_key
            if self._base_url:
                kwargs["base_url"] = self._base_url

            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def embed(self, text: str) -> list[float]:
        client = self._get_client()
        response = await client.embeddings.create(model=self._model, input=text)
        if not response.data:
            raise EmbeddingError("OpenAI returned no embedding data", context={"model": self._model})
        return list(response.data[0].embedding)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class OllamaEmbeddings(EmbeddingProvider):
    """
    Self-hosted provider speaking the Ollama embeddings API.

    POST {"model", "prompt"} → {"embedding": [...]}. OpenAI-compatible
    {"data": [{"embedding": [...]}]} bodies are accepted as well.
    """

    name = "ollama"

    def __init__(
        self,
        endpoint: str = "http://localhost:11434/api/embeddings",
        model: str = "nomic-embed-text:latest",
        timeout: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._endpoint = endpoint
        self._model = model
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def embed(self, text: str) -> list[float]:
        response = await self._client.post(
            self._endpoint,
            json={"model": self._model, "prompt": text},
        )
        response.raise_for_status()
        body = response.json()

        if isinstance(body, dict):
            if "embedding" in body:
                return body["embedding"]
            data = body.get("data")
            if isinstance(data, list) and data and isinstance(data[0], dict):
                return data[0].get("embedding")

        raise EmbeddingError(
            "Unexpected embedding response shape",
            context={"endpoint": self._endpoint, "model": self._model},
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class StubEmbeddings(EmbeddingProvider):
    """
    Deterministic offline provider.

    Hashes lowercase word tokens into a fixed number of buckets and
    L2-normalises the result, so texts sharing words land close together.
    """

    name = "stub"

    _TOKEN = re.compile(r"\w+")

    def __init__(self, dimension: int = 64):
        if dimension < 1:
            raise ValueError("dimension must be >= 1")
        self.dimension = dimension

    async def embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        tokens = self._TOKEN.findall(text.lower()) or [text]

        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            vector[0] = 1.0
            return vector
        return [v / norm for v in vector]


class EmbeddingGateway:
    """
    Fail-soft front door to the configured embedding provider.

    embed() never raises. None means "no vector could be produced"
    and callers must skip the item.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        max_chars: int = 4000,
        timeout: float = 20.0,
        dimension: int | None = None,
    ):
        self._provider = provider
        self._max_chars = max_chars
        self._timeout = timeout
        # Fixed per configuration; learned from the first good vector when unset
        self._dimension = dimension

    @classmethod
    def from_settings(cls, provider: EmbeddingProvider, settings: EmbeddingSettings) -> "EmbeddingGateway":
        return cls(
            provider,
            max_chars=settings.max_chars,
            timeout=settings.timeout,
            dimension=settings.dimension,
        )

    @property
    def provider(self) -> EmbeddingProvider:
        return self._provider

    @property
    def dimension(self) -> int | None:
        return self._dimension

    async def embed(self, text: str | None) -> list[float] | None:
        if not isinstance(text, str) or not text.strip():
            return None

        truncated = text[: self._max_chars]

        try:
            raw = await asyncio.wait_for(self._provider.embed(truncated), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Embedding request timed out",
                provider=self._provider.name,
                timeout=self._timeout,
            )
            return None
        except Exception as e:
            logger.warning(
                "Embedding request failed",
                error=e,
                provider=self._provider.name,
            )
            return None

        vector = self._validate(raw)
        if vector is None:
            logger.warning(
                "Discarding malformed embedding",
                provider=self._provider.name,
                expected_dimension=self._dimension,
            )
        return vector

    def _validate(self, raw: Any) -> list[float] | None:
        if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)) or not raw:
            return None

        vector: list[float] = []
        for value in raw:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return None
            if not math.isfinite(value):
                return None
            vector.append(float(value))

        if self._dimension is None:
            self._dimension = len(vector)
        elif len(vector) != self._dimension:
            return None

        return vector

    async def close(self) -> None:
        await self._provider.close()
