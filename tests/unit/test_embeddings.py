"""
Unit Tests - Embeddings

Tests for embedding providers and the fail-soft gateway.
"""

import asyncio
import math

import httpx
import pytest

from quarry.core.exceptions import EmbeddingError
from quarry.knowledge.embeddings import (
    EmbeddingGateway,
    EmbeddingProvider,
    OllamaEmbeddings,
    StubEmbeddings,
)
from quarry.observability.logging import LogLevel


class FixedProvider(EmbeddingProvider):
    """Returns a canned value and records what it was asked to embed."""

    name = "fixed"

    def __init__(self, value):
        self.value = value
        self.calls: list[str] = []

    async def embed(self, text: str):
        self.calls.append(text)
        return self.value


class FailingProvider(EmbeddingProvider):
    name = "failing"

    async def embed(self, text: str):
        raise RuntimeError("provider exploded")


class SlowProvider(EmbeddingProvider):
    name = "slow"

    async def embed(self, text: str):
        await asyncio.sleep(5)
        return [1.0]


class TestStubEmbeddings:
    """Tests for StubEmbeddings."""

    @pytest.mark.asyncio
    async def test_deterministic_and_normalized(self):
        """Test same text gives the same unit vector."""
        provider = StubEmbeddings(dimension=16)

        first = await provider.embed("Refund policy for enterprise customers")
        second = await provider.embed("Refund policy for enterprise customers")

        assert first == second
        assert len(first) == 16
        assert math.isclose(math.sqrt(sum(v * v for v in first)), 1.0)

    def test_invalid_dimension(self):
        """Test dimension must be positive."""
        with pytest.raises(ValueError):
            StubEmbeddings(dimension=0)


class TestEmbeddingGateway:
    """Tests for EmbeddingGateway."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", [None, "", "   \n"])
    async def test_blank_input_returns_none(self, text):
        """Test blank input never reaches the provider."""
        provider = FixedProvider([1.0, 2.0])
        gateway = EmbeddingGateway(provider)

        assert await gateway.embed(text) is None
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_provider_error_returns_none(self, log_buffer):
        """Test provider exceptions are swallowed and logged."""
        gateway = EmbeddingGateway(FailingProvider())

        assert await gateway.embed("hello") is None
        assert "Embedding request failed" in log_buffer.messages(LogLevel.WARNING)

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self, log_buffer):
        """Test a slow provider is abandoned after the timeout."""
        gateway = EmbeddingGateway(SlowProvider(), timeout=0.01)

        assert await gateway.embed("hello") is None
        assert "Embedding request timed out" in log_buffer.messages(LogLevel.WARNING)

    @pytest.mark.asyncio
    async def test_input_truncated(self):
        """Test text is cut to max_chars before the call."""
        provider = FixedProvider([0.5])
        gateway = EmbeddingGateway(provider, max_chars=10)

        await gateway.embed("x" * 50)

        assert provider.calls == ["x" * 10]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [[], "not a vector", None, [1.0, float("nan")], [1.0, "2"], [True, False], {"a": 1}],
    )
    async def test_malformed_vectors_rejected(self, raw):
        """Test anything but a non-empty finite numeric sequence is None."""
        gateway = EmbeddingGateway(FixedProvider(raw))
        assert await gateway.embed("hello") is None

    @pytest.mark.asyncio
    async def test_ints_coerced_to_floats(self):
        """Test integer components are accepted."""
        gateway = EmbeddingGateway(FixedProvider([1, 2, 3]))
        assert await gateway.embed("hello") == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_configured_dimension_enforced(self):
        """Test vectors of the wrong length are rejected."""
        gateway = EmbeddingGateway(FixedProvider([1.0, 2.0]), dimension=3)
        assert await gateway.embed("hello") is None

    @pytest.mark.asyncio
    async def test_dimension_learned_from_first_vector(self):
        """Test the first valid vector fixes the dimension."""
        provider = FixedProvider([1.0, 2.0])
        gateway = EmbeddingGateway(provider)

        assert await gateway.embed("first") == [1.0, 2.0]
        assert gateway.dimension == 2

        provider.value = [1.0, 2.0, 3.0]
        assert await gateway.embed("second") is None


class TestOllamaEmbeddings:
    """Tests for OllamaEmbeddings over a mocked transport."""

    @staticmethod
    def _client(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_reads_embedding_field(self):
        """Test the native response shape."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = request.read()
            return httpx.Response(200, json={"embedding": [0.1, 0.2]})

        provider = OllamaEmbeddings(
            endpoint="http://ollama/api/embeddings",
            model="nomic",
            client=self._client(handler),
        )

        assert await provider.embed("hello") == [0.1, 0.2]
        assert b'"model":"nomic"' in seen["body"].replace(b" ", b"")

    @pytest.mark.asyncio
    async def test_reads_openai_compatible_shape(self):
        """Test the data[0].embedding shape."""
        provider = OllamaEmbeddings(
            client=self._client(lambda r: httpx.Response(200, json={"data": [{"embedding": [0.3]}]}))
        )
        assert await provider.embed("hello") == [0.3]

    @pytest.mark.asyncio
    async def test_unexpected_shape_raises(self):
        """Test an unknown body raises EmbeddingError."""
        provider = OllamaEmbeddings(client=self._client(lambda r: httpx.Response(200, json={"oops": 1})))
        with pytest.raises(EmbeddingError):
            await provider.embed("hello")

    @pytest.mark.asyncio
    async def test_http_error_becomes_none_through_gateway(self):
        """Test server errors surface as None from the gateway."""
        provider = OllamaEmbeddings(client=self._client(lambda r: httpx.Response(500)))
        gateway = EmbeddingGateway(provider)

        assert await gateway.embed("hello") is None
