"""Tests for the embedding client's HTTP and OpenAI contracts."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from codebase_rag.exceptions import EmbeddingMismatchError, EmbeddingProviderError
from codebase_rag.ingestion.embeddings import EmbeddingClient
from codebase_rag.ingestion.models import EmbedRequest
from codebase_rag.pipeline_config import EmbeddingProvider, PipelineConfig


def _client(handler, **config_kwargs) -> EmbeddingClient:
    config = PipelineConfig(api_key="secret", **config_kwargs)
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EmbeddingClient(config, http_client=http)


def _request(config: PipelineConfig, texts: list[str]) -> EmbedRequest:
    return EmbedRequest.for_query(texts, config)


class TestHttpEmbedding:
    @pytest.mark.asyncio
    async def test_posts_model_and_input_with_bearer(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"model": "nomic-embed-text", "embeddings": [[0.1, 0.2]]})

        client = _client(handler)
        response = await client.embed(_request(client.config, ["hello"]))

        assert response.embeddings == [[0.1, 0.2]]
        assert len(seen) == 1
        sent = seen[0]
        assert str(sent.url) == "http://localhost:11434/api/embed"
        assert sent.headers["Authorization"] == "Bearer secret"
        assert json.loads(sent.content) == {"model": "nomic-embed-text", "input": ["hello"]}

    @pytest.mark.asyncio
    async def test_non_success_status(self) -> None:
        client = _client(lambda request: httpx.Response(500, text="model not loaded"))
        with pytest.raises(EmbeddingProviderError) as exc_info:
            await client.embed(_request(client.config, ["hello"]))
        assert exc_info.value.status_code == 500
        assert "model not loaded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_malformed_json(self) -> None:
        client = _client(lambda request: httpx.Response(200, text="not json"))
        with pytest.raises(EmbeddingProviderError):
            await client.embed(_request(client.config, ["hello"]))

    @pytest.mark.asyncio
    async def test_missing_embeddings_field(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={"model": "m"}))
        with pytest.raises(EmbeddingProviderError):
            await client.embed(_request(client.config, ["hello"]))

    @pytest.mark.asyncio
    async def test_count_mismatch(self) -> None:
        client = _client(
            lambda request: httpx.Response(200, json={"model": "m", "embeddings": [[0.1]]})
        )
        with pytest.raises(EmbeddingMismatchError):
            await client.embed(_request(client.config, ["one", "two"]))

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(EmbeddingProviderError) as exc_info:
            await client.embed(_request(client.config, ["hello"]))
        assert exc_info.value.url == "http://localhost:11434/api/embed"

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={"model": "m", "embeddings": [[0.1]]})

        client = _client(handler, embed_timeout_seconds=0.05)
        with pytest.raises(EmbeddingProviderError, match="timed out"):
            await client.embed(_request(client.config, ["hello"]))

    @pytest.mark.asyncio
    async def test_context_manager_closes_owned_client(self) -> None:
        async with EmbeddingClient(PipelineConfig()) as client:
            http = client._http
        assert http.is_closed


class TestOpenAIEmbedding:
    @pytest.mark.asyncio
    async def test_uses_sdk_and_orders_by_index(self) -> None:
        openai_client = MagicMock()
        openai_client.embeddings.create = AsyncMock(
            return_value=SimpleNamespace(
                model="text-embedding-3-small",
                data=[
                    SimpleNamespace(index=1, embedding=[2.0]),
                    SimpleNamespace(index=0, embedding=[1.0]),
                ],
            )
        )
        config = PipelineConfig(provider=EmbeddingProvider.OPENAI, embedding_model="text-embedding-3-small")
        client = EmbeddingClient(config, openai_client=openai_client)

        response = await client.embed(_request(config, ["first", "second"]))

        assert response.embeddings == [[1.0], [2.0]]
        openai_client.embeddings.create.assert_awaited_once_with(
            input=["first", "second"], model="text-embedding-3-small"
        )
