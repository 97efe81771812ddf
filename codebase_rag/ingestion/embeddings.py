"""Embedding client for Ollama (raw HTTP) and OpenAI (SDK)."""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType

import httpx
from openai import APIStatusError, AsyncOpenAI, OpenAIError

from codebase_rag.exceptions import EmbeddingMismatchError, EmbeddingProviderError
from codebase_rag.ingestion.models import EmbedRequest, EmbedResponse
from codebase_rag.pipeline_config import EmbeddingProvider, PipelineConfig

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Fetch embeddings for :class:`EmbedRequest` values.

    One client is shared by every ingestion task; it holds no per-request
    state, so concurrent ``embed`` calls are safe.
    """

    def __init__(
        self,
        config: PipelineConfig,
        http_client: httpx.AsyncClient | None = None,
        openai_client: AsyncOpenAI | None = None,
    ) -> None:
        self.config = config
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=config.embed_timeout_seconds)
        self._openai = openai_client

    async def __aenter__(self) -> EmbeddingClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
        if self._openai is not None:
            await self._openai.close()

    async def embed(self, request: EmbedRequest) -> EmbedResponse:
        """Embed every input of *request*, preserving order.

        Raises:
            EmbeddingProviderError: On timeout, transport failure, non-2xx
                status, or a malformed payload.
            EmbeddingMismatchError: If the number of vectors differs from
                the number of inputs.
        """
        url = request.embed_url
        logger.debug("Requesting %d embeddings from %s", len(request.input), url)
        try:
            response = await asyncio.wait_for(
                self._dispatch(request), timeout=self.config.embed_timeout_seconds
            )
        except TimeoutError as exc:
            raise EmbeddingProviderError(
                f"Embedding request timed out after {self.config.embed_timeout_seconds}s",
                url,
            ) from exc

        if len(response.embeddings) != len(request.input):
            raise EmbeddingMismatchError(
                expected=len(request.input),
                actual=len(response.embeddings),
                details={"metadata": request.metadata, "chunk": request.chunk_number},
            )
        return response

    async def _dispatch(self, request: EmbedRequest) -> EmbedResponse:
        if request.provider is EmbeddingProvider.OPENAI:
            return await self._embed_openai(request)
        return await self._embed_http(request)

    async def _embed_http(self, request: EmbedRequest) -> EmbedResponse:
        url = request.embed_url
        try:
            response = await self._http.post(
                url,
                json=request.payload(),
                headers={"Authorization": f"Bearer {request.api_key}"},
            )
        except httpx.HTTPError as exc:
            raise EmbeddingProviderError(f"Failed to send request to {url}: {exc}", url) from exc

        logger.debug("Embedding response status: %d", response.status_code)
        if not response.is_success:
            raise EmbeddingProviderError(
                f"Embedding provider returned HTTP {response.status_code}: {response.text[:200]}",
                url,
                status_code=response.status_code,
            )

        try:
            return EmbedResponse.from_json(response.json())
        except ValueError as exc:
            raise EmbeddingProviderError(f"Failed to parse embedding response: {exc}", url) from exc

    async def _embed_openai(self, request: EmbedRequest) -> EmbedResponse:
        url = request.embed_url
        try:
            if self._openai is None:
                # Falls back to OPENAI_API_KEY when the request carries no key
                self._openai = AsyncOpenAI(
                    api_key=request.api_key or None,
                    timeout=self.config.embed_timeout_seconds,
                )
            result = await self._openai.embeddings.create(
                input=list(request.input), model=request.model
            )
        except APIStatusError as exc:
            raise EmbeddingProviderError(
                f"OpenAI embeddings call failed: {exc.message}", url, status_code=exc.status_code
            ) from exc
        except OpenAIError as exc:
            raise EmbeddingProviderError(f"OpenAI embeddings call failed: {exc}", url) from exc

        ordered = sorted(result.data, key=lambda item: item.index)
        return EmbedResponse(model=result.model, embeddings=[item.embedding for item in ordered])
