"""Query endpoints: chunk retrieval and retrieval-augmented answers."""

from __future__ import annotations

import asyncio
import logging

import anthropic
import openai
from fastapi import APIRouter, HTTPException

from codebase_rag.api.errors import to_http_exception
from codebase_rag.api.models import (
    ChunkHit,
    QueryRequest,
    QueryResponse,
    RagQueryRequest,
    RagQueryResponse,
)
from codebase_rag.config import get_settings
from codebase_rag.exceptions import CodebaseRagError
from codebase_rag.ingestion.embeddings import EmbeddingClient
from codebase_rag.pipeline_config import PipelineConfig
from codebase_rag.retrieval.generation import generate_answer, load_system_prompt
from codebase_rag.retrieval.search import QueryEngine

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/query", response_model=QueryResponse)
async def query(request: QueryRequest) -> QueryResponse:
    """Return the chunks that best match the query text."""
    config = PipelineConfig.from_settings(get_settings())
    try:
        async with EmbeddingClient(config) as embedder:
            rows = await QueryEngine(config, embedder).search(
                request.input,
                request.table,
                db_uri=request.database,
                whole_query=request.whole_query,
                file_context=request.file_context,
            )
    except CodebaseRagError as exc:
        raise to_http_exception(exc) from exc

    return QueryResponse(results=[ChunkHit(**row) for row in rows])


@router.post("/api/rag-query", response_model=RagQueryResponse)
async def rag_query(request: RagQueryRequest) -> RagQueryResponse:
    """Retrieve context for the question and answer it with the chat model."""
    settings = get_settings()
    config = PipelineConfig.from_settings(settings, chat_model=request.ai_model)
    try:
        async with EmbeddingClient(config) as embedder:
            contents = await QueryEngine(config, embedder).query(
                request.input,
                request.table,
                db_uri=request.database,
                whole_query=request.whole_query,
                file_context=request.file_context,
            )
    except CodebaseRagError as exc:
        raise to_http_exception(exc) from exc

    if not contents:
        return RagQueryResponse(answer="No relevant content found for your question.", sources=[])

    system_prompt = request.system_prompt
    if system_prompt is None:
        try:
            system_prompt = load_system_prompt(settings.system_prompt_path)
        except FileNotFoundError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

    question = " ".join(request.input)
    try:
        result = await asyncio.to_thread(generate_answer, question, contents, system_prompt, config)
    except (anthropic.APIStatusError, openai.APIStatusError) as exc:
        # Upstream overloaded or rejected the call; surface as 503 with a JSON body
        raise HTTPException(status_code=503, detail=f"LLM unavailable: {exc.message}") from exc

    return RagQueryResponse(
        answer=result["answer"],
        sources=result["sources"],
        model=result.get("model"),
        usage=result.get("usage"),
    )
