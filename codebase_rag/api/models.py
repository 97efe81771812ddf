"""Pydantic request/response schemas for the codebase RAG API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from codebase_rag.pipeline_config import EmbeddingProvider


class IngestRequest(BaseModel):
    """Request body for the /api/ingest endpoint."""

    path: str
    chunk_size: int | None = Field(default=None, gt=0)
    table_name: str | None = None
    provider: EmbeddingProvider | None = None
    model: str | None = None
    api_url: str | None = None


class IngestResponse(BaseModel):
    """Response body for the /api/ingest endpoint."""

    db_uri: str
    table_name: str
    chunks: int
    rows: int
    vector_index: bool
    text_indexes: list[str]
    placeholder_rows: int = 0


class QueryRequest(BaseModel):
    """Request body for the /api/query endpoint."""

    input: list[str]
    table: str
    database: str | None = None
    whole_query: bool = False
    file_context: bool = False


class ChunkHit(BaseModel):
    """A single retrieved chunk."""

    content: str
    metadata: str | None = None
    chunk_number: int | None = None
    id: int | None = None
    distance: float | None = None


class QueryResponse(BaseModel):
    """Response body for the /api/query endpoint."""

    results: list[ChunkHit]


class RagQueryRequest(QueryRequest):
    """Request body for the /api/rag-query endpoint."""

    system_prompt: str | None = None
    ai_model: str | None = None


class RagQueryResponse(BaseModel):
    """Response body for the /api/rag-query endpoint."""

    answer: str
    sources: list[str]
    model: str | None = None
    usage: dict[str, Any] | None = None
