"""Ingest endpoint: chunk, embed and index a file or directory on the server."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from codebase_rag.api.errors import to_http_exception
from codebase_rag.api.models import IngestRequest, IngestResponse
from codebase_rag.config import get_settings
from codebase_rag.exceptions import CodebaseRagError
from codebase_rag.ingestion.embeddings import EmbeddingClient
from codebase_rag.ingestion.pipeline import IngestionPipeline
from codebase_rag.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/ingest", response_model=IngestResponse)
async def ingest(request: IngestRequest) -> IngestResponse:
    """Rebuild the table for ``request.path`` from scratch.

    Ingestion is not transactional: on failure the table may hold some rows,
    and the next ingest of the same path drops and rebuilds it.
    """
    settings = get_settings()
    try:
        config = PipelineConfig.from_settings(
            settings,
            provider=request.provider,
            embedding_model=request.model,
            api_url=request.api_url,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    chunk_size = request.chunk_size or settings.chunk_size
    try:
        async with EmbeddingClient(config) as embedder:
            pipeline = IngestionPipeline(config, embedder)
            report = await pipeline.run(request.path, chunk_size, table_name=request.table_name)
    except CodebaseRagError as exc:
        logger.error("Ingest of %s failed: %s", request.path, exc)
        raise to_http_exception(exc) from exc
    except OSError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return IngestResponse(
        db_uri=report.db_uri,
        table_name=report.table_name,
        chunks=report.chunks,
        rows=report.rows,
        vector_index=report.vector_index,
        text_indexes=report.text_indexes,
        placeholder_rows=report.placeholder_rows,
    )
