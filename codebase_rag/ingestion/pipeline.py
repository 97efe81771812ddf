"""End-to-end ingestion pipeline: chunk -> embed -> build batch -> upsert -> index."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from codebase_rag.exceptions import IngestionError
from codebase_rag.ingestion import storage
from codebase_rag.ingestion.chunking import Chunker
from codebase_rag.ingestion.indexing import IndexBuilder
from codebase_rag.ingestion.models import Chunk, EmbedRequest
from codebase_rag.ingestion.schema import TableSchema

if TYPE_CHECKING:
    from lancedb.table import AsyncTable

    from codebase_rag.ingestion.embeddings import EmbeddingClient
    from codebase_rag.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)


class ChunkState(StrEnum):
    """Lifecycle of one chunk inside an ingestion run."""

    PENDING = "pending"
    EMBEDDING_REQUESTED = "embedding_requested"
    EMBEDDING_RECEIVED = "embedding_received"
    BATCH_BUILT = "batch_built"
    UPSERTED = "upserted"
    FAILED = "failed"


@dataclass
class IngestionReport:
    """Summary of a finished ingestion run."""

    db_uri: str
    table_name: str
    chunks: int
    rows: int
    vector_index: bool = False
    text_indexes: list[str] = field(default_factory=list)
    placeholder_rows: int = 0


class IngestionPipeline:
    """Ingest a file or directory tree into a freshly rebuilt LanceDB table.

    Chunks are embedded and upserted concurrently, at most
    ``config.max_concurrency`` at a time. The first failure cancels the
    remaining work and is re-raised as an :class:`IngestionError`; rows
    already written stay in the table, and the next run drops and rebuilds
    it from empty.
    """

    def __init__(
        self,
        config: PipelineConfig,
        embedder: EmbeddingClient,
        chunker: Chunker | None = None,
        index_builder: IndexBuilder | None = None,
    ) -> None:
        self.config = config
        self.embedder = embedder
        self.chunker = chunker or Chunker(config)
        self.index_builder = index_builder or IndexBuilder(config)

    def table_schema(self, name: str) -> TableSchema:
        return TableSchema(
            name=name,
            vector_dim=self.config.vector_dim,
            distance_type=self.config.distance_type,
        )

    async def run(
        self,
        root: str | Path,
        max_chunk_size: int,
        table_name: str | None = None,
    ) -> IngestionReport:
        """Chunk *root*, embed every chunk, store the rows and build indexes.

        Args:
            root: File or directory to ingest.
            max_chunk_size: Target chunk size in characters.
            table_name: Table to (re)create; defaults to ``<basename>_table``.

        Returns:
            An :class:`IngestionReport` describing the rebuilt table.
        """
        # File reads block, so the walk runs off the event loop
        chunks = await asyncio.to_thread(self.chunker.split, root, max_chunk_size)
        logger.info("Loaded %d chunks from %s", len(chunks), root)

        db_uri = storage.db_uri_for(root, self.config.data_dir)
        schema = self.table_schema(table_name or storage.table_name_for(root))

        db = await storage.connect(db_uri)
        table = await storage.create_table(db, schema)

        await self.ingest_chunks(chunks, table, schema)
        indexes = await self.index_builder.build(table, schema)
        # Bootstrap padding is not content
        rows = await table.count_rows() - indexes.placeholder_rows

        logger.info("Ingested %d chunks into %s/%s (%d rows)", len(chunks), db_uri, schema.name, rows)
        return IngestionReport(
            db_uri=db_uri,
            table_name=schema.name,
            chunks=len(chunks),
            rows=rows,
            vector_index=indexes.vector_index,
            text_indexes=indexes.text_indexes,
            placeholder_rows=indexes.placeholder_rows,
        )

    async def ingest_chunks(
        self,
        chunks: list[Chunk],
        table: AsyncTable,
        schema: TableSchema,
    ) -> None:
        """Embed and upsert *chunks* concurrently, joining before returning."""
        if not chunks:
            logger.warning("No chunks to ingest into %s", schema.name)
            return

        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        tasks = [
            asyncio.create_task(self._ingest_chunk(row_id, chunk, table, schema, semaphore))
            for row_id, chunk in enumerate(chunks)
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error(
                "Ingestion into %s aborted; the run is not transactional. "
                "Fix the cause and re-run: the table is dropped and rebuilt from empty.",
                schema.name,
            )
            raise

    async def _ingest_chunk(
        self,
        row_id: int,
        chunk: Chunk,
        table: AsyncTable,
        schema: TableSchema,
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            file_path = str(chunk.file_path)
            self._log_state(chunk, ChunkState.PENDING)
            request = EmbedRequest.for_chunk(chunk, self.config)
            # Every row of the record batch takes the request's chunk_number
            if len(request.input) != 1:
                self._log_state(chunk, ChunkState.FAILED)
                cause = ValueError(f"ingestion request carries {len(request.input)} inputs, expected 1")
                raise IngestionError("batch", file_path, chunk.chunk_index, cause)

            self._log_state(chunk, ChunkState.EMBEDDING_REQUESTED)
            try:
                response = await self.embedder.embed(request)
            except Exception as exc:
                self._log_state(chunk, ChunkState.FAILED)
                raise IngestionError("fetch", file_path, chunk.chunk_index, exc) from exc
            self._log_state(chunk, ChunkState.EMBEDDING_RECEIVED)

            try:
                batch = schema.create_record_batch(row_id, request, response)
            except Exception as exc:
                self._log_state(chunk, ChunkState.FAILED)
                raise IngestionError("batch", file_path, chunk.chunk_index, exc) from exc
            self._log_state(chunk, ChunkState.BATCH_BUILT)

            try:
                await storage.merge_insert(table, batch)
            except Exception as exc:
                self._log_state(chunk, ChunkState.FAILED)
                raise IngestionError("insert", file_path, chunk.chunk_index, exc) from exc
            self._log_state(chunk, ChunkState.UPSERTED)

    @staticmethod
    def _log_state(chunk: Chunk, state: ChunkState) -> None:
        logger.debug("%s chunk %d: %s", chunk.file_path, chunk.chunk_index, state.value)
