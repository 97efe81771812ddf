"""Vector and scan retrieval over chunk tables."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import pyarrow as pa

from codebase_rag.exceptions import (
    DimensionMismatchError,
    EmptyQueryError,
    StorageError,
    UnsupportedColumnTypeError,
)
from codebase_rag.ingestion import storage
from codebase_rag.ingestion.models import EmbedRequest

if TYPE_CHECKING:
    from lancedb.table import AsyncTable

    from codebase_rag.ingestion.embeddings import EmbeddingClient
    from codebase_rag.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)

SCAN_COLUMNS = ["id", "metadata", "content"]
NEAREST_COLUMNS = ["chunk_number", "metadata", "content"]
DISTANCE_COLUMN = "_distance"
NOT_NULL_CONTENT = "content IS NOT NULL"


def get_column_values(result: pa.Table, column: str) -> list[str]:
    """Return *column* of *result* as strings.

    String columns are returned as-is, integer columns are stringified.
    Nulls are skipped.

    Raises:
        UnsupportedColumnTypeError: For any other column type.
    """
    data_type = result.schema.field(column).type
    values = result.column(column).to_pylist()
    if pa.types.is_string(data_type) or pa.types.is_large_string(data_type):
        return [value for value in values if value is not None]
    if pa.types.is_integer(data_type):
        return [str(value) for value in values if value is not None]
    raise UnsupportedColumnTypeError(column, str(data_type))


def _sql_string(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def metadata_filter(file_names: list[str]) -> str:
    """SQL predicate selecting every row whose metadata is one of *file_names*."""
    return f"metadata IN ({', '.join(_sql_string(name) for name in file_names)})"


class QueryEngine:
    """Retrieve chunk content for a free-text query.

    Two modes:
        - nearest-neighbour search on the query embedding (default)
        - ``whole_query``: a capped, unranked scan of every non-null row

    With ``file_context`` the nearest-neighbour hits are expanded to every
    chunk of the files they came from.
    """

    def __init__(self, config: PipelineConfig, embedder: EmbeddingClient) -> None:
        self.config = config
        self.embedder = embedder

    def default_db_uri(self, table_name: str) -> str:
        base = table_name.removesuffix("_table")
        return storage.db_uri_for(base, self.config.data_dir)

    async def embed_query(self, query_texts: list[str]) -> list[float]:
        """Embed the query and return the vector of its first non-blank text.

        Blank strings are dropped before the request is built.

        Raises:
            EmptyQueryError: If there is no non-blank query text. No
                request is sent in that case.
            DimensionMismatchError: If the vector does not match ``vector_dim``.
        """
        texts = [text for text in query_texts if text.strip()]
        if not texts:
            raise EmptyQueryError()

        request = EmbedRequest.for_query(texts, self.config)
        response = await self.embedder.embed(request)
        vector = response.embeddings[0]
        if len(vector) != self.config.vector_dim:
            raise DimensionMismatchError(
                expected=self.config.vector_dim,
                actual=len(vector),
                details={"model": request.model},
            )
        return vector

    async def open_table(self, table_name: str, db_uri: str | None = None) -> AsyncTable:
        """Open *table_name* and check it was built with the running config."""
        db_uri = db_uri or self.default_db_uri(table_name)
        db = await storage.connect(db_uri)
        table = await storage.open_table(db, table_name, db_uri)
        try:
            arrow_schema = await table.schema()
        except Exception as exc:
            raise StorageError(f"Failed to read table schema: {exc}", table_name) from exc
        storage.check_table_config(arrow_schema, table_name, self.config)
        return table

    async def execute(
        self,
        query_texts: list[str],
        table_name: str,
        db_uri: str | None = None,
        whole_query: bool = False,
        file_context: bool = False,
    ) -> pa.Table:
        """Run the query and return the raw Arrow result."""
        vector = await self.embed_query(query_texts)
        table = await self.open_table(table_name, db_uri)

        if whole_query:
            if file_context:
                logger.warning("file_context is ignored for whole-table queries")
            return await self.scan(table, table_name)

        hits = await self.nearest(table, table_name, vector)
        if not file_context:
            return hits
        return await self.expand_to_files(table, table_name, hits)

    async def scan(self, table: AsyncTable, table_name: str) -> pa.Table:
        try:
            result = await (
                table.query()
                .where(NOT_NULL_CONTENT)
                .select(SCAN_COLUMNS)
                .limit(self.config.scan_limit)
                .to_arrow()
            )
        except Exception as exc:
            raise StorageError(f"Scan query failed: {exc}", table_name) from exc
        logger.info("Scan of %s returned %d rows", table_name, result.num_rows)
        return result

    async def nearest(self, table: AsyncTable, table_name: str, vector: list[float]) -> pa.Table:
        try:
            result = await (
                table.query()
                .nearest_to(vector)
                .distance_type(self.config.distance_type.value)
                .nprobes(self.config.query_nprobes)
                .refine_factor(self.config.query_refine_factor)
                .where(NOT_NULL_CONTENT)
                .select(NEAREST_COLUMNS)
                .limit(self.config.query_limit)
                .to_arrow()
            )
        except Exception as exc:
            raise StorageError(f"Vector query failed: {exc}", table_name) from exc
        logger.info("Vector query on %s returned %d rows", table_name, result.num_rows)
        return result

    async def expand_to_files(self, table: AsyncTable, table_name: str, hits: pa.Table) -> pa.Table:
        """Fetch every chunk of the files named in the hits' metadata.

        Only files already present in *hits* are selected, so the expansion
        never introduces new files.
        """
        if "metadata" not in hits.column_names:
            return hits
        file_names = list(dict.fromkeys(get_column_values(hits, "metadata")))
        if not file_names:
            logger.warning("No file names in hits from %s; nothing to expand", table_name)
            return hits

        predicate = f"{NOT_NULL_CONTENT} AND {metadata_filter(file_names)}"
        try:
            result = await (
                table.query()
                .where(predicate)
                .select(SCAN_COLUMNS)
                .limit(self.config.scan_limit)
                .to_arrow()
            )
        except Exception as exc:
            raise StorageError(f"File context query failed: {exc}", table_name) from exc
        logger.info(
            "Expanded %d hits to %d rows across %d files", hits.num_rows, result.num_rows, len(file_names)
        )
        return result

    async def query(
        self,
        query_texts: list[str],
        table_name: str,
        db_uri: str | None = None,
        whole_query: bool = False,
        file_context: bool = False,
    ) -> list[str]:
        """Return the content strings matching the query.

        An empty list is returned, with a warning, when the result has no
        ``content`` column.
        """
        result = await self.execute(query_texts, table_name, db_uri, whole_query, file_context)
        if "content" not in result.column_names:
            logger.warning("Result from %s has no content column", table_name)
            return []
        return get_column_values(result, "content")

    async def search(
        self,
        query_texts: list[str],
        table_name: str,
        db_uri: str | None = None,
        whole_query: bool = False,
        file_context: bool = False,
    ) -> list[dict[str, Any]]:
        """Like :meth:`query` but returns whole rows (without vectors)."""
        result = await self.execute(query_texts, table_name, db_uri, whole_query, file_context)
        rows = result.to_pylist()
        for row in rows:
            if DISTANCE_COLUMN in row:
                row["distance"] = row.pop(DISTANCE_COLUMN)
        return rows
