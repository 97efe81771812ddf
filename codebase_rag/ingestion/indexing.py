"""Vector (HNSW-PQ) and full-text index builds for chunk tables."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lancedb.index import FTS, HnswPq

from codebase_rag.exceptions import StorageError
from codebase_rag.ingestion.storage import insert

if TYPE_CHECKING:
    from lancedb.table import AsyncTable

    from codebase_rag.ingestion.schema import TableSchema
    from codebase_rag.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)


@dataclass
class IndexResult:
    """Which indexes were built for a table."""

    vector_index: bool = False
    text_indexes: list[str] = field(default_factory=list)
    placeholder_rows: int = 0


class IndexBuilder:
    """Build the ANN index on the vector column and FTS indexes on text columns."""

    def __init__(self, config: PipelineConfig) -> None:
        self.config = config

    def vector_index_config(self) -> HnswPq:
        return HnswPq(
            distance_type=self.config.distance_type.value,
            num_partitions=self.config.index_num_partitions,
            max_iterations=self.config.index_max_iterations,
            sample_rate=self.config.index_sample_rate,
            ef_construction=self.config.index_ef_construction,
        )

    async def pad_small_table(self, table: AsyncTable, schema: TableSchema) -> int:
        """Pad a table too small for index training with placeholder rows.

        Only done when ``bootstrap_small_tables`` is set. Returns the number
        of placeholder rows inserted.
        """
        if not self.config.bootstrap_small_tables:
            return 0
        if await table.count_rows() >= self.config.index_num_partitions:
            return 0
        logger.info("Padding %s with placeholder rows for index training", schema.name)
        batch = schema.empty_batch()
        await insert(table, batch)
        return batch.num_rows

    async def build_vector_index(self, table: AsyncTable, schema: TableSchema) -> bool:
        """Train the vector index, or skip it when the table is too small.

        Index training needs at least one row per partition. Tables below
        that are left unindexed and queries fall back to a flat scan; see
        :meth:`pad_small_table` for the alternative.

        Returns:
            True if the index was built.
        """
        rows = await table.count_rows()
        min_rows = self.config.index_num_partitions
        if rows < min_rows:
            logger.warning(
                "Skipping vector index on %s: %d rows < %d partitions (queries use flat search)",
                schema.name,
                rows,
                min_rows,
            )
            return False

        try:
            await table.create_index(schema.vector, config=self.vector_index_config(), replace=True)
        except Exception as exc:
            raise StorageError(f"Failed to build vector index: {exc}", schema.name) from exc
        logger.info(
            "Built %s vector index on %s.%s",
            self.config.distance_type.value,
            schema.name,
            schema.vector,
        )
        return True

    async def build_text_indexes(self, table: AsyncTable, schema: TableSchema) -> list[str]:
        """Create an inverted index per text column; returns the indexed columns."""
        if await table.count_rows() == 0:
            logger.warning("Skipping text indexes on empty table %s", schema.name)
            return []

        built: list[str] = []
        for column in schema.text_columns:
            try:
                await table.create_index(column, config=FTS(), replace=True)
            except Exception as exc:
                raise StorageError(
                    f"Failed to build inverted index on '{column}': {exc}", schema.name
                ) from exc
            built.append(column)
        logger.info("Built inverted indexes on %s: %s", schema.name, ", ".join(built))
        return built

    async def build(self, table: AsyncTable, schema: TableSchema) -> IndexResult:
        placeholder_rows = await self.pad_small_table(table, schema)
        vector_index = await self.build_vector_index(table, schema)
        text_indexes = await self.build_text_indexes(table, schema)
        return IndexResult(
            vector_index=vector_index,
            text_indexes=text_indexes,
            placeholder_rows=placeholder_rows,
        )
