"""LanceDB storage helpers for chunk tables."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import lancedb
import pyarrow as pa

from codebase_rag.exceptions import ConfigMismatchError, StorageError, TableNotFoundError
from codebase_rag.ingestion.schema import DISTANCE_TYPE_KEY, VECTOR_DIM_KEY, TableSchema

if TYPE_CHECKING:
    from lancedb.db import AsyncConnection
    from lancedb.table import AsyncTable

    from codebase_rag.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)

# Rows are keyed by id and content; vector columns cannot serve as join keys
MERGE_KEYS = ("id", "content")


def base_name(root: str | Path) -> str:
    """Last path component of *root*, used to name the database and table."""
    return Path(root).resolve().name or "None"


def db_uri_for(root: str | Path, data_dir: str | Path = ".") -> str:
    """Database directory for an ingested root: ``<data_dir>/<basename>_db``."""
    return str(Path(data_dir) / f"{base_name(root)}_db")


def table_name_for(root: str | Path) -> str:
    return f"{base_name(root)}_table"


async def connect(db_uri: str) -> AsyncConnection:
    """Open (creating if needed) the LanceDB database at *db_uri*."""
    try:
        return await lancedb.connect_async(db_uri)
    except Exception as exc:
        raise StorageError(f"Failed to connect to database at {db_uri}: {exc}", "") from exc


async def create_table(db: AsyncConnection, schema: TableSchema) -> AsyncTable:
    """Drop any existing table of the same name and create an empty one.

    Ingestion always rebuilds a table from scratch.
    """
    try:
        if schema.name in await db.table_names():
            logger.info("Dropping existing table %s", schema.name)
            await db.drop_table(schema.name)
        table = await db.create_table(schema.name, schema=schema.create_schema())
    except Exception as exc:
        raise StorageError(f"Failed to create table: {exc}", schema.name) from exc
    logger.info("Created table %s (dim=%d)", schema.name, schema.vector_dim)
    return table


async def open_table(db: AsyncConnection, table_name: str, db_uri: str = "") -> AsyncTable:
    """Open an existing table, failing with :class:`TableNotFoundError`."""
    try:
        names = await db.table_names()
    except Exception as exc:
        raise StorageError(f"Failed to list tables: {exc}", table_name) from exc
    if table_name not in names:
        raise TableNotFoundError(table_name, db_uri)
    try:
        return await db.open_table(table_name)
    except Exception as exc:
        raise StorageError(f"Failed to open table: {exc}", table_name) from exc


async def merge_insert(
    table: AsyncTable,
    batch: pa.RecordBatch,
    keys: tuple[str, ...] = MERGE_KEYS,
) -> None:
    """Upsert *batch*: insert rows whose key is absent, update the rest."""
    data = pa.Table.from_batches([batch])
    await (
        table.merge_insert(list(keys))
        .when_matched_update_all()
        .when_not_matched_insert_all()
        .execute(data)
    )


async def insert(table: AsyncTable, batch: pa.RecordBatch) -> None:
    await table.add(pa.Table.from_batches([batch]))


def check_table_config(
    arrow_schema: pa.Schema,
    table_name: str,
    config: PipelineConfig,
    vector_column: str = "vector",
) -> None:
    """Fail loudly when a table was built with another dimension or metric.

    The dimension is read from the vector column type; the metric from the
    schema metadata written at creation time (tables without it are only
    checked for dimension).

    Raises:
        ConfigMismatchError: On any mismatch.
    """
    field = arrow_schema.field(vector_column)
    stored_dim = getattr(field.type, "list_size", None)
    if stored_dim is not None and stored_dim != config.vector_dim:
        raise ConfigMismatchError(table_name, "vector_dim", str(stored_dim), str(config.vector_dim))

    metadata = arrow_schema.metadata or {}
    stored_metric = metadata.get(DISTANCE_TYPE_KEY)
    if stored_metric is not None and stored_metric.decode() != config.distance_type.value:
        raise ConfigMismatchError(
            table_name, "distance_type", stored_metric.decode(), config.distance_type.value
        )

    stored_meta_dim = metadata.get(VECTOR_DIM_KEY)
    if stored_meta_dim is not None and int(stored_meta_dim) != config.vector_dim:
        raise ConfigMismatchError(
            table_name, "vector_dim", stored_meta_dim.decode(), str(config.vector_dim)
        )
