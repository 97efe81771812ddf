"""Tests for the query engine: validation, retrieval modes and file expansion."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pyarrow as pa
import pytest
from fakes import FakeEmbedder, fake_vector

from codebase_rag.exceptions import (
    ConfigMismatchError,
    DimensionMismatchError,
    EmptyQueryError,
    TableNotFoundError,
    UnsupportedColumnTypeError,
)
from codebase_rag.ingestion import storage
from codebase_rag.ingestion.models import Chunk, EmbedRequest, EmbedResponse
from codebase_rag.ingestion.schema import TableSchema
from codebase_rag.pipeline_config import PipelineConfig
from codebase_rag.retrieval.search import QueryEngine, get_column_values, metadata_filter

FILES = {"a.py": 3, "b.txt": 2, "c.log": 1}


async def _build_table(config: PipelineConfig) -> str:
    """Create proj_table with FILES plus placeholder rows; returns the db uri."""
    db_uri = str(Path(config.data_dir) / "proj_db")
    db = await storage.connect(db_uri)
    schema = TableSchema(name="proj_table", vector_dim=config.vector_dim, distance_type=config.distance_type)
    table = await storage.create_table(db, schema)

    row_id = 0
    for file_name, count in FILES.items():
        for i in range(count):
            chunk = Chunk.from_text(f"{file_name} part {i}", Path(file_name), i)
            request = EmbedRequest.for_chunk(chunk, config)
            response = EmbedResponse(model="m", embeddings=[fake_vector(chunk.text, config.vector_dim)])
            await storage.merge_insert(table, schema.create_record_batch(row_id, request, response))
            row_id += 1
    await storage.insert(table, schema.empty_batch())
    return db_uri


class TestColumnValues:
    def test_strings(self) -> None:
        result = pa.table({"content": ["a", None, "b"]})
        assert get_column_values(result, "content") == ["a", "b"]

    def test_large_strings(self) -> None:
        result = pa.table({"content": pa.array(["a"], type=pa.large_string())})
        assert get_column_values(result, "content") == ["a"]

    def test_integers_are_stringified(self) -> None:
        result = pa.table({"chunk_number": pa.array([1, 2], type=pa.int32())})
        assert get_column_values(result, "chunk_number") == ["1", "2"]

    def test_unsupported_type(self) -> None:
        result = pa.table({"score": [0.5]})
        with pytest.raises(UnsupportedColumnTypeError, match="score"):
            get_column_values(result, "score")


class TestMetadataFilter:
    def test_in_list(self) -> None:
        assert metadata_filter(["a.py", "b.txt"]) == "metadata IN ('a.py', 'b.txt')"

    def test_quotes_escaped(self) -> None:
        assert metadata_filter(["it's.py"]) == "metadata IN ('it''s.py')"


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("texts", [[""], [], ["   "]])
    async def test_empty_query_never_calls_provider(self, config: PipelineConfig, texts: list[str]) -> None:
        embedder = FakeEmbedder()
        with pytest.raises(EmptyQueryError):
            await QueryEngine(config, embedder).query(texts, "proj_table")
        assert embedder.requests == []

    @pytest.mark.asyncio
    async def test_query_vector_dimension_checked(self, config: PipelineConfig) -> None:
        engine = QueryEngine(config, FakeEmbedder(dim=3))
        with pytest.raises(DimensionMismatchError):
            await engine.embed_query(["where is add defined"])

    @pytest.mark.asyncio
    async def test_blank_strings_dropped_before_embedding(self, config: PipelineConfig) -> None:
        embedder = FakeEmbedder()
        vector = await QueryEngine(config, embedder).embed_query(["", "where is add defined", "  "])

        assert embedder.requests[0].input == ("where is add defined",)
        assert vector == fake_vector("where is add defined")

    def test_default_db_uri(self, config: PipelineConfig) -> None:
        engine = QueryEngine(config, FakeEmbedder())
        assert engine.default_db_uri("proj_table") == str(Path(config.data_dir) / "proj_db")

    @pytest.mark.asyncio
    async def test_missing_content_column_returns_empty(self, config: PipelineConfig) -> None:
        engine = QueryEngine(config, FakeEmbedder())
        with patch.object(engine, "execute", new=AsyncMock(return_value=pa.table({"id": [1]}))):
            assert await engine.query(["q"], "proj_table") == []


class TestRetrieval:
    @pytest.mark.asyncio
    async def test_missing_table(self, config: PipelineConfig) -> None:
        engine = QueryEngine(config, FakeEmbedder())
        with pytest.raises(TableNotFoundError):
            await engine.query(["add"], "other_table", db_uri=str(Path(config.data_dir) / "other_db"))

    @pytest.mark.asyncio
    async def test_nearest_respects_limit(self, config: PipelineConfig) -> None:
        db_uri = await _build_table(config)
        engine = QueryEngine(replace(config, query_limit=3), FakeEmbedder())

        contents = await engine.query(["how do I add numbers"], "proj_table", db_uri=db_uri)

        assert 1 <= len(contents) <= 3
        assert all(isinstance(c, str) for c in contents)

    @pytest.mark.asyncio
    async def test_search_rows(self, config: PipelineConfig) -> None:
        db_uri = await _build_table(config)
        engine = QueryEngine(config, FakeEmbedder())

        rows = await engine.search(["how do I add numbers"], "proj_table", db_uri=db_uri)

        assert len(rows) == sum(FILES.values())
        assert {"content", "metadata", "chunk_number", "distance"} <= set(rows[0])
        distances = [row["distance"] for row in rows]
        assert distances == sorted(distances)

    @pytest.mark.asyncio
    async def test_whole_query_skips_placeholder_rows(self, config: PipelineConfig) -> None:
        db_uri = await _build_table(config)
        engine = QueryEngine(config, FakeEmbedder())

        contents = await engine.query(["anything"], "proj_table", db_uri=db_uri, whole_query=True)

        assert sorted(contents) == sorted(
            f"{name} part {i}" for name, count in FILES.items() for i in range(count)
        )

    @pytest.mark.asyncio
    async def test_whole_query_capped(self, config: PipelineConfig) -> None:
        db_uri = await _build_table(config)
        engine = QueryEngine(replace(config, scan_limit=2), FakeEmbedder())
        contents = await engine.query(["anything"], "proj_table", db_uri=db_uri, whole_query=True)
        assert len(contents) == 2

    @pytest.mark.asyncio
    async def test_file_context_expands_to_whole_file(self, config: PipelineConfig) -> None:
        db_uri = await _build_table(config)
        engine = QueryEngine(replace(config, query_limit=1), FakeEmbedder())

        rows = await engine.search(["how do I add numbers"], "proj_table", db_uri=db_uri, file_context=True)

        files = {row["metadata"] for row in rows}
        # One hit means one file; every chunk of that file and nothing else
        assert len(files) == 1
        assert len(rows) == FILES[files.pop()]

    @pytest.mark.asyncio
    async def test_file_context_introduces_no_new_files(self, config: PipelineConfig) -> None:
        db_uri = await _build_table(config)
        engine = QueryEngine(replace(config, query_limit=2), FakeEmbedder())

        hits = await engine.search(["subtract"], "proj_table", db_uri=db_uri)
        expanded = await engine.search(["subtract"], "proj_table", db_uri=db_uri, file_context=True)

        assert {row["metadata"] for row in expanded} <= {row["metadata"] for row in hits}
        assert len(expanded) >= len(hits)

    @pytest.mark.asyncio
    async def test_dimension_mismatch_with_table(self, config: PipelineConfig) -> None:
        db_uri = await _build_table(config)
        engine = QueryEngine(replace(config, vector_dim=4), FakeEmbedder(dim=4))

        with pytest.raises(ConfigMismatchError):
            await engine.query(["add"], "proj_table", db_uri=db_uri)
