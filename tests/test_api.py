"""Tests for API endpoints (no embedding or chat provider required)."""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from codebase_rag.api.errors import status_for
from codebase_rag.api.main import app
from codebase_rag.exceptions import (
    ConfigMismatchError,
    EmbeddingProviderError,
    EmptyQueryError,
    IngestionError,
    StorageError,
    TableNotFoundError,
)
from codebase_rag.ingestion.pipeline import IngestionReport

client = TestClient(app)
client_no_raise = TestClient(app, raise_server_exceptions=False)

QUERY_BODY = {"input": ["where is add defined"], "table": "proj_table"}


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_query_validation():
    """Input and table are required."""
    response = client.post("/api/query", json={})
    assert response.status_code == 422


def test_ingest_requires_path():
    response = client.post("/api/ingest", json={})
    assert response.status_code == 422


def test_ingest_rejects_non_positive_chunk_size():
    response = client.post("/api/ingest", json={"path": ".", "chunk_size": 0})
    assert response.status_code == 422


def test_query_returns_rows():
    rows = [{"content": "def add(a, b)", "metadata": "a.py", "chunk_number": 0, "distance": 0.12}]
    with patch("codebase_rag.api.routes.query.QueryEngine") as engine_cls:
        engine_cls.return_value.search = AsyncMock(return_value=rows)
        response = client.post("/api/query", json=QUERY_BODY)

    assert response.status_code == 200
    result = response.json()["results"][0]
    assert result["content"] == "def add(a, b)"
    assert result["metadata"] == "a.py"
    assert result["distance"] == 0.12
    kwargs = engine_cls.return_value.search.await_args.kwargs
    assert kwargs["whole_query"] is False
    assert kwargs["file_context"] is False


def test_empty_query_returns_400():
    with patch("codebase_rag.api.routes.query.QueryEngine") as engine_cls:
        engine_cls.return_value.search = AsyncMock(side_effect=EmptyQueryError())
        response = client.post("/api/query", json={"input": [""], "table": "proj_table"})
    assert response.status_code == 400
    assert "empty" in response.json()["detail"]


def test_missing_table_returns_404():
    with patch("codebase_rag.api.routes.query.QueryEngine") as engine_cls:
        engine_cls.return_value.search = AsyncMock(
            side_effect=TableNotFoundError("proj_table", "./proj_db")
        )
        response = client.post("/api/query", json=QUERY_BODY)
    assert response.status_code == 404


def test_rag_query_generates_answer():
    with (
        patch("codebase_rag.api.routes.query.QueryEngine") as engine_cls,
        patch("codebase_rag.api.routes.query.generate_answer") as mock_generate,
    ):
        engine_cls.return_value.query = AsyncMock(return_value=["def add(a, b)"])
        mock_generate.return_value = {
            "answer": "add is in a.py [Source 1]",
            "sources": ["def add(a, b)"],
            "model": "claude-sonnet-4-20250514",
            "usage": {"input_tokens": 10, "output_tokens": 5},
        }
        response = client.post(
            "/api/rag-query", json={**QUERY_BODY, "system_prompt": "Answer briefly."}
        )

    assert response.status_code == 200
    body = response.json()
    assert body["answer"] == "add is in a.py [Source 1]"
    assert body["sources"] == ["def add(a, b)"]
    args = mock_generate.call_args.args
    assert args[0] == "where is add defined"
    assert args[2] == "Answer briefly."


def test_rag_query_without_results_skips_generation():
    with (
        patch("codebase_rag.api.routes.query.QueryEngine") as engine_cls,
        patch("codebase_rag.api.routes.query.generate_answer") as mock_generate,
    ):
        engine_cls.return_value.query = AsyncMock(return_value=[])
        response = client.post("/api/rag-query", json=QUERY_BODY)

    assert response.status_code == 200
    assert response.json()["sources"] == []
    mock_generate.assert_not_called()


def test_ingest_returns_report(tmp_path):
    report = IngestionReport(
        db_uri=str(tmp_path / "proj_db"),
        table_name="proj_table",
        chunks=5,
        rows=5,
        vector_index=False,
        text_indexes=["metadata", "content"],
    )
    with patch("codebase_rag.api.routes.ingest.IngestionPipeline") as pipeline_cls:
        pipeline_cls.return_value.run = AsyncMock(return_value=report)
        response = client.post("/api/ingest", json={"path": str(tmp_path), "chunk_size": 512})

    assert response.status_code == 200
    assert response.json()["rows"] == 5
    assert response.json()["placeholder_rows"] == 0
    assert pipeline_cls.return_value.run.await_args.args == (str(tmp_path), 512)


def test_ingest_missing_path_returns_400(tmp_path):
    response = client.post("/api/ingest", json={"path": str(tmp_path / "nope")})
    assert response.status_code == 400


def test_ingest_provider_failure_returns_502(tmp_path):
    cause = EmbeddingProviderError("refused", "http://localhost:11434/api/embed")
    with patch("codebase_rag.api.routes.ingest.IngestionPipeline") as pipeline_cls:
        pipeline_cls.return_value.run = AsyncMock(side_effect=IngestionError("fetch", "a.py", 0, cause))
        response = client_no_raise.post("/api/ingest", json={"path": str(tmp_path)})
    assert response.status_code == 502
    assert "a.py" in response.json()["detail"]


class TestStatusMapping:
    def test_config_mismatch_is_conflict(self):
        assert status_for(ConfigMismatchError("t", "vector_dim", "8", "768")) == 409

    def test_storage_error_is_server_error(self):
        assert status_for(StorageError("disk full", "t")) == 500

    def test_insert_failure_is_server_error(self):
        assert status_for(IngestionError("insert", "a.py", 0, RuntimeError("x"))) == 500
