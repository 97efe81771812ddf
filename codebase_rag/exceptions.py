"""Exception hierarchy for the chunk → embed → store → query pipeline.

Every error carries a message plus a ``details`` dict naming the file,
chunk, or table involved so failures can be traced from the log line alone.
"""

from __future__ import annotations

from typing import Any


class CodebaseRagError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class EmptyQueryError(CodebaseRagError):
    """Raised when a query is submitted without any text."""

    def __init__(self) -> None:
        super().__init__("Query input is empty")


class EmptyEmbeddingError(CodebaseRagError):
    """Raised when the provider returned no embeddings for a request."""

    def __init__(self, details: dict[str, Any] | None = None) -> None:
        super().__init__("Embedding response contains no embeddings", details)


class EmbeddingProviderError(CodebaseRagError):
    """Raised when the embedding call fails (status, transport, or payload)."""

    def __init__(
        self,
        message: str,
        url: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["url"] = url
        if status_code is not None:
            details["status_code"] = status_code
        self.url = url
        self.status_code = status_code
        super().__init__(message, details)


class EmbeddingMismatchError(CodebaseRagError):
    """Raised when the number of embeddings differs from the number of inputs."""

    def __init__(self, expected: int, actual: int, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details.update({"expected": expected, "actual": actual})
        super().__init__(
            f"Provider returned {actual} embeddings for {expected} inputs", details
        )


class DimensionMismatchError(CodebaseRagError):
    """Raised when a vector's length differs from the table dimension."""

    def __init__(self, expected: int, actual: int, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details.update({"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector has {actual} dimensions, table expects {expected}", details
        )


class ConfigMismatchError(CodebaseRagError):
    """Raised when a table was built with a different metric or dimension."""

    def __init__(self, table: str, field: str, stored: str, configured: str) -> None:
        super().__init__(
            f"Table '{table}' was built with {field}={stored}, "
            f"but the current configuration uses {field}={configured}",
            {"table": table, "field": field},
        )


class UnsupportedColumnTypeError(CodebaseRagError):
    """Raised when a result column cannot be converted to strings."""

    def __init__(self, column: str, data_type: str) -> None:
        super().__init__(
            f"Unsupported data type for column '{column}': {data_type}",
            {"column": column, "data_type": data_type},
        )


class StorageError(CodebaseRagError):
    """Raised when a vector-store operation fails."""

    def __init__(self, message: str, table: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["table"] = table
        self.table = table
        super().__init__(message, details)


class TableNotFoundError(StorageError):
    """Raised when a query targets a table that does not exist."""

    def __init__(self, table: str, db_uri: str) -> None:
        super().__init__(
            f"Table '{table}' not found in '{db_uri}'. Run the load command first.",
            table,
            {"db_uri": db_uri},
        )


class IngestionError(CodebaseRagError):
    """Raised when a single chunk fails during ingestion.

    ``stage`` is one of ``fetch``, ``batch`` or ``insert``. Ingestion is not
    transactional: rows committed before the failure stay in the table until
    the next run drops and rebuilds it.
    """

    def __init__(self, stage: str, file_path: str, chunk_index: int, cause: BaseException) -> None:
        self.stage = stage
        self.file_path = file_path
        self.chunk_index = chunk_index
        super().__init__(
            f"Ingestion failed at stage '{stage}' for {file_path} chunk {chunk_index}: {cause}",
            {"stage": stage, "file": file_path, "chunk": chunk_index},
        )
