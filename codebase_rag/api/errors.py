"""Map pipeline exceptions onto HTTP errors."""

from __future__ import annotations

from fastapi import HTTPException

from codebase_rag.exceptions import (
    CodebaseRagError,
    ConfigMismatchError,
    DimensionMismatchError,
    EmbeddingMismatchError,
    EmbeddingProviderError,
    EmptyEmbeddingError,
    EmptyQueryError,
    IngestionError,
    TableNotFoundError,
)

STATUS_BY_ERROR: list[tuple[type[CodebaseRagError], int]] = [
    (EmptyQueryError, 400),
    (TableNotFoundError, 404),
    (ConfigMismatchError, 409),
    (DimensionMismatchError, 409),
    (EmbeddingProviderError, 502),
    (EmbeddingMismatchError, 502),
    (EmptyEmbeddingError, 502),
]


def status_for(exc: CodebaseRagError) -> int:
    if isinstance(exc, IngestionError):
        # Embedding fetch failures are upstream; batch/insert failures are ours
        return 502 if exc.stage == "fetch" else 500
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def to_http_exception(exc: CodebaseRagError) -> HTTPException:
    return HTTPException(status_code=status_for(exc), detail=str(exc))
