"""Arrow table schema and record-batch construction for chunk rows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

import pyarrow as pa

from codebase_rag.exceptions import (
    DimensionMismatchError,
    EmbeddingMismatchError,
    EmptyEmbeddingError,
)
from codebase_rag.ingestion.models import EmbedRequest, EmbedResponse
from codebase_rag.pipeline_config import DistanceType

EMPTY_METADATA = "Empty"
EMPTY_BATCH_ROWS = 256

# Keys stored in the Arrow schema metadata so queries can check the table
VECTOR_DIM_KEY = b"vector_dim"
DISTANCE_TYPE_KEY = b"distance_type"


@dataclass(frozen=True)
class TableSchema:
    """Column layout of a chunk table plus the table name.

    Built once per ingestion run and shared read-only by every task.
    """

    name: str
    vector_dim: int = 768
    distance_type: DistanceType = DistanceType.COSINE

    id: str = "id"
    content: str = "content"
    metadata: str = "metadata"
    vector: str = "vector"
    model: str = "model"
    created_at: str = "created_at"
    chunk_number: str = "chunk_number"

    @property
    def text_columns(self) -> list[str]:
        """Columns that get an inverted (full-text) index."""
        return [self.metadata, self.content]

    def vector_type(self) -> pa.DataType:
        return pa.list_(pa.float32(), self.vector_dim)

    def create_schema(self) -> pa.Schema:
        """Return the Arrow schema; column order is fixed."""
        return pa.schema(
            [
                pa.field(self.id, pa.int32(), nullable=False),
                pa.field(self.content, pa.utf8(), nullable=True),
                pa.field(self.metadata, pa.utf8(), nullable=True),
                pa.field(self.vector, self.vector_type(), nullable=True),
                pa.field(self.model, pa.utf8(), nullable=True),
                pa.field(self.created_at, pa.timestamp("s", tz="UTC"), nullable=True),
                pa.field(self.chunk_number, pa.int32(), nullable=True),
            ],
            metadata={
                VECTOR_DIM_KEY: str(self.vector_dim).encode(),
                DISTANCE_TYPE_KEY: self.distance_type.value.encode(),
            },
        )

    def _vector_array(self, vectors: list[list[float]]) -> pa.FixedSizeListArray:
        flat = pa.array([x for vector in vectors for x in vector], type=pa.float32())
        return pa.FixedSizeListArray.from_arrays(flat, self.vector_dim)

    def empty_batch(self) -> pa.RecordBatch:
        """Placeholder rows for bootstrapping index training on tiny tables.

        Content is null so queries filtering on ``content IS NOT NULL``
        never return these rows. Vectors vary per row so k-means has
        distinct points to cluster.
        """
        n = EMPTY_BATCH_ROWS
        vectors = [
            [((i * 31 + j * 17) % 97) / 97.0 + 0.01 for j in range(self.vector_dim)]
            for i in range(n)
        ]
        now = datetime.now(UTC)
        return pa.RecordBatch.from_arrays(
            [
                pa.array([-(i + 1) for i in range(n)], type=pa.int32()),
                pa.array([None] * n, type=pa.utf8()),
                pa.array([EMPTY_METADATA] * n, type=pa.utf8()),
                self._vector_array(vectors),
                pa.array([""] * n, type=pa.utf8()),
                pa.array([now] * n, type=pa.timestamp("s", tz="UTC")),
                pa.array([0] * n, type=pa.int32()),
            ],
            schema=self.create_schema(),
        )

    def create_record_batch(
        self,
        id: int,
        request: EmbedRequest,
        response: EmbedResponse,
    ) -> pa.RecordBatch:
        """Map one embedding response onto table rows.

        Every column gets exactly ``len(response.embeddings)`` rows. ``id``
        is the first row's id; further rows count up from it. Metadata,
        model and chunk number repeat the request's single value.

        Raises:
            EmptyEmbeddingError: If the response has no embeddings.
            EmbeddingMismatchError: If there are more embeddings than inputs.
            DimensionMismatchError: If any vector's length is not ``vector_dim``.
        """
        embeddings = response.embeddings
        if not embeddings:
            raise EmptyEmbeddingError({"table": self.name, "metadata": request.metadata})

        n = len(embeddings)
        if n > len(request.input):
            raise EmbeddingMismatchError(
                expected=len(request.input), actual=n, details={"table": self.name}
            )
        for vector in embeddings:
            if len(vector) != self.vector_dim:
                raise DimensionMismatchError(
                    expected=self.vector_dim,
                    actual=len(vector),
                    details={"table": self.name, "metadata": request.metadata},
                )

        metadata = request.metadata or EMPTY_METADATA
        chunk_number = request.chunk_number if request.chunk_number is not None else 0
        now = datetime.now(UTC)

        return pa.RecordBatch.from_arrays(
            [
                pa.array(list(range(id, id + n)), type=pa.int32()),
                pa.array(list(request.input[:n]), type=pa.utf8()),
                pa.array([metadata] * n, type=pa.utf8()),
                self._vector_array(embeddings),
                pa.array([request.model] * n, type=pa.utf8()),
                pa.array([now] * n, type=pa.timestamp("s", tz="UTC")),
                pa.array([chunk_number] * n, type=pa.int32()),
            ],
            schema=self.create_schema(),
        )
