"""Data models for the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from codebase_rag.pipeline_config import EmbeddingProvider, resolve_embed_url

if TYPE_CHECKING:
    from codebase_rag.pipeline_config import PipelineConfig


@dataclass
class Chunk:
    """One segment of one file, ready for embedding."""

    content: list[str]
    file_path: Path
    chunk_index: int = 0

    @classmethod
    def from_text(cls, text: str, file_path: Path, chunk_index: int) -> Chunk:
        return cls(content=text.splitlines(), file_path=file_path, chunk_index=chunk_index)

    @property
    def text(self) -> str:
        """Chunk content with its lines joined by newlines."""
        return "\n".join(self.content)

    @property
    def file_name(self) -> str:
        return self.file_path.name or "None"


@dataclass(frozen=True)
class EmbedRequest:
    """A unit of work for the embedding provider.

    Requests are immutable values: the pipeline passes one into the
    embedding call and gets a fresh :class:`EmbedResponse` back.
    """

    provider: EmbeddingProvider
    api_url: str
    api_key: str
    model: str
    input: tuple[str, ...]
    metadata: str | None = None
    chunk_number: int | None = None

    @classmethod
    def for_chunk(cls, chunk: Chunk, config: PipelineConfig) -> EmbedRequest:
        """Build an ingestion request carrying exactly one chunk.

        Every row of a record batch shares the request's ``chunk_number``,
        so one request must map to one chunk.
        """
        return cls(
            provider=config.provider,
            api_url=config.api_url,
            api_key=config.api_key,
            model=config.embedding_model,
            input=(chunk.text,),
            metadata=chunk.file_name,
            chunk_number=chunk.chunk_index,
        )

    @classmethod
    def for_query(cls, texts: list[str], config: PipelineConfig) -> EmbedRequest:
        return cls(
            provider=config.provider,
            api_url=config.api_url,
            api_key=config.api_key,
            model=config.embedding_model,
            input=tuple(texts),
            metadata="",
            chunk_number=None,
        )

    @property
    def embed_url(self) -> str:
        return resolve_embed_url(self.provider, self.api_url)

    def payload(self) -> dict[str, Any]:
        """JSON body sent to the provider."""
        return {"model": self.model, "input": list(self.input)}


@dataclass
class EmbedResponse:
    """Embeddings returned by the provider, one vector per request input."""

    model: str
    embeddings: list[list[float]] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> EmbedResponse:
        """Parse a ``{model, embeddings}`` payload.

        Raises:
            ValueError: If the payload does not have the expected shape.
        """
        if not isinstance(data, dict) or "embeddings" not in data:
            raise ValueError("Response JSON has no 'embeddings' field")
        embeddings = data["embeddings"]
        if not isinstance(embeddings, list) or not all(isinstance(v, list) for v in embeddings):
            raise ValueError("'embeddings' must be a list of float lists")
        return cls(
            model=str(data.get("model", "")),
            embeddings=[[float(x) for x in vector] for vector in embeddings],
        )
