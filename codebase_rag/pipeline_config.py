"""Pipeline configuration: provider/metric enums and the PipelineConfig dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from codebase_rag.config import Settings


class EmbeddingProvider(StrEnum):
    """Embedding services the request builder knows how to route to."""

    OLLAMA = "ollama"
    OPENAI = "openai"


class ChatProvider(StrEnum):
    """Chat services usable for one-shot answer generation."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OLLAMA = "ollama"


class DistanceType(StrEnum):
    """Vector distance metrics shared by index build and query."""

    L2 = "l2"
    COSINE = "cosine"
    DOT = "dot"


class FileKind(StrEnum):
    """How the chunker treats a file, decided by its extension."""

    SOURCE = "source"
    TEXT = "text"
    LOG = "log"
    UNSUPPORTED = "unsupported"


OLLAMA_EMBED_PATH = "api/embed"
OPENAI_URL = "https://api.openai.com"
OPENAI_EMBED_PATH = "v1/embeddings"


def resolve_embed_url(provider: str | EmbeddingProvider, api_url: str) -> str:
    """Return the embedding endpoint for *provider*.

    Ollama is served from the caller's ``api_url``; OpenAI always uses its
    fixed cloud endpoint.
    """
    provider = EmbeddingProvider(str(provider).lower())
    if provider is EmbeddingProvider.OPENAI:
        return f"{OPENAI_URL}/{OPENAI_EMBED_PATH}"
    return f"{api_url.rstrip('/')}/{OLLAMA_EMBED_PATH}"


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration handed to every pipeline component.

    One instance is built per run (usually via :meth:`from_settings`) and
    passed by reference; nothing reads process-wide constants.
    """

    provider: EmbeddingProvider = EmbeddingProvider.OLLAMA
    api_url: str = "http://localhost:11434"
    api_key: str = ""
    embedding_model: str = "nomic-embed-text"
    embed_timeout_seconds: float = 60.0
    max_concurrency: int = 8

    vector_dim: int = 768
    distance_type: DistanceType = DistanceType.COSINE
    data_dir: str = "."

    chunk_overlap: int = 256
    log_noise_markers: tuple[str, ...] = ("DEBUG", "TRACE")
    log_context_lines: int = 20

    index_num_partitions: int = 100
    index_sample_rate: int = 256
    index_max_iterations: int = 50
    index_ef_construction: int = 300
    bootstrap_small_tables: bool = False

    query_limit: int = 30
    query_nprobes: int = 40
    query_refine_factor: int = 10
    scan_limit: int = 1000

    chat_provider: ChatProvider = ChatProvider.ANTHROPIC
    chat_model: str = "claude-sonnet-4-20250514"
    chat_api_url: str = "http://localhost:11434"
    chat_api_key: str = ""

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.vector_dim < 1:
            raise ValueError(f"vector_dim must be >= 1, got {self.vector_dim}")

    @property
    def embed_url(self) -> str:
        return resolve_embed_url(self.provider, self.api_url)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: object) -> PipelineConfig:
        """Build a config from :class:`Settings`, applying keyword overrides."""
        values: dict[str, object] = {
            "provider": EmbeddingProvider(settings.embedding_provider.lower()),
            "api_url": settings.embedding_api_url,
            "api_key": settings.embedding_api_key,
            "embedding_model": settings.embedding_model,
            "embed_timeout_seconds": settings.embed_timeout_seconds,
            "max_concurrency": settings.max_concurrency,
            "vector_dim": settings.vector_dim,
            "distance_type": DistanceType(settings.distance_type.lower()),
            "data_dir": settings.data_dir,
            "chunk_overlap": settings.chunk_overlap,
            "log_noise_markers": tuple(settings.log_noise_markers),
            "log_context_lines": settings.log_context_lines,
            "index_num_partitions": settings.index_num_partitions,
            "index_sample_rate": settings.index_sample_rate,
            "index_max_iterations": settings.index_max_iterations,
            "index_ef_construction": settings.index_ef_construction,
            "bootstrap_small_tables": settings.bootstrap_small_tables,
            "query_limit": settings.query_limit,
            "query_nprobes": settings.query_nprobes,
            "query_refine_factor": settings.query_refine_factor,
            "scan_limit": settings.scan_limit,
            "chat_provider": ChatProvider(settings.chat_provider.lower()),
            "chat_model": settings.chat_model,
            "chat_api_url": settings.chat_api_url,
            "chat_api_key": settings.chat_api_key,
        }
        # Drop unset overrides so CLI flags left at None keep the settings value
        values.update({k: v for k, v in overrides.items() if v is not None})
        if "provider" in overrides and overrides["provider"] is not None:
            values["provider"] = EmbeddingProvider(str(overrides["provider"]).lower())
        return cls(**values)  # type: ignore[arg-type]
