from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # Embedding provider
    embedding_provider: str = "ollama"
    embedding_api_url: str = "http://localhost:11434"
    embedding_api_key: str = ""
    embedding_model: str = "nomic-embed-text"
    embed_timeout_seconds: float = 60.0
    max_concurrency: int = 8

    # Vector table
    vector_dim: int = 768
    distance_type: str = "cosine"
    data_dir: str = "."

    # Chunking
    chunk_size: int = 2048
    chunk_overlap: int = 256
    log_noise_markers: list[str] = ["DEBUG", "TRACE"]
    log_context_lines: int = 20

    # Index build
    index_num_partitions: int = 100
    index_sample_rate: int = 256
    index_max_iterations: int = 50
    index_ef_construction: int = 300
    bootstrap_small_tables: bool = False

    # Query
    query_limit: int = 30
    query_nprobes: int = 40
    query_refine_factor: int = 10
    scan_limit: int = 1000

    # Generation
    chat_provider: str = "anthropic"
    chat_model: str = "claude-sonnet-4-20250514"
    chat_api_url: str = "http://localhost:11434"
    chat_api_key: str = ""
    system_prompt_path: str = "prompts/rag_prompt.txt"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]
