"""Command-line entry point: load a source tree, query it, or ask questions about it."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn

from codebase_rag.config import Settings, get_settings
from codebase_rag.exceptions import CodebaseRagError
from codebase_rag.ingestion.embeddings import EmbeddingClient
from codebase_rag.ingestion.pipeline import IngestionPipeline
from codebase_rag.pipeline_config import EmbeddingProvider, PipelineConfig
from codebase_rag.retrieval.generation import generate_answer, load_system_prompt
from codebase_rag.retrieval.search import QueryEngine

VERSION = "0.1.0"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def str_to_bool(value: str) -> bool:
    """Parse the ``true``/``false`` strings accepted by boolean flags."""
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {value!r}")


def _add_query_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-i", "--input", nargs="+", required=True, help="Query text")
    parser.add_argument("-t", "--table", required=True, help="Table to query")
    parser.add_argument("-d", "--database", default=None, help="Database directory (<name>_db)")
    parser.add_argument("-m", "--model", default=None, help="Embedding model for the query")
    parser.add_argument("-w", "--whole-query", type=str_to_bool, default=False, metavar="{true,false}")
    parser.add_argument("-f", "--file-context", type=str_to_bool, default=False, metavar="{true,false}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codebase-rag",
        description="Embed a source tree into LanceDB and query it.",
    )
    parser.add_argument(
        "-l",
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default="info",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    load = sub.add_parser(
        "load",
        help="Load a file or directory into the vector database",
        description=(
            "Chunk, embed and index PATH. The target table is dropped and rebuilt. "
            "Loading is not transactional: if it fails part way, re-run after fixing "
            "the cause."
        ),
    )
    load.add_argument("-p", "--path", required=True)
    load.add_argument("-c", "--chunk-size", type=int, default=None)
    load.add_argument("--provider", choices=[p.value for p in EmbeddingProvider], default=None)
    load.add_argument("-m", "--model", default=None, help="Embedding model")
    load.add_argument("--api-url", default=None)
    load.add_argument("--api-key", default=None)
    load.add_argument("-t", "--table", default=None, help="Table name (default <basename>_table)")

    query = sub.add_parser("query", help="Query the vector database")
    _add_query_args(query)

    rag = sub.add_parser("rag-query", help="Query the vector database and answer with a chat model")
    _add_query_args(rag)
    rag.add_argument("-s", "--system-prompt", default=None, help="Path to the system prompt file")
    rag.add_argument("-a", "--ai-model", default=None, help="Chat model for generation")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Bind address (default API_HOST)")
    serve.add_argument("--port", type=int, default=None, help="Port (default API_PORT)")

    sub.add_parser("version", help="Print the version")
    return parser


async def run_load(args: argparse.Namespace, settings: Settings) -> int:
    config = PipelineConfig.from_settings(
        settings,
        provider=args.provider,
        embedding_model=args.model,
        api_url=args.api_url,
        api_key=args.api_key,
    )
    chunk_size = args.chunk_size or settings.chunk_size
    async with EmbeddingClient(config) as embedder:
        report = await IngestionPipeline(config, embedder).run(
            args.path, chunk_size, table_name=args.table
        )
    print(
        f"Loaded {report.chunks} chunks into {report.db_uri}/{report.table_name} "
        f"({report.rows} rows, vector index: {'yes' if report.vector_index else 'no'})"
    )
    return 0


async def run_query(args: argparse.Namespace, settings: Settings) -> int:
    config = PipelineConfig.from_settings(settings, embedding_model=args.model)
    async with EmbeddingClient(config) as embedder:
        contents = await QueryEngine(config, embedder).query(
            args.input,
            args.table,
            db_uri=args.database,
            whole_query=args.whole_query,
            file_context=args.file_context,
        )
    for i, content in enumerate(contents):
        print(f"--- [{i + 1}] ---\n{content}")
    if not contents:
        print("No results.")
    return 0


async def run_rag_query(args: argparse.Namespace, settings: Settings) -> int:
    config = PipelineConfig.from_settings(
        settings, embedding_model=args.model, chat_model=args.ai_model
    )
    system_prompt = load_system_prompt(args.system_prompt or settings.system_prompt_path)
    async with EmbeddingClient(config) as embedder:
        contents = await QueryEngine(config, embedder).query(
            args.input,
            args.table,
            db_uri=args.database,
            whole_query=args.whole_query,
            file_context=args.file_context,
        )
    if not contents:
        print("No relevant content found for your question.")
        return 0

    result = await asyncio.to_thread(
        generate_answer, " ".join(args.input), contents, system_prompt, config
    )
    print(result["answer"])
    return 0


def run_serve(args: argparse.Namespace, settings: Settings) -> int:
    uvicorn.run(
        "codebase_rag.api.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        log_level=args.log_level,
    )
    return 0


COMMANDS = {
    "load": run_load,
    "query": run_query,
    "rag-query": run_rag_query,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)

    if args.command == "version":
        print(f"codebase-rag {VERSION}")
        return 0

    settings = get_settings()
    if args.command == "serve":
        return run_serve(args, settings)

    try:
        return asyncio.run(COMMANDS[args.command](args, settings))
    except (CodebaseRagError, OSError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
