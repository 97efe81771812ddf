"""One-shot answer generation over retrieved code and text chunks."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from anthropic import Anthropic
from anthropic.types import TextBlock
from openai import OpenAI

from codebase_rag.pipeline_config import ChatProvider, PipelineConfig

logger = logging.getLogger(__name__)

MAX_TOKENS = 1024


def load_system_prompt(path: str | Path) -> str:
    """Read the system prompt file.

    Raises:
        FileNotFoundError: If *path* does not exist.
    """
    prompt_path = Path(path)
    if not prompt_path.is_file():
        raise FileNotFoundError(f"System prompt not found: {prompt_path}")
    return prompt_path.read_text(encoding="utf-8").strip()


def format_context(contents: list[str]) -> str:
    return "\n\n".join(f"[Source {i + 1}]\n{content}" for i, content in enumerate(contents))


def _user_message(question: str, contents: list[str]) -> str:
    return f"Context from the codebase:\n\n{format_context(contents)}\n\nQuestion: {question}"


def _generate_anthropic(
    question: str, contents: list[str], system_prompt: str, config: PipelineConfig
) -> dict[str, Any]:
    client = Anthropic(api_key=config.chat_api_key or None)
    response = client.messages.create(
        model=config.chat_model,
        max_tokens=MAX_TOKENS,
        system=system_prompt,
        messages=[{"role": "user", "content": _user_message(question, contents)}],
    )

    # content[0] is a union of block types; a plain-text request yields a TextBlock
    block = response.content[0]
    if not isinstance(block, TextBlock):
        raise ValueError(f"Expected TextBlock from Claude, got {type(block).__name__}")

    return {
        "answer": block.text,
        "model": response.model,
        "usage": {
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
        },
    }


def _generate_openai(
    question: str, contents: list[str], system_prompt: str, config: PipelineConfig
) -> dict[str, Any]:
    if config.chat_provider is ChatProvider.OLLAMA:
        # Ollama serves an OpenAI-compatible API under /v1 and ignores the key
        client = OpenAI(
            base_url=f"{config.chat_api_url.rstrip('/')}/v1",
            api_key=config.chat_api_key or "ollama",
        )
    else:
        client = OpenAI(api_key=config.chat_api_key or None)

    response = client.chat.completions.create(
        model=config.chat_model,
        max_tokens=MAX_TOKENS,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": _user_message(question, contents)},
        ],
    )
    answer = response.choices[0].message.content
    if answer is None:
        raise ValueError("Chat completion returned no content")

    usage = None
    if response.usage is not None:
        usage = {
            "input_tokens": response.usage.prompt_tokens,
            "output_tokens": response.usage.completion_tokens,
        }
    return {"answer": answer, "model": response.model, "usage": usage}


def generate_answer(
    question: str,
    contents: list[str],
    system_prompt: str,
    config: PipelineConfig,
) -> dict[str, Any]:
    """Generate an answer to *question* grounded in the retrieved *contents*.

    Args:
        question: The user's question.
        contents: Retrieved chunk contents, most relevant first.
        system_prompt: Instructions for the chat model.
        config: Pipeline config; selects the chat provider and model.

    Returns:
        Dictionary with answer, sources, model, and usage info.
    """
    logger.info(
        "Generating answer with %s/%s from %d chunks",
        config.chat_provider.value,
        config.chat_model,
        len(contents),
    )
    if config.chat_provider is ChatProvider.ANTHROPIC:
        result = _generate_anthropic(question, contents, system_prompt, config)
    else:
        result = _generate_openai(question, contents, system_prompt, config)
    result["sources"] = contents
    return result
