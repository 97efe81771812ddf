"""Chunking strategies for source, text, and log files."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from langchain_text_splitters import Language, RecursiveCharacterTextSplitter

from codebase_rag.ingestion.models import Chunk
from codebase_rag.pipeline_config import FileKind, PipelineConfig

logger = logging.getLogger(__name__)

# Source extensions split on syntax boundaries for their language
EXT_TO_LANGUAGE: dict[str, Language] = {
    ".py": Language.PYTHON,
    ".js": Language.JS,
    ".jsx": Language.JS,
    ".ts": Language.TS,
    ".tsx": Language.TS,
    ".go": Language.GO,
    ".rs": Language.RUST,
    ".java": Language.JAVA,
    ".c": Language.C,
    ".h": Language.C,
    ".cpp": Language.CPP,
    ".cc": Language.CPP,
    ".hpp": Language.CPP,
    ".scala": Language.SCALA,
    ".rb": Language.RUBY,
    ".php": Language.PHP,
    ".cs": Language.CSHARP,
    ".kt": Language.KOTLIN,
    ".swift": Language.SWIFT,
    ".lua": Language.LUA,
}

TEXT_EXTENSIONS = {".txt", ".md", ".rst"}
LOG_EXTENSIONS = {".log"}

LOG_MATCH_TERMS = ("error", "exception")


def classify_file(path: Path) -> FileKind:
    """Decide how *path* is chunked from its extension."""
    ext = path.suffix.lower()
    if ext in EXT_TO_LANGUAGE:
        return FileKind.SOURCE
    if ext in TEXT_EXTENSIONS:
        return FileKind.TEXT
    if ext in LOG_EXTENSIONS:
        return FileKind.LOG
    return FileKind.UNSUPPORTED


def extract_log_context(
    text: str,
    noise_markers: Iterable[str] = ("DEBUG", "TRACE"),
    context_lines: int = 20,
) -> str:
    """Reduce a log to the regions around error and exception lines.

    Blank lines and lines containing any noise marker are dropped first.
    Each line mentioning "error" or "exception" (case-insensitive) then
    contributes a window of ``context_lines`` lines on either side.
    Windows are concatenated as-is, so overlapping windows repeat lines.

    Args:
        text: Raw log file content.
        noise_markers: Substrings marking lines to discard.
        context_lines: Number of lines kept before and after each match.

    Returns:
        The concatenated windows, or an empty string if nothing matched.
    """
    markers = tuple(noise_markers)
    lines = [
        line
        for line in text.splitlines()
        if line.strip() and not any(marker in line for marker in markers)
    ]

    windows: list[str] = []
    for i, line in enumerate(lines):
        lowered = line.lower()
        if any(term in lowered for term in LOG_MATCH_TERMS):
            windows.extend(lines[max(0, i - context_lines) : i + context_lines + 1])

    return "\n".join(windows)


class Chunker:
    """Split files or directory trees into bounded, overlapping chunks."""

    def __init__(self, config: PipelineConfig) -> None:
        self.config = config

    def _overlap(self, max_chunk_size: int) -> int:
        # Overlap may not exceed the chunk size; halve it for small chunks
        return min(self.config.chunk_overlap, max_chunk_size // 2)

    def _text_splitter(self, max_chunk_size: int) -> RecursiveCharacterTextSplitter:
        return RecursiveCharacterTextSplitter(
            chunk_size=max_chunk_size,
            chunk_overlap=self._overlap(max_chunk_size),
            length_function=len,
            strip_whitespace=True,
        )

    def _code_splitter(self, language: Language, max_chunk_size: int) -> RecursiveCharacterTextSplitter:
        return RecursiveCharacterTextSplitter.from_language(
            language=language,
            chunk_size=max_chunk_size,
            chunk_overlap=self._overlap(max_chunk_size),
        )

    def split(self, root: str | Path, max_chunk_size: int) -> list[Chunk]:
        """Chunk a single file or every file under a directory.

        Args:
            root: File or directory to chunk.
            max_chunk_size: Target chunk size in characters.

        Returns:
            Chunks ordered by ``chunk_index`` within each file.

        Raises:
            OSError: If *root* is neither a file nor a directory.
            ValueError: If *max_chunk_size* is not positive.
        """
        if max_chunk_size <= 0:
            raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")

        root_path = Path(root)
        if root_path.is_file():
            return self.split_file(root_path, max_chunk_size)
        if root_path.is_dir():
            chunks: list[Chunk] = []
            self._walk(root_path, max_chunk_size, chunks)
            logger.info("Split %s into %d chunks", root_path, len(chunks))
            return chunks
        raise OSError(f"The path provided is neither a file nor a directory: {root_path}")

    def _walk(self, directory: Path, max_chunk_size: int, chunks: list[Chunk]) -> None:
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as exc:
            raise OSError(f"Failed to read directory {directory}: {exc}") from exc

        for entry in entries:
            path = Path(entry.path)
            if entry.is_file():
                chunks.extend(self.split_file(path, max_chunk_size))
            elif entry.is_dir():
                self._walk(path, max_chunk_size, chunks)

    def split_file(self, path: Path, max_chunk_size: int) -> list[Chunk]:
        """Chunk one file according to its :class:`FileKind`."""
        kind = classify_file(path)
        logger.debug("File %s classified as %s", path, kind.value)
        if kind is FileKind.UNSUPPORTED:
            return []

        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise OSError(f"Failed to open file {path}: {exc}") from exc

        if kind is FileKind.SOURCE:
            splitter = self._code_splitter(EXT_TO_LANGUAGE[path.suffix.lower()], max_chunk_size)
        elif kind is FileKind.LOG:
            content = extract_log_context(
                content,
                noise_markers=self.config.log_noise_markers,
                context_lines=self.config.log_context_lines,
            )
            splitter = self._text_splitter(max_chunk_size)
        else:
            splitter = self._text_splitter(max_chunk_size)

        pieces = [piece for piece in splitter.split_text(content) if piece]
        return [Chunk.from_text(piece, path, i) for i, piece in enumerate(pieces)]
