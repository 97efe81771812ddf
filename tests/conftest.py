"""Shared fixtures: a fake embedder, a small pipeline config and a sample tree."""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import TEST_DIM, FakeEmbedder

from codebase_rag.pipeline_config import PipelineConfig


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(
        vector_dim=TEST_DIM,
        data_dir=str(tmp_path / "data"),
        max_concurrency=1,
        api_key="test-key",
    )


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """A small project: Python source, plain text, a log and an unsupported file."""
    root = tmp_path / "proj"
    root.mkdir()
    (root / "a.py").write_text(
        "def add(a, b):\n"
        "    return a + b\n"
        "\n\n"
        "def sub(a, b):\n"
        "    return a - b\n"
        "\n\n"
        "class Calculator:\n"
        "    def mul(self, a, b):\n"
        "        return a * b\n",
        encoding="utf-8",
    )
    (root / "b.txt").write_text(
        "The calculator supports addition and subtraction. "
        "Multiplication lives on the Calculator class.",
        encoding="utf-8",
    )
    log_lines = [f"INFO step {i:03d} ok" for i in range(60)]
    log_lines[30] = "ERROR step 030 failed to open socket"
    (root / "c.log").write_text("\n".join(log_lines) + "\n", encoding="utf-8")
    (root / "d.bin").write_bytes(b"\x00\x01\x02")
    return root
