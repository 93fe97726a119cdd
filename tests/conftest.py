"""Shared test fixtures: settings rooted in tmp_path, sample projects."""

import os

# Force demo API keys for all tests; no real LLM calls.
os.environ["ANTHROPIC_API_KEY"] = "for-demo-purposes-only"
os.environ["OPENAI_API_KEY"] = "for-demo-purposes-only"

from pathlib import Path

import pytest

from testsmith.config import Settings

SAMPLE_MODULE = '''\
"""Tiny calculator used as a generation target."""


def add(a: int, b: int) -> int:
    return a + b


def divide(a: float, b: float) -> float:
    if b == 0:
        raise ZeroDivisionError("b must not be zero")
    return a / b


class Accumulator:
    def __init__(self) -> None:
        self.total = 0

    def push(self, value: int) -> int:
        self.total += value
        return self.total
'''

SAMPLE_JAVA = """\
package com.example.util;

import java.util.List;
import java.util.Optional;

public class Inventory {
    private final List<String> items;

    public Inventory(List<String> items) {
        this.items = items;
    }

    public int count() {
        return items.size();
    }

    public Optional<String> first() {
        return items.stream().findFirst();
    }

    public void clear() {
        items.clear();
    }

    private boolean isEmpty() {
        return items.isEmpty();
    }
}
"""


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Python project with one source unit under src/."""
    pkg = tmp_path / "src" / "calc"
    pkg.mkdir(parents=True)
    (pkg / "__init__.py").write_text("")
    (pkg / "ops.py").write_text(SAMPLE_MODULE)
    return tmp_path


@pytest.fixture
def settings(project: Path) -> Settings:
    """Settings rooted at the sample project, isolated from the env."""
    return Settings(
        project_root=project,
        cache_dir=project / ".testsmith-cache",
        litellm_model_chain=["test/model-a", "test/model-b"],
        max_iterations=5,
        failure_budget=3,
        _env_file=None,  # type: ignore[call-arg]
    )


@pytest.fixture
def python_source() -> str:
    return SAMPLE_MODULE


@pytest.fixture
def java_source() -> str:
    return SAMPLE_JAVA
