"""Environment-based configuration and language tables."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

from testsmith.constants import (
    DEFAULT_FAILURE_BUDGET,
    DEFAULT_FATAL_EXIT_CODES,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TARGET_COVERAGE,
    CacheBackend,
)

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Reads from .env file and TESTSMITH_* environment variables."""

    # Project layout
    project_root: Path = Path(".")
    test_dir: Path = Path("tests")
    source_roots: list[str] = ["src"]

    # Parse cache
    cache_enabled: bool = True
    cache_dir: Path = Path(".testsmith-cache")
    cache_backend: CacheBackend = CacheBackend.FILE
    cache_max_age_minutes: float = 60
    cache_max_size_mb: float = 100

    # Coverage loop
    coverage_target: float = DEFAULT_TARGET_COVERAGE
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    failure_budget: int = DEFAULT_FAILURE_BUDGET
    deadline_seconds: float | None = None

    # Model chain (first = primary, rest = fallbacks tried in order)
    litellm_model_chain: Annotated[list[str], NoDecode] = [
        "openai/gpt-4.1-mini",
        "anthropic/claude-sonnet-4-5-20250929",
    ]
    llm_timeout_seconds: int = 120
    llm_temperature: float = 0.2

    # Build / test execution. Placeholders: {artifact} {report} {root} {source}
    build_command: list[str] = [
        "python",
        "-m",
        "pytest",
        "-q",
        "--cov={source}",
        "--cov-branch",
        "--cov-report=json:{report}",
        "{artifact}",
    ]
    coverage_report_path: Path = Path(".testsmith/coverage.json")
    build_timeout_seconds: int = 600
    fatal_exit_codes: list[int] = list(DEFAULT_FATAL_EXIT_CODES)

    # Batch
    max_concurrency: int = 4
    skip_directories: list[str] = [
        "node_modules",
        ".venv",
        "venv",
        "__pycache__",
        "build",
        "dist",
        "target",
        ".git",
        ".testsmith-cache",
        ".testsmith",
    ]

    # Logging
    log_level: str = "INFO"

    @field_validator("litellm_model_chain", mode="before")
    @classmethod
    def _parse_chain(cls, v: Any) -> Any:
        """Accept comma-separated string or JSON array."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("litellm_model_chain")
    @classmethod
    def _validate_chain(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError(
                "litellm_model_chain must contain at least one model"
            )
        seen: set[str] = set()
        dupes: list[str] = []
        for m in v:
            if m in seen:
                dupes.append(m)
            seen.add(m)
        if dupes:
            logger.warning(
                "Duplicate models in TESTSMITH_LITELLM_MODEL_CHAIN: %s",
                ", ".join(dupes),
            )
        return v

    @field_validator("coverage_target")
    @classmethod
    def _validate_target(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("coverage_target must be in (0, 1]")
        return v

    @field_validator("max_iterations", "failure_budget", "max_concurrency")
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @property
    def cache_max_age_seconds(self) -> float:
        return self.cache_max_age_minutes * 60

    @property
    def cache_max_size_bytes(self) -> int:
        return int(self.cache_max_size_mb * 1024 * 1024)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "TESTSMITH_",
        "extra": "ignore",
    }


# File extension → language name mapping
EXTENSION_MAP: dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".java": "java",
}

# Grammar module name → import path for tree-sitter grammars
GRAMMAR_MODULES: dict[str, str] = {
    "python": "tree_sitter_python",
    "java": "tree_sitter_java",
}
