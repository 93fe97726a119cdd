"""Value types passed through the coverage loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from testsmith.constants import GenerationStatus, PlanKind
from testsmith.coverage.schemas import CoverageSnapshot
from testsmith.resilience.errors import ErrorKind


@dataclass(frozen=True)
class BuildTarget:
    """Where an artifact is written and which unit it exercises."""

    project_root: Path
    artifact_path: Path
    unit_name: str
    source_path: Path | None = None


@dataclass(frozen=True)
class Feedback:
    """What the previous iteration left uncovered (or why it failed)."""

    iteration: int
    uncovered_lines: tuple[int, ...] = ()
    uncovered_operations: tuple[str, ...] = ()
    previous_artifact: str | None = None
    snapshot: CoverageSnapshot = field(default_factory=CoverageSnapshot.empty)
    error: str | None = None


@dataclass(frozen=True)
class GenerationAttempt:
    iteration: int
    artifact: str
    snapshot: CoverageSnapshot


@dataclass(frozen=True)
class GenerationOutcome:
    """Terminal result of one generation request.

    ``history`` holds the overall rate of every measured iteration, in
    order; ``best_overall_rate`` is its maximum (0.0 if nothing was
    measured).
    """

    status: GenerationStatus
    snapshot: CoverageSnapshot
    iterations: int
    plan_kind: PlanKind = PlanKind.NEW
    artifact: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    history: tuple[float, ...] = ()
    best_overall_rate: float = 0.0
    artifact_path: Path | None = None
    unit_name: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status is GenerationStatus.SUCCESS
