"""Scripted collaborators for testing.

Synthesizer, executor and parser doubles that replay a script of
results or exceptions. No LLM, no subprocess: instant, deterministic
loop runs for unit tests.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from testsmith.coverage.schemas import (
    CoverageCounter,
    CoverageRecord,
    CoverageSnapshot,
)
from testsmith.optimization.schemas import BuildTarget, Feedback
from testsmith.parsing.schemas import OperationInfo, StructuralSummary
from testsmith.planning.schemas import IncrementalPlan


def snapshot_at(
    line_rate: float,
    branch_rate: float | None = None,
    *,
    unit_name: str = "",
    instruction_rate: float | None = None,
) -> CoverageSnapshot:
    """Snapshot with the given rates and one matching unit record."""
    branch = line_rate if branch_rate is None else branch_rate
    instruction = line_rate if instruction_rate is None else instruction_rate
    record = CoverageRecord(
        unit_name=unit_name,
        line=CoverageCounter(total=100, missed=round(100 * (1 - line_rate))),
        branch=CoverageCounter(total=100, missed=round(100 * (1 - branch))),
        instruction=CoverageCounter(
            total=100, missed=round(100 * (1 - instruction))
        ),
    )
    return CoverageSnapshot(
        line_rate=line_rate,
        branch_rate=branch,
        instruction_rate=instruction,
        records=(record,),
    )


@dataclass
class SynthesisCall:
    summary: StructuralSummary
    feedback: Feedback | None
    plan: IncrementalPlan | None


class ScriptedSynthesizer:
    """Replays artifacts (str) or raises exceptions, in order.

    The last script entry repeats once the script is exhausted.
    """

    def __init__(self, script: Iterable[str | Exception]) -> None:
        self._script = list(script)
        if not self._script:
            raise ValueError("script must not be empty")
        self.calls: list[SynthesisCall] = []

    async def synthesize(
        self,
        summary: StructuralSummary,
        feedback: Feedback | None = None,
        *,
        plan: IncrementalPlan | None = None,
    ) -> str:
        step = self._script[min(len(self.calls), len(self._script) - 1)]
        self.calls.append(SynthesisCall(summary, feedback, plan))
        if isinstance(step, Exception):
            raise step
        return step


@dataclass
class ExecutionCall:
    artifact: str
    target: BuildTarget


class ScriptedExecutor:
    """Replays snapshots, overall rates (float) or exceptions, in order.

    A float ``r`` becomes ``snapshot_at(r)`` for the target's unit. The
    last script entry repeats once the script is exhausted.
    """

    def __init__(
        self, script: Iterable[CoverageSnapshot | float | Exception]
    ) -> None:
        self._script = list(script)
        if not self._script:
            raise ValueError("script must not be empty")
        self.calls: list[ExecutionCall] = []

    async def run(self, artifact: str, target: BuildTarget) -> CoverageSnapshot:
        step = self._script[min(len(self.calls), len(self._script) - 1)]
        self.calls.append(ExecutionCall(artifact, target))
        match step:
            case Exception():
                raise step
            case CoverageSnapshot():
                return step
            case _:
                return snapshot_at(float(step), unit_name=target.unit_name)


@dataclass
class StaticParser:
    """SourceParser returning a fixed list of operation names."""

    operations: list[str] = field(default_factory=lambda: list[str]())
    language: str = "python"
    calls: int = 0

    def parse(self, source_text: str, *, unit_name: str = "") -> StructuralSummary:
        self.calls += 1
        return StructuralSummary(
            qualified_name=unit_name,
            language=self.language,
            operations=tuple(OperationInfo(name=n) for n in self.operations),
        )
