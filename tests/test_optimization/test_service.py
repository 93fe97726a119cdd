"""Tests for the generation service: cache, planning and artifact handling."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from testsmith.config import Settings
from testsmith.constants import GenerationStatus, PlanKind
from testsmith.coverage.schemas import CoverageSnapshot
from testsmith.fakes import ScriptedExecutor, ScriptedSynthesizer, StaticParser
from testsmith.observability import create_collector
from testsmith.observability.handlers.metrics import MetricsTraceHandler
from testsmith.optimization.schemas import BuildTarget
from testsmith.optimization.service import TestGenerationService
from testsmith.resilience.errors import (
    ErrorKind,
    ExecutionError,
    ParseFailure,
    SynthesisError,
)

GENERATED = (
    "from calc.ops import add\n\n\n"
    "def test_add_two_numbers():\n    assert add(1, 2) == 3\n"
)
FULL_SUITE = (
    "def test_add():\n    pass\n\n"
    "def test_divide_by_zero_raises():\n    pass\n\n"
    "def test_push_accumulates():\n    pass\n"
)


class _WritingExecutor:
    """Writes the artifact like the real executor, then fails."""

    def __init__(self, error: BaseException | None = None) -> None:
        self.calls = 0
        self._error = error

    async def run(self, artifact: str, target: BuildTarget) -> CoverageSnapshot:
        self.calls += 1
        target.artifact_path.parent.mkdir(parents=True, exist_ok=True)
        target.artifact_path.write_text(artifact)
        raise self._error or ExecutionError("exit 3", exit_code=3)


@pytest.fixture
def unit(project: Path) -> Path:
    return project / "src" / "calc" / "ops.py"


@pytest.fixture
def artifact(project: Path) -> Path:
    return project / "tests" / "test_calc_ops.py"


@pytest.fixture
def parser() -> StaticParser:
    return StaticParser(["add", "divide", "push"])


def _service(
    settings: Settings,
    parser: StaticParser,
    synth: ScriptedSynthesizer | None = None,
    executor: object | None = None,
) -> TestGenerationService:
    return TestGenerationService(
        settings,
        synthesizer=synth or ScriptedSynthesizer([GENERATED]),
        executor=executor or ScriptedExecutor([0.9]),  # type: ignore[arg-type]
        parsers={"python": parser},
    )


class TestGenerate:
    @pytest.mark.asyncio
    async def test_new_unit_writes_artifact(
        self,
        settings: Settings,
        parser: StaticParser,
        unit: Path,
        artifact: Path,
    ) -> None:
        synth = ScriptedSynthesizer([GENERATED])
        service = _service(settings, parser, synth)

        outcome = await service.generate(unit)

        assert outcome.succeeded
        assert outcome.plan_kind is PlanKind.NEW
        assert outcome.unit_name == "calc.ops"
        assert artifact.read_text() == GENERATED
        call = synth.calls[0]
        assert call.plan is not None
        assert call.plan.delta_names == ["add", "divide", "push"]
        assert call.summary.source_path == str(unit)

    @pytest.mark.asyncio
    async def test_relative_path_resolved_against_root(
        self, settings: Settings, parser: StaticParser
    ) -> None:
        outcome = await _service(settings, parser).generate(
            Path("src/calc/ops.py")
        )
        assert outcome.unit_name == "calc.ops"

    @pytest.mark.asyncio
    async def test_overrides_target_and_iterations(
        self, settings: Settings, parser: StaticParser, unit: Path
    ) -> None:
        executor = ScriptedExecutor([0.5])
        service = _service(settings, parser, executor=executor)

        outcome = await service.generate(unit, 0.95, 2)

        assert outcome.status is GenerationStatus.EXHAUSTED
        assert outcome.iterations == 2

    @pytest.mark.asyncio
    async def test_executor_receives_build_target(
        self,
        settings: Settings,
        parser: StaticParser,
        unit: Path,
        artifact: Path,
        project: Path,
    ) -> None:
        executor = ScriptedExecutor([1.0])
        await _service(settings, parser, executor=executor).generate(unit)

        target = executor.calls[0].target
        assert target.unit_name == "calc.ops"
        assert target.artifact_path == artifact.resolve()
        assert target.project_root == project.resolve()
        assert target.source_path == unit


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_run_uses_cached_summary(
        self, settings: Settings, parser: StaticParser, unit: Path
    ) -> None:
        service = _service(settings, parser)
        await service.generate(unit)
        await service.generate(unit)
        assert parser.calls == 1

    @pytest.mark.asyncio
    async def test_edit_forces_reparse(
        self, settings: Settings, parser: StaticParser, unit: Path
    ) -> None:
        service = _service(settings, parser)
        await service.generate(unit)
        unit.write_text(unit.read_text() + "\n\ndef extra():\n    pass\n")
        await service.generate(unit)
        assert parser.calls == 2

    @pytest.mark.asyncio
    async def test_cache_events_traced(
        self, settings: Settings, parser: StaticParser, unit: Path
    ) -> None:
        collector = create_collector(console=False)
        service = _service(settings, parser)
        await service.generate(unit, collector=collector)
        await service.generate(unit, collector=collector)

        metrics = collector.get_handler("metrics")
        assert isinstance(metrics, MetricsTraceHandler)
        totals = list(metrics.all_metrics().values())
        assert sum(m.cache_misses for m in totals) == 1
        assert sum(m.cache_hits for m in totals) == 1


class TestIncremental:
    @pytest.mark.asyncio
    async def test_fully_tested_unit_skips_loop(
        self,
        settings: Settings,
        parser: StaticParser,
        unit: Path,
        artifact: Path,
    ) -> None:
        artifact.parent.mkdir()
        artifact.write_text(FULL_SUITE)
        synth = ScriptedSynthesizer([GENERATED])

        outcome = await _service(settings, parser, synth).generate(unit)

        assert outcome.status is GenerationStatus.SUCCESS
        assert outcome.plan_kind is PlanKind.NONE
        assert outcome.iterations == 0
        assert outcome.snapshot.is_empty
        assert synth.calls == []
        assert artifact.read_text() == FULL_SUITE

    @pytest.mark.asyncio
    async def test_skipped_unit_reports_existing_coverage(
        self,
        settings: Settings,
        parser: StaticParser,
        unit: Path,
        artifact: Path,
        project: Path,
    ) -> None:
        artifact.parent.mkdir()
        artifact.write_text(FULL_SUITE)
        report = project / ".testsmith" / "coverage.json"
        report.parent.mkdir()
        report.write_text(json.dumps({
            "files": {
                "src/calc/ops.py": {
                    "missing_lines": [10],
                    "summary": {
                        "num_statements": 10,
                        "missing_lines": 1,
                        "num_branches": 2,
                        "missing_branches": 0,
                    },
                },
            },
        }))

        outcome = await _service(settings, parser).generate(unit)

        assert outcome.plan_kind is PlanKind.NONE
        assert outcome.snapshot.line_rate == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_partial_suite_plans_delta(
        self,
        settings: Settings,
        parser: StaticParser,
        unit: Path,
        artifact: Path,
    ) -> None:
        artifact.parent.mkdir()
        artifact.write_text("def test_add():\n    pass\n")
        synth = ScriptedSynthesizer([GENERATED])

        outcome = await _service(settings, parser, synth).generate(unit)

        assert outcome.plan_kind is PlanKind.INCREMENTAL
        plan = synth.calls[0].plan
        assert plan is not None
        assert plan.delta_names == ["divide", "push"]
        assert plan.existing_content == "def test_add():\n    pass\n"

    @pytest.mark.asyncio
    async def test_force_regenerates(
        self,
        settings: Settings,
        parser: StaticParser,
        unit: Path,
        artifact: Path,
    ) -> None:
        artifact.parent.mkdir()
        artifact.write_text(FULL_SUITE)

        outcome = await _service(settings, parser).generate(unit, force=True)

        assert outcome.plan_kind is PlanKind.NEW
        assert outcome.iterations == 1
        assert artifact.read_text() == GENERATED


class TestArtifactOnFailure:
    @pytest.mark.asyncio
    async def test_failed_run_restores_previous_artifact(
        self,
        settings: Settings,
        parser: StaticParser,
        unit: Path,
        artifact: Path,
    ) -> None:
        artifact.parent.mkdir()
        artifact.write_text("def test_add():\n    pass\n")
        executor = _WritingExecutor()

        outcome = await _service(settings, parser, executor=executor).generate(
            unit
        )

        assert outcome.status is GenerationStatus.FAILED
        assert outcome.error_kind is ErrorKind.EXECUTION
        assert executor.calls == settings.failure_budget
        assert artifact.read_text() == "def test_add():\n    pass\n"

    @pytest.mark.asyncio
    async def test_failed_run_removes_new_artifact(
        self,
        settings: Settings,
        parser: StaticParser,
        unit: Path,
        artifact: Path,
    ) -> None:
        outcome = await _service(
            settings, parser, executor=_WritingExecutor()
        ).generate(unit)

        assert outcome.status is GenerationStatus.FAILED
        assert not artifact.exists()

    @pytest.mark.asyncio
    async def test_escaping_error_restores_previous_artifact(
        self,
        settings: Settings,
        parser: StaticParser,
        unit: Path,
        artifact: Path,
    ) -> None:
        artifact.parent.mkdir()
        artifact.write_text("def test_add():\n    pass\n")
        executor = _WritingExecutor(RuntimeError("runner crashed"))
        synth = ScriptedSynthesizer(["GARBAGE" * 20])

        with pytest.raises(RuntimeError, match="runner crashed"):
            await _service(settings, parser, synth, executor).generate(unit)

        assert executor.calls == 1
        assert artifact.read_text() == "def test_add():\n    pass\n"

    @pytest.mark.asyncio
    async def test_cancellation_removes_new_artifact(
        self,
        settings: Settings,
        parser: StaticParser,
        unit: Path,
        artifact: Path,
    ) -> None:
        executor = _WritingExecutor(asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await _service(settings, parser, executor=executor).generate(unit)

        assert not artifact.exists()

    @pytest.mark.asyncio
    async def test_exhausted_keeps_last_artifact(
        self,
        settings: Settings,
        parser: StaticParser,
        unit: Path,
        artifact: Path,
    ) -> None:
        synth = ScriptedSynthesizer(["# one\n" * 5, "# two\n" * 5])
        outcome = await _service(
            settings, parser, synth, ScriptedExecutor([0.2])
        ).generate(unit, max_iterations=2)

        assert outcome.status is GenerationStatus.EXHAUSTED
        assert artifact.read_text() == "# two\n" * 5


class TestParseFailures:
    @pytest.mark.asyncio
    async def test_unsupported_file_raises(
        self, settings: Settings, parser: StaticParser, project: Path
    ) -> None:
        path = project / "src" / "calc" / "lib.rs"
        path.write_text("fn main() {}")
        synth = ScriptedSynthesizer([GENERATED])
        with pytest.raises(ParseFailure, match="unsupported"):
            await _service(settings, parser, synth).generate(path)
        assert synth.calls == []

    @pytest.mark.asyncio
    async def test_missing_file_raises(
        self, settings: Settings, parser: StaticParser, project: Path
    ) -> None:
        with pytest.raises(ParseFailure, match="cannot read"):
            await _service(settings, parser).generate(
                project / "src" / "calc" / "gone.py"
            )


class TestGenerateMany:
    @pytest.mark.asyncio
    async def test_results_in_input_order(
        self, settings: Settings, parser: StaticParser, project: Path, unit: Path
    ) -> None:
        other = project / "src" / "calc" / "more.py"
        other.write_text("def more():\n    return 1\n")
        broken = project / "src" / "calc" / "notes.txt"
        broken.write_text("hello")

        outcomes = await _service(settings, parser).generate_many(
            [unit, broken, other]
        )

        assert [o.status for o in outcomes] == [
            GenerationStatus.SUCCESS,
            GenerationStatus.FAILED,
            GenerationStatus.SUCCESS,
        ]
        assert outcomes[1].error_kind is ErrorKind.PARSE
        assert outcomes[0].unit_name == "calc.ops"
        assert outcomes[2].unit_name == "calc.more"

    @pytest.mark.asyncio
    async def test_synthesis_failure_isolated_per_unit(
        self, settings: Settings, parser: StaticParser, project: Path, unit: Path
    ) -> None:
        synth = ScriptedSynthesizer([SynthesisError("no model")])
        outcomes = await _service(settings, parser, synth).generate_many([unit])
        assert outcomes[0].status is GenerationStatus.FAILED
        assert outcomes[0].error_kind is ErrorKind.SYNTHESIS

    @pytest.mark.asyncio
    async def test_empty_input(
        self, settings: Settings, parser: StaticParser
    ) -> None:
        assert await _service(settings, parser).generate_many([]) == []
