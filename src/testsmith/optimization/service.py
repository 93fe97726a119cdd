"""Generation entry point: cache → parse → plan → loop.

``TestGenerationService`` owns the per-request wiring. Collaborators
are injected so callers (and tests) choose the synthesizer, executor,
parsers and cache; ``build_service`` assembles the defaults from
settings.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from testsmith.cache.parse_cache import ParseCache, build_parse_cache
from testsmith.config import Settings
from testsmith.constants import (
    TRACE_ID_HEX_LENGTH,
    GenerationStatus,
    PlanKind,
)
from testsmith.coverage.loader import CoverageReportLoader
from testsmith.coverage.model import overall_rate, restrict_to_unit
from testsmith.coverage.schemas import CoverageSnapshot
from testsmith.fileio import atomic_write_bytes, atomic_write_text
from testsmith.layout import (
    artifact_path_for,
    language_for,
    relative_to_root,
    unit_name_from_path,
)
from testsmith.observability.dispatcher import EventCollector
from testsmith.observability.emitters import emit_cache_lookup
from testsmith.optimization.loop import OptimizationLoop
from testsmith.optimization.schemas import BuildTarget, GenerationOutcome
from testsmith.parsing.schemas import StructuralSummary
from testsmith.parsing.tree_sitter_parser import TreeSitterSourceParser
from testsmith.planning.incremental import IncrementalPlanner
from testsmith.planning.schemas import IncrementalPlan
from testsmith.resilience.errors import ErrorKind, ParseFailure

if TYPE_CHECKING:
    from testsmith.protocols import BuildExecutor, SourceParser, Synthesizer

logger = logging.getLogger(__name__)


class TestGenerationService:
    """Generates tests for source units toward a coverage target."""

    __test__ = False  # not a pytest class despite the prefix

    def __init__(
        self,
        settings: Settings,
        *,
        synthesizer: Synthesizer,
        executor: BuildExecutor,
        cache: ParseCache | None = None,
        planner: IncrementalPlanner | None = None,
        parsers: dict[str, SourceParser] | None = None,
        loader: CoverageReportLoader | None = None,
    ) -> None:
        self._settings = settings
        self._synthesizer = synthesizer
        self._executor = executor
        self._cache = cache if cache is not None else build_parse_cache(settings)
        self._planner = planner or IncrementalPlanner()
        self._parsers: dict[str, SourceParser] = dict(parsers or {})
        self._loader = loader or CoverageReportLoader(settings.source_roots)

    @property
    def cache(self) -> ParseCache:
        return self._cache

    @property
    def root(self) -> Path:
        return self._settings.project_root.resolve()

    async def generate(
        self,
        unit_path: Path,
        target_coverage: float | None = None,
        max_iterations: int | None = None,
        *,
        force: bool = False,
        collector: EventCollector | None = None,
    ) -> GenerationOutcome:
        """Generate (or extend) the test artifact for one source unit.

        Raises ParseFailure if the unit cannot be read or parsed; no
        iteration runs in that case.
        """
        trace_id = f"gen_{uuid.uuid4().hex[:TRACE_ID_HEX_LENGTH]}"
        unit_path = unit_path if unit_path.is_absolute() else self.root / unit_path
        unit_name = unit_name_from_path(
            relative_to_root(unit_path, self.root), self._settings.source_roots
        )
        summary = await self.load_summary(
            unit_path, unit_name, collector=collector, trace_id=trace_id
        )

        artifact_path = artifact_path_for(unit_path, self._settings)
        plan = (
            IncrementalPlan(kind=PlanKind.NEW, delta_operations=summary.operations)
            if force
            else self._planner.plan_for_artifact(summary, artifact_path)
        )
        logger.info(
            "event=generation_planned unit=%s plan=%s delta=%d artifact=%s",
            unit_name,
            plan.kind,
            len(plan.delta_operations),
            artifact_path,
        )

        target = BuildTarget(
            project_root=self.root,
            artifact_path=artifact_path,
            unit_name=unit_name,
            source_path=unit_path,
        )
        if plan.kind is PlanKind.NONE:
            return self._already_covered(plan, target)

        loop = OptimizationLoop(
            self._synthesizer,
            self._executor,
            target_coverage=(
                target_coverage
                if target_coverage is not None
                else self._settings.coverage_target
            ),
            max_iterations=(
                max_iterations
                if max_iterations is not None
                else self._settings.max_iterations
            ),
            failure_budget=self._settings.failure_budget,
            deadline_seconds=self._settings.deadline_seconds,
        )
        previous = _read_existing(artifact_path)
        existed = artifact_path.exists()
        try:
            outcome = await loop.run(
                summary, target, plan=plan, collector=collector, trace_id=trace_id
            )
        except BaseException:
            # Errors outside the failure budget and cancellation must not
            # leave a half-written candidate over the user's tests.
            _restore_artifact(artifact_path, previous, existed=existed)
            raise
        self._settle_artifact(outcome, artifact_path, previous, existed=existed)
        return outcome

    async def generate_many(
        self,
        unit_paths: Sequence[Path],
        target_coverage: float | None = None,
        max_iterations: int | None = None,
        *,
        force: bool = False,
        collector: EventCollector | None = None,
    ) -> list[GenerationOutcome]:
        """Run ``generate`` per unit under bounded concurrency.

        Results are in input order. A parse failure fails only its own
        unit.
        """
        semaphore = asyncio.Semaphore(self._settings.max_concurrency)

        async def _one(path: Path) -> GenerationOutcome:
            async with semaphore:
                try:
                    return await self.generate(
                        path,
                        target_coverage,
                        max_iterations,
                        force=force,
                        collector=collector,
                    )
                except ParseFailure as exc:
                    logger.warning(
                        "event=unit_parse_failed path=%s error=%s", path, exc
                    )
                    return GenerationOutcome(
                        status=GenerationStatus.FAILED,
                        snapshot=CoverageSnapshot.empty(),
                        iterations=0,
                        error=str(exc),
                        error_kind=ErrorKind.PARSE,
                        unit_name=str(path),
                    )

        return list(await asyncio.gather(*(_one(p) for p in unit_paths)))

    async def load_summary(
        self,
        unit_path: Path,
        unit_name: str,
        *,
        collector: EventCollector | None = None,
        trace_id: str = "",
    ) -> StructuralSummary:
        """Summary from the cache, else parse and cache it."""
        cached = self._cache.get(unit_path)
        await emit_cache_lookup(
            collector, trace_id, unit_name, hit=cached is not None
        )
        if cached is not None:
            logger.debug("event=cache_hit unit=%s", unit_name)
            return cached

        language = language_for(unit_path)
        if language is None:
            raise ParseFailure(f"unsupported source file: {unit_path}")
        try:
            source = unit_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ParseFailure(
                f"cannot read {unit_path}", detail=str(exc)
            ) from exc

        summary = self._parser_for(language).parse(source, unit_name=unit_name)
        summary = summary.model_copy(update={"source_path": str(unit_path)})
        self._cache.put(unit_path, summary)
        return summary

    def _parser_for(self, language: str) -> SourceParser:
        parser = self._parsers.get(language)
        if parser is None:
            parser = TreeSitterSourceParser(language)
            self._parsers[language] = parser
        return parser

    def _already_covered(
        self, plan: IncrementalPlan, target: BuildTarget
    ) -> GenerationOutcome:
        """Every operation already has a test; report the last coverage."""
        report = self._settings.coverage_report_path
        if not report.is_absolute():
            report = self.root / report
        snapshot = restrict_to_unit(self._loader.load(report), target.unit_name)
        rate = overall_rate(snapshot)
        logger.info(
            "event=generation_skipped unit=%s reason=all_operations_tested",
            target.unit_name,
        )
        return GenerationOutcome(
            status=GenerationStatus.SUCCESS,
            snapshot=snapshot,
            iterations=0,
            plan_kind=PlanKind.NONE,
            artifact=plan.existing_content,
            history=(),
            best_overall_rate=rate if not snapshot.is_empty else 0.0,
            artifact_path=target.artifact_path,
            unit_name=target.unit_name,
        )

    def _settle_artifact(
        self,
        outcome: GenerationOutcome,
        artifact_path: Path,
        previous: bytes | None,
        *,
        existed: bool,
    ) -> None:
        """Leave the outcome's artifact on disk; undo the run on FAILED."""
        if outcome.status is GenerationStatus.FAILED:
            _restore_artifact(artifact_path, previous, existed=existed)
            return
        if outcome.artifact is None:
            return
        try:
            atomic_write_text(artifact_path, outcome.artifact)
        except OSError as exc:
            logger.warning(
                "event=artifact_settle_failed path=%s error=%s",
                artifact_path,
                exc,
            )


def _restore_artifact(
    artifact_path: Path, previous: bytes | None, *, existed: bool
) -> None:
    """Put back the pre-run bytes, or remove a file the run created."""
    try:
        if previous is not None:
            atomic_write_bytes(artifact_path, previous)
        elif not existed:
            artifact_path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning(
            "event=artifact_restore_failed path=%s error=%s",
            artifact_path,
            exc,
        )


def _read_existing(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("event=artifact_unreadable path=%s error=%s", path, exc)
        return None


def build_service(settings: Settings) -> TestGenerationService:
    """Service wired with the default LLM synthesizer and subprocess executor."""
    from testsmith.execution.executor import SubprocessBuildExecutor
    from testsmith.synthesis.llm import LLMSynthesizer

    loader = CoverageReportLoader(settings.source_roots)
    return TestGenerationService(
        settings,
        synthesizer=LLMSynthesizer(settings),
        executor=SubprocessBuildExecutor(settings, loader),
        loader=loader,
    )
