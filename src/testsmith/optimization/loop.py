"""Coverage-feedback loop: synthesize, measure, decide, repeat.

States::

    ITERATE → SYNTHESIZE → MEASURE → DECIDE → {ITERATE | SUCCESS | EXHAUSTED | FAILED}

A synthesis or execution failure skips MEASURE and goes straight to
DECIDE. Failed attempts do not use up an iteration; they draw on a
separate budget of consecutive failures, reset by every successful
measurement. The deadline is cooperative: DECIDE checks it after the
target, never by interrupting an in-flight call, so a measurement that
meets the target still succeeds.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from testsmith.constants import (
    DEFAULT_FAILURE_BUDGET,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TARGET_COVERAGE,
    ERROR_TRUNCATION_CHARS,
    FEEDBACK_ERROR_CHARS,
    TERMINAL_STATES,
    TRACE_ID_HEX_LENGTH,
    GenerationStatus,
    LoopState,
    PlanKind,
)
from testsmith.coverage.model import (
    meets_target,
    overall_rate,
    uncovered_lines,
    uncovered_operations,
)
from testsmith.coverage.schemas import CoverageSnapshot
from testsmith.observability.dispatcher import EventCollector
from testsmith.observability.emitters import (
    emit_decision,
    emit_failure,
    emit_generation_end,
    emit_generation_start,
    emit_iteration_start,
    emit_measurement,
    emit_synthesis,
)
from testsmith.optimization.schemas import (
    BuildTarget,
    Feedback,
    GenerationAttempt,
    GenerationOutcome,
)
from testsmith.parsing.schemas import StructuralSummary
from testsmith.planning.schemas import IncrementalPlan
from testsmith.resilience.errors import (
    ErrorKind,
    TestsmithError,
    classify_error,
    is_retryable,
)

if TYPE_CHECKING:
    from testsmith.protocols import BuildExecutor, Synthesizer

logger = logging.getLogger(__name__)


@dataclass
class _LoopRun:
    """Mutable state of one ``run`` call."""

    summary: StructuralSummary
    target: BuildTarget
    plan: IncrementalPlan | None
    collector: EventCollector | None
    trace_id: str
    started: float
    deadline_at: float | None
    iteration: int = 0  # measured iterations so far
    consecutive_failures: int = 0
    feedback: Feedback | None = None
    pending_artifact: str | None = None
    last_attempt: GenerationAttempt | None = None
    last_error: Exception | None = None
    last_error_kind: ErrorKind | None = None
    history: list[float] = field(default_factory=lambda: list[float]())


class OptimizationLoop:
    """Drives a Synthesizer and a BuildExecutor toward a coverage target."""

    def __init__(
        self,
        synthesizer: Synthesizer,
        executor: BuildExecutor,
        *,
        target_coverage: float = DEFAULT_TARGET_COVERAGE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        failure_budget: int = DEFAULT_FAILURE_BUDGET,
        deadline_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not 0.0 < target_coverage <= 1.0:
            raise ValueError("target_coverage must be in (0, 1]")
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if failure_budget < 1:
            raise ValueError("failure_budget must be at least 1")
        if deadline_seconds is not None and deadline_seconds < 0:
            raise ValueError("deadline_seconds must not be negative")
        self._synthesizer = synthesizer
        self._executor = executor
        self.target_coverage = target_coverage
        self.max_iterations = max_iterations
        self.failure_budget = failure_budget
        self.deadline_seconds = deadline_seconds
        self._clock = clock

    async def run(
        self,
        summary: StructuralSummary,
        target: BuildTarget,
        *,
        plan: IncrementalPlan | None = None,
        collector: EventCollector | None = None,
        trace_id: str | None = None,
    ) -> GenerationOutcome:
        """Iterate until the target is met or a budget runs out.

        Only synthesis and execution errors are handled here; anything
        else propagates to the caller.
        """
        now = self._clock()
        run = _LoopRun(
            summary=summary,
            target=target,
            plan=plan,
            collector=collector,
            trace_id=trace_id
            or f"gen_{uuid.uuid4().hex[:TRACE_ID_HEX_LENGTH]}",
            started=now,
            deadline_at=(
                now + self.deadline_seconds
                if self.deadline_seconds is not None
                else None
            ),
        )
        await emit_generation_start(
            collector,
            run.trace_id,
            target.unit_name,
            str(plan.kind if plan else PlanKind.NEW),
            self.target_coverage,
            self.max_iterations,
        )

        state = LoopState.ITERATE
        while state not in TERMINAL_STATES:
            match state:
                case LoopState.ITERATE:
                    await emit_iteration_start(
                        collector, run.trace_id, run.iteration + 1
                    )
                    state = LoopState.SYNTHESIZE
                case LoopState.SYNTHESIZE:
                    state = await self._synthesize(run)
                case LoopState.MEASURE:
                    state = await self._measure(run)
                case LoopState.DECIDE:
                    state = await self._decide(run)
                case _:
                    raise AssertionError(f"unexpected loop state {state}")

        return await self._finish(run, state)

    async def _synthesize(self, run: _LoopRun) -> LoopState:
        start = self._clock()
        try:
            artifact = await self._synthesizer.synthesize(
                run.summary, run.feedback, plan=run.plan
            )
        except Exception as exc:
            if not is_retryable(exc):
                raise
            await self._record_failure(run, exc)
            return LoopState.DECIDE

        run.pending_artifact = artifact
        await emit_synthesis(
            run.collector,
            run.trace_id,
            run.iteration + 1,
            len(artifact),
            (self._clock() - start) * 1000,
        )
        return LoopState.MEASURE

    async def _measure(self, run: _LoopRun) -> LoopState:
        assert run.pending_artifact is not None
        start = self._clock()
        try:
            snapshot = await self._executor.run(run.pending_artifact, run.target)
        except Exception as exc:
            if not is_retryable(exc):
                raise
            await self._record_failure(run, exc)
            return LoopState.DECIDE

        run.iteration += 1
        run.consecutive_failures = 0
        run.last_error = None
        run.last_error_kind = None
        run.last_attempt = GenerationAttempt(
            iteration=run.iteration,
            artifact=run.pending_artifact,
            snapshot=snapshot,
        )
        rate = overall_rate(snapshot)
        run.history.append(rate)
        logger.info(
            "event=iteration_measured unit=%s iteration=%d "
            "line=%.3f branch=%.3f overall=%.3f",
            run.target.unit_name,
            run.iteration,
            snapshot.line_rate,
            snapshot.branch_rate,
            rate,
        )
        await emit_measurement(
            run.collector,
            run.trace_id,
            run.iteration,
            snapshot.line_rate,
            snapshot.branch_rate,
            rate,
            (self._clock() - start) * 1000,
        )
        return LoopState.DECIDE

    async def _decide(self, run: _LoopRun) -> LoopState:
        next_state = self._next_state(run)
        await emit_decision(
            run.collector, run.trace_id, run.iteration, str(next_state)
        )
        return next_state

    def _next_state(self, run: _LoopRun) -> LoopState:
        # A fresh measurement that meets the target wins over the deadline.
        if run.last_error is None:
            assert run.last_attempt is not None
            if meets_target(run.last_attempt.snapshot, self.target_coverage):
                return LoopState.SUCCESS

        if run.deadline_at is not None and self._clock() >= run.deadline_at:
            logger.info(
                "event=deadline_reached unit=%s iteration=%d",
                run.target.unit_name,
                run.iteration,
            )
            return LoopState.EXHAUSTED

        if run.last_error is not None:
            if run.consecutive_failures >= self.failure_budget:
                return LoopState.FAILED
            previous = run.last_attempt.artifact if run.last_attempt else None
            run.feedback = Feedback(
                iteration=run.iteration,
                uncovered_lines=run.feedback.uncovered_lines if run.feedback else (),
                uncovered_operations=(
                    run.feedback.uncovered_operations if run.feedback else ()
                ),
                previous_artifact=run.pending_artifact or previous,
                snapshot=(
                    run.last_attempt.snapshot
                    if run.last_attempt
                    else CoverageSnapshot.empty()
                ),
                error=_describe(run.last_error),
            )
            return LoopState.ITERATE

        attempt = run.last_attempt
        assert attempt is not None
        if run.iteration >= self.max_iterations:
            return LoopState.EXHAUSTED

        unit = run.target.unit_name
        run.feedback = Feedback(
            iteration=run.iteration,
            uncovered_lines=tuple(uncovered_lines(attempt.snapshot, unit)),
            uncovered_operations=tuple(
                r.operation_name
                for r in uncovered_operations(attempt.snapshot, unit)
            ),
            previous_artifact=attempt.artifact,
            snapshot=attempt.snapshot,
        )
        return LoopState.ITERATE

    async def _record_failure(self, run: _LoopRun, exc: Exception) -> None:
        run.consecutive_failures += 1
        run.last_error = exc
        run.last_error_kind = classify_error(exc)
        logger.warning(
            "event=attempt_failed unit=%s kind=%s consecutive=%d budget=%d "
            "error=%s",
            run.target.unit_name,
            run.last_error_kind.value if run.last_error_kind else "unknown",
            run.consecutive_failures,
            self.failure_budget,
            str(exc)[:ERROR_TRUNCATION_CHARS],
        )
        await emit_failure(
            run.collector,
            run.trace_id,
            run.last_error_kind.value if run.last_error_kind else "unknown",
            str(exc)[:ERROR_TRUNCATION_CHARS],
            run.consecutive_failures,
        )

    async def _finish(
        self, run: _LoopRun, state: LoopState
    ) -> GenerationOutcome:
        match state:
            case LoopState.SUCCESS:
                status = GenerationStatus.SUCCESS
            case LoopState.EXHAUSTED:
                status = GenerationStatus.EXHAUSTED
            case _:
                status = GenerationStatus.FAILED

        attempt = run.last_attempt
        failed = status is GenerationStatus.FAILED
        outcome = GenerationOutcome(
            status=status,
            snapshot=attempt.snapshot if attempt else CoverageSnapshot.empty(),
            iterations=run.iteration,
            plan_kind=run.plan.kind if run.plan else PlanKind.NEW,
            artifact=attempt.artifact if attempt else None,
            error=str(run.last_error) if failed and run.last_error else None,
            error_kind=run.last_error_kind if failed else None,
            history=tuple(run.history),
            best_overall_rate=max(run.history, default=0.0),
            artifact_path=run.target.artifact_path,
            unit_name=run.target.unit_name,
        )
        logger.info(
            "event=generation_finished unit=%s status=%s iterations=%d "
            "best=%.3f",
            run.target.unit_name,
            status,
            outcome.iterations,
            outcome.best_overall_rate,
        )
        await emit_generation_end(
            run.collector,
            run.trace_id,
            str(status),
            outcome.iterations,
            outcome.best_overall_rate,
            (self._clock() - run.started) * 1000,
        )
        return outcome


def _describe(exc: Exception) -> str:
    """Error text for the next prompt: message plus the tail of its detail."""
    text = str(exc)
    if isinstance(exc, TestsmithError) and exc.detail:
        text = f"{text}\n{exc.detail[-FEEDBACK_ERROR_CHARS:]}"
    return text

