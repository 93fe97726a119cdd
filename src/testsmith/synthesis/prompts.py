"""LLM prompts for test synthesis.

All system prompts live here; ``build_user_prompt`` assembles the
per-request context (summary, plan, coverage feedback).
"""

from __future__ import annotations

from testsmith.constants import FEEDBACK_MAX_LINES, PlanKind
from testsmith.optimization.schemas import Feedback
from testsmith.parsing.schemas import OperationInfo, StructuralSummary
from testsmith.planning.schemas import IncrementalPlan

# ── Framework conventions (deterministic dict lookup) ────────────

FRAMEWORK_CONTEXT_MAP: dict[str, str] = {
    "python": (
        "Use pytest. Plain test functions or classes grouping related "
        "tests, fixtures instead of setUp/tearDown, pytest.raises for "
        "expected exceptions, unittest.mock for collaborators. Async "
        "functions get @pytest.mark.asyncio."
    ),
    "java": (
        "Use JUnit 5 (@Test, @DisplayName, @BeforeEach) with Mockito "
        "for collaborators. Follow Given-When-Then inside each test. "
        "Assert exceptions with assertThrows."
    ),
}

# ── Synthesis system prompt ──────────────────────────────────────

SYNTHESIS_SYSTEM_PROMPT = """\
You are a test engineer. You write unit tests for an existing source unit \
and your tests are executed under coverage measurement right after you \
answer.

## Rules
- Return ONE complete test file. No explanations, no markdown outside a \
single code block.
- Import the unit under test by its module or package name.
- Cover normal paths, error paths and boundary values of every operation \
you are asked about. Every branch you can reach matters: the file is \
accepted only when both line and branch coverage reach the target.
- Never modify or re-implement the code under test.
- When you are given an existing test file, keep every existing test \
unchanged and add new tests to it. Return the whole merged file.
- When you are given uncovered lines, write tests that execute exactly \
those lines.
- When you are told the previous attempt failed, fix the cause first.
"""


def system_prompt(language: str) -> str:
    framework = FRAMEWORK_CONTEXT_MAP.get(language, "")
    if not framework:
        return SYNTHESIS_SYSTEM_PROMPT
    return f"{SYNTHESIS_SYSTEM_PROMPT}\n## Framework\n{framework}\n"


def _operation_line(op: OperationInfo) -> str:
    flags = [
        name
        for name, on in (
            ("constructor", op.is_constructor),
            ("static", op.is_static),
            ("accessor", op.is_accessor),
            ("override", op.is_overridden),
        )
        if on
    ]
    owner = f"{op.owner}." if op.owner else ""
    line = f"- {owner}{op.signature} [returns {op.return_category}]"
    if op.error_types:
        line += f" raises {', '.join(op.error_types)}"
    if flags:
        line += f" ({', '.join(flags)})"
    if op.start_line:
        line += f" lines {op.start_line}-{op.end_line}"
    return line


def build_user_prompt(
    summary: StructuralSummary,
    feedback: Feedback | None,
    plan: IncrementalPlan | None,
    source_text: str | None,
) -> str:
    parts = [
        f"## Unit under test\n{summary.qualified_name} ({summary.language})",
    ]
    if source_text:
        parts.append(f"## Source\n```{summary.language}\n{source_text}\n```")

    focus = (
        plan.delta_operations
        if plan is not None and plan.kind is PlanKind.INCREMENTAL
        else summary.operations
    )
    parts.append(
        "## Operations to test\n"
        + ("\n".join(_operation_line(op) for op in focus) or "- (none found)")
    )

    existing = None
    if feedback is not None and feedback.previous_artifact:
        existing = feedback.previous_artifact
    elif plan is not None and plan.existing_content:
        existing = plan.existing_content
    if existing:
        parts.append(
            "## Existing test file (keep all tests, extend it)\n"
            f"```{summary.language}\n{existing}\n```"
        )

    if feedback is not None:
        parts.append(_feedback_section(feedback))

    parts.append("Return the complete test file.")
    return "\n\n".join(parts)


def _feedback_section(feedback: Feedback) -> str:
    if feedback.error:
        return (
            f"## Previous attempt failed\n{feedback.error}\n"
            "Fix the problem and return a test file that runs."
        )
    lines = [
        f"## Coverage after attempt {feedback.iteration}",
        f"line {feedback.snapshot.line_rate:.1%}, "
        f"branch {feedback.snapshot.branch_rate:.1%}",
    ]
    if feedback.uncovered_operations:
        lines.append(
            "Operations still missing coverage: "
            + ", ".join(feedback.uncovered_operations)
        )
    if feedback.uncovered_lines:
        shown = feedback.uncovered_lines[:FEEDBACK_MAX_LINES]
        suffix = " ..." if len(feedback.uncovered_lines) > len(shown) else ""
        lines.append(
            "Uncovered lines: " + ", ".join(str(n) for n in shown) + suffix
        )
    return "\n".join(lines)
