"""Delta planning against an existing generated-test artifact.

Which operations already have tests is decided from test NAMES, not
from test bodies: ``test_parse_returns_none`` and
``shouldParseSuccessfully`` both count as tests of ``parse``. This is a
heuristic. A test named without a recognizable operation name is
missed and the operation is planned again; the planner errs toward
regenerating rather than skipping.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from testsmith.constants import (
    TEST_NAME_OUTCOME_WORDS,
    TEST_NAME_PREFIXES,
    PlanKind,
)
from testsmith.parsing.schemas import OperationInfo, StructuralSummary
from testsmith.planning.schemas import IncrementalPlan

logger = logging.getLogger(__name__)

_PY_TEST_RE = re.compile(r"^\s*(?:async\s+)?def\s+(test\w*)\s*\(", re.MULTILINE)
_JAVA_TEST_RE = re.compile(
    r"@(?:Test|ParameterizedTest|RepeatedTest)\b(?:[^{;]|\{[^{}]*\})*?"
    r"\bvoid\s+(\w+)\s*\(",
    re.DOTALL,
)
_DISPLAY_NAME_RE = re.compile(r'@DisplayName\(\s*"([^"]*)"')

_CAMEL_LOWER_UPPER = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_CAMEL_ACRONYM = re.compile(r"(?<=[A-Z])(?=[A-Z][a-z])")
_NON_ALNUM = re.compile(r"[^0-9a-zA-Z]+")


def split_words(identifier: str) -> list[str]:
    """``getHTTPResponse_code`` → ``["get", "http", "response", "code"]``."""
    spaced = _CAMEL_ACRONYM.sub("_", _CAMEL_LOWER_UPPER.sub("_", identifier))
    return [w.lower() for w in _NON_ALNUM.split(spaced) if w]


def normalize_name(identifier: str) -> str:
    """Case- and separator-insensitive form of an identifier."""
    return "_".join(split_words(identifier))


def tested_name_from_test(test_name: str) -> str:
    """Likely operation under test, normalized; empty if none survives.

    Leading test prefixes are dropped, a ``given ... when`` preamble is
    skipped, and the name is cut at the first outcome word.
    """
    words = split_words(test_name)
    while words and words[0] in TEST_NAME_PREFIXES:
        words = words[1:]
    if words and words[0] == "given":
        words = words[words.index("when") + 1 :] if "when" in words else words[1:]
    for i, word in enumerate(words):
        if i > 0 and word in TEST_NAME_OUTCOME_WORDS:
            words = words[:i]
            break
    return "_".join(words)


class IncrementalPlanner:
    """Diffs a summary against the tests an artifact already contains."""

    def has_existing_artifact(self, path: Path) -> bool:
        return path.is_file()

    def tested_operation_names(self, content: str) -> set[str]:
        """Normalized operation names referenced by test identifiers."""
        raw: list[str] = []
        raw.extend(_PY_TEST_RE.findall(content))
        raw.extend(_JAVA_TEST_RE.findall(content))
        raw.extend(_DISPLAY_NAME_RE.findall(content))
        names = {tested_name_from_test(name) for name in raw}
        names.discard("")
        return names

    def plan(
        self,
        summary: StructuralSummary,
        tested_names: set[str] | None,
        *,
        existing_content: str | None = None,
    ) -> IncrementalPlan:
        """``tested_names=None`` means there is no artifact at all."""
        if tested_names is None:
            return IncrementalPlan(
                kind=PlanKind.NEW, delta_operations=summary.operations
            )

        covered = _match_operations(summary.operations, tested_names)
        delta = tuple(
            op for op in summary.operations if normalize_name(op.name) not in covered
        )
        kind = PlanKind.INCREMENTAL if delta else PlanKind.NONE
        logger.debug(
            "event=plan_computed unit=%s kind=%s delta=%d",
            summary.qualified_name,
            kind,
            len(delta),
        )
        return IncrementalPlan(
            kind=kind,
            delta_operations=delta,
            existing_content=existing_content,
        )

    def plan_for_artifact(
        self, summary: StructuralSummary, artifact_path: Path
    ) -> IncrementalPlan:
        """Plan against the artifact on disk; unreadable counts as absent."""
        if not self.has_existing_artifact(artifact_path):
            return self.plan(summary, None)
        try:
            content = artifact_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning(
                "event=artifact_unreadable path=%s error=%s",
                artifact_path,
                exc,
            )
            return self.plan(summary, None)
        return self.plan(
            summary,
            self.tested_operation_names(content),
            existing_content=content,
        )


def _match_operations(
    operations: tuple[OperationInfo, ...], tested_names: set[str]
) -> set[str]:
    """Normalized operation names that some tested name refers to.

    A tested name refers to the operation whose words form its longest
    prefix, so ``load_from_report_missing_file`` credits
    ``load_from_report`` and not ``load``.
    """
    op_names = {normalize_name(op.name) for op in operations}
    op_names.discard("")
    covered: set[str] = set()
    for tested in tested_names:
        best = ""
        for op_name in op_names:
            matches = tested == op_name or tested.startswith(op_name + "_")
            if matches and len(op_name) > len(best):
                best = op_name
        if best:
            covered.add(best)
    return covered
