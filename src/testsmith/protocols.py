"""Collaborator interfaces consumed by the generation pipeline.

Default implementations satisfy these protocols structurally (no
inheritance). Test doubles can be plain classes or mocks matching the
same signature; see ``testsmith.fakes``.
"""

from __future__ import annotations

from typing import Protocol

from testsmith.coverage.schemas import CoverageSnapshot
from testsmith.optimization.schemas import BuildTarget, Feedback
from testsmith.parsing.schemas import StructuralSummary
from testsmith.planning.schemas import IncrementalPlan


class SourceParser(Protocol):
    def parse(
        self, source_text: str, *, unit_name: str = ""
    ) -> StructuralSummary: ...


class Synthesizer(Protocol):
    async def synthesize(
        self,
        summary: StructuralSummary,
        feedback: Feedback | None = None,
        *,
        plan: IncrementalPlan | None = None,
    ) -> str: ...


class BuildExecutor(Protocol):
    async def run(
        self, artifact: str, target: BuildTarget
    ) -> CoverageSnapshot: ...
