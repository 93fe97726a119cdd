"""Incremental plan value type."""

from __future__ import annotations

from dataclasses import dataclass

from testsmith.constants import PlanKind
from testsmith.parsing.schemas import OperationInfo


@dataclass(frozen=True)
class IncrementalPlan:
    """What needs generating for one unit.

    ``existing_content`` is the current artifact text, None for NEW.
    """

    kind: PlanKind
    delta_operations: tuple[OperationInfo, ...] = ()
    existing_content: str | None = None

    @property
    def needs_work(self) -> bool:
        return self.kind is not PlanKind.NONE

    @property
    def delta_names(self) -> list[str]:
        return [op.name for op in self.delta_operations]
