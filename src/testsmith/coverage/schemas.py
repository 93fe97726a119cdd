"""Coverage value types. All immutable."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CoverageCounter:
    """``(total, missed)`` for one dimension (line, branch or instruction)."""

    total: int = 0
    missed: int = 0

    @property
    def covered(self) -> int:
        return self.total - self.missed

    @property
    def rate(self) -> float:
        # Nothing to cover counts as fully covered
        if self.total == 0:
            return 1.0
        return 1.0 - self.missed / self.total


@dataclass(frozen=True)
class CoverageRecord:
    """Counts for one unit or one operation within it.

    ``operation_name`` is empty for the unit-level record.
    ``missed_lines`` is filled when the report lists them; reports that
    only carry counts leave it empty.
    """

    unit_name: str
    operation_name: str = ""
    first_line: int = 0
    missed_lines: tuple[int, ...] = ()
    line: CoverageCounter = field(default_factory=CoverageCounter)
    branch: CoverageCounter = field(default_factory=CoverageCounter)
    instruction: CoverageCounter = field(default_factory=CoverageCounter)

    @property
    def is_unit_level(self) -> bool:
        return not self.operation_name


@dataclass(frozen=True)
class CoverageSnapshot:
    """Aggregated rates plus the records they were derived from."""

    line_rate: float = 0.0
    branch_rate: float = 0.0
    instruction_rate: float = 0.0
    records: tuple[CoverageRecord, ...] = ()
    uncovered_lines: frozenset[int] = frozenset()

    @classmethod
    def empty(cls) -> CoverageSnapshot:
        """The canonical "no data" snapshot: all rates 0, no records."""
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.records
