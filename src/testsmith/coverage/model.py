"""Pure functions over coverage snapshots."""

from __future__ import annotations

from collections.abc import Iterable

from testsmith.coverage.schemas import CoverageRecord, CoverageSnapshot


def overall_rate(snapshot: CoverageSnapshot) -> float:
    """Unweighted mean of the line, branch and instruction rates."""
    return (
        snapshot.line_rate + snapshot.branch_rate + snapshot.instruction_rate
    ) / 3


def meets_target(snapshot: CoverageSnapshot, target: float) -> bool:
    """Line AND branch must each reach ``target`` (inclusive)."""
    return snapshot.line_rate >= target and snapshot.branch_rate >= target


def _records_for(
    snapshot: CoverageSnapshot, unit_name: str
) -> list[CoverageRecord]:
    return [r for r in snapshot.records if r.unit_name == unit_name]


def uncovered_lines(snapshot: CoverageSnapshot, unit_name: str) -> list[int]:
    """Sorted missed line numbers of ``unit_name``.

    Explicit line numbers win whenever the report carries any. Otherwise
    each record contributes the span starting at its first line, one
    line per missed count.
    """
    explicit: set[int] = set()
    spans: set[int] = set()
    for record in _records_for(snapshot, unit_name):
        if record.line.missed == 0:
            continue
        if record.missed_lines:
            explicit.update(record.missed_lines)
        elif record.first_line > 0:
            spans.update(
                range(record.first_line, record.first_line + record.line.missed)
            )
    return sorted(explicit or spans)


def uncovered_operations(
    snapshot: CoverageSnapshot, unit_name: str
) -> list[CoverageRecord]:
    """Operation-level records of ``unit_name`` that miss lines or branches."""
    return [
        r
        for r in _records_for(snapshot, unit_name)
        if not r.is_unit_level and (r.line.missed > 0 or r.branch.missed > 0)
    ]


def aggregate(records: Iterable[CoverageRecord]) -> CoverageSnapshot:
    """Snapshot whose rates average the unit-level records' rates."""
    ordered = tuple(records)
    units = [r for r in ordered if r.is_unit_level]
    if not units:
        return CoverageSnapshot(records=ordered)

    count = len(units)
    missing: set[int] = set()
    for r in units:
        missing.update(r.missed_lines)
    return CoverageSnapshot(
        line_rate=sum(r.line.rate for r in units) / count,
        branch_rate=sum(r.branch.rate for r in units) / count,
        instruction_rate=sum(r.instruction.rate for r in units) / count,
        records=ordered,
        uncovered_lines=frozenset(missing),
    )


def restrict_to_unit(
    snapshot: CoverageSnapshot, unit_name: str
) -> CoverageSnapshot:
    """Re-aggregate over one unit's records.

    A run instruments a whole source root; the loop judges only the
    unit under test. No records for the unit means no data for it.
    """
    records = _records_for(snapshot, unit_name)
    if not records:
        return CoverageSnapshot.empty()
    return aggregate(records)


def format_report(snapshot: CoverageSnapshot, target: float | None = None) -> str:
    """Plain-text summary, one unit per block."""
    if snapshot.is_empty:
        return "No coverage data."

    lines = [
        "Coverage summary",
        f"  line:        {snapshot.line_rate:6.1%}",
        f"  branch:      {snapshot.branch_rate:6.1%}",
        f"  instruction: {snapshot.instruction_rate:6.1%}",
        f"  overall:     {overall_rate(snapshot):6.1%}",
    ]
    if target is not None:
        verdict = "met" if meets_target(snapshot, target) else "not met"
        lines.append(f"  target {target:.0%}: {verdict}")

    for unit in (r for r in snapshot.records if r.is_unit_level):
        lines.append("")
        lines.append(
            f"{unit.unit_name}: line {unit.line.rate:.1%} "
            f"({unit.line.covered}/{unit.line.total}), "
            f"branch {unit.branch.rate:.1%} "
            f"({unit.branch.covered}/{unit.branch.total})"
        )
        missed = uncovered_lines(snapshot, unit.unit_name)
        if missed:
            lines.append(f"  uncovered lines: {_ranges(missed)}")
        for op in uncovered_operations(snapshot, unit.unit_name):
            lines.append(
                f"  - {op.operation_name} (line {op.first_line}): "
                f"line {op.line.rate:.1%}, branch {op.branch.rate:.1%}"
            )
    return "\n".join(lines)


def _ranges(numbers: list[int]) -> str:
    """``[1, 2, 3, 7]`` → ``"1-3, 7"``."""
    parts: list[str] = []
    start = prev = numbers[0]
    for n in numbers[1:]:
        if n == prev + 1:
            prev = n
            continue
        parts.append(str(start) if start == prev else f"{start}-{prev}")
        start = prev = n
    parts.append(str(start) if start == prev else f"{start}-{prev}")
    return ", ".join(parts)
