"""Instrumentation reports → CoverageSnapshot.

Supported inputs:

- coverage.py JSON (``coverage json`` / ``--cov-report=json``), the
  execution-data format for Python projects.
- JaCoCo XML (root ``<report>``).
- Cobertura XML (root ``<coverage>``).

Loading never fails the caller. A missing file is the normal state
before the first run; unreadable or malformed files are logged. Both
yield ``CoverageSnapshot.empty()``.
"""

from __future__ import annotations

import json
import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

from testsmith.coverage.model import aggregate
from testsmith.coverage.schemas import (
    CoverageCounter,
    CoverageRecord,
    CoverageSnapshot,
)
from testsmith.layout import unit_name_from_path
from testsmith.resilience.errors import ReportLoadError

logger = logging.getLogger(__name__)

_CONDITION_RE = re.compile(r"\((\d+)/(\d+)\)")


class CoverageReportLoader:
    """Reads coverage reports; unit names follow ``unit_name_from_path``."""

    def __init__(self, source_roots: list[str] | tuple[str, ...] = ("src",)) -> None:
        self._source_roots = tuple(source_roots)

    def load(self, path: Path) -> CoverageSnapshot:
        """Dispatch on file suffix: ``.json`` → execution data, else XML."""
        if path.suffix.lower() == ".json":
            return self.load_from_execution_data(path)
        return self.load_from_report(path)

    def load_from_execution_data(self, path: Path) -> CoverageSnapshot:
        try:
            return self._parse_coverage_json(_read_text(path))
        except FileNotFoundError:
            logger.debug("event=coverage_report_absent path=%s", path)
        except ReportLoadError as exc:
            logger.warning(
                "event=coverage_report_unreadable path=%s error=%s",
                path,
                exc,
            )
        return CoverageSnapshot.empty()

    def load_from_report(self, path: Path) -> CoverageSnapshot:
        try:
            root = _parse_xml(_read_text(path))
            match root.tag:
                case "report":
                    return self._parse_jacoco(root)
                case "coverage":
                    return self._parse_cobertura(root)
                case other:
                    raise ReportLoadError(f"unknown report root <{other}>")
        except FileNotFoundError:
            logger.debug("event=coverage_report_absent path=%s", path)
        except ReportLoadError as exc:
            logger.warning(
                "event=coverage_report_unreadable path=%s error=%s",
                path,
                exc,
            )
        return CoverageSnapshot.empty()

    # ── coverage.py JSON ─────────────────────────────────

    def _parse_coverage_json(self, text: str) -> CoverageSnapshot:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ReportLoadError("malformed JSON", detail=str(exc)) from exc
        files = data.get("files") if isinstance(data, dict) else None
        if not isinstance(files, dict):
            raise ReportLoadError("missing 'files' section")

        records: list[CoverageRecord] = []
        try:
            for file_path, entry in files.items():
                unit = unit_name_from_path(file_path, self._source_roots)
                records.append(_json_record(unit, "", entry))
                for func_name, func_entry in entry.get("functions", {}).items():
                    if not func_name:
                        continue  # module-level statements
                    records.append(_json_record(unit, func_name, func_entry))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ReportLoadError(
                "unexpected coverage JSON shape", detail=str(exc)
            ) from exc
        return aggregate(records)

    # ── JaCoCo XML ───────────────────────────────────────

    def _parse_jacoco(self, root: ET.Element) -> CoverageSnapshot:
        records: list[CoverageRecord] = []
        for package in root.iter("package"):
            missed_by_file = _jacoco_missed_lines(package)
            for cls in package.findall("class"):
                name = cls.attrib.get("name", "")
                if not name:
                    continue
                unit = name.replace("/", ".")
                line, branch, instruction = _jacoco_counters(cls)
                source_file = cls.attrib.get("sourcefilename", "")
                records.append(
                    CoverageRecord(
                        unit_name=unit,
                        missed_lines=missed_by_file.get(source_file, ()),
                        line=line,
                        branch=branch,
                        instruction=instruction,
                    )
                )
                for method in cls.findall("method"):
                    m_line, m_branch, m_instr = _jacoco_counters(method)
                    records.append(
                        CoverageRecord(
                            unit_name=unit,
                            operation_name=method.attrib.get("name", ""),
                            first_line=_int(method.attrib.get("line", "0")),
                            line=m_line,
                            branch=m_branch,
                            instruction=m_instr,
                        )
                    )

        snapshot = aggregate(records)
        if not any(c.tag == "counter" for c in root):
            return snapshot
        # Report-level totals are authoritative when present
        line, branch, instruction = _jacoco_counters(root)
        return CoverageSnapshot(
            line_rate=line.rate,
            branch_rate=branch.rate,
            instruction_rate=instruction.rate,
            records=snapshot.records,
            uncovered_lines=snapshot.uncovered_lines,
        )

    # ── Cobertura XML ────────────────────────────────────

    def _parse_cobertura(self, root: ET.Element) -> CoverageSnapshot:
        # unit → ([line_total, line_missed, branch_total, branch_missed], missed)
        units: dict[str, tuple[list[int], set[int]]] = {}
        records: list[CoverageRecord] = []
        for cls in root.iter("class"):
            filename = cls.attrib.get("filename", "")
            unit = unit_name_from_path(filename, self._source_roots)
            if not unit:
                continue
            counts, missed = units.setdefault(unit, ([0, 0, 0, 0], set()))
            for line_el in cls.findall("lines/line"):
                hits = _int(line_el.attrib.get("hits", "0"))
                number = _int(line_el.attrib.get("number", "0"))
                counts[0] += 1
                if hits == 0:
                    counts[1] += 1
                    missed.add(number)
                b_total, b_missed = _cobertura_branches(line_el)
                counts[2] += b_total
                counts[3] += b_missed

            for method in cls.findall("methods/method"):
                records.append(_cobertura_method_record(unit, method))

        unit_records = [
            CoverageRecord(
                unit_name=unit,
                missed_lines=tuple(sorted(missed)),
                line=CoverageCounter(total=counts[0], missed=counts[1]),
                branch=CoverageCounter(total=counts[2], missed=counts[3]),
            )
            for unit, (counts, missed) in units.items()
        ]
        return aggregate([*unit_records, *records])


def _read_text(path: Path) -> str:
    """Raises FileNotFoundError for absence, ReportLoadError otherwise."""
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        raise
    except OSError as exc:
        raise ReportLoadError(f"cannot read {path}", detail=str(exc)) from exc


def _parse_xml(text: str) -> ET.Element:
    try:
        return ET.fromstring(text)
    except ET.ParseError as exc:
        raise ReportLoadError("malformed XML", detail=str(exc)) from exc


def _int(value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ReportLoadError(f"invalid integer {value!r}") from exc


def _json_record(unit: str, operation: str, entry: dict[str, Any]) -> CoverageRecord:
    summary = entry["summary"]
    missing = tuple(sorted(int(n) for n in entry.get("missing_lines", [])))
    seen = [*entry.get("executed_lines", []), *missing]
    num_branches = int(summary.get("num_branches", 0))
    return CoverageRecord(
        unit_name=unit,
        operation_name=operation,
        first_line=min(seen) if seen else 0,
        missed_lines=missing,
        line=CoverageCounter(
            total=int(summary["num_statements"]),
            missed=int(summary["missing_lines"]),
        ),
        branch=CoverageCounter(
            total=num_branches,
            missed=int(summary.get("missing_branches", 0)),
        ),
        # coverage.py has no instruction dimension
        instruction=CoverageCounter(),
    )


def _jacoco_counters(
    element: ET.Element,
) -> tuple[CoverageCounter, CoverageCounter, CoverageCounter]:
    """Direct-child LINE, BRANCH and INSTRUCTION counters of ``element``."""
    found: dict[str, CoverageCounter] = {}
    for counter in element.findall("counter"):
        missed = _int(counter.attrib.get("missed", "0"))
        covered = _int(counter.attrib.get("covered", "0"))
        found[counter.attrib.get("type", "")] = CoverageCounter(
            total=missed + covered, missed=missed
        )
    return (
        found.get("LINE", CoverageCounter()),
        found.get("BRANCH", CoverageCounter()),
        found.get("INSTRUCTION", CoverageCounter()),
    )


def _jacoco_missed_lines(package: ET.Element) -> dict[str, tuple[int, ...]]:
    """Per source file, lines with missed and no covered instructions."""
    result: dict[str, tuple[int, ...]] = {}
    for source in package.findall("sourcefile"):
        missed = [
            _int(line.attrib.get("nr", "0"))
            for line in source.findall("line")
            if _int(line.attrib.get("mi", "0")) > 0
            and _int(line.attrib.get("ci", "0")) == 0
        ]
        result[source.attrib.get("name", "")] = tuple(sorted(missed))
    return result


def _cobertura_branches(line_el: ET.Element) -> tuple[int, int]:
    """(total, missed) branches from ``condition-coverage="50% (1/2)"``."""
    if line_el.attrib.get("branch", "false") != "true":
        return 0, 0
    match = _CONDITION_RE.search(line_el.attrib.get("condition-coverage", ""))
    if match is None:
        return 0, 0
    covered, total = int(match.group(1)), int(match.group(2))
    return total, total - covered


def _cobertura_method_record(unit: str, method: ET.Element) -> CoverageRecord:
    line_total = line_missed = branch_total = branch_missed = 0
    missed: list[int] = []
    numbers: list[int] = []
    for line_el in method.findall("lines/line"):
        number = _int(line_el.attrib.get("number", "0"))
        numbers.append(number)
        line_total += 1
        if _int(line_el.attrib.get("hits", "0")) == 0:
            line_missed += 1
            missed.append(number)
        b_total, b_missed = _cobertura_branches(line_el)
        branch_total += b_total
        branch_missed += b_missed
    return CoverageRecord(
        unit_name=unit,
        operation_name=method.attrib.get("name", ""),
        first_line=min(numbers) if numbers else 0,
        missed_lines=tuple(sorted(missed)),
        line=CoverageCounter(total=line_total, missed=line_missed),
        branch=CoverageCounter(total=branch_total, missed=branch_missed),
    )
