"""Tests for CLI argument parsing, output formatting and subcommands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from testsmith.cli import (
    EXIT_EXHAUSTED,
    EXIT_FAILED,
    EXIT_OK,
    EXIT_USAGE,
    _build_parser,
    exit_code_for,
    format_outcome,
    main,
)
from testsmith.constants import GenerationStatus, PlanKind
from testsmith.fakes import snapshot_at
from testsmith.optimization.schemas import GenerationOutcome
from testsmith.resilience.errors import ErrorKind


class TestArgParser:
    def test_version_flag(self) -> None:
        args = _build_parser().parse_args(["--version"])
        assert args.version is True

    def test_generate_defaults(self) -> None:
        args = _build_parser().parse_args(["generate", "src/calc/ops.py"])
        assert args.command == "generate"
        assert args.path == "src/calc/ops.py"
        assert args.target is None
        assert args.max_iterations is None
        assert args.force is False
        assert args.verbose is False
        assert args.root is None

    def test_generate_with_options(self) -> None:
        args = _build_parser().parse_args(
            [
                "generate",
                "ops.py",
                "--target",
                "0.9",
                "--max-iterations",
                "3",
                "--force",
                "--root",
                "/tmp/proj",
                "-v",
            ]
        )
        assert args.target == 0.9
        assert args.max_iterations == 3
        assert args.force is True
        assert args.root == "/tmp/proj"
        assert args.verbose is True

    def test_batch_concurrency(self) -> None:
        args = _build_parser().parse_args(["batch", "src", "-c", "8"])
        assert args.directory == "src"
        assert args.concurrency == 8

    def test_cache_actions(self) -> None:
        args = _build_parser().parse_args(["cache", "invalidate", "a.py"])
        assert args.action == "invalidate"
        assert args.path == "a.py"
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["cache", "explode"])

    def test_no_command(self) -> None:
        assert _build_parser().parse_args([]).command is None


class TestOutcomeFormatting:
    def test_success(self) -> None:
        outcome = GenerationOutcome(
            status=GenerationStatus.SUCCESS,
            snapshot=snapshot_at(0.9, 0.85),
            iterations=2,
            artifact="x",
            artifact_path=Path("tests/test_calc_ops.py"),
            unit_name="calc.ops",
        )
        text = format_outcome(outcome)
        assert text.startswith("[SUCCESS] calc.ops: line 90.0%, branch 85.0%")
        assert "after 2 iteration(s)" in text
        assert "-> tests/test_calc_ops.py" in text

    def test_already_tested(self) -> None:
        outcome = GenerationOutcome(
            status=GenerationStatus.SUCCESS,
            snapshot=snapshot_at(0.5),
            iterations=0,
            plan_kind=PlanKind.NONE,
            unit_name="calc.ops",
        )
        assert "all operations already tested" in format_outcome(outcome)

    def test_failed(self) -> None:
        outcome = GenerationOutcome(
            status=GenerationStatus.FAILED,
            snapshot=snapshot_at(0.0),
            iterations=0,
            error="all models failed",
            error_kind=ErrorKind.SYNTHESIS,
            unit_name="calc.ops",
        )
        assert format_outcome(outcome) == (
            "[FAILED] calc.ops: synthesis: all models failed"
        )

    def test_exit_codes(self) -> None:
        assert exit_code_for(GenerationStatus.SUCCESS) == EXIT_OK
        assert exit_code_for(GenerationStatus.EXHAUSTED) == EXIT_EXHAUSTED
        assert exit_code_for(GenerationStatus.FAILED) == EXIT_FAILED


class TestCommands:
    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["--version"])
        assert capsys.readouterr().out.startswith("testsmith ")

    def test_coverage_command(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        report = tmp_path / "coverage.json"
        report.write_text(json.dumps({
            "files": {
                "src/calc/ops.py": {
                    "missing_lines": [3],
                    "summary": {"num_statements": 4, "missing_lines": 1},
                },
            },
        }))

        with pytest.raises(SystemExit) as excinfo:
            main(["coverage", str(report), "--target", "0.8", "--unit", "calc.ops"])

        assert excinfo.value.code == EXIT_OK
        out = capsys.readouterr().out
        assert "calc.ops: line 75.0% (3/4)" in out
        assert "target 80%: not met" in out

    def test_coverage_missing_report(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as excinfo:
            main(["coverage", str(tmp_path / "nope.json")])
        assert excinfo.value.code == EXIT_USAGE

    def test_cache_stats_and_clear(
        self, project: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit):
            main(["cache", "stats", "--root", str(project)])
        assert "Entries:  0" in capsys.readouterr().out

        with pytest.raises(SystemExit) as excinfo:
            main(["cache", "clear", "--root", str(project)])
        assert excinfo.value.code == EXIT_OK

    def test_invalidate_requires_path(self, project: Path) -> None:
        with pytest.raises(SystemExit) as excinfo:
            main(["cache", "invalidate", "--root", str(project)])
        assert excinfo.value.code == EXIT_USAGE

    def test_generate_missing_file(self, project: Path) -> None:
        with pytest.raises(SystemExit) as excinfo:
            main(["generate", str(project / "missing.py"), "--root", str(project)])
        assert excinfo.value.code == EXIT_USAGE
