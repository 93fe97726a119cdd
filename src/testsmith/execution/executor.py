"""BuildExecutor that shells out to the project's test command."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

from testsmith.config import Settings
from testsmith.coverage.loader import CoverageReportLoader
from testsmith.coverage.model import restrict_to_unit
from testsmith.coverage.schemas import CoverageSnapshot
from testsmith.fileio import atomic_write_text
from testsmith.optimization.schemas import BuildTarget
from testsmith.resilience.errors import ExecutionError

logger = logging.getLogger(__name__)

OUTPUT_TAIL_CHARS = 4000


class SubprocessBuildExecutor:
    """Writes the artifact, runs the configured command, reads coverage.

    The command is a template; ``{artifact}``, ``{report}``, ``{root}``
    and ``{source}`` are substituted per run. A non-zero exit that is
    not one of the fatal codes still counts as a measured run (failing
    tests do not invalidate the coverage they produced).
    """

    def __init__(
        self,
        settings: Settings,
        loader: CoverageReportLoader | None = None,
    ) -> None:
        self._settings = settings
        self._loader = loader or CoverageReportLoader(settings.source_roots)

    async def run(self, artifact: str, target: BuildTarget) -> CoverageSnapshot:
        root = target.project_root
        report = self._settings.coverage_report_path
        if not report.is_absolute():
            report = root / report

        try:
            atomic_write_text(target.artifact_path, artifact)
            report.parent.mkdir(parents=True, exist_ok=True)
            report.unlink(missing_ok=True)  # never measure a stale report
        except OSError as exc:
            raise ExecutionError(
                f"cannot prepare run for {target.unit_name}", detail=str(exc)
            ) from exc

        command = self.render_command(target, report)
        if shutil.which(command[0]) is None and not Path(command[0]).exists():
            raise ExecutionError(f"executable not found: {command[0]}")

        logger.info(
            "event=build_started unit=%s command=%s",
            target.unit_name,
            " ".join(command),
        )
        exit_code, output = await self._execute(command, cwd=root)

        if exit_code in self._settings.fatal_exit_codes:
            raise ExecutionError(
                f"test command exited with {exit_code}",
                detail=output[-OUTPUT_TAIL_CHARS:],
                exit_code=exit_code,
            )

        snapshot = restrict_to_unit(self._loader.load(report), target.unit_name)
        logger.info(
            "event=build_finished unit=%s exit_code=%d line=%.3f branch=%.3f",
            target.unit_name,
            exit_code,
            snapshot.line_rate,
            snapshot.branch_rate,
        )
        return snapshot

    def render_command(self, target: BuildTarget, report: Path) -> list[str]:
        root = target.project_root
        source = target.source_path.parent if target.source_path else root
        values = {
            "artifact": _relative(target.artifact_path, root),
            "report": str(report),
            "root": str(root),
            "source": _relative(source, root),
        }
        return [part.format(**values) for part in self._settings.build_command]

    async def _execute(self, command: list[str], *, cwd: Path) -> tuple[int, str]:
        timeout = self._settings.build_timeout_seconds
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise ExecutionError(
                f"cannot start {command[0]}", detail=str(exc)
            ) from exc

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout)
        except TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise ExecutionError(
                f"test command timed out after {timeout}s", timed_out=True
            ) from exc

        output = stdout.decode("utf-8", errors="replace") if stdout else ""
        return proc.returncode if proc.returncode is not None else -1, output


def _relative(path: Path, root: Path) -> str:
    try:
        return str(path.resolve().relative_to(root.resolve()))
    except ValueError:
        return str(path)
