"""Find source units under a project root."""

from __future__ import annotations

import logging
from pathlib import Path

import pathspec

from testsmith.config import EXTENSION_MAP, Settings
from testsmith.layout import is_test_file

logger = logging.getLogger(__name__)


def discover_units(root: Path, settings: Settings) -> list[Path]:
    """Source files eligible for test generation, sorted.

    * Respects ``skip_directories`` and ``.gitignore`` patterns.
    * Skips hidden directories, test directories and existing test files.
    * Only extensions with a known language are returned.
    """
    skip_dirs = set(settings.skip_directories)
    skip_dirs.add(settings.test_dir.name)
    gitignore = _load_gitignore(root)
    units = [
        path
        for path in _walk(root, root, skip_dirs, gitignore, root.resolve())
        if path.suffix in EXTENSION_MAP and not is_test_file(path)
    ]
    logger.debug("event=units_discovered root=%s count=%d", root, len(units))
    return units


def _walk(
    current: Path,
    root: Path,
    skip_dirs: set[str],
    gitignore: pathspec.PathSpec,
    resolved_root: Path,
) -> list[Path]:
    """Recursive walk; symlinks leaving the root are skipped."""
    files: list[Path] = []
    for item in sorted(current.iterdir()):
        if item.is_symlink():
            if not item.resolve().is_relative_to(resolved_root):
                continue
        rel = item.relative_to(root).as_posix()
        if item.is_dir():
            if item.name.startswith(".") or item.name in skip_dirs:
                continue
            if item.relative_to(root).parts[:3] == ("src", "test", "java"):
                continue
            if gitignore.match_file(rel + "/"):
                continue
            files.extend(
                _walk(item, root, skip_dirs, gitignore, resolved_root)
            )
        elif item.is_file():
            if not gitignore.match_file(rel):
                files.append(item)
    return files


def _load_gitignore(root: Path) -> pathspec.PathSpec:
    """Load .gitignore patterns using pathspec."""
    gitignore = root / ".gitignore"
    if not gitignore.exists():
        return pathspec.PathSpec.from_lines("gitignore", [])
    try:
        with open(gitignore, encoding="utf-8") as f:
            return pathspec.PathSpec.from_lines("gitignore", f)
    except OSError:
        return pathspec.PathSpec.from_lines("gitignore", [])
