"""Project layout conventions: unit names, languages, test locations."""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from testsmith.config import EXTENSION_MAP, Settings


def language_for(path: Path) -> str | None:
    """Language name for a source file, None when unsupported."""
    return EXTENSION_MAP.get(path.suffix)


def unit_name_from_path(
    path: str | Path, source_roots: list[str] | tuple[str, ...] = ("src",)
) -> str:
    """Dotted unit name for a project-relative source path.

    ``src/pkg/mod.py`` → ``pkg.mod``; ``pkg/__init__.py`` → ``pkg``;
    ``src/main/java/com/x/Foo.java`` → ``com.x.Foo``. Coverage reports
    and the parser both go through this so their names line up.
    """
    parts = list(PurePosixPath(str(path).replace("\\", "/")).parts)
    if parts and parts[0] in ("/", "."):
        parts = parts[1:]
    if parts[:3] == ["src", "main", "java"]:
        parts = parts[3:]
    elif parts and parts[0] in source_roots:
        parts = parts[1:]
    if not parts:
        return ""
    last = parts[-1]
    stem = last.rsplit(".", 1)[0] if "." in last else last
    if stem == "__init__":
        parts = parts[:-1]
    else:
        parts[-1] = stem
    return ".".join(parts)


def relative_to_root(path: Path, root: Path) -> Path:
    """Path relative to ``root`` when inside it, else the path unchanged."""
    resolved = path.resolve()
    try:
        return resolved.relative_to(root.resolve())
    except ValueError:
        return resolved


def artifact_path_for(unit_path: Path, settings: Settings) -> Path:
    """Where the generated test for ``unit_path`` lives.

    Python units map to ``<test_dir>/test_<module>.py``; Java units to
    ``src/test/java/<package>/<Class>Test.java``.
    """
    root = settings.project_root.resolve()
    rel = relative_to_root(unit_path, root)
    unit_name = unit_name_from_path(rel, settings.source_roots)
    if language_for(unit_path) == "java":
        package, _, cls = unit_name.rpartition(".")
        test_dir = root / "src" / "test" / "java"
        if package:
            test_dir = test_dir.joinpath(*package.split("."))
        return test_dir / f"{cls}Test.java"
    flat = unit_name.replace(".", "_") or unit_path.stem
    return root / settings.test_dir / f"test_{flat}.py"


def is_test_file(path: Path) -> bool:
    name = path.name
    return (
        name.startswith("test_")
        or name.endswith("_test.py")
        or name.endswith("Test.java")
        or name == "conftest.py"
    )
