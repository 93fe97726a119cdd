"""Test execution under coverage measurement."""

from testsmith.execution.executor import SubprocessBuildExecutor

__all__ = ["SubprocessBuildExecutor"]
