"""Error taxonomy and the handling policy for each kind.

Every failure the generation pipeline knows about is one of five kinds.
The kind, not the call site, decides what happens to it:

- CACHE / REPORT_LOAD are absorbed at the component boundary
  (cache miss, empty coverage snapshot).
- PARSE propagates to the caller before any loop iteration runs.
- SYNTHESIS / EXECUTION are retried inside the loop until the
  consecutive-failure budget is spent.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import assert_never


class ErrorKind(Enum):
    CACHE = "cache"
    REPORT_LOAD = "report_load"
    PARSE = "parse"
    SYNTHESIS = "synthesis"
    EXECUTION = "execution"


class Disposition(Enum):
    ABSORB = "absorb"  # degrade silently, never reaches the loop
    PROPAGATE = "propagate"  # abort the request
    RETRY_WITHIN_BUDGET = "retry_within_budget"  # loop failure budget


class TestsmithError(Exception):
    """Base class; subclasses pin ``kind``."""

    __test__ = False  # not a pytest class despite the prefix
    kind: ErrorKind

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.detail = detail


class CacheError(TestsmithError):
    kind = ErrorKind.CACHE


class ReportLoadError(TestsmithError):
    kind = ErrorKind.REPORT_LOAD


class ParseFailure(TestsmithError):
    kind = ErrorKind.PARSE


class SynthesisError(TestsmithError):
    kind = ErrorKind.SYNTHESIS


class ExecutionError(TestsmithError):
    kind = ErrorKind.EXECUTION

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        exit_code: int | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message, detail=detail)
        self.exit_code = exit_code
        self.timed_out = timed_out


def disposition(kind: ErrorKind) -> Disposition:
    """Handling policy for an error kind."""
    match kind:
        case ErrorKind.CACHE | ErrorKind.REPORT_LOAD:
            return Disposition.ABSORB
        case ErrorKind.PARSE:
            return Disposition.PROPAGATE
        case ErrorKind.SYNTHESIS | ErrorKind.EXECUTION:
            return Disposition.RETRY_WITHIN_BUDGET
        case _:
            assert_never(kind)


def classify_error(error: BaseException) -> ErrorKind | None:
    """Map an exception onto the taxonomy; None for foreign errors.

    Timeouts raised by collaborators without wrapping are treated as
    execution failures, since only the build step runs under a
    wall-clock limit.
    """
    match error:
        case TestsmithError(kind=kind):
            return kind
        case TimeoutError() | asyncio.TimeoutError():
            return ErrorKind.EXECUTION
        case _:
            return None


def is_retryable(error: BaseException) -> bool:
    """True if the loop may spend failure budget on this error."""
    kind = classify_error(error)
    if kind is None:
        return False
    return disposition(kind) is Disposition.RETRY_WITHIN_BUDGET
