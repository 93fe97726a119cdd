"""Tests for the error taxonomy and its handling policy."""

from __future__ import annotations

import asyncio

import pytest

from testsmith.resilience.errors import (
    CacheError,
    Disposition,
    ErrorKind,
    ExecutionError,
    ParseFailure,
    ReportLoadError,
    SynthesisError,
    classify_error,
    disposition,
    is_retryable,
)

# ── disposition ──────────────────────────────────────────────


@pytest.mark.parametrize(
    ("kind", "expected"),
    [
        (ErrorKind.CACHE, Disposition.ABSORB),
        (ErrorKind.REPORT_LOAD, Disposition.ABSORB),
        (ErrorKind.PARSE, Disposition.PROPAGATE),
        (ErrorKind.SYNTHESIS, Disposition.RETRY_WITHIN_BUDGET),
        (ErrorKind.EXECUTION, Disposition.RETRY_WITHIN_BUDGET),
    ],
)
def test_disposition_per_kind(kind: ErrorKind, expected: Disposition) -> None:
    assert disposition(kind) is expected


# ── classify_error ───────────────────────────────────────────


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (CacheError("x"), ErrorKind.CACHE),
        (ReportLoadError("x"), ErrorKind.REPORT_LOAD),
        (ParseFailure("x"), ErrorKind.PARSE),
        (SynthesisError("x"), ErrorKind.SYNTHESIS),
        (ExecutionError("x"), ErrorKind.EXECUTION),
    ],
)
def test_classify_own_errors(error: Exception, kind: ErrorKind) -> None:
    assert classify_error(error) is kind


def test_classify_timeout_as_execution() -> None:
    assert classify_error(TimeoutError()) is ErrorKind.EXECUTION
    assert classify_error(asyncio.TimeoutError()) is ErrorKind.EXECUTION


def test_classify_foreign_error_is_none() -> None:
    assert classify_error(KeyError("boom")) is None


# ── is_retryable ─────────────────────────────────────────────


def test_synthesis_and_execution_retryable() -> None:
    assert is_retryable(SynthesisError("no model answered"))
    assert is_retryable(ExecutionError("exit 3", exit_code=3))


def test_parse_and_foreign_not_retryable() -> None:
    assert not is_retryable(ParseFailure("bad syntax"))
    assert not is_retryable(RuntimeError("bug"))


# ── error payloads ───────────────────────────────────────────


def test_detail_kept_separate_from_message() -> None:
    err = SynthesisError("all models failed", detail="a: timeout; b: 500")
    assert str(err) == "all models failed"
    assert err.detail == "a: timeout; b: 500"


def test_execution_error_fields() -> None:
    err = ExecutionError("timed out", timed_out=True)
    assert err.timed_out is True
    assert err.exit_code is None
    assert err.kind is ErrorKind.EXECUTION
