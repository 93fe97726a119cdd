"""Shared constants: single source of truth for cross-module values.

All magic strings and numbers that appear in 2+ files belong here.
StrEnum members are str-compatible, so log lines, JSON payloads and
CLI output work unchanged.
"""

from __future__ import annotations

from enum import StrEnum

# ── String Enums ─────────────────────────────────────────


class GenerationStatus(StrEnum):
    """Terminal outcome of one generation request."""

    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


class LoopState(StrEnum):
    """States of the coverage-feedback loop.

    SUCCESS, EXHAUSTED and FAILED are terminal.
    """

    ITERATE = "iterate"
    SYNTHESIZE = "synthesize"
    MEASURE = "measure"
    DECIDE = "decide"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


TERMINAL_STATES = frozenset({
    LoopState.SUCCESS,
    LoopState.EXHAUSTED,
    LoopState.FAILED,
})


class PlanKind(StrEnum):
    """How much of a unit needs new tests."""

    NEW = "new"
    INCREMENTAL = "incremental"
    NONE = "none"


class ReturnCategory(StrEnum):
    """Coarse classification of an operation's return type."""

    VOID = "void"
    PRIMITIVE = "primitive"
    COLLECTION = "collection"
    OPTIONAL = "optional"
    OBJECT = "object"
    UNKNOWN = "unknown"


class CacheBackend(StrEnum):
    """Backing medium for the parse cache."""

    FILE = "file"
    SQLITE = "sqlite"


# ── Cache ────────────────────────────────────────────────

CACHE_FILE_EXTENSION = ".json"
CACHE_SQLITE_FILENAME = "parse-cache.db"
CACHE_EVICTION_RATIO = 0.5  # shrink to half the limit when over budget
HASH_READ_CHUNK_BYTES = 1024 * 1024

# ── Coverage Defaults ────────────────────────────────────

DEFAULT_TARGET_COVERAGE = 0.8
DEFAULT_MAX_ITERATIONS = 10
DEFAULT_FAILURE_BUDGET = 3

# ── Circuit Breaker Configuration ────────────────────────

CB_LLM_FAILURE_THRESHOLD = 5
CB_LLM_RECOVERY_TIMEOUT = 30

# ── Retry Strategy ───────────────────────────────────────

RETRY_MAX_ATTEMPTS = 3
RETRY_INITIAL_WAIT = 2
RETRY_MAX_WAIT = 30

# ── LLM Output ───────────────────────────────────────────

LLM_MAX_OUTPUT_TOKENS = 8192
MIN_ARTIFACT_LENGTH = 20

# ── Feedback Limits ──────────────────────────────────────

FEEDBACK_MAX_LINES = 200  # uncovered line numbers quoted in a prompt
FEEDBACK_ERROR_CHARS = 2000  # tail of a failed run quoted in a prompt
ERROR_TRUNCATION_CHARS = 200

# ── Build Execution ──────────────────────────────────────

# pytest: 2 interrupted, 3 internal error, 4 usage error
DEFAULT_FATAL_EXIT_CODES = (2, 3, 4)

# ── Tracing ──────────────────────────────────────────────

TRACE_ID_HEX_LENGTH = 12

# ── Naming Heuristic ─────────────────────────────────────

TEST_NAME_PREFIXES = ("test", "should", "when", "it", "verify")

# Words that usually separate the operation under test from the
# expected outcome in a test name ("test_parse_returns_none").
TEST_NAME_OUTCOME_WORDS = frozenset({
    "returns",
    "return",
    "raises",
    "raise",
    "throws",
    "throw",
    "should",
    "when",
    "with",
    "without",
    "given",
    "if",
    "on",
    "for",
    "fails",
    "succeeds",
    "successfully",
    "handles",
    "rejects",
    "accepts",
    "then",
    "and",
    "correctly",
    "properly",
})
