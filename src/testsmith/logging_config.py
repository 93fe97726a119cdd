"""Process logging setup, run once from the CLI entry point.

Phase 1: setup_logging(): call BEFORE litellm is imported.
  Pins LITELLM_LOG and configures the root logger.

Phase 2: cleanup_third_party_handlers(): call AFTER all imports.
  Drops the StreamHandlers litellm attaches at import time so its
  records reach the root handler exactly once.

Both phases are guarded by module-level flags and run at most once.
"""

import logging
import os

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

# Chatty dependencies held at WARNING
_SUPPRESSED_LOGGERS = (
    "LiteLLM",
    "LiteLLM Router",
    "LiteLLM Proxy",
    "httpx",
    "httpcore",
    "openai._base_client",
    "sqlalchemy.engine",
)

_LITELLM_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy")

_phase1_done = False
_phase2_done = False


def setup_logging(level: str = "INFO") -> None:
    """Phase 1: root logger + LITELLM_LOG, before litellm loads."""
    global _phase1_done  # noqa: PLW0603
    if _phase1_done:
        return
    _phase1_done = True

    # litellm._logging reads this once, at import time
    os.environ.setdefault("LITELLM_LOG", "WARNING")

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )

    for name in _SUPPRESSED_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def set_level(level: str) -> None:
    """Change the root level after setup (e.g. for --verbose)."""
    logging.getLogger().setLevel(
        getattr(logging, level.upper(), logging.INFO)
    )


def cleanup_third_party_handlers() -> None:
    """Phase 2: clear litellm's own handlers and let records propagate."""
    global _phase2_done  # noqa: PLW0603
    if _phase2_done:
        return
    _phase2_done = True

    for name in _LITELLM_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.propagate = True
