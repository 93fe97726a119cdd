"""Synthesizer backed by an LLM model chain."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from circuitbreaker import CircuitBreakerError  # pyright: ignore[reportUnknownVariableType]
from pydantic import BaseModel, Field, ValidationError

from testsmith.config import Settings
from testsmith.constants import ERROR_TRUNCATION_CHARS, MIN_ARTIFACT_LENGTH
from testsmith.optimization.schemas import Feedback
from testsmith.parsing.schemas import StructuralSummary
from testsmith.planning.schemas import IncrementalPlan
from testsmith.resilience.errors import SynthesisError
from testsmith.synthesis._llm_call import guarded_llm_call
from testsmith.synthesis.prompts import build_user_prompt, system_prompt

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[\w+-]*[ \t]*\n(.*?)```", re.DOTALL)


class SynthesizedArtifact(BaseModel):
    """Validated test file text returned by a model."""

    code: str = Field(min_length=MIN_ARTIFACT_LENGTH)
    model: str


def strip_code_fences(text: str) -> str:
    """The largest fenced block if any, else the text itself, stripped."""
    blocks = _FENCE_RE.findall(text)
    if blocks:
        return max(blocks, key=len).strip() + "\n"
    return text.strip() + "\n" if text.strip() else ""


class LLMSynthesizer:
    """Tries each model of ``litellm_model_chain`` in order.

    Raises SynthesisError when every model failed or returned nothing
    usable.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def synthesize(
        self,
        summary: StructuralSummary,
        feedback: Feedback | None = None,
        *,
        plan: IncrementalPlan | None = None,
    ) -> str:
        messages = [
            {"role": "system", "content": system_prompt(summary.language)},
            {
                "role": "user",
                "content": build_user_prompt(
                    summary, feedback, plan, _read_source(summary)
                ),
            },
        ]

        errors: list[str] = []
        for model in self._settings.litellm_model_chain:
            try:
                result = await guarded_llm_call(
                    model,
                    messages,
                    self._settings.llm_timeout_seconds,
                    temperature=self._settings.llm_temperature,
                )
            except CircuitBreakerError:
                logger.warning(
                    "event=circuit_open model=%s component=synthesis unit=%s",
                    model,
                    summary.qualified_name,
                )
                errors.append(f"{model}: circuit open")
                continue
            except Exception as exc:
                logger.warning(
                    "event=synthesis_call_failed model=%s unit=%s",
                    model,
                    summary.qualified_name,
                    exc_info=True,
                )
                errors.append(f"{model}: {str(exc)[:ERROR_TRUNCATION_CHARS]}")
                continue

            if result.truncated:
                errors.append(f"{model}: output hit the token limit")
                continue

            try:
                artifact = SynthesizedArtifact(
                    code=strip_code_fences(result.content), model=model
                )
            except ValidationError:
                logger.warning(
                    "event=synthesis_output_rejected model=%s unit=%s "
                    "response_len=%d",
                    model,
                    summary.qualified_name,
                    len(result.content),
                )
                errors.append(f"{model}: empty or implausibly short output")
                continue

            logger.info(
                "event=synthesis_done model=%s unit=%s chars=%d",
                model,
                summary.qualified_name,
                len(artifact.code),
            )
            return artifact.code

        raise SynthesisError(
            f"all models failed for {summary.qualified_name}",
            detail="; ".join(errors),
        )


def _read_source(summary: StructuralSummary) -> str | None:
    if not summary.source_path:
        return None
    try:
        return Path(summary.source_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        logger.debug(
            "event=source_unavailable path=%s", summary.source_path
        )
        return None
