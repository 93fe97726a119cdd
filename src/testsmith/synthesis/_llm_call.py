"""One guarded completion request per model of the synthesis chain.

Each model gets its own circuit breaker, so a provider outage only
skips that model. Rate limits are retried with jittered backoff and
never trip a breaker. A completion cut off at the output-token limit is
flagged as truncated; a half-written test file is useless to execute.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import litellm
from circuitbreaker import (  # pyright: ignore[reportUnknownVariableType]
    CircuitBreaker,
    CircuitBreakerError,
)
from litellm.exceptions import RateLimitError as LitellmRateLimitError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from testsmith.constants import (
    CB_LLM_FAILURE_THRESHOLD,
    CB_LLM_RECOVERY_TIMEOUT,
    LLM_MAX_OUTPUT_TOKENS,
    RETRY_INITIAL_WAIT,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_WAIT,
)

logger = logging.getLogger(__name__)

# litellm stubs have partially unknown types; typed alias
if TYPE_CHECKING:
    _acompletion: Callable[..., Coroutine[Any, Any, Any]]
else:
    _acompletion = litellm.acompletion


@dataclass(frozen=True)
class LLMCallResult:
    content: str
    model: str
    input_tokens: int
    output_tokens: int
    truncated: bool = False  # finish_reason == "length"


def _trips_breaker(thrown_type: type, thrown_value: BaseException) -> bool:
    return not issubclass(thrown_type, LitellmRateLimitError)


_breakers: dict[str, CircuitBreaker] = {}  # pyright: ignore[reportUnknownVariableType]


def breaker_for(model: str) -> CircuitBreaker:  # pyright: ignore[reportUnknownParameterType]
    """The model's breaker, created on first use."""
    breaker = _breakers.get(model)
    if breaker is None:
        breaker = CircuitBreaker(  # pyright: ignore[reportUnknownMemberType]
            failure_threshold=CB_LLM_FAILURE_THRESHOLD,
            recovery_timeout=CB_LLM_RECOVERY_TIMEOUT,
            expected_exception=_trips_breaker,
            name=f"synthesis_{model}",
        )
        _breakers[model] = breaker
    return breaker


@retry(
    stop=stop_after_attempt(RETRY_MAX_ATTEMPTS),
    wait=wait_exponential_jitter(
        initial=RETRY_INITIAL_WAIT, max=RETRY_MAX_WAIT
    ),
    retry=retry_if_exception_type(LitellmRateLimitError),
    reraise=True,
)
async def guarded_llm_call(
    model: str,
    messages: list[dict[str, str]],
    timeout: int,
    *,
    temperature: float | None = None,
) -> LLMCallResult:
    """Complete ``messages`` on ``model``.

    Raises CircuitBreakerError without calling out while the model's
    breaker is open; any other provider error propagates after the
    rate-limit retries are spent.
    """
    breaker = breaker_for(model)
    if breaker.opened:  # pyright: ignore[reportUnknownMemberType]
        raise CircuitBreakerError(breaker)  # pyright: ignore[reportUnknownArgumentType]

    request: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "timeout": timeout,
        "max_tokens": LLM_MAX_OUTPUT_TOKENS,
    }
    if temperature is not None:
        request["temperature"] = temperature
    with breaker:  # pyright: ignore[reportUnknownMemberType]
        response: Any = await _acompletion(**request)

    choice: Any = response.choices[0]
    usage: Any = getattr(response, "usage", None)
    result = LLMCallResult(
        content=str(choice.message.content or ""),
        model=model,
        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        truncated=getattr(choice, "finish_reason", None) == "length",
    )
    if result.truncated:
        logger.warning(
            "event=llm_output_truncated model=%s output_tokens=%d limit=%d",
            model,
            result.output_tokens,
            LLM_MAX_OUTPUT_TOKENS,
        )
    else:
        logger.debug(
            "event=llm_call_done model=%s input_tokens=%d output_tokens=%d",
            model,
            result.input_tokens,
            result.output_tokens,
        )
    return result
