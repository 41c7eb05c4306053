"""
Portfolio Agent Router — Vendor-Agnostic Model Abstraction

Routes agent calls through LiteLLM so agents never know which vendor is
backing them. Handles session budget tracking, retries on rate-limit and
overload signals only, and structured logging.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import litellm
from loguru import logger
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from portfolio_agent.config_loader import PortfolioAgentConfig


# ---------------------------------------------------------------------------
# Usage Tracking
# ---------------------------------------------------------------------------

@dataclass
class UsageRecord:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    call_count: int = 0


@dataclass
class BudgetTracker:
    """Tracks token + dollar spend per chat session."""
    max_tokens: int = 200_000
    max_dollars: float = 2.0
    usage: UsageRecord = field(default_factory=UsageRecord)

    @property
    def tokens_remaining(self) -> int:
        return max(0, self.max_tokens - self.usage.total_tokens)

    @property
    def dollars_remaining(self) -> float:
        return max(0.0, self.max_dollars - self.usage.estimated_cost)

    @property
    def budget_exceeded(self) -> bool:
        return self.usage.total_tokens >= self.max_tokens or self.usage.estimated_cost >= self.max_dollars

    def record(self, response: Any) -> None:
        """Record token usage and estimated cost from a LiteLLM response."""
        usage = getattr(response, "usage", None)
        if usage:
            self.usage.prompt_tokens += getattr(usage, "prompt_tokens", 0) or 0
            self.usage.completion_tokens += getattr(usage, "completion_tokens", 0) or 0
            self.usage.total_tokens += getattr(usage, "total_tokens", 0) or 0

        try:
            self.usage.estimated_cost += litellm.completion_cost(completion_response=response)
        except Exception as e:
            logger.debug(f"[ROUTER] No cost estimate for response: {e}")

        self.usage.call_count += 1

    def summary(self) -> dict:
        return {
            "total_tokens": self.usage.total_tokens,
            "estimated_cost": round(self.usage.estimated_cost, 4),
            "call_count": self.usage.call_count,
            "tokens_remaining": self.tokens_remaining,
            "dollars_remaining": round(self.dollars_remaining, 4),
        }


# ---------------------------------------------------------------------------
# Transient failure detection
# ---------------------------------------------------------------------------

_TRANSIENT_MARKERS = ("429", "503", "overloaded", "rate limit")


def is_transient(exc: BaseException) -> bool:
    """Rate-limit and overload signals are worth another attempt. Nothing else is."""
    if isinstance(exc, (litellm.RateLimitError, litellm.ServiceUnavailableError)):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _TRANSIENT_MARKERS)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(f"[ROUTER] Transient model failure (attempt {retry_state.attempt_number}): {exc}")


def _build_kwargs(
    model: str,
    messages: list[dict[str, str]],
    temperature: float,
    max_tokens: int,
    response_format: dict | None,
) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    if response_format:
        kwargs["response_format"] = response_format
    return kwargs


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class RouterResponse(BaseModel):
    content: str
    model: str
    tokens_used: int = 0
    cost: float = 0.0
    latency_ms: int = 0


class Router:
    """
    Vendor-agnostic model router.

    Agents call `await router.complete(role, messages)`.
    The router resolves the model, enforces budget, and returns structured output.
    """

    def __init__(self, config: PortfolioAgentConfig):
        self.config = config
        self.budget = BudgetTracker(
            max_tokens=config.limits.max_tokens_per_session,
            max_dollars=config.limits.max_dollars_per_session,
        )
        self._role_model_map = {
            "guide": config.routing.guide,
            "editor": config.routing.editor,
        }

        litellm.suppress_debug_info = True

    def resolve_model(self, role: str) -> str:
        model = self._role_model_map.get(role)
        if not model:
            raise ValueError(f"Unknown agent role: {role}. Known: {list(self._role_model_map)}")
        return model

    async def complete(
        self,
        role: str,
        messages: list[dict[str, str]],
        temperature: float = 0.2,
        max_tokens: int = 2048,
        response_format: dict | None = None,
    ) -> RouterResponse:
        """Send a completion request through LiteLLM.

        Transient failures (rate limit, overload) are retried with exponential
        backoff up to `limits.max_retries` attempts; the last one is re-raised.
        Any other failure propagates on the first attempt.

        Raises:
            BudgetExceededError: If the session's token or dollar budget is spent.
        """
        if self.budget.budget_exceeded:
            raise BudgetExceededError(f"Budget exceeded: {self.budget.summary()}")

        model = self.resolve_model(role)
        limits = self.config.limits
        kwargs = _build_kwargs(model, messages, temperature, max_tokens, response_format)

        logger.debug(f"[ROUTER] {role} → {model} ({len(messages)} messages)")
        start = time.monotonic()

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(limits.max_retries),
            wait=wait_exponential(min=limits.backoff_min_seconds, max=limits.backoff_max_seconds),
            retry=retry_if_exception(is_transient),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                response = await litellm.acompletion(**kwargs)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        self.budget.record(response)
        content = response.choices[0].message.content or ""

        logger.debug(
            f"[ROUTER] {role} complete — "
            f"{self.budget.usage.total_tokens} tokens, "
            f"${self.budget.usage.estimated_cost:.4f}, "
            f"{elapsed_ms}ms"
        )

        return RouterResponse(
            content=content,
            model=model,
            tokens_used=getattr(getattr(response, "usage", None), "total_tokens", 0) or 0,
            cost=self.budget.usage.estimated_cost,
            latency_ms=elapsed_ms,
        )


class BudgetExceededError(Exception):
    pass
