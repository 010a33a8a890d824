"""Bounded retry with exponential backoff around one backend operation."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from llm_relay.orchestrator.failure_classifier import ErrorClassifier, MessageAndStatusClassifier
from llm_relay.orchestrator.models import CallRequest, Operation, Role

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 2
DEFAULT_INITIAL_DELAY_SECONDS = 1.0


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Process-wide retry budget shared by every role."""

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay_seconds: float = DEFAULT_INITIAL_DELAY_SECONDS

    @property
    def max_attempts(self) -> int:
        return 1 + self.max_retries

    def delay_for(self, retry_number: int) -> float:
        """Backoff before retry ``retry_number`` (1-based)."""

        return self.initial_delay_seconds * (2 ** max(retry_number - 1, 0))


@dataclass(frozen=True, slots=True)
class AttemptContext:
    """Identifies one role's call for diagnostics."""

    role: Role
    backend_name: str
    model_id: str
    operation: Operation


class RetryExecutor:
    """Invoke an adapter operation with bounded attempts and backoff."""

    def __init__(
        self,
        *,
        policy: RetryPolicy | None = None,
        classifier: ErrorClassifier | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self.classifier = classifier or MessageAndStatusClassifier()
        self._sleep = sleep

    def attempt(
        self,
        adapter_fn: Callable[[CallRequest], T],
        request: CallRequest,
        *,
        context: AttemptContext,
    ) -> T:
        """Call ``adapter_fn`` until it succeeds, fails fatally, or the budget is spent."""

        max_attempts = self.policy.max_attempts
        attempt_no = 1
        while True:
            logger.info(
                "Attempt %d/%d calling %s (role=%s backend=%s model=%s)",
                attempt_no,
                max_attempts,
                context.operation.value,
                context.role.value,
                context.backend_name,
                context.model_id,
            )
            try:
                result = adapter_fn(request)
            except Exception as error:
                logger.warning(
                    "Attempt %d/%d failed for role %s (%s / %s / %s): %s",
                    attempt_no,
                    max_attempts,
                    context.role.value,
                    context.operation.value,
                    context.backend_name,
                    context.model_id,
                    error,
                )
                retryable = self.classifier.is_retryable(error)
                if not retryable or attempt_no >= max_attempts:
                    logger.error(
                        "%s for role %s (%s / %s / %s); giving up after attempt %d.",
                        "Max retries reached" if retryable else "Non-retryable error",
                        context.role.value,
                        context.operation.value,
                        context.backend_name,
                        context.model_id,
                        attempt_no,
                    )
                    raise
                delay = self.policy.delay_for(attempt_no)
                logger.info(
                    "Retryable error for role %s (backend=%s model=%s). "
                    "Retry %d/%d in %.2fs.",
                    context.role.value,
                    context.backend_name,
                    context.model_id,
                    attempt_no,
                    self.policy.max_retries,
                    delay,
                )
                self._sleep(delay)
                attempt_no += 1
                continue

            logger.info(
                "%s succeeded for role %s (backend=%s model=%s) on attempt %d",
                context.operation.value,
                context.role.value,
                context.backend_name,
                context.model_id,
                attempt_no,
            )
            return result
