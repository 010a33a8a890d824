"""Deterministic backend failure classification for retry policy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx

FAILURE_CLASSIFIER_VERSION = 1

_RETRYABLE_MESSAGE_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "overloaded",
    "service temporarily unavailable",
    "timeout",
    "network error",
)
_TOO_MANY_REQUESTS = 429
_SERVER_ERROR_FLOOR = 500


class ErrorClassifier(Protocol):
    """Decides whether a failed backend call justifies a retry."""

    def is_retryable(self, error: BaseException) -> bool:
        """Return True for transient failures."""


@dataclass(slots=True)
class FailureClassification:
    """Normalized failure classification result."""

    retryable: bool
    matched_rule: str
    matched_pattern: str | None
    status_code: int | None

    def to_log_details(self) -> dict[str, object]:
        """Serialize classifier diagnostics for log records."""

        return {
            "classifier_version": FAILURE_CLASSIFIER_VERSION,
            "retryable": self.retryable,
            "matched_rule": self.matched_rule,
            "matched_pattern": self.matched_pattern,
            "status_code": self.status_code,
        }


def classify_failure(error: BaseException) -> FailureClassification:
    """Classify a backend failure as transient or fatal."""

    status_code = extract_status_code(error)
    pattern = _first_match(str(error).lower(), _RETRYABLE_MESSAGE_PATTERNS)
    if pattern is not None:
        return FailureClassification(
            retryable=True,
            matched_rule="transient_message",
            matched_pattern=pattern,
            status_code=status_code,
        )
    if status_code == _TOO_MANY_REQUESTS:
        return FailureClassification(
            retryable=True,
            matched_rule="too_many_requests",
            matched_pattern=None,
            status_code=status_code,
        )
    if status_code is not None and status_code >= _SERVER_ERROR_FLOOR:
        return FailureClassification(
            retryable=True,
            matched_rule="server_error",
            matched_pattern=None,
            status_code=status_code,
        )
    return FailureClassification(
        retryable=False,
        matched_rule="fallback_non_retryable",
        matched_pattern=None,
        status_code=status_code,
    )


def is_retryable(error: BaseException) -> bool:
    """Return True when the failure is transient and worth another attempt."""

    return classify_failure(error).retryable


class MessageAndStatusClassifier:
    """Default classifier: message heuristics plus 429/5xx status codes."""

    def is_retryable(self, error: BaseException) -> bool:
        return is_retryable(error)


def extract_status_code(error: BaseException) -> int | None:
    """Read an HTTP-like status code from common error shapes."""

    for attribute in ("status_code", "status"):
        value = getattr(error, attribute, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
