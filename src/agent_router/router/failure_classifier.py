"""Deterministic classification of agent invocation failures."""

from __future__ import annotations

from dataclasses import dataclass

from agent_router.router.models import ErrorKind

FAILURE_CLASSIFIER_VERSION = 1

_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "resource_exhausted",
    "insufficient",
    "billing",
    "payment",
    "credits",
    "usage limit",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "permission denied",
    "invalid api key",
    "authentication",
    "restricted token",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "unsupported model",
    "invalid model",
    "model is not available",
)
_UNREACHABLE_PATTERNS: tuple[str, ...] = (
    "connection refused",
    "could not resolve host",
    "no route to host",
    "command not found",
    "name or service not known",
)
_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "429",
    "please retry",
    "try again later",
    "temporarily unavailable",
    "temporary failure",
    "connection reset",
    "network error",
)


@dataclass(slots=True)
class FailureClassification:
    """Normalized failure classification result."""

    error_kind: ErrorKind
    reason_code: str
    matched_rule: str
    matched_pattern: str | None


def classify_failure(
    *,
    agent_id: str,
    message: str,
    exit_code: int | None = None,
    transient_exit_codes: tuple[int, ...] = (137, 143),
) -> FailureClassification:
    """Classify one failed attempt from its error text and exit code."""

    haystack = message.lower()
    rules: tuple[tuple[str, ErrorKind, tuple[str, ...]], ...] = (
        ("billing_or_quota", ErrorKind.BILLING_OR_QUOTA, _BILLING_OR_QUOTA_PATTERNS),
        ("access_or_auth", ErrorKind.ACCESS_OR_AUTH, _ACCESS_OR_AUTH_PATTERNS),
        ("model_not_available", ErrorKind.MODEL_NOT_AVAILABLE, _MODEL_NOT_AVAILABLE_PATTERNS),
        ("unreachable", ErrorKind.UNREACHABLE, _UNREACHABLE_PATTERNS),
        ("transient", ErrorKind.BACKEND_TRANSIENT, _TRANSIENT_PATTERNS),
    )
    for rule, kind, patterns in rules:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return FailureClassification(
                error_kind=kind,
                reason_code=f"{agent_id}_{rule}",
                matched_rule=rule,
                matched_pattern=pattern,
            )

    if exit_code is not None and exit_code in transient_exit_codes:
        return FailureClassification(
            error_kind=ErrorKind.BACKEND_TRANSIENT,
            reason_code=f"{agent_id}_transient",
            matched_rule="transient_exit_code",
            matched_pattern=None,
        )

    return FailureClassification(
        error_kind=ErrorKind.BACKEND_NON_RETRYABLE,
        reason_code=f"{agent_id}_non_retryable",
        matched_rule="fallback_non_retryable",
        matched_pattern=None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
