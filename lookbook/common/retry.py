"""
Retry policy with exponential backoff for rate-limited remote calls.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, TypeVar

from .errors import (
    ConfigurationMissing,
    ErrorKind,
    GenerationError,
    QuotaExhausted,
    SafetyBlocked,
    ServiceUnavailable,
    classify_remote_error,
)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 2.0
MAX_JITTER_SECONDS = 1.0

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, jitter: float) -> float:
    """
    Seconds to wait after the failed attempt ``attempt`` (0-based).

    ``jitter`` is a fraction in ``[0, 1)`` scaled to at most one second.
    """
    return (2**attempt) * BASE_DELAY_SECONDS + jitter * MAX_JITTER_SECONDS


def with_retry(
    operation: Callable[[], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    *,
    sleep: Callable[[float], None] = time.sleep,
    jitter: Callable[[], float] = random.random,
) -> T:
    """
    Call ``operation`` and retry it while it fails with a transient error.

    Safety rejections, configuration problems and unknown failures are raised
    immediately as their classified :class:`GenerationError`. A transient failure
    on the last attempt is raised as :class:`QuotaExhausted`.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1.")

    for attempt in range(max_attempts):
        try:
            return operation()
        except Exception as exc:
            kind = classify_remote_error(exc)

            if kind is ErrorKind.TRANSIENT:
                if attempt < max_attempts - 1:
                    wait = backoff_delay(attempt, jitter())
                    logger.warning(
                        "Rate limit or quota hit (attempt %d/%d). Retrying in %.1fs.",
                        attempt + 1,
                        max_attempts,
                        wait,
                    )
                    sleep(wait)
                    continue
                if isinstance(exc, QuotaExhausted):
                    raise
                raise QuotaExhausted(
                    f"Rate limit persisted after {max_attempts} attempts: {exc}"
                ) from exc

            if isinstance(exc, GenerationError):
                raise

            if kind is ErrorKind.SAFETY:
                raise SafetyBlocked(str(exc) or "Output blocked by safety filter.") from exc
            if kind is ErrorKind.CONFIGURATION:
                raise ConfigurationMissing(str(exc) or "Remote credentials rejected.") from exc
            raise ServiceUnavailable(str(exc) or type(exc).__name__) from exc

    raise AssertionError("unreachable")  # pragma: no cover
