"""
Error taxonomy for remote generation calls and the adapter that classifies them.
"""

from __future__ import annotations

from enum import Enum

import litellm
from replicate.exceptions import ModelError, ReplicateError

_SAFETY_MARKERS = ("sensitive", "nsfw", "safety", "e005")


class ErrorKind(str, Enum):
    """Closed set of outcomes a failed remote call can be classified into."""

    TRANSIENT = "transient"
    SAFETY = "safety"
    CONFIGURATION = "configuration"
    OTHER = "other"


class GenerationError(Exception):
    """Base class for classified generation failures."""

    kind: ErrorKind = ErrorKind.OTHER


class QuotaExhausted(GenerationError):
    """Rate limit or quota errors survived every retry attempt."""

    kind = ErrorKind.TRANSIENT


class SafetyBlocked(GenerationError):
    """The remote content policy suppressed the output."""

    kind = ErrorKind.SAFETY


class ServiceUnavailable(GenerationError):
    """Any other remote or parsing failure."""

    kind = ErrorKind.OTHER


class ConfigurationMissing(GenerationError):
    """No credential or model configuration is available."""

    kind = ErrorKind.CONFIGURATION


class RemoteCallError(Exception):
    """
    Typed failure raised by remote-call adapters that already know the error kind.
    """

    def __init__(self, kind: ErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind


def classify_remote_error(exc: BaseException) -> ErrorKind:
    """
    Map an exception raised by a remote call onto an :class:`ErrorKind`.
    """
    if isinstance(exc, (GenerationError, RemoteCallError)):
        return exc.kind

    if isinstance(exc, litellm.RateLimitError):
        return ErrorKind.TRANSIENT
    if isinstance(exc, litellm.ContentPolicyViolationError):
        return ErrorKind.SAFETY
    if isinstance(exc, litellm.AuthenticationError):
        return ErrorKind.CONFIGURATION

    if isinstance(exc, ModelError):
        prediction = getattr(exc, "prediction", None)
        detail = str(getattr(prediction, "error", None) or exc).lower()
        if any(marker in detail for marker in _SAFETY_MARKERS):
            return ErrorKind.SAFETY
        return ErrorKind.OTHER

    if isinstance(exc, ReplicateError):
        status = getattr(exc, "status", None)
        if status == 429:
            return ErrorKind.TRANSIENT
        if status in (401, 403):
            return ErrorKind.CONFIGURATION
        return ErrorKind.OTHER

    return ErrorKind.OTHER


_ERRORS_BY_KIND: dict[ErrorKind, type[GenerationError]] = {
    ErrorKind.TRANSIENT: QuotaExhausted,
    ErrorKind.SAFETY: SafetyBlocked,
    ErrorKind.CONFIGURATION: ConfigurationMissing,
    ErrorKind.OTHER: ServiceUnavailable,
}


def to_generation_error(exc: BaseException) -> GenerationError:
    """
    Convert any exception into the matching :class:`GenerationError` subclass.
    """
    if isinstance(exc, GenerationError):
        return exc
    error_cls = _ERRORS_BY_KIND[classify_remote_error(exc)]
    return error_cls(str(exc) or type(exc).__name__)
