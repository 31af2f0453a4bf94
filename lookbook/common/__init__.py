"""
Common utilities shared across lookbook modules.
"""

from .errors import (
    ConfigurationMissing,
    ErrorKind,
    GenerationError,
    QuotaExhausted,
    RemoteCallError,
    SafetyBlocked,
    ServiceUnavailable,
    classify_remote_error,
    to_generation_error,
)
from .llm import ChatResult, CompletionCallable, call_chat_completion, parse_json_object
from .retry import backoff_delay, with_retry
from .stages import Stage

__all__ = [
    "ChatResult",
    "CompletionCallable",
    "call_chat_completion",
    "parse_json_object",
    "ConfigurationMissing",
    "ErrorKind",
    "GenerationError",
    "QuotaExhausted",
    "RemoteCallError",
    "SafetyBlocked",
    "ServiceUnavailable",
    "classify_remote_error",
    "to_generation_error",
    "backoff_delay",
    "with_retry",
    "Stage",
]
