"""
LiteLLM chat completion wrapper tuned for JSON persona replies.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from litellm import completion

from .errors import ErrorKind, RemoteCallError

ChatMessage = Mapping[str, Any]

_CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_JSON_RESPONSE_FORMAT = {"type": "json_object"}


@dataclass
class ChatResult:
    """
    Reply text of a chat completion plus the provider's raw response.
    """

    text: str
    raw: Any


CompletionCallable = Callable[..., ChatResult]


def call_chat_completion(
    *,
    model: str,
    messages: Sequence[ChatMessage],
    temperature: float | None = None,
    max_tokens: int | None = None,
    api_key: str | None = None,
    json_mode: bool = False,
    **extra_kwargs: Any,
) -> ChatResult:
    """
    Send ``messages`` through LiteLLM and return the first choice's text.

    ``json_mode`` requests a JSON object reply from providers that support it.
    Provider exceptions propagate untouched so the retry policy can classify
    them; a reply without content is raised as a :class:`RemoteCallError`.
    """
    optional = {
        "temperature": temperature,
        "max_tokens": max_tokens,
        "api_key": api_key,
        "response_format": _JSON_RESPONSE_FORMAT if json_mode else None,
    }
    payload: dict[str, Any] = {"model": model, "messages": list(messages)}
    payload.update({key: value for key, value in optional.items() if value is not None})
    payload.update(extra_kwargs)

    response = completion(**payload)

    try:
        content = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise RemoteCallError(ErrorKind.OTHER, "LiteLLM response had no choices.") from exc

    text = str(content or "").strip()
    if not text:
        raise RemoteCallError(ErrorKind.OTHER, f"Model {model} returned an empty reply.")
    return ChatResult(text=text, raw=response)


def parse_json_object(raw_text: str) -> dict[str, Any]:
    """
    Parse a model reply into a JSON object, tolerating a surrounding code fence.
    """
    cleaned = _CODE_FENCE_PATTERN.sub("", raw_text.strip())
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ValueError("Model response is not valid JSON.") from exc

    if not isinstance(parsed, dict):
        raise ValueError("Model response JSON must be an object.")
    return parsed
