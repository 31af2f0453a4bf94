"""
Service layer for producing batches of model personas via LiteLLM-compatible models.
"""

from __future__ import annotations

import logging
import os
import random
from typing import Any, Callable, Iterable

import litellm

from lookbook.common import (
    ChatResult,
    CompletionCallable,
    ConfigurationMissing,
    call_chat_completion,
    parse_json_object,
    with_retry,
)
from lookbook.common.retry import DEFAULT_MAX_ATTEMPTS

from .identity import Identity
from .prompting import build_identity_prompt, sample_trait_seeds

logger = logging.getLogger(__name__)


class IdentityGenerator:
    """
    Requests a batch of distinct personas from the text model in one call.

    Failures are never papered over with placeholder personas; the classified
    error from the retry policy propagates to the caller.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        completion_fn: CompletionCallable | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_fn: Callable[..., Any] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._api_key = (
            api_key
            or os.getenv("LOOKBOOK_IDENTITY_API_KEY")
            or os.getenv("LITELLM_API_KEY")
        )
        self._model = (
            model
            or os.getenv("LOOKBOOK_IDENTITY_MODEL")
            or os.getenv("LITELLM_IDENTITY_MODEL")
            or os.getenv("LITELLM_MODEL")
            or "gpt-4.1-mini"
        )
        self._completion_fn: CompletionCallable = completion_fn or call_chat_completion
        self._has_custom_completion = completion_fn is not None
        self._max_attempts = max_attempts
        self._retry = retry_fn or with_retry
        self._rng = rng or random.Random()

    @property
    def model(self) -> str:
        """Return the model identifier in use."""
        return self._model

    def generate_identities(
        self,
        count: int,
        *,
        temperature: float = 0.9,
        max_output_tokens: int = 4000,
        **response_kwargs: Any,
    ) -> list[Identity]:
        """
        Return exactly ``count`` personas with non-empty name, description and traits.
        """
        if count <= 0:
            return []

        if not self._has_custom_completion:
            self._ensure_credentials()

        prompt = build_identity_prompt(count, sample_trait_seeds(count, self._rng))

        def _request() -> list[Identity]:
            result: ChatResult = self._completion_fn(
                model=self._model,
                messages=[
                    {"role": "system", "content": prompt.system},
                    {"role": "user", "content": prompt.user},
                ],
                temperature=temperature,
                max_tokens=max_output_tokens,
                api_key=self._api_key,
                json_mode=True,
                **response_kwargs,
            )
            return self._parse_identities(result.text, count)

        identities = self._retry(_request, self._max_attempts)
        logger.info("Generated %d identities with %s.", len(identities), self._model)
        return identities

    def generate_identity(self, **kwargs: Any) -> Identity:
        """
        Single-persona path; shares the batch path's failure policy.
        """
        return self.generate_identities(1, **kwargs)[0]

    def _ensure_credentials(self) -> None:
        """
        Fail fast when neither an explicit key nor LiteLLM's provider key is set.

        LiteLLM resolves provider variables such as ``OPENAI_API_KEY`` or
        ``ANTHROPIC_API_KEY`` itself, so without an explicit key the check
        asks LiteLLM about the model's provider.
        """
        if self._api_key:
            return
        environment = litellm.validate_environment(model=self._model)
        if environment.get("keys_in_environment"):
            return
        missing = ", ".join(environment.get("missing_keys") or []) or "a provider API key"
        raise ConfigurationMissing(
            f"No credentials for identity model {self._model}: set {missing} or pass api_key."
        )

    def _parse_identities(self, raw_text: str, count: int) -> list[Identity]:
        if not raw_text:
            raise ValueError("Identity response did not contain any text content.")

        parsed = parse_json_object(raw_text)
        entries = parsed.get("identities")
        if not isinstance(entries, list):
            raise ValueError("Identity JSON must contain an 'identities' list.")

        identities = self._convert(entries)
        if len(identities) != count:
            raise ValueError(
                f"Expected {count} identities, received {len(identities)}."
            )
        return identities

    @staticmethod
    def _convert(entries: Iterable[Any]) -> list[Identity]:
        identities: list[Identity] = []
        for entry in entries:
            identities.append(Identity.from_mapping(entry))
        return identities
