"""Shared stubs for lookbook tests."""

from __future__ import annotations

import os

# Use litellm's bundled model cost map; the remote fetch hangs test collection offline.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from datetime import date
from typing import Any, Callable

import pytest

from lookbook.common import Stage
from lookbook.identity_generation import Identity
from lookbook.storage import BatchSettings, CollectionStore, InMemoryBackend


def make_identity(index: int) -> Identity:
    return Identity(
        name=f"Model {index}",
        description=f"Editorial muse number {index}.",
        traits=f"trait set {index}",
    )


class RecordingSynthesizer:
    """Returns ``image-N`` per call and records every request."""

    def __init__(self, failures: dict[int, Exception] | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self._failures = failures or {}

    def synthesize(self, prompt: str, reference_image: Any = None, **model_kwargs: Any) -> str:
        index = len(self.calls)
        self.calls.append(
            {"prompt": prompt, "reference": reference_image, "kwargs": model_kwargs}
        )
        if index in self._failures:
            raise self._failures[index]
        return f"image-{index}"


class StubIdentityGenerator:
    def __init__(self, count: int | None = None) -> None:
        self._count = count
        self.requested: list[int] = []

    def generate_identities(self, count: int) -> list[Identity]:
        self.requested.append(count)
        produced = self._count if self._count is not None else count
        return [make_identity(index) for index in range(produced)]


class StubOrchestrator:
    """Completes every stage instantly; ``fail_for`` names identities that error."""

    def __init__(
        self,
        fail_for: dict[str, Exception] | None = None,
        on_call: Callable[[Identity], None] | None = None,
    ) -> None:
        self.fail_for = fail_for or {}
        self.on_call = on_call
        self.calls: list[str] = []

    def orchestrate(self, identity: Identity, on_stage_ready=None) -> dict[Stage, str]:
        self.calls.append(identity.name)
        if self.on_call is not None:
            self.on_call(identity)
        if identity.name in self.fail_for:
            raise self.fail_for[identity.name]
        images = {}
        for stage in Stage:
            image = f"{identity.name}-{stage.name.lower()}"
            images[stage] = image
            if on_stage_ready is not None:
                on_stage_ready(stage, image)
        return images


class FakeClock:
    def __init__(self, today: date) -> None:
        self.today = today

    def __call__(self) -> date:
        return self.today


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(date(2026, 10, 19))


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def make_store(backend, clock):
    def _make(**kwargs: Any) -> CollectionStore:
        kwargs.setdefault("identity_generator", StubIdentityGenerator())
        kwargs.setdefault("orchestrator", StubOrchestrator())
        kwargs.setdefault("settings", BatchSettings(target_count=20, inter_identity_delay=0))
        kwargs.setdefault("clock", clock)
        return CollectionStore(kwargs.pop("backend", backend), **kwargs)

    return _make
