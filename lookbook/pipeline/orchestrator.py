"""
Drives one identity through the three chained outfit renders.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol

from lookbook.ai_generation import StagePrompt, build_custom_edit_prompt, build_stage_prompt
from lookbook.common import SafetyBlocked, Stage, to_generation_error, with_retry
from lookbook.common.retry import DEFAULT_MAX_ATTEMPTS
from lookbook.identity_generation import Identity

StageReadyCallback = Callable[[Stage, str], None]

logger = logging.getLogger(__name__)

_SEED_MOD = 2_147_483_647


class ImageSynthesizer(Protocol):
    def synthesize(self, prompt: str, reference_image: Any = None, **model_kwargs: Any) -> str:
        ...


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    STAGE0_DONE = "stage0_done"
    STAGE1_DONE = "stage1_done"
    STAGE2_DONE = "stage2_done"
    FAILED = "failed"


_DONE_STATES = {
    Stage.BASE: RunState.STAGE0_DONE,
    Stage.INTERMEDIATE: RunState.STAGE1_DONE,
    Stage.FINAL: RunState.STAGE2_DONE,
}


@dataclass
class StageRun:
    """
    Progress of one identity through the stages; only ever moves forward.
    """

    identity: Identity
    state: RunState = RunState.NOT_STARTED
    images: dict[Stage, str] = field(default_factory=dict)
    error: Exception | None = None

    @property
    def next_stage(self) -> Stage | None:
        if self.state in (RunState.FAILED, RunState.STAGE2_DONE):
            return None
        return Stage(len(self.images))

    @property
    def is_terminal(self) -> bool:
        return self.state in (RunState.FAILED, RunState.STAGE2_DONE)

    def record(self, stage: Stage, image: str) -> None:
        if stage != self.next_stage:
            raise ValueError(
                f"Cannot record stage {stage.label} while run is {self.state.value}."
            )
        self.images[stage] = image
        self.state = _DONE_STATES[stage]

    def fail(self, error: Exception) -> None:
        if self.is_terminal:
            raise ValueError(f"Cannot fail a run that is already {self.state.value}.")
        self.error = error
        self.state = RunState.FAILED


def derive_identity_seed(identity: Identity) -> int:
    """Deterministic seed shared by every render of one identity."""
    digest = hashlib.sha256(f"{identity.name}|{identity.traits}".encode("utf-8")).hexdigest()
    return int(digest[:12], 16) % _SEED_MOD or 1


class StageOrchestrator:
    """
    Renders BASE, INTERMEDIATE and FINAL strictly one after another.

    Every stage after the first edits the previous stage's image, which keeps
    face, hair and pose continuous while only the outfit changes.
    """

    def __init__(
        self,
        synthesizer: ImageSynthesizer,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_fn: Callable[..., Any] | None = None,
        lock_seed: bool = True,
    ) -> None:
        self._synthesizer = synthesizer
        self._max_attempts = max_attempts
        self._retry = retry_fn or with_retry
        self._lock_seed = lock_seed

    def orchestrate(
        self,
        identity: Identity,
        on_stage_ready: StageReadyCallback | None = None,
        *,
        run: StageRun | None = None,
    ) -> dict[Stage, str]:
        """
        Render all three stages for ``identity`` and return them keyed by stage.

        ``on_stage_ready`` is called synchronously after each stage. When a stage
        fails after retries the run is marked failed and the classified error is
        raised; ``run`` keeps the images rendered before the failure.
        """
        current = run or StageRun(identity=identity)
        if current.state is not RunState.NOT_STARTED:
            raise ValueError("StageRun must start from NOT_STARTED.")

        reference: str | None = None
        for stage in Stage:
            try:
                image = self.render_stage(identity, stage, reference)
            except Exception as exc:
                error = to_generation_error(exc)
                current.fail(error)
                logger.warning(
                    "Stage %s failed for %s: %s", stage.label, identity.name, error
                )
                if error is exc:
                    raise
                raise error from exc

            current.record(stage, image)
            if on_stage_ready is not None:
                on_stage_ready(stage, image)
            reference = image

        return dict(current.images)

    def render_stage(
        self,
        identity: Identity,
        stage: Stage,
        reference_image: str | None = None,
    ) -> str:
        """
        Single retried render of ``stage``; later stages require a reference image.
        """
        stage = Stage(stage)
        if stage is not Stage.BASE and not reference_image:
            raise ValueError(f"Stage {stage.label} requires the previous stage's image.")

        prompt = build_stage_prompt(stage, identity)
        reference = reference_image if stage is not Stage.BASE else None
        return self._render(prompt, reference, identity)

    def render_custom_edit(
        self,
        instruction: str,
        reference_image: str,
        identity: Identity | None = None,
    ) -> str:
        """Single retried render of a free-form outfit edit."""
        if not reference_image:
            raise ValueError("A custom edit requires the current image as reference.")
        prompt = build_custom_edit_prompt(instruction, identity)
        return self._render(prompt, reference_image, identity)

    def _render(
        self,
        prompt: StagePrompt,
        reference_image: str | None,
        identity: Identity | None,
    ) -> str:
        model_kwargs: dict[str, Any] = {}
        if self._lock_seed and identity is not None:
            model_kwargs["seed"] = derive_identity_seed(identity)

        def _attempt() -> str:
            try:
                return self._synthesizer.synthesize(
                    prompt.primary, reference_image, **model_kwargs
                )
            except SafetyBlocked:
                if not prompt.fallback:
                    raise
                logger.warning("Safety filter hit on primary prompt, trying fallback.")
                return self._synthesizer.synthesize(
                    prompt.fallback, reference_image, **model_kwargs
                )

        return self._retry(_attempt, self._max_attempts)
