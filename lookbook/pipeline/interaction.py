"""
Interactive per-profile actions: stage advance and free-form outfit edits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from lookbook.common import ConfigurationMissing, GenerationError, QuotaExhausted, Stage

from .orchestrator import StageOrchestrator

if TYPE_CHECKING:
    from lookbook.storage.store import CollectionStore

BUSY_NOTICE = "This look is still being prepared. Please wait for it to finish."
QUOTA_NOTICE = "The studio is busy right now. Please try again in a moment."
REJECTED_NOTICE = "That look could not be produced. Try a simpler request."
REMOVED_NOTICE = "This look left the collection before the new image was ready."

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InteractionOutcome:
    """Result of an interactive request against one profile."""

    profile_id: str
    stage: Stage
    image: str | None
    cache_hit: bool = False
    notice: str | None = None

    @property
    def ok(self) -> bool:
        return self.notice is None


def notice_for(error: GenerationError) -> str:
    """Short user-facing message separating quota trouble from rejected requests."""
    if isinstance(error, QuotaExhausted):
        return QUOTA_NOTICE
    return REJECTED_NOTICE


class ProfileInteractor:
    """
    Applies user-triggered changes to single profiles.

    Each action gates on the profile's busy flag, so concurrent requests on
    the same profile are rejected while different profiles proceed in parallel.
    A successful render clears the flag in the same write that stores the
    image.
    """

    def __init__(self, store: "CollectionStore", orchestrator: StageOrchestrator) -> None:
        self._store = store
        self._orchestrator = orchestrator

    def advance_stage(self, profile_id: str) -> InteractionOutcome:
        """
        Move a profile to its next outfit stage, wrapping from FINAL back to BASE.

        Stages rendered before are served from ``images_by_stage`` without a
        remote call.
        """
        profile = self._store.get_profile(profile_id)
        target = profile.current_stage.following()

        cached = profile.images_by_stage.get(target)
        if cached:
            if profile.is_busy:
                return self._busy(profile_id, profile.current_stage)
            self._store.update_profile(
                profile_id,
                current_stage=target,
                current_image=cached,
            )
            return InteractionOutcome(
                profile_id=profile_id,
                stage=target,
                image=cached,
                cache_hit=True,
            )

        if not self._store.try_mark_busy(profile_id):
            return self._busy(profile_id, profile.current_stage)

        rendered = self._guarded_render(
            profile_id,
            profile.current_stage,
            lambda: self._orchestrator.render_stage(
                profile.identity,
                target,
                profile.current_image,
            ),
        )
        if isinstance(rendered, InteractionOutcome):
            return rendered
        image = rendered

        try:
            images = dict(self._store.get_profile(profile_id).images_by_stage)
            images[target] = image
            self._store.update_profile(
                profile_id,
                current_stage=target,
                current_image=image,
                images_by_stage=images,
                is_busy=False,
            )
        except KeyError:
            return self._removed(profile_id, target)
        return InteractionOutcome(profile_id=profile_id, stage=target, image=image)

    def apply_custom_edit(self, profile_id: str, instruction: str) -> InteractionOutcome:
        """
        Restyle the current image with a free-form instruction.

        The edit replaces the current stage's cached image so the profile keeps
        showing what its stage map holds.
        """
        if not instruction or not instruction.strip():
            raise ValueError("instruction must be a non-empty string.")

        profile = self._store.get_profile(profile_id)
        if not self._store.try_mark_busy(profile_id):
            return self._busy(profile_id, profile.current_stage)

        rendered = self._guarded_render(
            profile_id,
            profile.current_stage,
            lambda: self._orchestrator.render_custom_edit(
                instruction,
                profile.current_image,
                profile.identity,
            ),
        )
        if isinstance(rendered, InteractionOutcome):
            return rendered
        image = rendered

        try:
            current = self._store.get_profile(profile_id)
            images = dict(current.images_by_stage)
            images[current.current_stage] = image
            self._store.update_profile(
                profile_id,
                current_image=image,
                images_by_stage=images,
                is_busy=False,
            )
        except KeyError:
            return self._removed(profile_id, profile.current_stage)
        return InteractionOutcome(profile_id=profile_id, stage=current.current_stage, image=image)

    def _guarded_render(
        self,
        profile_id: str,
        stage: Stage,
        render: Callable[[], str],
    ) -> str | InteractionOutcome:
        """
        Run ``render`` for a profile already marked busy.

        Returns the image on success, leaving the busy flag for the caller's
        commit. On failure the flag is cleared here and either a notice
        outcome is returned or the error propagates.
        """
        try:
            return render()
        except ConfigurationMissing:
            self._clear_busy(profile_id)
            raise
        except GenerationError as exc:
            self._clear_busy(profile_id)
            logger.warning("Render failed for profile %s: %s", profile_id, exc)
            return InteractionOutcome(
                profile_id=profile_id,
                stage=stage,
                image=None,
                notice=notice_for(exc),
            )
        except BaseException:
            self._clear_busy(profile_id)
            raise

    def _clear_busy(self, profile_id: str) -> None:
        try:
            self._store.update_profile(profile_id, is_busy=False)
        except KeyError:
            logger.info("Profile %s left the collection while busy.", profile_id)

    @staticmethod
    def _removed(profile_id: str, stage: Stage) -> InteractionOutcome:
        logger.info("Profile %s left the collection during a render; dropping the image.", profile_id)
        return InteractionOutcome(
            profile_id=profile_id,
            stage=stage,
            image=None,
            notice=REMOVED_NOTICE,
        )

    @staticmethod
    def _busy(profile_id: str, stage: Stage) -> InteractionOutcome:
        return InteractionOutcome(
            profile_id=profile_id,
            stage=stage,
            image=None,
            notice=BUSY_NOTICE,
        )
