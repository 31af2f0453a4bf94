"""
Date-stamped cache of the daily collection and the batch run that fills it.
"""

from __future__ import annotations

import logging
import math
import os
import threading
import time
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Callable, Iterator, Protocol, Sequence

from lookbook.common import ConfigurationMissing, GenerationError, Stage
from lookbook.common.retry import DEFAULT_MAX_ATTEMPTS
from lookbook.identity_generation import Identity
from lookbook.pipeline.models import Profile

from .backends import KeyValueBackend

COLLECTION_KEY = "lookbook_collection"
DATE_KEY = "lookbook_last_update"
DEFAULT_TARGET_COUNT = 20

ProgressCallback = Callable[["BatchProgress"], None]

logger = logging.getLogger(__name__)


class IdentitySource(Protocol):
    def generate_identities(self, count: int) -> Sequence[Identity]:
        ...


class Orchestrator(Protocol):
    def orchestrate(
        self,
        identity: Identity,
        on_stage_ready: Callable[[Stage, str], None] | None = None,
    ) -> dict[Stage, str]:
        ...


@dataclass(frozen=True)
class BatchSettings:
    """
    Knobs for the daily batch.

    Attributes
    ----------
    target_count:
        Number of identities requested per day.
    inter_identity_delay:
        Seconds to pause between identities to spread load on the remote quota.
    max_attempts:
        Attempts per remote call handed to the retry policy.
    """

    target_count: int = DEFAULT_TARGET_COUNT
    inter_identity_delay: float = 0.3
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    @classmethod
    def from_env(cls) -> "BatchSettings":
        return cls(
            target_count=int(os.getenv("LOOKBOOK_TARGET_COUNT") or DEFAULT_TARGET_COUNT),
            inter_identity_delay=float(os.getenv("LOOKBOOK_INTER_IDENTITY_DELAY") or 0.3),
            max_attempts=int(os.getenv("LOOKBOOK_MAX_ATTEMPTS") or DEFAULT_MAX_ATTEMPTS),
        )


class BatchState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


def progress_percent(completed: int, total: int) -> int:
    """``completed / total`` as a 0-100 integer, rounding halves up."""
    if total <= 0:
        return 100
    return int(math.floor(completed * 100 / total + 0.5))


@dataclass(frozen=True)
class BatchProgress:
    """Snapshot emitted after each identity of a batch, successful or not."""

    completed: int
    total: int
    identity: Identity
    profile: Profile | None = None
    error: GenerationError | None = None

    @property
    def percent(self) -> int:
        return progress_percent(self.completed, self.total)

    @property
    def succeeded(self) -> bool:
        return self.profile is not None


class CollectionStore:
    """
    In-memory view of today's profiles, mirrored to a key/value backend.

    Every write re-persists the whole collection in one backend call, so the
    persisted value is always a complete list of finished profiles.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        *,
        identity_generator: IdentitySource | None = None,
        orchestrator: Orchestrator | None = None,
        clock: Callable[[], date] = date.today,
        settings: BatchSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._backend = backend
        self._identity_generator = identity_generator
        self._orchestrator = orchestrator
        self._clock = clock
        self._settings = settings or BatchSettings()
        self._sleep = sleep

        self._lock = threading.RLock()
        self._profiles: list[Profile] = []
        self._state = BatchState.IDLE
        self._progress = 0

    @property
    def profiles(self) -> list[Profile]:
        with self._lock:
            return list(self._profiles)

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def state(self) -> BatchState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is BatchState.RUNNING

    def today_stamp(self) -> str:
        return self._clock().isoformat()

    def load(self) -> list[Profile]:
        """
        Return the persisted profiles if they were generated today, else ``[]``.
        """
        today = self.today_stamp()
        stamp = self._backend.get(DATE_KEY)
        raw_profiles = self._backend.get(COLLECTION_KEY)

        profiles: list[Profile] = []
        if stamp != today:
            logger.info("Cached collection is stale (stamp=%r, today=%s).", stamp, today)
        elif raw_profiles is not None:
            try:
                profiles = self._parse_profiles(raw_profiles)
            except ValueError:
                logger.warning("Discarding malformed cached collection.", exc_info=True)
                profiles = []

        with self._lock:
            if self._state is BatchState.RUNNING:
                return list(self._profiles)
            self._profiles = profiles
            return list(self._profiles)

    def get_profile(self, profile_id: str) -> Profile:
        with self._lock:
            return self._profiles[self._index_of(profile_id)]

    def update_profile(self, profile_id: str, **fields: Any) -> Profile:
        """
        Merge ``fields`` into the matching profile and re-persist the collection.
        """
        with self._lock:
            index = self._index_of(profile_id)
            updated = self._profiles[index].merged(fields)
            self._profiles[index] = updated
            self._persist_locked()
            return updated

    def try_mark_busy(self, profile_id: str) -> bool:
        """
        Flip ``is_busy`` on if it is off; returns False when the profile was already busy.
        """
        with self._lock:
            index = self._index_of(profile_id)
            profile = self._profiles[index]
            if profile.is_busy:
                return False
            self._profiles[index] = profile.merged({"is_busy": True})
            self._persist_locked()
            return True

    def reset(self) -> None:
        """Drop the visible and persisted collection."""
        with self._lock:
            self._profiles = []
            self._progress = 0
            self._backend.delete(COLLECTION_KEY)
            self._backend.delete(DATE_KEY)

    def run_daily_batch(self, progress_callback: ProgressCallback | None = None) -> list[Profile]:
        """
        Run a full batch, forwarding each progress snapshot to ``progress_callback``.

        A call made while another batch is running returns immediately.
        """
        for snapshot in self.iter_daily_batch():
            if progress_callback is not None:
                progress_callback(snapshot)
        return self.profiles

    def iter_daily_batch(self) -> Iterator[BatchProgress]:
        """
        Generate today's collection, yielding a :class:`BatchProgress` per identity.

        Finished profiles are persisted immediately, so stopping the iterator
        early leaves a valid prefix of the batch in the backend.
        """
        if self._identity_generator is None or self._orchestrator is None:
            raise ValueError("CollectionStore needs an identity generator and orchestrator to run a batch.")

        if not self._try_begin():
            logger.info("Daily batch already running; ignoring duplicate trigger.")
            return

        try:
            with self._lock:
                self._profiles = []
                self._progress = 0
                self._persist_locked(stamp=self.today_stamp())

            identities = list(
                self._identity_generator.generate_identities(self._settings.target_count)
            )
            total = len(identities)
            logger.info("Starting daily batch for %d identities.", total)

            for index, identity in enumerate(identities, start=1):
                profile: Profile | None = None
                error: GenerationError | None = None
                try:
                    images = self._orchestrator.orchestrate(
                        identity,
                        on_stage_ready=self._stage_logger(identity),
                    )
                except ConfigurationMissing:
                    raise
                except GenerationError as exc:
                    logger.warning(
                        "Skipping identity %d/%d (%s): %s: %s",
                        index,
                        total,
                        identity.name,
                        type(exc).__name__,
                        exc,
                    )
                    error = exc
                else:
                    profile = Profile.from_stage_images(identity, images)
                    self._append(profile)

                self._progress = progress_percent(index, total)
                yield BatchProgress(
                    completed=index,
                    total=total,
                    identity=identity,
                    profile=profile,
                    error=error,
                )

                if self._settings.inter_identity_delay > 0 and index < total:
                    self._sleep(self._settings.inter_identity_delay)

            self._progress = progress_percent(total, total)
            logger.info(
                "Daily batch finished with %d/%d profiles.", len(self._profiles), total
            )
        finally:
            self._finish()

    def _try_begin(self) -> bool:
        with self._lock:
            if self._state is BatchState.RUNNING:
                return False
            self._state = BatchState.RUNNING
            return True

    def _finish(self) -> None:
        with self._lock:
            self._state = BatchState.IDLE

    def _append(self, profile: Profile) -> None:
        with self._lock:
            self._profiles.append(profile)
            self._persist_locked()

    def _persist_locked(self, *, stamp: str | None = None) -> None:
        values: dict[str, Any] = {
            COLLECTION_KEY: [profile.to_dict() for profile in self._profiles],
        }
        if stamp is not None:
            values[DATE_KEY] = stamp
        self._backend.set_many(values)

    def _index_of(self, profile_id: str) -> int:
        for index, profile in enumerate(self._profiles):
            if profile.id == profile_id:
                return index
        raise KeyError(f"No profile with id {profile_id!r} in the collection.")

    @staticmethod
    def _parse_profiles(raw: Any) -> list[Profile]:
        if not isinstance(raw, list):
            raise ValueError("Cached collection must be a list of profiles.")
        profiles = [Profile.from_dict(entry) for entry in raw]
        return [
            profile.merged({"is_busy": False}) if profile.is_busy else profile
            for profile in profiles
        ]

    @staticmethod
    def _stage_logger(identity: Identity) -> Callable[[Stage, str], None]:
        def _on_stage_ready(stage: Stage, image: str) -> None:
            logger.debug("%s: stage %s ready.", identity.name, stage.label)

        return _on_stage_ready
