"""
Stage orchestration and profile handling for the daily lookbook.
"""

from .interaction import InteractionOutcome, ProfileInteractor, notice_for
from .models import Profile, new_profile_id
from .orchestrator import (
    RunState,
    StageOrchestrator,
    StageRun,
    derive_identity_seed,
)

__all__ = [
    "InteractionOutcome",
    "ProfileInteractor",
    "notice_for",
    "Profile",
    "new_profile_id",
    "RunState",
    "StageOrchestrator",
    "StageRun",
    "derive_identity_seed",
]
