"""
Daily lookbook package exposing identity generation, stage orchestration, and the collection store.
"""

from .ai_generation import ReplicateImageSynthesizer
from .common import (
    ConfigurationMissing,
    GenerationError,
    QuotaExhausted,
    SafetyBlocked,
    ServiceUnavailable,
    Stage,
    with_retry,
)
from .identity_generation import Identity, IdentityGenerator
from .pipeline import Profile, ProfileInteractor, StageOrchestrator
from .storage import BatchSettings, CollectionStore, InMemoryBackend, YamlFileBackend

__all__ = [
    "ReplicateImageSynthesizer",
    "ConfigurationMissing",
    "GenerationError",
    "QuotaExhausted",
    "SafetyBlocked",
    "ServiceUnavailable",
    "Stage",
    "with_retry",
    "Identity",
    "IdentityGenerator",
    "Profile",
    "ProfileInteractor",
    "StageOrchestrator",
    "BatchSettings",
    "CollectionStore",
    "InMemoryBackend",
    "YamlFileBackend",
]
