"""
Persistence for the daily collection.
"""

from .backends import InMemoryBackend, KeyValueBackend, YamlFileBackend
from .store import (
    COLLECTION_KEY,
    DATE_KEY,
    BatchProgress,
    BatchSettings,
    BatchState,
    CollectionStore,
    progress_percent,
)

__all__ = [
    "InMemoryBackend",
    "KeyValueBackend",
    "YamlFileBackend",
    "COLLECTION_KEY",
    "DATE_KEY",
    "BatchProgress",
    "BatchSettings",
    "BatchState",
    "CollectionStore",
    "progress_percent",
]
