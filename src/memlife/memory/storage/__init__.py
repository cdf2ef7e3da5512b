"""Storage layer for the memory lifecycle engine."""

from memlife.memory.storage.base import (
    MemoryStore,
    ProceduralMemoryStorage,
    ThresholdStore,
    CharacterProfileSource,
)
from memlife.memory.storage.in_memory import (
    InMemoryMemoryStore,
    InMemoryProceduralStorage,
    InMemoryThresholdStore,
    InMemoryProfileSource,
)
from memlife.memory.storage.json_file import JsonFileMemoryStore

__all__ = [
    # Base interfaces
    "MemoryStore",
    "ProceduralMemoryStorage",
    "ThresholdStore",
    "CharacterProfileSource",
    # In-memory
    "InMemoryMemoryStore",
    "InMemoryProceduralStorage",
    "InMemoryThresholdStore",
    "InMemoryProfileSource",
    # File-backed
    "JsonFileMemoryStore",
]
