"""In-memory implementations of every storage collaborator.

Suitable for tests and single-process use; nothing survives a restart.
"""

from __future__ import annotations

from dataclasses import replace

from memlife.memory.models import (
    Memory,
    CharacterProfile,
    ConsolidationDecisionRecord,
    ConsolidationStatistics,
)
from memlife.memory.procedural.models import ProceduralMemory
from memlife.memory.storage.base import (
    MemoryStore,
    ProceduralMemoryStorage,
    ThresholdStore,
    CharacterProfileSource,
)


class InMemoryMemoryStore(MemoryStore):
    """Dict-backed memory store. Hands out copies so callers cannot mutate stored state."""

    def __init__(self, memories: list[Memory] | None = None):
        self._memories: dict[str, Memory] = {}
        for memory in memories or []:
            self._memories[memory.id] = replace(memory)

    async def get(self, memory_id: str) -> Memory | None:
        memory = self._memories.get(memory_id)
        return replace(memory) if memory is not None else None

    async def get_all(self) -> list[Memory]:
        return [replace(m) for m in self._memories.values()]

    async def store(self, memory: Memory) -> None:
        self._memories[memory.id] = replace(memory)

    def __len__(self) -> int:
        return len(self._memories)


class InMemoryProceduralStorage(ProceduralMemoryStorage):
    def __init__(self):
        self._memories: dict[str, ProceduralMemory] = {}

    async def save(self, memory: ProceduralMemory) -> None:
        self._memories[memory.id] = replace(memory)

    async def get_by_id(self, memory_id: str) -> ProceduralMemory | None:
        memory = self._memories.get(memory_id)
        return replace(memory) if memory is not None else None

    async def get_all(self) -> list[ProceduralMemory]:
        return [replace(m) for m in self._memories.values()]

    async def delete(self, memory_id: str) -> None:
        self._memories.pop(memory_id, None)


class InMemoryThresholdStore(ThresholdStore):
    def __init__(self):
        self._thresholds: dict[str, float] = {}
        self._statistics: dict[str, ConsolidationStatistics] = {}
        self._decisions: list[ConsolidationDecisionRecord] = []

    async def get_threshold(self, character_id: str) -> float | None:
        return self._thresholds.get(character_id)

    async def save_threshold(self, character_id: str, value: float) -> None:
        self._thresholds[character_id] = value

    async def get_statistics(self, character_id: str) -> ConsolidationStatistics | None:
        stats = self._statistics.get(character_id)
        return replace(stats) if stats is not None else None

    async def save_statistics(self, statistics: ConsolidationStatistics) -> None:
        self._statistics[statistics.character_id] = replace(statistics)

    async def append_decision_log(self, records: list[ConsolidationDecisionRecord]) -> None:
        self._decisions.extend(records)

    async def get_decision_log(
        self, character_id: str, limit: int | None = None
    ) -> list[ConsolidationDecisionRecord]:
        records = [r for r in reversed(self._decisions) if r.character_id == character_id]
        return records[:limit] if limit is not None else records


class InMemoryProfileSource(CharacterProfileSource):
    def __init__(
        self,
        profiles: dict[str, CharacterProfile] | None = None,
        relationships: dict[str, list[str]] | None = None,
    ):
        self._profiles = dict(profiles or {})
        self._relationships = {k: list(v) for k, v in (relationships or {}).items()}

    def add_profile(self, profile: CharacterProfile, relationships: list[str] | None = None) -> None:
        self._profiles[profile.character_id] = profile
        if relationships is not None:
            self._relationships[profile.character_id] = list(relationships)

    async def get_profile(self, character_id: str) -> CharacterProfile | None:
        return self._profiles.get(character_id)

    async def get_relationships(self, character_id: str) -> list[str]:
        return list(self._relationships.get(character_id, []))
