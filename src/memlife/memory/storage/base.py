"""Abstract base classes for the engine's persistence collaborators."""

from abc import ABC, abstractmethod

from memlife.memory.models import (
    Memory,
    CharacterProfile,
    ConsolidationDecisionRecord,
    ConsolidationStatistics,
)
from memlife.memory.procedural.models import ProceduralMemory


class MemoryStore(ABC):
    """Episodic memory persistence. ``store`` is an upsert by id."""

    @abstractmethod
    async def get(self, memory_id: str) -> Memory | None:
        """Retrieve a memory by ID."""
        pass

    @abstractmethod
    async def get_all(self) -> list[Memory]:
        """List all memories."""
        pass

    @abstractmethod
    async def store(self, memory: Memory) -> None:
        """Insert or replace a memory."""
        pass


class ProceduralMemoryStorage(ABC):
    """Procedural memory persistence."""

    @abstractmethod
    async def save(self, memory: ProceduralMemory) -> None:
        pass

    @abstractmethod
    async def get_by_id(self, memory_id: str) -> ProceduralMemory | None:
        pass

    @abstractmethod
    async def get_all(self) -> list[ProceduralMemory]:
        pass

    @abstractmethod
    async def delete(self, memory_id: str) -> None:
        pass


class ThresholdStore(ABC):
    """Per-character adaptive threshold, statistics and decision log."""

    @abstractmethod
    async def get_threshold(self, character_id: str) -> float | None:
        pass

    @abstractmethod
    async def save_threshold(self, character_id: str, value: float) -> None:
        pass

    @abstractmethod
    async def get_statistics(self, character_id: str) -> ConsolidationStatistics | None:
        pass

    @abstractmethod
    async def save_statistics(self, statistics: ConsolidationStatistics) -> None:
        pass

    @abstractmethod
    async def append_decision_log(self, records: list[ConsolidationDecisionRecord]) -> None:
        pass

    @abstractmethod
    async def get_decision_log(
        self, character_id: str, limit: int | None = None
    ) -> list[ConsolidationDecisionRecord]:
        """Most recent decisions first."""
        pass


class CharacterProfileSource(ABC):
    """Read-only character context for the scorer."""

    @abstractmethod
    async def get_profile(self, character_id: str) -> CharacterProfile | None:
        pass

    @abstractmethod
    async def get_relationships(self, character_id: str) -> list[str]:
        """Short human-readable relationship descriptions."""
        pass
