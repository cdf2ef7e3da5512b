"""Exception types raised by the memory lifecycle engine."""

from __future__ import annotations


class MemoryLifecycleError(Exception):
    """Base class for all engine errors."""


class MemoryNotFoundError(MemoryLifecycleError, KeyError):
    """Raised when a memory id is unknown to the store."""

    def __init__(self, memory_id: str):
        self.memory_id = memory_id
        super().__init__(f"Memory not found: {memory_id}")

    def __str__(self) -> str:
        return self.args[0]


class ProceduralMemoryNotFoundError(MemoryLifecycleError, KeyError):
    """Raised when a procedural memory id (or its history) is unknown."""

    def __init__(self, memory_id: str, what: str = "Procedural memory"):
        self.memory_id = memory_id
        super().__init__(f"{what} not found: {memory_id}")

    def __str__(self) -> str:
        return self.args[0]


class ScorerError(MemoryLifecycleError):
    """Transport or parse failure of the external scorer.

    Only raised internally; the consolidation pipeline always recovers
    from it with the rule-based fallback.
    """


class NoConflictError(MemoryLifecycleError, ValueError):
    """Raised when asked to resolve an empty list of conflicts."""


class UnsupportedReconstructionError(MemoryLifecycleError, ValueError):
    """Raised when a reconstruction type cannot be applied to a single memory."""
