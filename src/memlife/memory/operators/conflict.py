"""ConflictResolver - Detects and settles disagreements between memories.

Detection yields a list of ConflictType; the resolver dispatches on the
most severe one and returns a ConflictResolution.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Iterable

from memlife.memory.cache import BoundedCache, CacheStats
from memlife.memory.errors import NoConflictError
from memlife.memory.models import (
    Memory,
    ConflictType,
    ConflictResolution,
    ResolveStrategy,
    SECONDS_PER_DAY,
)
from memlife.memory.operators.similarity import content_similarity

logger = logging.getLogger(__name__)


# Relative time references; two memories recorded close together that both
# use them may be describing the same moment differently.
TIME_KEYWORDS = (
    "昨天", "今天", "明天", "上周", "下周", "去年", "今年", "明年",
    "yesterday", "today", "tomorrow",
    "last week", "next week", "last year", "this year", "next year",
)


@dataclass
class ConflictConfig:
    """Configuration for conflict detection and resolution."""
    content_conflict_threshold: float = 0.3     # Content similarity below this is a conflict
    time_window_seconds: float = SECONDS_PER_DAY
    importance_conflict_threshold: float = 0.5
    polarity_threshold: float = 0.5             # Min valence gap for an emotion conflict

    # Content resolution
    importance_gap_for_keep: float = 0.3
    latest_gap_days: float = 7.0

    # Memoisation
    cache_size: int = 1000
    cache_ttl_seconds: float | None = 3600.0


def dominant_conflict(conflicts: Iterable[ConflictType]) -> ConflictType:
    """Highest-severity conflict; ties keep the first seen."""
    conflicts = list(conflicts)
    if not conflicts:
        raise NoConflictError("No conflicts to resolve")
    return max(conflicts, key=lambda c: c.severity)


class ConflictDetector:
    """Flags the ways two memories disagree."""

    def __init__(self, config: ConflictConfig | None = None):
        self.config = config or ConflictConfig()

    def detect(self, memory_a: Memory, memory_b: Memory) -> list[ConflictType]:
        conflicts: list[ConflictType] = []

        if content_similarity(memory_a.content, memory_b.content) < self.config.content_conflict_threshold:
            conflicts.append(ConflictType.CONTENT)

        if self._has_time_conflict(memory_a, memory_b):
            conflicts.append(ConflictType.TIME)

        # Shared entities/tags are flagged; whether the memories actually
        # contradict each other about them is left to the resolver.
        if memory_a.related_entities & memory_b.related_entities:
            conflicts.append(ConflictType.ENTITY)

        if memory_a.tags & memory_b.tags:
            conflicts.append(ConflictType.TAG)

        if abs(memory_a.importance - memory_b.importance) > self.config.importance_conflict_threshold:
            conflicts.append(ConflictType.IMPORTANCE)

        if self._has_emotion_conflict(memory_a, memory_b):
            conflicts.append(ConflictType.EMOTION)

        return conflicts

    def _has_time_conflict(self, memory_a: Memory, memory_b: Memory) -> bool:
        if abs(memory_a.created_at - memory_b.created_at) >= self.config.time_window_seconds:
            return False
        return _mentions_time(memory_a.content) and _mentions_time(memory_b.content)

    def _has_emotion_conflict(self, memory_a: Memory, memory_b: Memory) -> bool:
        va, vb = memory_a.emotional_valence, memory_b.emotional_valence
        opposite = (va > 0 and vb < 0) or (va < 0 and vb > 0)
        return opposite and abs(va - vb) > self.config.polarity_threshold


def _mentions_time(content: str) -> bool:
    lowered = content.lower()
    return any(keyword in lowered for keyword in TIME_KEYWORDS)


class ConflictResolver(ABC):
    """Interface for conflict resolution strategies."""

    @abstractmethod
    def resolve(
        self, memory_a: Memory, memory_b: Memory, conflict_type: ConflictType
    ) -> ConflictResolution:
        pass

    def resolve_all(
        self, memory_a: Memory, memory_b: Memory, conflicts: Iterable[ConflictType]
    ) -> tuple[ConflictType, ConflictResolution]:
        """Resolve the dominant conflict of a detected set."""
        conflict_type = dominant_conflict(conflicts)
        return conflict_type, self.resolve(memory_a, memory_b, conflict_type)

    def clear_cache(self) -> None:
        pass

    def cleanup_expired(self) -> int:
        return 0

    def cache_stats(self) -> CacheStats | None:
        return None


@dataclass(frozen=True)
class _Decision:
    """Cached part of a resolution. The memory itself is rebuilt per call."""
    strategy: ResolveStrategy
    explanation: str
    confidence: float
    kept: str | None = None  # "a" or "b" when one input wins unchanged


_MERGE_DECISIONS = {
    ConflictType.TIME: _Decision(
        ResolveStrategy.MERGE_SMART, "Time conflict, kept the later timestamps", 0.9
    ),
    ConflictType.ENTITY: _Decision(
        ResolveStrategy.MERGE_SMART, "Entity conflict, merged all related entities", 0.85
    ),
    ConflictType.TAG: _Decision(
        ResolveStrategy.MERGE_SMART, "Tag conflict, merged all tags", 0.9
    ),
    ConflictType.EMOTION: _Decision(
        ResolveStrategy.MERGE_SMART, "Emotion conflict, averaged the valence", 0.75
    ),
}


class SmartConflictResolver(ConflictResolver):
    """Per-type resolution rules with memoised decisions.

    Only the decision (strategy, winner, confidence) is cached; the resolved
    memory is always built from the memories passed in, so fields outside
    the fingerprint (category, access counts, timestamps) are never rolled back.
    """

    def __init__(self, config: ConflictConfig | None = None):
        self.config = config or ConflictConfig()
        self._decision_cache: BoundedCache[tuple, _Decision] = BoundedCache(
            max_size=self.config.cache_size,
            ttl_seconds=self.config.cache_ttl_seconds,
            name="conflict-resolution",
        )
        self._builders = {
            ConflictType.CONTENT: self._combine_content,
            ConflictType.TIME: self._merge_time,
            ConflictType.ENTITY: self._merge_entities,
            ConflictType.TAG: self._merge_tags,
            ConflictType.EMOTION: self._average_emotion,
        }

    def resolve(
        self, memory_a: Memory, memory_b: Memory, conflict_type: ConflictType
    ) -> ConflictResolution:
        cache_key = (
            memory_a.id, memory_b.id, conflict_type,
            memory_a.fingerprint(), memory_b.fingerprint(),
        )
        decision = self._decision_cache.get(cache_key)
        if decision is None:
            decision = self._decide(memory_a, memory_b, conflict_type)
            self._decision_cache.put(cache_key, decision)

        if decision.kept == "a":
            resolved = replace(memory_a)
        elif decision.kept == "b":
            resolved = replace(memory_b)
        else:
            resolved = self._builders[conflict_type](memory_a, memory_b)

        logger.debug(
            "[Conflict] %s vs %s: %s -> %s (%.2f)",
            memory_a.id, memory_b.id, conflict_type.value,
            decision.strategy.value, decision.confidence,
        )
        return ConflictResolution(
            strategy=decision.strategy,
            resolved_memory=resolved,
            explanation=decision.explanation,
            confidence=decision.confidence,
        )

    def _decide(self, a: Memory, b: Memory, conflict_type: ConflictType) -> _Decision:
        if conflict_type == ConflictType.CONTENT:
            return self._decide_content(a, b)
        if conflict_type == ConflictType.IMPORTANCE:
            return _Decision(
                ResolveStrategy.KEEP_MORE_IMPORTANT,
                "Importance conflict, kept the more important memory",
                0.9,
                kept="a" if a.importance >= b.importance else "b",
            )
        return _MERGE_DECISIONS[conflict_type]

    def _decide_content(self, a: Memory, b: Memory) -> _Decision:
        if abs(a.importance - b.importance) > self.config.importance_gap_for_keep:
            return _Decision(
                ResolveStrategy.KEEP_MORE_IMPORTANT,
                "Content conflict, kept the more important memory",
                0.8,
                kept="a" if a.importance > b.importance else "b",
            )

        if abs(a.created_at - b.created_at) > self.config.latest_gap_days * SECONDS_PER_DAY:
            return _Decision(
                ResolveStrategy.KEEP_LATEST,
                "Content conflict far apart in time, kept the latest memory",
                0.7,
                kept="a" if a.created_at > b.created_at else "b",
            )

        return _Decision(
            ResolveStrategy.CREATE_COMBINED, "Content conflict, combined both versions", 0.6
        )

    # ==================== Builders ====================

    def _combine_content(self, a: Memory, b: Memory) -> Memory:
        return replace(
            a,
            content=f"version 1: {a.content} | version 2: {b.content}",
            importance=max(a.importance, b.importance),
            last_accessed_at=time.time(),
        )

    def _merge_time(self, a: Memory, b: Memory) -> Memory:
        return replace(
            a,
            created_at=max(a.created_at, b.created_at),
            last_accessed_at=max(a.last_accessed_at, b.last_accessed_at),
        )

    def _merge_entities(self, a: Memory, b: Memory) -> Memory:
        return replace(
            a,
            related_entities=a.related_entities | b.related_entities,
            last_accessed_at=time.time(),
        )

    def _merge_tags(self, a: Memory, b: Memory) -> Memory:
        return replace(a, tags=a.tags | b.tags, last_accessed_at=time.time())

    def _average_emotion(self, a: Memory, b: Memory) -> Memory:
        return replace(
            a,
            emotional_valence=(a.emotional_valence + b.emotional_valence) / 2,
            last_accessed_at=time.time(),
        )

    def clear_cache(self) -> None:
        self._decision_cache.clear()

    def cleanup_expired(self) -> int:
        return self._decision_cache.cleanup_expired()

    def cache_stats(self) -> CacheStats:
        return self._decision_cache.stats()


class SimpleConflictResolver(ConflictResolver):
    """Always keeps the most recently created memory."""

    def resolve(
        self, memory_a: Memory, memory_b: Memory, conflict_type: ConflictType
    ) -> ConflictResolution:
        kept = memory_a if memory_a.created_at > memory_b.created_at else memory_b
        return ConflictResolution(
            strategy=ResolveStrategy.KEEP_LATEST,
            resolved_memory=kept,
            explanation="Simple strategy: kept the latest memory",
            confidence=0.5,
        )


def create_conflict_resolver(
    name: str = "smart", config: ConflictConfig | None = None
) -> ConflictResolver:
    """Factory for conflict resolvers ("smart" or "simple")."""
    if name == "smart":
        return SmartConflictResolver(config)
    if name == "simple":
        return SimpleConflictResolver()
    raise ValueError(f"Unknown conflict resolver: {name}")
