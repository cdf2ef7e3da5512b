"""MergeStrategy - Folds similar memories together.

similarity = 0.4 * content + 0.3 * entity + 0.2 * tag + 0.1 * time

Pairs scoring at or above the merge threshold are combined into a single
record that keeps the primary's identity.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace

from memlife.memory.cache import BoundedCache, CacheStats
from memlife.memory.models import (
    Memory,
    MemoryCategory,
    ReconstructionRecord,
    ReconstructionType,
)
from memlife.memory.operators.similarity import (
    content_similarity,
    jaccard,
    time_similarity,
)

logger = logging.getLogger(__name__)


@dataclass
class MergeConfig:
    """Configuration for memory merging."""
    merge_threshold: float = 0.5      # Min similarity to merge
    keep_longer_threshold: float = 0.8  # Content similarity above which the longer text wins

    # Similarity weights
    content_weight: float = 0.4
    entity_weight: float = 0.3
    tag_weight: float = 0.2
    time_weight: float = 0.1

    # Memoisation
    cache_size: int = 1000
    cache_ttl_seconds: float | None = 3600.0


@dataclass(frozen=True)
class MergeResult:
    merged_memory: Memory
    record: ReconstructionRecord
    was_merged: bool


class MergeStrategy(ABC):
    """Interface for merging two similar memories."""

    @abstractmethod
    def calculate_similarity(self, memory_a: Memory, memory_b: Memory) -> float:
        """Similarity score in [0, 1]."""
        pass

    @abstractmethod
    def should_merge(self, memory_a: Memory, memory_b: Memory) -> bool:
        pass

    @abstractmethod
    def merge(self, primary: Memory, secondary: Memory) -> MergeResult:
        """Merge ``secondary`` into ``primary``. The result keeps ``primary.id``."""
        pass

    def clear_cache(self) -> None:
        pass

    def cleanup_expired(self) -> int:
        return 0

    def cache_stats(self) -> CacheStats | None:
        return None


def _merged_category(a: Memory, b: Memory) -> MemoryCategory:
    # Never demote
    if a.is_long_term or b.is_long_term:
        return MemoryCategory.LONG_TERM
    return MemoryCategory.SHORT_TERM


class SmartMergeStrategy(MergeStrategy):
    """Weighted multi-signal merge with memoised similarity scores."""

    def __init__(self, config: MergeConfig | None = None):
        self.config = config or MergeConfig()
        self._similarity_cache: BoundedCache[tuple, float] = BoundedCache(
            max_size=self.config.cache_size,
            ttl_seconds=self.config.cache_ttl_seconds,
            name="merge-similarity",
        )

    def calculate_similarity(self, memory_a: Memory, memory_b: Memory) -> float:
        # Fingerprints keep a re-merged record from being served a stale score
        cache_key = (memory_a.id, memory_b.id, memory_a.fingerprint(), memory_b.fingerprint())
        cached = self._similarity_cache.get(cache_key)
        if cached is not None:
            return cached

        cfg = self.config
        score = (
            content_similarity(memory_a.content, memory_b.content) * cfg.content_weight
            + jaccard(memory_a.related_entities, memory_b.related_entities) * cfg.entity_weight
            + jaccard(memory_a.tags, memory_b.tags) * cfg.tag_weight
            + time_similarity(memory_a.created_at, memory_b.created_at) * cfg.time_weight
        )
        score = max(0.0, min(1.0, score))

        self._similarity_cache.put(cache_key, score)
        return score

    def should_merge(self, memory_a: Memory, memory_b: Memory) -> bool:
        return self.calculate_similarity(memory_a, memory_b) >= self.config.merge_threshold

    def merge(self, primary: Memory, secondary: Memory) -> MergeResult:
        similarity = self.calculate_similarity(primary, secondary)

        if similarity < self.config.merge_threshold:
            logger.debug(
                "[Merge] %s and %s below threshold (%.2f), kept separate",
                primary.id, secondary.id, similarity,
            )
            record = ReconstructionRecord.create(
                source_id=primary.id,
                target_id=primary.id,
                type=ReconstructionType.MERGE,
                reason="Similarity below threshold, kept separate",
                old_content=primary.content,
                new_content=primary.content,
                similarity=similarity,
                confidence=0.0,
                metadata={"merged": False, "secondary_id": secondary.id},
            )
            return MergeResult(merged_memory=primary, record=record, was_merged=False)

        merged_content = self._merge_content(primary.content, secondary.content)
        merged = replace(
            primary,
            content=merged_content,
            importance=max(primary.importance, secondary.importance),
            related_entities=primary.related_entities | secondary.related_entities,
            tags=primary.tags | secondary.tags,
            category=_merged_category(primary, secondary),
            access_count=max(primary.access_count, secondary.access_count) + 1,
            last_accessed_at=time.time(),
        )

        record = ReconstructionRecord.create(
            source_id=primary.id,
            target_id=merged.id,
            type=ReconstructionType.MERGE,
            reason=f"Merged similar memories (similarity: {similarity:.2f})",
            old_content=f"{primary.content} | {secondary.content}",
            new_content=merged_content,
            similarity=similarity,
            confidence=similarity,
            metadata={"merged": True, "secondary_id": secondary.id},
        )
        logger.debug("[Merge] %s <- %s (similarity %.2f)", primary.id, secondary.id, similarity)
        return MergeResult(merged_memory=merged, record=record, was_merged=True)

    def _merge_content(self, content_a: str, content_b: str) -> str:
        if content_similarity(content_a, content_b) > self.config.keep_longer_threshold:
            return content_a if len(content_a) >= len(content_b) else content_b
        return f"{content_a.strip()} [supplement: {content_b.strip()}]"

    def clear_cache(self) -> None:
        self._similarity_cache.clear()

    def cleanup_expired(self) -> int:
        return self._similarity_cache.cleanup_expired()

    def cache_stats(self) -> CacheStats:
        return self._similarity_cache.stats()


class SimpleMergeStrategy(MergeStrategy):
    """Always merges by keeping the longer content."""

    def calculate_similarity(self, memory_a: Memory, memory_b: Memory) -> float:
        return 0.5

    def should_merge(self, memory_a: Memory, memory_b: Memory) -> bool:
        return True

    def merge(self, primary: Memory, secondary: Memory) -> MergeResult:
        content = primary.content if len(primary.content) >= len(secondary.content) else secondary.content
        merged = replace(
            primary,
            content=content,
            category=_merged_category(primary, secondary),
            last_accessed_at=time.time(),
        )
        record = ReconstructionRecord.create(
            source_id=primary.id,
            target_id=merged.id,
            type=ReconstructionType.MERGE,
            reason="Simple content replacement",
            old_content=primary.content,
            new_content=content,
            similarity=0.5,
            confidence=0.5,
            metadata={"merged": True, "secondary_id": secondary.id},
        )
        return MergeResult(merged_memory=merged, record=record, was_merged=True)


def create_merge_strategy(name: str = "smart", config: MergeConfig | None = None) -> MergeStrategy:
    """Factory for merge strategies ("smart" or "simple")."""
    if name == "smart":
        return SmartMergeStrategy(config)
    if name == "simple":
        return SimpleMergeStrategy()
    raise ValueError(f"Unknown merge strategy: {name}")
