"""ReconstructionService - Rewrites, merges and reconciles stored memories.

Every mutation is persisted through the MemoryStore and leaves an
immutable ReconstructionRecord in an append-only history.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Iterable

from memlife.memory.errors import MemoryNotFoundError, UnsupportedReconstructionError
from memlife.memory.models import (
    Memory,
    ConflictType,
    ConflictResolution,
    ReconstructionRecord,
    ReconstructionType,
)
from memlife.memory.operators.conflict import (
    ConflictDetector,
    ConflictResolver,
    SmartConflictResolver,
    dominant_conflict,
)
from memlife.memory.operators.merge import MergeStrategy, SmartMergeStrategy
from memlife.memory.storage.base import MemoryStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconstructionResult:
    memory: Memory
    record: ReconstructionRecord


@dataclass(frozen=True)
class MergeOperationResult:
    success: bool
    similarity: float
    merged_memory: Memory | None = None
    record: ReconstructionRecord | None = None
    reason: str | None = None


@dataclass(frozen=True)
class MemoryPair:
    memory1: Memory
    memory2: Memory
    similarity: float


@dataclass(frozen=True)
class ConflictAnalysis:
    memory1: Memory
    memory2: Memory
    conflicts: list[ConflictType]
    similarity: float

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)


@dataclass(frozen=True)
class ConflictResolutionResult:
    original_memory1: Memory
    original_memory2: Memory
    conflict_type: ConflictType
    resolution: ConflictResolution
    record: ReconstructionRecord


# type -> (similarity, confidence) recorded for single-memory rewrites
_REWRITE_SCORES = {
    ReconstructionType.APPEND: (1.0, 0.9),
    ReconstructionType.UPDATE: (0.8, 0.8),
    ReconstructionType.REPLACE: (0.5, 0.7),
    ReconstructionType.CORRECTION: (0.6, 0.85),
    ReconstructionType.REINTERPRETATION: (0.9, 0.75),
}


class ReconstructionService:
    """Applies rewrites, merges and conflict resolutions to stored memories."""

    def __init__(
        self,
        store: MemoryStore,
        merge_strategy: MergeStrategy | None = None,
        conflict_resolver: ConflictResolver | None = None,
        conflict_detector: ConflictDetector | None = None,
    ):
        self.store = store
        self.merge_strategy = merge_strategy or SmartMergeStrategy()
        self.conflict_resolver = conflict_resolver or SmartConflictResolver()
        self.conflict_detector = conflict_detector or ConflictDetector()
        self._history: list[ReconstructionRecord] = []

    async def _require(self, memory_id: str) -> Memory:
        memory = await self.store.get(memory_id)
        if memory is None:
            raise MemoryNotFoundError(memory_id)
        return memory

    def _record(self, record: ReconstructionRecord) -> None:
        self._history.append(record)
        logger.debug("[Reconstruction] %s", record.summary())

    # ==================== Single-memory rewrites ====================

    async def reconstruct_memory(
        self,
        memory_id: str,
        reconstruction_type: ReconstructionType,
        new_content: str,
        reason: str,
    ) -> ReconstructionResult:
        """Rewrite one memory's content.

        Raises:
            MemoryNotFoundError: if the id is unknown
            UnsupportedReconstructionError: for MERGE (use merge_memories)
        """
        if reconstruction_type == ReconstructionType.MERGE:
            raise UnsupportedReconstructionError("Use merge_memories() for MERGE operations")

        existing = await self._require(memory_id)

        if reconstruction_type == ReconstructionType.APPEND:
            content = f"{existing.content}\n\nSupplement: {new_content}"
        elif reconstruction_type == ReconstructionType.REINTERPRETATION:
            content = f"{existing.content}\n\nReinterpretation: {new_content}"
        else:
            content = new_content

        updated = replace(
            existing,
            content=content,
            access_count=existing.access_count + 1,
            last_accessed_at=time.time(),
        )
        await self.store.store(updated)

        similarity, confidence = _REWRITE_SCORES[reconstruction_type]
        record = ReconstructionRecord.create(
            source_id=existing.id,
            target_id=updated.id,
            type=reconstruction_type,
            reason=reason,
            old_content=existing.content,
            new_content=content,
            similarity=similarity,
            confidence=confidence,
        )
        self._record(record)
        logger.info("[Reconstruction] %s applied to %s", reconstruction_type.value, memory_id)
        return ReconstructionResult(memory=updated, record=record)

    # ==================== Merge ====================

    async def merge_memories(self, memory_id1: str, memory_id2: str) -> MergeOperationResult:
        """Merge memory 2 into memory 1 when they are similar enough.

        The merged record keeps ``memory_id1``. Nothing is persisted when
        the pair is below the merge threshold.
        """
        memory1 = await self._require(memory_id1)
        memory2 = await self._require(memory_id2)

        similarity = self.merge_strategy.calculate_similarity(memory1, memory2)
        if not self.merge_strategy.should_merge(memory1, memory2):
            logger.debug(
                "[Reconstruction] %s/%s not merged, similarity %.2f",
                memory_id1, memory_id2, similarity,
            )
            return MergeOperationResult(
                success=False,
                similarity=similarity,
                reason=f"Similarity too low ({similarity:.2f}), no merge needed",
            )

        result = self.merge_strategy.merge(memory1, memory2)
        if not result.was_merged:
            return MergeOperationResult(
                success=False, similarity=similarity, reason=result.record.reason
            )

        await self.store.store(result.merged_memory)
        self._record(result.record)
        logger.info("[Reconstruction] Merged %s into %s", memory_id2, memory_id1)
        return MergeOperationResult(
            success=True,
            similarity=similarity,
            merged_memory=result.merged_memory,
            record=result.record,
        )

    async def find_candidates(self, threshold: float = 0.5) -> list[MemoryPair]:
        """All unordered pairs with similarity >= threshold, most similar first."""
        memories = await self.store.get_all()
        candidates: list[MemoryPair] = []

        for i, memory1 in enumerate(memories):
            for memory2 in memories[i + 1:]:
                similarity = self.merge_strategy.calculate_similarity(memory1, memory2)
                if similarity >= threshold:
                    candidates.append(MemoryPair(memory1, memory2, similarity))

        candidates.sort(key=lambda p: p.similarity, reverse=True)
        return candidates

    # ==================== Conflicts ====================

    async def detect_conflict(self, memory_id1: str, memory_id2: str) -> ConflictAnalysis:
        memory1 = await self._require(memory_id1)
        memory2 = await self._require(memory_id2)

        return ConflictAnalysis(
            memory1=memory1,
            memory2=memory2,
            conflicts=self.conflict_detector.detect(memory1, memory2),
            similarity=self.merge_strategy.calculate_similarity(memory1, memory2),
        )

    async def resolve_conflict(
        self,
        memory_id1: str,
        memory_id2: str,
        conflict_types: Iterable[ConflictType],
    ) -> ConflictResolutionResult:
        """Resolve the most severe of ``conflict_types`` and persist the outcome.

        Raises:
            MemoryNotFoundError: if either id is unknown
            NoConflictError: if ``conflict_types`` is empty
        """
        memory1 = await self._require(memory_id1)
        memory2 = await self._require(memory_id2)

        conflict_type = dominant_conflict(conflict_types)
        resolution = self.conflict_resolver.resolve(memory1, memory2, conflict_type)
        resolved = resolution.resolved_memory

        await self.store.store(resolved)

        old = memory1 if resolved.id == memory1.id else memory2
        record = ReconstructionRecord.create(
            source_id=memory1.id,
            target_id=resolved.id,
            type=ReconstructionType.UPDATE,
            reason=resolution.explanation,
            old_content=old.content,
            new_content=resolved.content,
            similarity=self.merge_strategy.calculate_similarity(memory1, memory2),
            confidence=resolution.confidence,
            metadata={
                "strategy": resolution.strategy.value,
                "conflict_type": conflict_type.value,
                "other_id": memory2.id,
            },
        )
        self._record(record)
        logger.info(
            "[Reconstruction] Resolved %s conflict between %s and %s via %s",
            conflict_type.value, memory_id1, memory_id2, resolution.strategy.value,
        )
        return ConflictResolutionResult(
            original_memory1=memory1,
            original_memory2=memory2,
            conflict_type=conflict_type,
            resolution=resolution,
            record=record,
        )

    # ==================== History ====================

    def get_history(self, memory_id: str) -> list[ReconstructionRecord]:
        """Audit records where the memory is source or target, oldest first."""
        return [
            r for r in self._history
            if r.source_id == memory_id or r.target_id == memory_id
        ]

    def clear_caches(self) -> None:
        self.merge_strategy.clear_cache()
        self.conflict_resolver.clear_cache()

    def cleanup_expired(self) -> int:
        return self.merge_strategy.cleanup_expired() + self.conflict_resolver.cleanup_expired()
