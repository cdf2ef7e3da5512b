"""ProceduralMemoryManager - Learning curve and decay for how-to memories.

Mechanics:
1. Learning curve: successful runs raise proficiency with diminishing returns
2. Reliability: success rate is an exponential moving average of outcomes
3. Automation: high proficiency after enough runs
4. Forgetting: unused skills lose proficiency over time

All mutations go through one lock over the in-memory working set.
Persistence is a separate flush step with its own lock, so a slow store
never blocks other callers of the manager.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Iterable

from memlife.memory.errors import ProceduralMemoryNotFoundError
from memlife.memory.models import SECONDS_PER_DAY
from memlife.memory.procedural.models import (
    Action,
    Condition,
    ExecutionRecord,
    LearningProgress,
    ProceduralMemory,
    ProceduralStatistics,
    ProceduralType,
)
from memlife.memory.storage.base import ProceduralMemoryStorage
from memlife.memory.storage.in_memory import InMemoryProceduralStorage

logger = logging.getLogger(__name__)


@dataclass
class ProceduralConfig:
    learning_rate: float = 0.05         # Gain per success, scaled by remaining headroom
    failure_penalty: float = 0.2        # Fraction of learning_rate lost on failure
    success_rate_alpha: float = 0.1     # EMA smoothing
    decay_rate: float = 0.01            # Proficiency lost per idle day
    history_limit: int = 100
    recent_window: int = 10
    min_proficiency: float = 0.3        # Default floor for find_matching


def _copy(memory: ProceduralMemory) -> ProceduralMemory:
    return replace(
        memory,
        conditions=list(memory.conditions),
        actions=list(memory.actions),
        tags=set(memory.tags),
        related_memory_ids=list(memory.related_memory_ids),
    )


class ProceduralMemoryManager:
    """Tracks skills, habits, rules, workflows and preference patterns."""

    def __init__(
        self,
        storage: ProceduralMemoryStorage | None = None,
        config: ProceduralConfig | None = None,
    ):
        self.storage = storage or InMemoryProceduralStorage()
        self.config = config or ProceduralConfig()

        self._memories: dict[str, ProceduralMemory] | None = None
        self._history: dict[str, deque[ExecutionRecord]] = {}
        self._initial_proficiency: dict[str, float] = {}

        self._lock = asyncio.Lock()
        self._flush_lock = asyncio.Lock()

    # ==================== Working set ====================

    async def _working_set(self) -> dict[str, ProceduralMemory]:
        """Lazily load from storage. Caller must hold ``_lock``."""
        if self._memories is None:
            loaded = await self.storage.get_all()
            self._memories = {m.id: m for m in loaded}
            logger.debug("[Procedural] Loaded %d memories", len(self._memories))
        return self._memories

    async def _flush(self, memory_ids: Iterable[str]) -> None:
        """Write the latest in-memory state of each id, or delete it if gone."""
        async with self._flush_lock:
            for memory_id in memory_ids:
                current = (self._memories or {}).get(memory_id)
                if current is None:
                    await self.storage.delete(memory_id)
                else:
                    await self.storage.save(_copy(current))

    # ==================== Core operations ====================

    async def create(
        self,
        name: str,
        type: ProceduralType,
        pattern: str = "",
        conditions: list[Condition] | None = None,
        actions: list[Action] | None = None,
        tags: Iterable[str] | None = None,
        related_memory_ids: list[str] | None = None,
    ) -> ProceduralMemory:
        """Create a new procedural memory at proficiency 0."""
        memory = ProceduralMemory(
            name=name,
            type=type,
            pattern=pattern,
            conditions=list(conditions or []),
            actions=list(actions or []),
            proficiency=0.0,
            tags=set(tags or []),
            related_memory_ids=list(related_memory_ids or []),
        )
        async with self._lock:
            memories = await self._working_set()
            memories[memory.id] = memory
            result = _copy(memory)

        await self._flush([memory.id])
        logger.info("[Procedural] Created: %s", memory.summary())
        return result

    async def get(self, memory_id: str) -> ProceduralMemory | None:
        async with self._lock:
            memory = (await self._working_set()).get(memory_id)
            return _copy(memory) if memory is not None else None

    async def execute(
        self,
        memory_id: str,
        success: bool,
        execution_time_ms: float,
        context: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> ProceduralMemory:
        """Record one execution and update proficiency, success rate and timing.

        Raises:
            ProceduralMemoryNotFoundError: if the id is unknown
        """
        cfg = self.config
        async with self._lock:
            memories = await self._working_set()
            memory = memories.get(memory_id)
            if memory is None:
                raise ProceduralMemoryNotFoundError(memory_id)

            self._initial_proficiency.setdefault(memory_id, memory.proficiency)
            history = self._history.setdefault(memory_id, deque(maxlen=cfg.history_limit))
            history.append(ExecutionRecord(
                procedural_memory_id=memory_id,
                success=success,
                execution_time_ms=execution_time_ms,
                context=dict(context or {}),
                error=error,
            ))

            old_proficiency = memory.proficiency
            if success:
                proficiency = old_proficiency + cfg.learning_rate * (1 - old_proficiency)
            else:
                proficiency = old_proficiency - cfg.learning_rate * cfg.failure_penalty
            proficiency = max(0.0, min(1.0, proficiency))

            outcome = 1.0 if success else 0.0
            if memory.execution_count > 0:
                success_rate = (
                    cfg.success_rate_alpha * outcome
                    + (1 - cfg.success_rate_alpha) * memory.success_rate
                )
                avg_time = (
                    memory.average_execution_time * memory.execution_count + execution_time_ms
                ) / (memory.execution_count + 1)
            else:
                success_rate = outcome
                avg_time = float(execution_time_ms)

            memory.proficiency = proficiency
            memory.success_rate = success_rate
            memory.average_execution_time = avg_time
            memory.execution_count += 1
            memory.last_executed_at = time.time()
            result = _copy(memory)

        await self._flush([memory_id])
        logger.info(
            "[Procedural] Executed %s | success=%s | proficiency %.2f -> %.2f | success rate %.2f",
            memory.name, success, old_proficiency, proficiency, success_rate,
        )
        return result

    async def find_matching(
        self,
        context: dict[str, Any],
        type: ProceduralType | None = None,
        min_proficiency: float | None = None,
    ) -> list[ProceduralMemory]:
        """Memories whose conditions all hold in ``context``, most proficient first."""
        if min_proficiency is None:
            min_proficiency = self.config.min_proficiency

        async with self._lock:
            memories = await self._working_set()
            matching = [
                _copy(m) for m in memories.values()
                if (type is None or m.type == type)
                and m.proficiency >= min_proficiency
                and all(c.evaluate(context) for c in m.conditions)
            ]

        matching.sort(key=lambda m: m.proficiency, reverse=True)
        logger.debug("[Procedural] %d memories matched", len(matching))
        return matching

    async def get_automated_skills(self) -> list[ProceduralMemory]:
        async with self._lock:
            memories = await self._working_set()
            automated = [_copy(m) for m in memories.values() if m.is_automated()]
        automated.sort(key=lambda m: m.proficiency, reverse=True)
        return automated

    async def apply_decay(self, days: int = 1, now: float | None = None) -> int:
        """Reduce proficiency of memories unused for at least ``days``.

        Returns:
            Number of memories whose proficiency changed
        """
        now = time.time() if now is None else now
        cutoff = now - days * SECONDS_PER_DAY
        decay_amount = self.config.decay_rate * days
        decayed: list[str] = []

        async with self._lock:
            memories = await self._working_set()
            for memory in memories.values():
                last_used = memory.last_executed_at or memory.created_at
                if last_used > cutoff:
                    continue
                new_proficiency = max(0.0, memory.proficiency - decay_amount)
                if new_proficiency != memory.proficiency:
                    logger.debug(
                        "[Procedural] Decay %s: %.2f -> %.2f",
                        memory.name, memory.proficiency, new_proficiency,
                    )
                    memory.proficiency = new_proficiency
                    decayed.append(memory.id)

        if decayed:
            await self._flush(decayed)
        logger.info("[Procedural] Decay applied to %d memories", len(decayed))
        return len(decayed)

    async def get_learning_progress(self, memory_id: str) -> LearningProgress:
        """Learning curve summary from the retained execution history.

        Raises:
            ProceduralMemoryNotFoundError: if the memory or its history is unknown
        """
        async with self._lock:
            history = self._history.get(memory_id)
            if not history:
                raise ProceduralMemoryNotFoundError(memory_id, what="Execution history")
            memory = (await self._working_set()).get(memory_id)
            if memory is None:
                raise ProceduralMemoryNotFoundError(memory_id)
            records = list(history)
            current = memory.proficiency
            initial = self._initial_proficiency.get(memory_id, 0.0)

        if len(records) > 1:
            successes = sum(1 for r in records if r.success)
            improvement_rate = successes / len(records) * self.config.learning_rate
        else:
            improvement_rate = 0.0

        recent = records[-self.config.recent_window:]
        recent_success_rate = sum(1 for r in recent if r.success) / len(recent)

        return LearningProgress(
            procedural_memory_id=memory_id,
            initial_proficiency=initial,
            current_proficiency=current,
            execution_history=records,
            improvement_rate=improvement_rate,
            recent_success_rate=recent_success_rate,
        )

    async def delete(self, memory_id: str) -> bool:
        async with self._lock:
            memories = await self._working_set()
            removed = memories.pop(memory_id, None)
            self._history.pop(memory_id, None)
            self._initial_proficiency.pop(memory_id, None)

        if removed is None:
            return False
        await self._flush([memory_id])
        logger.info("[Procedural] Deleted: %s", memory_id)
        return True

    # ==================== Queries ====================

    async def get_all(self) -> list[ProceduralMemory]:
        async with self._lock:
            return [_copy(m) for m in (await self._working_set()).values()]

    async def get_by_type(self, type: ProceduralType) -> list[ProceduralMemory]:
        return [m for m in await self.get_all() if m.type == type]

    async def get_by_tag(self, tag: str) -> list[ProceduralMemory]:
        return [m for m in await self.get_all() if tag in m.tags]

    async def get_statistics(self) -> ProceduralStatistics:
        memories = await self.get_all()
        by_type: dict[ProceduralType, int] = {}
        for m in memories:
            by_type[m.type] = by_type.get(m.type, 0) + 1

        count = len(memories)
        return ProceduralStatistics(
            total_count=count,
            by_type=by_type,
            automated_count=sum(1 for m in memories if m.is_automated()),
            proficient_count=sum(1 for m in memories if m.is_proficient()),
            avg_proficiency=sum(m.proficiency for m in memories) / count if count else 0.0,
            avg_success_rate=sum(m.success_rate for m in memories) / count if count else 0.0,
            total_executions=sum(m.execution_count for m in memories),
        )
