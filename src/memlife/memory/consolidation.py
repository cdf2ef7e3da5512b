"""ConsolidationPipeline - Promotes short-term memories to long-term.

Stages per character:
1. Preliminary filter: old enough, minimally valuable, not temporary
2. Context grouping: greedy anchor-based groups of related memories
3. Batch scoring: external scorer per group, rule fallback on failure
4. Decision execution: consolidate / defer / reject
5. Adaptive feedback: decision log, statistics, per-character threshold
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Callable

from memlife.memory.models import (
    Memory,
    MemoryCategory,
    ConsolidationDecision,
    ConsolidationDecisionRecord,
    ConsolidationStatistics,
)
from memlife.memory.operators.similarity import (
    content_similarity,
    days_between,
    normalized_content_similarity,
    recency_score,
)
from memlife.memory.scorer import (
    EvaluationContext,
    MemoryEvaluation,
    MemoryStats,
    Scorer,
    ScorerClient,
    ScorerConfig,
)
from memlife.memory.storage.base import CharacterProfileSource, MemoryStore, ThresholdStore
from memlife.memory.storage.in_memory import InMemoryThresholdStore

logger = logging.getLogger(__name__)


@dataclass
class ConsolidationConfig:
    """Configuration for the consolidation pipeline."""
    # Stage 1
    min_age_days: float = 1.0
    min_importance: float = 0.2
    excluded_tags: tuple[str, ...] = ("temporary", "system_generated")

    # Stage 2
    relevance_threshold: float = 0.3
    max_group_size: int = 5

    # Stage 3
    related_memory_limit: int = 5
    related_similarity_threshold: float = 0.3
    relationship_limit: int = 3
    batch_delay_seconds: float = 0.1    # Pause between scorer calls
    scorer: ScorerConfig = field(default_factory=ScorerConfig)

    # Stage 4
    confidence_threshold: float = 0.6
    use_adaptive_threshold: bool = False  # Compare against the stored per-character threshold instead

    # Stage 5
    default_threshold: float = 0.5
    threshold_step: float = 0.05
    threshold_max: float = 0.9
    threshold_min: float = 0.1
    min_decisions_for_analysis: int = 5
    lenient_rate: float = 0.8
    lenient_score: float = 0.7
    strict_rate: float = 0.3
    strict_score: float = 0.4


@dataclass(frozen=True)
class ConsolidationDetail:
    memory_id: str
    content_preview: str
    decision: ConsolidationDecision
    reasoning: str
    confidence: float
    score: float | None = None


@dataclass(frozen=True)
class DecisionPatternAnalysis:
    """Outcome of the adaptive threshold check for one batch of decisions."""
    character_id: str
    decision_count: int
    consolidated_rate: float
    avg_score: float
    importance_gap: float
    threshold_before: float
    threshold_after: float

    @property
    def adjustment(self) -> str:
        if self.threshold_after > self.threshold_before:
            return "increase"
        if self.threshold_after < self.threshold_before:
            return "decrease"
        return "none"


@dataclass
class ConsolidationResult:
    total_evaluated: int = 0
    consolidated: int = 0
    deferred: int = 0
    rejected: int = 0
    details: list[ConsolidationDetail] = field(default_factory=list)
    threshold: float | None = None
    analysis: DecisionPatternAnalysis | None = None

    def summary(self) -> str:
        return (
            f"evaluated={self.total_evaluated} consolidated={self.consolidated} "
            f"deferred={self.deferred} rejected={self.rejected}"
        )


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class ConsolidationPipeline:
    """Runs consolidation passes for one character at a time."""

    def __init__(
        self,
        store: MemoryStore,
        scorer: Scorer | None = None,
        profiles: CharacterProfileSource | None = None,
        thresholds: ThresholdStore | None = None,
        config: ConsolidationConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.config = config or ConsolidationConfig()
        self.scorer = ScorerClient(scorer, self.config.scorer)
        self.profiles = profiles
        self.thresholds = thresholds or InMemoryThresholdStore()
        self._clock = clock

    async def consolidate(self, character_id: str) -> ConsolidationResult:
        """Run one full pass for ``character_id``.

        Scorer problems never escape; persistence failures of single items
        are reported as deferrals.
        """
        now = self._clock()
        all_memories = [m for m in await self.store.get_all() if m.character_id == character_id]
        short_term = [m for m in all_memories if m.category == MemoryCategory.SHORT_TERM]

        if not short_term:
            return ConsolidationResult(threshold=await self._current_threshold(character_id))

        # Stage 1
        candidates = self.preliminary_filter(short_term, now)
        logger.debug(
            "[Consolidation] %s: filter %d -> %d candidates",
            character_id, len(short_term), len(candidates),
        )

        # Stage 2 + 3
        evaluations = await self._evaluate(candidates, all_memories, character_id, now)

        # Stage 4
        threshold = await self._current_threshold(character_id)
        decision_threshold = (
            threshold if self.config.use_adaptive_threshold else self.config.confidence_threshold
        )
        result = await self._execute(evaluations, decision_threshold, now)

        # Stage 5
        result.analysis = await self._record_decisions(character_id, evaluations, now)
        result.threshold = (
            result.analysis.threshold_after if result.analysis else threshold
        )

        logger.info("[Consolidation] %s: %s", character_id, result.summary())
        return result

    # ==================== Stage 1 ====================

    def preliminary_filter(self, memories: list[Memory], now: float | None = None) -> list[Memory]:
        now = self._clock() if now is None else now
        cfg = self.config
        return [
            m for m in memories
            if m.age_days(now) >= cfg.min_age_days
            and (m.importance > cfg.min_importance or m.access_count > 0)
            and not any(tag in m.tags for tag in cfg.excluded_tags)
        ]

    # ==================== Stage 2 ====================

    def group_by_context(self, memories: list[Memory]) -> list[list[Memory]]:
        """Greedy grouping around the earliest unassigned memory."""
        ungrouped = sorted(memories, key=lambda m: m.created_at)
        groups: list[list[Memory]] = []

        while ungrouped:
            anchor = ungrouped.pop(0)
            group = [anchor]
            remaining: list[Memory] = []
            for candidate in ungrouped:
                if (
                    len(group) < self.config.max_group_size
                    and self.relevance(anchor, candidate) >= self.config.relevance_threshold
                ):
                    group.append(candidate)
                else:
                    remaining.append(candidate)
            ungrouped = remaining
            groups.append(group)

        return groups

    @staticmethod
    def relevance(anchor: Memory, candidate: Memory) -> float:
        """0.2 recency + 0.3 tag overlap + 0.2 emotion match + 0.3 content similarity."""
        time_score = recency_score(days_between(anchor.created_at, candidate.created_at))

        tag_score = (
            len(anchor.tags & candidate.tags) / len(anchor.tags) if anchor.tags else 0.0
        )

        if anchor.emotion_tag is not None and anchor.emotion_tag == candidate.emotion_tag:
            emotion_score = 0.6
        elif anchor.emotion_intensity is not None and candidate.emotion_intensity is not None:
            diff = abs(anchor.emotion_intensity - candidate.emotion_intensity)
            if diff <= 0.1:
                emotion_score = 0.5
            elif diff <= 0.3:
                emotion_score = 0.3
            else:
                emotion_score = 0.1
        else:
            emotion_score = 0.0

        content_score = normalized_content_similarity(anchor.content, candidate.content)

        score = time_score * 0.2 + tag_score * 0.3 + emotion_score * 0.2 + content_score * 0.3
        return max(0.0, min(1.0, score))

    # ==================== Stage 3 ====================

    async def build_context(
        self, group: list[Memory], all_memories: list[Memory], character_id: str
    ) -> EvaluationContext:
        cfg = self.config
        related = [
            m for m in all_memories
            if m.is_long_term and any(
                content_similarity(c.content, m.content) > cfg.related_similarity_threshold
                or c.tags & m.tags
                for c in group
            )
        ][:cfg.related_memory_limit]

        profile = None
        relationships: list[str] = []
        if self.profiles is not None:
            profile = await self.profiles.get_profile(character_id)
            relationships = (await self.profiles.get_relationships(character_id))[:cfg.relationship_limit]

        return EvaluationContext(
            character_name=profile.name if profile and profile.name else "Unknown character",
            profile=profile,
            related_long_term=related,
            relationships=relationships,
            stats=MemoryStats.from_memories(all_memories),
        )

    async def _evaluate(
        self,
        candidates: list[Memory],
        all_memories: list[Memory],
        character_id: str,
        now: float,
    ) -> list[MemoryEvaluation]:
        evaluations: list[MemoryEvaluation] = []
        groups = self.group_by_context(candidates)

        for index, group in enumerate(groups):
            context = await self.build_context(group, all_memories, character_id)
            evaluations.extend(await self.scorer.evaluate(group, context, now))
            logger.debug(
                "[Consolidation] Group %d/%d scored (%d memories)",
                index + 1, len(groups), len(group),
            )
            if self.scorer.available and index < len(groups) - 1 and self.config.batch_delay_seconds > 0:
                await asyncio.sleep(self.config.batch_delay_seconds)

        return evaluations

    # ==================== Stage 4 ====================

    async def _execute(
        self, evaluations: list[MemoryEvaluation], threshold: float, now: float
    ) -> ConsolidationResult:
        result = ConsolidationResult()

        for evaluation in evaluations:
            memory = evaluation.memory
            decision = ConsolidationDecision.REJECTED
            reasoning = evaluation.reasoning

            # Rule-based verdicts are applied as-is; their confidence only marks provenance
            confident = evaluation.is_fallback or evaluation.confidence > threshold

            if evaluation.should_consolidate and confident:
                promoted = replace(memory, category=MemoryCategory.LONG_TERM, last_accessed_at=now)
                try:
                    await self.store.store(promoted)
                    decision = ConsolidationDecision.CONSOLIDATED
                except Exception as e:
                    logger.warning("[Consolidation] Failed to persist %s: %s", memory.id, e)
                    decision = ConsolidationDecision.DEFERRED
                    reasoning = f"persistence failed ({e}): {evaluation.reasoning}"
            elif evaluation.should_consolidate:
                decision = ConsolidationDecision.DEFERRED
                reasoning = f"low confidence, deferred: {evaluation.reasoning}"

            if decision == ConsolidationDecision.CONSOLIDATED:
                result.consolidated += 1
            elif decision == ConsolidationDecision.DEFERRED:
                result.deferred += 1
            else:
                result.rejected += 1

            result.details.append(ConsolidationDetail(
                memory_id=memory.id,
                content_preview=memory.summarize(),
                decision=decision,
                reasoning=reasoning,
                confidence=evaluation.confidence,
                score=evaluation.score,
            ))
            logger.debug("[Consolidation] %s -> %s", memory.id, decision.value)

        result.total_evaluated = len(evaluations)
        return result

    # ==================== Stage 5 ====================

    async def _current_threshold(self, character_id: str) -> float:
        try:
            stored = await self.thresholds.get_threshold(character_id)
        except Exception as e:
            logger.warning("[Consolidation] Could not read threshold for %s: %s", character_id, e)
            stored = None
        return stored if stored is not None else self.config.default_threshold

    async def _record_decisions(
        self, character_id: str, evaluations: list[MemoryEvaluation], now: float
    ) -> DecisionPatternAnalysis | None:
        if not evaluations:
            return None

        records = [
            ConsolidationDecisionRecord(
                character_id=character_id,
                memory_id=e.memory.id,
                was_consolidated=e.should_consolidate,
                score=e.score or 0.0,
                confidence=e.confidence,
                memory_importance=e.memory.importance,
                memory_access_count=e.memory.access_count,
                memory_age_days=e.memory.age_days(now),
                reasoning=e.reasoning,
                timestamp=now,
            )
            for e in evaluations
        ]

        try:
            await self.thresholds.append_decision_log(records)
        except Exception as e:
            logger.warning("[Consolidation] Failed to append decision log for %s: %s", character_id, e)

        await self._update_statistics(character_id, records, now)

        try:
            return await self.adapt_threshold(character_id, records)
        except Exception as e:
            logger.warning("[Consolidation] Threshold adaptation failed for %s: %s", character_id, e)
            return None

    async def _update_statistics(
        self, character_id: str, records: list[ConsolidationDecisionRecord], now: float
    ) -> None:
        try:
            stats = await self.thresholds.get_statistics(character_id)
            stats = stats or ConsolidationStatistics(character_id=character_id)

            total = stats.total_decisions + len(records)
            stats.avg_score = (
                stats.avg_score * stats.total_decisions + sum(r.score for r in records)
            ) / total
            stats.avg_confidence = (
                stats.avg_confidence * stats.total_decisions + sum(r.confidence for r in records)
            ) / total
            stats.total_decisions = total
            stats.total_consolidated += sum(1 for r in records if r.was_consolidated)
            stats.last_updated = now

            await self.thresholds.save_statistics(stats)
        except Exception as e:
            logger.warning("[Consolidation] Failed to update statistics for %s: %s", character_id, e)

    async def adapt_threshold(
        self, character_id: str, records: list[ConsolidationDecisionRecord]
    ) -> DecisionPatternAnalysis | None:
        """Nudge the stored threshold when the scorer looks too lenient or too strict.

        Returns None when there are too few decisions to judge.
        """
        cfg = self.config
        if len(records) < cfg.min_decisions_for_analysis:
            return None

        consolidated_rate = sum(1 for r in records if r.was_consolidated) / len(records)
        avg_score = _mean([r.score for r in records])
        importance_gap = (
            _mean([r.memory_importance for r in records if r.was_consolidated])
            - _mean([r.memory_importance for r in records if not r.was_consolidated])
        )

        before = await self._current_threshold(character_id)
        after = before
        if consolidated_rate > cfg.lenient_rate and avg_score > cfg.lenient_score:
            after = min(cfg.threshold_max, before + cfg.threshold_step)
            logger.info("[Consolidation] Scorer lenient for %s, raising threshold", character_id)
        elif consolidated_rate < cfg.strict_rate and avg_score < cfg.strict_score:
            after = max(cfg.threshold_min, before - cfg.threshold_step)
            logger.info("[Consolidation] Scorer strict for %s, lowering threshold", character_id)

        if after != before:
            await self.thresholds.save_threshold(character_id, after)

        return DecisionPatternAnalysis(
            character_id=character_id,
            decision_count=len(records),
            consolidated_rate=consolidated_rate,
            avg_score=avg_score,
            importance_gap=importance_gap,
            threshold_before=before,
            threshold_after=after,
        )
