"""Tests for ReconstructionService and reconstruction records."""

from dataclasses import replace

import pytest

from memlife.memory.errors import (
    MemoryNotFoundError,
    NoConflictError,
    UnsupportedReconstructionError,
)
from memlife.memory.models import (
    Memory,
    MemoryCategory,
    ConflictType,
    ReconstructionRecord,
    ReconstructionType,
    ResolveStrategy,
    SECONDS_PER_DAY,
)
from memlife.memory.operators.merge import SimpleMergeStrategy
from memlife.memory.reconstruction import ReconstructionService
from memlife.memory.storage.in_memory import InMemoryMemoryStore


NOW = 1_700_000_000.0


def make_memory(content, **kwargs):
    kwargs.setdefault("created_at", NOW)
    kwargs.setdefault("last_accessed_at", NOW)
    return Memory(content=content, **kwargs)


class TestReconstructionRecord:
    """Tests for ReconstructionRecord."""

    def make_record(self, similarity, confidence):
        return ReconstructionRecord.create(
            source_id="a",
            target_id="a",
            type=ReconstructionType.UPDATE,
            reason="refresh",
            old_content="old",
            new_content="new",
            similarity=similarity,
            confidence=confidence,
            metadata={"k": "v"},
        )

    def test_impact_levels(self):
        assert self.make_record(0.9, 0.9).impact_level() == "high"
        assert self.make_record(0.2, 0.6).impact_level() == "medium"
        assert self.make_record(0.5, 0.1).impact_level() == "medium"
        assert self.make_record(0.1, 0.1).impact_level() == "low"

    def test_confidence_clamped(self):
        assert self.make_record(0.5, 1.7).confidence == 1.0

    def test_immutable(self):
        """Test records and their metadata cannot be changed."""
        record = self.make_record(0.5, 0.5)

        with pytest.raises(AttributeError):
            record.reason = "other"
        with pytest.raises(TypeError):
            record.metadata["k"] = "changed"

    def test_summary_and_dict(self):
        record = self.make_record(0.8, 0.85)

        assert record.summary() == "UPDATE: refresh (confidence: 0.85)"
        assert record.is_high_confidence()
        assert record.is_high_similarity()

        data = record.to_dict()
        assert data["type"] == "update"
        assert data["metadata"] == {"k": "v"}


class TestReconstructionService:
    """Tests for ReconstructionService."""

    @pytest.fixture
    def memories(self):
        return {
            "sword": make_memory(
                "Alice gave me a silver sword",
                tags={"gift"}, related_entities={"Alice"}, importance=0.6, access_count=1,
            ),
            "sword2": make_memory(
                "Alice gave me a silver sword yesterday",
                tags={"gift"}, related_entities={"Alice"}, importance=0.8,
            ),
            "rain": make_memory(
                "It rained all week",
                tags={"weather"}, created_at=NOW - 60 * SECONDS_PER_DAY,
            ),
        }

    @pytest.fixture
    def store(self, memories):
        return InMemoryMemoryStore(list(memories.values()))

    @pytest.fixture
    def service(self, store):
        return ReconstructionService(store)

    @pytest.mark.asyncio
    async def test_append(self, service, store, memories):
        """Test APPEND keeps the original text and adds a supplement."""
        memory = memories["sword"]

        result = await service.reconstruct_memory(
            memory.id, ReconstructionType.APPEND, "It has a ruby in the hilt", "new detail"
        )

        assert result.memory.content == "Alice gave me a silver sword\n\nSupplement: It has a ruby in the hilt"
        assert result.memory.access_count == 2
        assert result.record.similarity == 1.0
        assert result.record.confidence == 0.9

        stored = await store.get(memory.id)
        assert stored.content == result.memory.content

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rtype, similarity, confidence", [
        (ReconstructionType.UPDATE, 0.8, 0.8),
        (ReconstructionType.REPLACE, 0.5, 0.7),
        (ReconstructionType.CORRECTION, 0.6, 0.85),
    ])
    async def test_rewrite_scores(self, service, memories, rtype, similarity, confidence):
        memory = memories["rain"]

        result = await service.reconstruct_memory(memory.id, rtype, "It rained for two days", "fix")

        assert result.memory.content == "It rained for two days"
        assert result.record.type == rtype
        assert result.record.similarity == similarity
        assert result.record.confidence == confidence

    @pytest.mark.asyncio
    async def test_reinterpretation(self, service, memories):
        memory = memories["rain"]

        result = await service.reconstruct_memory(
            memory.id, ReconstructionType.REINTERPRETATION, "It was a blessing for the crops", "hindsight"
        )

        assert result.memory.content.endswith("\n\nReinterpretation: It was a blessing for the crops")
        assert result.record.confidence == 0.75

    @pytest.mark.asyncio
    async def test_reconstruct_rejects_merge(self, service, memories):
        with pytest.raises(UnsupportedReconstructionError):
            await service.reconstruct_memory(
                memories["rain"].id, ReconstructionType.MERGE, "x", "y"
            )

    @pytest.mark.asyncio
    async def test_unknown_id(self, service):
        """Test unknown ids fail fast."""
        with pytest.raises(MemoryNotFoundError):
            await service.reconstruct_memory("nope", ReconstructionType.UPDATE, "x", "y")
        with pytest.raises(KeyError):
            await service.merge_memories("nope", "also-nope")

    @pytest.mark.asyncio
    async def test_merge_similar(self, service, store, memories):
        """Test similar memories merge into the first id."""
        a, b = memories["sword"], memories["sword2"]

        result = await service.merge_memories(a.id, b.id)

        assert result.success
        assert result.merged_memory.id == a.id
        assert result.merged_memory.importance == 0.8
        assert result.record.type == ReconstructionType.MERGE

        stored = await store.get(a.id)
        assert stored.content == result.merged_memory.content
        assert service.get_history(a.id) == [result.record]

    @pytest.mark.asyncio
    async def test_merge_dissimilar(self, service, store, memories):
        """Test dissimilar memories are left alone."""
        a, b = memories["sword"], memories["rain"]

        result = await service.merge_memories(a.id, b.id)

        assert not result.success
        assert result.merged_memory is None
        assert "too low" in result.reason
        assert (await store.get(a.id)).content == a.content
        assert service.get_history(a.id) == []

    @pytest.mark.asyncio
    async def test_simple_strategy_always_merges(self, store, memories):
        service = ReconstructionService(store, merge_strategy=SimpleMergeStrategy())

        result = await service.merge_memories(memories["sword"].id, memories["rain"].id)

        assert result.success
        assert result.similarity == 0.5

    @pytest.mark.asyncio
    async def test_find_candidates(self, service, memories):
        """Test candidate pairs are above threshold and sorted."""
        pairs = await service.find_candidates(threshold=0.5)

        assert len(pairs) == 1
        ids = {pairs[0].memory1.id, pairs[0].memory2.id}
        assert ids == {memories["sword"].id, memories["sword2"].id}

        everything = await service.find_candidates(threshold=0.0)
        assert len(everything) == 3
        similarities = [p.similarity for p in everything]
        assert similarities == sorted(similarities, reverse=True)

    @pytest.mark.asyncio
    async def test_detect_conflict(self, service, memories):
        analysis = await service.detect_conflict(memories["sword"].id, memories["rain"].id)

        assert analysis.has_conflict
        assert ConflictType.CONTENT in analysis.conflicts

    @pytest.mark.asyncio
    async def test_resolve_conflict(self, service, store, memories):
        """Test resolution is persisted and audited."""
        a, b = memories["sword"], memories["sword2"]

        result = await service.resolve_conflict(a.id, b.id, [ConflictType.TAG, ConflictType.ENTITY])

        assert result.conflict_type == ConflictType.ENTITY
        assert result.resolution.strategy == ResolveStrategy.MERGE_SMART
        assert result.record.type == ReconstructionType.UPDATE
        assert result.record.metadata["conflict_type"] == "entity"
        assert result.record.metadata["strategy"] == "merge_smart"

        stored = await store.get(result.resolution.resolved_memory.id)
        assert stored.related_entities == {"Alice"}
        assert result.record in service.get_history(a.id)

    @pytest.mark.asyncio
    async def test_resolve_keeps_other_memory(self, service, store, memories):
        """Test KEEP_MORE_IMPORTANT persists the winning memory."""
        a = make_memory("low", importance=0.1)
        b = make_memory("high", importance=0.9, category=MemoryCategory.LONG_TERM)
        await store.store(a)
        await store.store(b)

        result = await service.resolve_conflict(a.id, b.id, [ConflictType.IMPORTANCE])

        assert result.resolution.resolved_memory.id == b.id
        assert result.record.target_id == b.id
        assert result.record.old_content == "high"

    @pytest.mark.asyncio
    async def test_repeat_resolution_keeps_promotion(self, service, store, memories):
        """Test resolving again after a promotion never demotes or rolls back access."""
        a, b = memories["sword"], memories["sword2"]
        await service.resolve_conflict(a.id, b.id, [ConflictType.ENTITY])

        current = await store.get(a.id)
        await store.store(replace(current, category=MemoryCategory.LONG_TERM, access_count=9))
        await service.resolve_conflict(a.id, b.id, [ConflictType.ENTITY])

        after = await store.get(a.id)
        assert after.category == MemoryCategory.LONG_TERM
        assert after.access_count == 9

    @pytest.mark.asyncio
    async def test_resolve_without_conflicts(self, service, memories):
        with pytest.raises(NoConflictError):
            await service.resolve_conflict(memories["sword"].id, memories["rain"].id, [])

    @pytest.mark.asyncio
    async def test_clear_caches(self, service, memories):
        await service.find_candidates()
        assert service.merge_strategy.cache_stats().size > 0

        service.clear_caches()
        assert service.merge_strategy.cache_stats().size == 0
        assert service.cleanup_expired() == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
