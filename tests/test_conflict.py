"""Tests for conflict detection and resolution."""

from dataclasses import replace

import pytest

from memlife.memory.errors import NoConflictError
from memlife.memory.models import Memory, MemoryCategory, ConflictType, ResolveStrategy, SECONDS_PER_DAY
from memlife.memory.operators.conflict import (
    ConflictDetector,
    SmartConflictResolver,
    SimpleConflictResolver,
    ConflictConfig,
    dominant_conflict,
    create_conflict_resolver,
)


NOW = 1_700_000_000.0


def make_memory(content="", created_at=NOW, **kwargs):
    return Memory(content=content, created_at=created_at, last_accessed_at=created_at, **kwargs)


class TestConflictType:
    """Tests for conflict severities."""

    def test_severity_order(self):
        assert ConflictType.CONTENT.severity == 5
        assert ConflictType.EMOTION.severity == 4
        assert ConflictType.TIME.severity == 3
        assert ConflictType.ENTITY.severity == 3
        assert ConflictType.IMPORTANCE.severity == 2
        assert ConflictType.TAG.severity == 1

    def test_dominant_conflict(self):
        """Test the most severe conflict wins."""
        assert dominant_conflict([ConflictType.TAG, ConflictType.CONTENT]) == ConflictType.CONTENT
        assert dominant_conflict([ConflictType.TAG, ConflictType.IMPORTANCE]) == ConflictType.IMPORTANCE

    def test_dominant_tie_keeps_first(self):
        assert dominant_conflict([ConflictType.ENTITY, ConflictType.TIME]) == ConflictType.ENTITY

    def test_dominant_empty(self):
        """Test resolving nothing is an error."""
        with pytest.raises(NoConflictError):
            dominant_conflict([])
        with pytest.raises(ValueError):
            dominant_conflict([])


class TestConflictDetector:
    """Tests for ConflictDetector."""

    @pytest.fixture
    def detector(self):
        return ConflictDetector()

    def test_content_conflict(self, detector):
        """Test unrelated content is flagged."""
        a = make_memory("the bridge collapsed")
        b = make_memory("we had a lovely picnic")

        assert ConflictType.CONTENT in detector.detect(a, b)

    def test_no_conflict_for_same_text(self, detector):
        a = make_memory("the bridge collapsed")
        b = make_memory("the bridge collapsed")

        assert detector.detect(a, b) == []

    def test_time_conflict(self, detector):
        """Test relative time words close together are flagged."""
        a = make_memory("The merchant arrives tomorrow at the gate")
        b = make_memory("The merchant arrived today at the gate", created_at=NOW + 3600)

        assert ConflictType.TIME in detector.detect(a, b)

    def test_time_conflict_chinese(self, detector):
        a = make_memory("商人明天到")
        b = make_memory("商人今天到", created_at=NOW + 60)

        assert ConflictType.TIME in detector.detect(a, b)

    def test_time_conflict_outside_window(self, detector):
        """Test the same words far apart in time are not flagged."""
        a = make_memory("The merchant arrives tomorrow")
        b = make_memory("The merchant arrived today", created_at=NOW + 2 * SECONDS_PER_DAY)

        assert ConflictType.TIME not in detector.detect(a, b)

    def test_entity_and_tag_overlap(self, detector):
        a = make_memory("x", related_entities={"Alice", "Bob"}, tags={"market"})
        b = make_memory("x", related_entities={"Alice"}, tags={"market", "rain"})

        conflicts = detector.detect(a, b)
        assert ConflictType.ENTITY in conflicts
        assert ConflictType.TAG in conflicts

    def test_importance_conflict(self, detector):
        a = make_memory("x", importance=0.9)
        b = make_memory("x", importance=0.2)

        assert detector.detect(a, b) == [ConflictType.IMPORTANCE]

    def test_emotion_conflict(self, detector):
        """Test opposite valences beyond the threshold are flagged."""
        happy = make_memory("x", emotional_valence=0.6)
        sad = make_memory("x", emotional_valence=-0.4)
        meh = make_memory("x", emotional_valence=-0.1)

        assert ConflictType.EMOTION in detector.detect(happy, sad)
        assert ConflictType.EMOTION not in detector.detect(happy, make_memory("x", emotional_valence=0.1))
        assert ConflictType.EMOTION in detector.detect(happy, meh)


class TestSmartConflictResolver:
    """Tests for SmartConflictResolver."""

    @pytest.fixture
    def resolver(self):
        return SmartConflictResolver()

    @pytest.mark.parametrize("conflict_type", list(ConflictType))
    def test_confidence_in_range(self, resolver, conflict_type):
        """Test every resolution has confidence in [0, 1]."""
        a = make_memory("a", importance=0.2, tags={"t"}, related_entities={"e"})
        b = make_memory("b", importance=0.9, created_at=NOW - 30 * SECONDS_PER_DAY)

        resolution = resolver.resolve(a, b, conflict_type)
        assert 0.0 <= resolution.confidence <= 1.0

    @pytest.mark.parametrize("conflict_type", [ConflictType.TAG, ConflictType.ENTITY])
    def test_tag_entity_union(self, resolver, conflict_type):
        """Test tag and entity conflicts merge by union."""
        a = make_memory("x", tags={"a", "b"}, related_entities={"Alice"})
        b = make_memory("x", tags={"b", "c", "d"}, related_entities={"Bob", "Carol"})

        resolution = resolver.resolve(a, b, conflict_type)

        assert resolution.strategy == ResolveStrategy.MERGE_SMART
        if conflict_type == ConflictType.TAG:
            assert resolution.resolved_memory.tags == {"a", "b", "c", "d"}
            assert len(resolution.resolved_memory.tags) >= max(len(a.tags), len(b.tags))
        else:
            assert resolution.resolved_memory.related_entities == {"Alice", "Bob", "Carol"}

    def test_content_keeps_more_important(self, resolver):
        a = make_memory("the gate is open", importance=0.9)
        b = make_memory("the gate is shut", importance=0.3)

        resolution = resolver.resolve(a, b, ConflictType.CONTENT)

        assert resolution.strategy == ResolveStrategy.KEEP_MORE_IMPORTANT
        assert resolution.resolved_memory.id == a.id
        assert resolution.confidence == 0.8

    def test_content_keeps_latest(self, resolver):
        old = make_memory("the gate is open", importance=0.5, created_at=NOW - 10 * SECONDS_PER_DAY)
        new = make_memory("the gate is shut", importance=0.6)

        resolution = resolver.resolve(old, new, ConflictType.CONTENT)

        assert resolution.strategy == ResolveStrategy.KEEP_LATEST
        assert resolution.resolved_memory.id == new.id
        assert resolution.confidence == 0.7

    def test_content_combined(self, resolver):
        """Test close, equally important versions are combined."""
        a = make_memory("the gate is open", importance=0.5)
        b = make_memory("the gate is shut", importance=0.6, created_at=NOW + 3600)

        resolution = resolver.resolve(a, b, ConflictType.CONTENT)

        assert resolution.strategy == ResolveStrategy.CREATE_COMBINED
        assert resolution.resolved_memory.content == "version 1: the gate is open | version 2: the gate is shut"
        assert resolution.resolved_memory.importance == 0.6
        assert resolution.confidence == 0.6

    def test_time_keeps_later_timestamps(self, resolver):
        a = make_memory("x")
        b = make_memory("y", created_at=NOW + 500)

        resolution = resolver.resolve(a, b, ConflictType.TIME)

        assert resolution.resolved_memory.created_at == NOW + 500
        assert resolution.confidence == 0.9

    def test_emotion_averages(self, resolver):
        a = make_memory("x", emotional_valence=0.8)
        b = make_memory("x", emotional_valence=-0.4)

        resolution = resolver.resolve(a, b, ConflictType.EMOTION)

        assert resolution.resolved_memory.emotional_valence == pytest.approx(0.2)

    def test_resolution_cached(self, resolver):
        """Test repeat resolutions are served from the bounded cache."""
        a = make_memory("x", importance=0.9)
        b = make_memory("y", importance=0.1)

        first = resolver.resolve(a, b, ConflictType.IMPORTANCE)
        second = resolver.resolve(a, b, ConflictType.IMPORTANCE)

        assert first == second
        assert first.resolved_memory is not second.resolved_memory
        assert resolver.cache_stats().hits == 1

    def test_cached_decision_uses_current_memory(self, resolver):
        """Test a cache hit rebuilds the result from the memories passed in."""
        a = make_memory("x", related_entities={"Alice"}, access_count=1)
        b = make_memory("y", related_entities={"Bob"})
        resolver.resolve(a, b, ConflictType.ENTITY)

        promoted = replace(a, category=MemoryCategory.LONG_TERM, access_count=9)
        resolution = resolver.resolve(promoted, b, ConflictType.ENTITY)

        assert resolver.cache_stats().hits == 1
        assert resolution.resolved_memory.category == MemoryCategory.LONG_TERM
        assert resolution.resolved_memory.access_count == 9
        assert resolution.resolved_memory.related_entities == {"Alice", "Bob"}

    def test_resolve_all_uses_dominant(self, resolver):
        a = make_memory("x", importance=0.9, tags={"t"})
        b = make_memory("x", importance=0.1, tags={"t"})

        conflict_type, resolution = resolver.resolve_all(
            a, b, [ConflictType.TAG, ConflictType.IMPORTANCE]
        )

        assert conflict_type == ConflictType.IMPORTANCE
        assert resolution.strategy == ResolveStrategy.KEEP_MORE_IMPORTANT


class TestSimpleConflictResolver:
    def test_keeps_latest(self):
        resolver = SimpleConflictResolver()
        old = make_memory("a")
        new = make_memory("b", created_at=NOW + 10)

        resolution = resolver.resolve(old, new, ConflictType.CONTENT)

        assert resolution.strategy == ResolveStrategy.KEEP_LATEST
        assert resolution.resolved_memory.id == new.id
        assert resolution.confidence == 0.5

    def test_factory(self):
        assert isinstance(create_conflict_resolver("simple"), SimpleConflictResolver)
        assert isinstance(
            create_conflict_resolver("smart", ConflictConfig(cache_size=10)), SmartConflictResolver
        )
        with pytest.raises(ValueError):
            create_conflict_resolver("oracle")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
