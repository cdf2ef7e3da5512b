"""Tests for merge strategies and similarity helpers."""

from dataclasses import replace

import pytest

from memlife.memory.models import Memory, MemoryCategory, ReconstructionType, SECONDS_PER_DAY
from memlife.memory.operators.merge import (
    SmartMergeStrategy,
    SimpleMergeStrategy,
    MergeConfig,
    create_merge_strategy,
)
from memlife.memory.operators.similarity import (
    jaccard,
    content_similarity,
    time_similarity,
    normalized_content_similarity,
)


NOW = 1_700_000_000.0


def make_memory(content, tags=(), entities=(), created_at=NOW, **kwargs):
    return Memory(
        content=content,
        tags=set(tags),
        related_entities=set(entities),
        created_at=created_at,
        last_accessed_at=created_at,
        **kwargs,
    )


class TestSimilarityHelpers:
    """Tests for the pure similarity functions."""

    def test_jaccard_conventions(self):
        assert jaccard(set(), set()) == 1.0
        assert jaccard({"a"}, set()) == 0.0
        assert jaccard({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)

    def test_content_similarity(self):
        assert content_similarity("the red fox", "the red fox") == 1.0
        assert content_similarity("the red fox", "a blue whale") == 0.0

    def test_time_buckets(self):
        """Test time proximity buckets."""
        assert time_similarity(NOW, NOW + 0.5 * SECONDS_PER_DAY) == 1.0
        assert time_similarity(NOW, NOW + 3 * SECONDS_PER_DAY) == 0.7
        assert time_similarity(NOW, NOW + 20 * SECONDS_PER_DAY) == 0.4
        assert time_similarity(NOW, NOW + 90 * SECONDS_PER_DAY) == 0.1

    def test_normalized_similarity(self):
        """Test punctuation and case are ignored."""
        assert normalized_content_similarity("Hello, World!", "hello world") == pytest.approx(
            0.7 + 0.3 * (11 / 13)
        )
        assert normalized_content_similarity("", "anything") == 0.0


class TestSmartMergeStrategy:
    """Tests for SmartMergeStrategy."""

    @pytest.fixture
    def strategy(self):
        return SmartMergeStrategy()

    def test_reflexive(self, strategy):
        """Test a memory is fully similar to itself."""
        memory = make_memory("Alice gave me a sword", tags={"gift"}, entities={"Alice"})
        assert strategy.calculate_similarity(memory, memory) == pytest.approx(1.0)

    def test_should_merge_matches_threshold(self, strategy):
        """Test should_merge agrees with similarity >= 0.5."""
        base = make_memory("Alice gave me a sword", tags={"gift"}, entities={"Alice"})
        others = [
            make_memory("Alice gave me a sword", tags={"gift"}, entities={"Alice"}),
            make_memory("Bob sold me a shield", tags={"trade"}, entities={"Bob"}),
            make_memory("Something else", entities={"Alice"}, tags={"gift"}),
            make_memory("Alice gave me", created_at=NOW - 60 * SECONDS_PER_DAY),
        ]
        for other in others:
            similarity = strategy.calculate_similarity(base, other)
            assert strategy.should_merge(base, other) == (similarity >= 0.5)

    def test_disjoint_tags_union(self, strategy):
        """Test merging disjoint tag sets yields p + q tags."""
        a = make_memory("the dragon attacked the village", tags={"dragon", "village"})
        b = make_memory("the dragon attacked the village", tags={"fire", "attack", "night"})

        result = strategy.merge(a, b)

        assert result.was_merged
        assert len(result.merged_memory.tags) == 5

    def test_merge_fields(self, strategy):
        """Test merged memory keeps primary id and combines attributes."""
        a = make_memory("met the king in the hall", tags={"royal"}, entities={"King"}, importance=0.4, access_count=2)
        b = make_memory(
            "feast with the king in the hall",
            tags={"royal"},
            entities={"King", "Queen"},
            importance=0.9,
            access_count=5,
            category=MemoryCategory.LONG_TERM,
        )

        result = strategy.merge(a, b)
        merged = result.merged_memory

        assert result.was_merged
        assert merged.id == a.id
        assert merged.importance == 0.9
        assert merged.related_entities == {"King", "Queen"}
        assert merged.access_count == 6
        assert merged.category == MemoryCategory.LONG_TERM
        assert merged.content == "met the king in the hall [supplement: feast with the king in the hall]"
        assert result.record.type == ReconstructionType.MERGE
        assert result.record.confidence == pytest.approx(result.record.similarity)

    def test_near_duplicate_keeps_longer(self, strategy):
        """Test near-identical content keeps the longer text."""
        a = make_memory("one two three four five six seven eight nine ten")
        b = make_memory("one two three four five six seven eight nine ten eleven")

        result = strategy.merge(a, b)

        assert result.merged_memory.content == b.content

    def test_below_threshold_not_merged(self, strategy):
        """Test dissimilar memories come back unchanged."""
        a = make_memory("sunny morning", tags={"weather"}, entities={"Sun"})
        b = make_memory(
            "lost my purse", tags={"loss"}, entities={"Purse"},
            created_at=NOW - 40 * SECONDS_PER_DAY,
        )

        result = strategy.merge(a, b)

        assert not result.was_merged
        assert result.merged_memory is a
        assert result.record.confidence == 0.0
        assert result.record.metadata["merged"] is False

    def test_similarity_cached(self, strategy):
        """Test repeat similarity lookups are served from cache."""
        a = make_memory("a b c")
        b = make_memory("a b d")

        strategy.calculate_similarity(a, b)
        strategy.calculate_similarity(a, b)

        stats = strategy.cache_stats()
        assert stats.hits == 1
        assert stats.misses == 1

    def test_cache_sees_content_changes(self, strategy):
        """Test an edited memory is re-scored instead of using a stale entry."""
        a = make_memory("a b c")
        b = make_memory("a b c")
        assert strategy.calculate_similarity(a, b) == pytest.approx(1.0)

        edited = replace(b, content="x y z")
        assert strategy.calculate_similarity(a, edited) == pytest.approx(0.6)

    def test_cache_bounded(self):
        """Test the similarity cache never exceeds its capacity."""
        strategy = SmartMergeStrategy(MergeConfig(cache_size=3))
        base = make_memory("base")
        for i in range(10):
            strategy.calculate_similarity(base, make_memory(f"other {i}"))

        stats = strategy.cache_stats()
        assert stats.size == 3
        assert stats.evictions == 7

        strategy.clear_cache()
        assert strategy.cache_stats().size == 0


class TestSimpleMergeStrategy:
    """Tests for SimpleMergeStrategy."""

    def test_always_merges_longer(self):
        strategy = SimpleMergeStrategy()
        a = make_memory("short")
        b = make_memory("a much longer description")

        assert strategy.should_merge(a, b)
        result = strategy.merge(a, b)

        assert result.merged_memory.content == b.content
        assert result.merged_memory.id == a.id
        assert result.record.confidence == 0.5
        assert strategy.cache_stats() is None


class TestFactory:
    def test_create(self):
        assert isinstance(create_merge_strategy("smart"), SmartMergeStrategy)
        assert isinstance(create_merge_strategy("simple"), SimpleMergeStrategy)
        with pytest.raises(ValueError):
            create_merge_strategy("clever")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
