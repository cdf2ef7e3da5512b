"""Tests for storage implementations."""

import json

import pytest

from memlife.memory.models import (
    Memory,
    MemoryCategory,
    CharacterProfile,
    ConsolidationDecisionRecord,
    ConsolidationStatistics,
)
from memlife.memory.storage import (
    InMemoryMemoryStore,
    InMemoryThresholdStore,
    InMemoryProfileSource,
    JsonFileMemoryStore,
)


class TestMemoryModel:
    """Tests for the Memory model."""

    def test_clamps_values(self):
        memory = Memory(content="x", importance=1.5, confidence=-0.2, access_count=-3)

        assert memory.importance == 1.0
        assert memory.confidence == 0.0
        assert memory.access_count == 0

    def test_serialization(self):
        """Test dict and JSON round trip keep sets and category."""
        memory = Memory(
            content="Met the blacksmith",
            character_id="npc-1",
            category=MemoryCategory.LONG_TERM,
            tags={"village", "craft"},
            related_entities={"Blacksmith"},
            emotion_intensity=0.4,
        )

        data = memory.to_dict()
        assert data["tags"] == ["craft", "village"]
        assert data["category"] == "long_term"

        restored = Memory.from_json(memory.to_json())
        assert restored == memory

    def test_from_dict_defaults(self):
        restored = Memory.from_dict({"id": "m1", "content": "bare", "created_at": 100.0})

        assert restored.category == MemoryCategory.SHORT_TERM
        assert restored.last_accessed_at == 100.0
        assert restored.recall_difficulty == 0.5

    def test_summarize(self):
        memory = Memory(content="a" * 60)
        assert memory.summarize() == "a" * 50 + "..."
        assert Memory(content="short").summarize() == "short"


class TestInMemoryMemoryStore:
    """Tests for InMemoryMemoryStore."""

    @pytest.mark.asyncio
    async def test_upsert(self):
        store = InMemoryMemoryStore()
        memory = Memory(content="first")

        await store.store(memory)
        memory.content = "second"
        await store.store(memory)

        assert len(store) == 1
        assert (await store.get(memory.id)).content == "second"

    @pytest.mark.asyncio
    async def test_hands_out_copies(self):
        """Test callers cannot mutate stored state."""
        memory = Memory(content="original", tags={"a"})
        store = InMemoryMemoryStore([memory])

        fetched = await store.get(memory.id)
        fetched.content = "changed"
        fetched.tags.add("b")

        again = await store.get(memory.id)
        assert again.content == "original"
        assert again.tags == {"a"}

    @pytest.mark.asyncio
    async def test_get_missing(self):
        assert await InMemoryMemoryStore().get("nope") is None


class TestJsonFileMemoryStore:
    """Tests for JsonFileMemoryStore."""

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "memories.json"
        memory = Memory(content="Saw a comet", character_id="npc-1", tags={"sky"})

        await JsonFileMemoryStore(path).store(memory)

        reopened = JsonFileMemoryStore(path)
        restored = await reopened.get(memory.id)
        assert restored == memory
        assert not (tmp_path / "memories.json.tmp").exists()

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["memories"][0]["id"] == memory.id

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        store = JsonFileMemoryStore(tmp_path / "nested" / "memories.json")

        assert await store.get_all() == []

        await store.store(Memory(content="x"))
        assert (tmp_path / "nested" / "memories.json").exists()

    @pytest.mark.asyncio
    async def test_accepts_bare_list(self, tmp_path):
        path = tmp_path / "memories.json"
        path.write_text(json.dumps([{"id": "m1", "content": "hello"}]), encoding="utf-8")

        memories = await JsonFileMemoryStore(path).get_all()

        assert [m.id for m in memories] == ["m1"]


class TestInMemoryThresholdStore:
    """Tests for InMemoryThresholdStore."""

    def make_record(self, character_id, memory_id):
        return ConsolidationDecisionRecord(
            character_id=character_id,
            memory_id=memory_id,
            was_consolidated=True,
            score=0.8,
            confidence=0.9,
            memory_importance=0.7,
            memory_access_count=3,
            memory_age_days=2.0,
            reasoning="test",
        )

    @pytest.mark.asyncio
    async def test_threshold(self):
        store = InMemoryThresholdStore()

        assert await store.get_threshold("npc-1") is None
        await store.save_threshold("npc-1", 0.55)
        assert await store.get_threshold("npc-1") == 0.55

    @pytest.mark.asyncio
    async def test_decision_log_newest_first(self):
        store = InMemoryThresholdStore()
        await store.append_decision_log([self.make_record("npc-1", "m1"), self.make_record("npc-2", "x")])
        await store.append_decision_log([self.make_record("npc-1", "m2")])

        log = await store.get_decision_log("npc-1")
        assert [r.memory_id for r in log] == ["m2", "m1"]

        limited = await store.get_decision_log("npc-1", limit=1)
        assert [r.memory_id for r in limited] == ["m2"]

    @pytest.mark.asyncio
    async def test_statistics(self):
        store = InMemoryThresholdStore()
        stats = ConsolidationStatistics(character_id="npc-1", total_decisions=4)

        await store.save_statistics(stats)
        stats.total_decisions = 100

        assert (await store.get_statistics("npc-1")).total_decisions == 4
        assert await store.get_statistics("npc-2") is None


class TestInMemoryProfileSource:
    @pytest.mark.asyncio
    async def test_profiles(self):
        source = InMemoryProfileSource()
        source.add_profile(
            CharacterProfile("npc-1", name="Mira", description="A travelling herbalist"),
            relationships=["sister of Tom"],
        )

        assert (await source.get_profile("npc-1")).name == "Mira"
        assert await source.get_relationships("npc-1") == ["sister of Tom"]
        assert await source.get_profile("npc-2") is None
        assert await source.get_relationships("npc-2") == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
