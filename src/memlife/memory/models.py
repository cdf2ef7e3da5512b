"""Core data models for the memory lifecycle engine."""

from __future__ import annotations

import uuid
import time
import json
from dataclasses import dataclass, field, asdict
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


SECONDS_PER_DAY = 86400.0


class MemoryCategory(str, Enum):
    """Lifecycle category of a memory record."""
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"


@dataclass
class Memory:
    """A single episodic memory record.

    Owned by the persistence collaborator; the engine works on copies
    (``dataclasses.replace``) and writes them back with an upsert.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    content: str = ""
    character_id: str = ""
    category: MemoryCategory = MemoryCategory.SHORT_TERM
    tags: set[str] = field(default_factory=set)
    related_entities: set[str] = field(default_factory=set)
    importance: float = 0.5         # 0-1
    confidence: float = 1.0         # 0-1
    emotional_valence: float = 0.0  # -1 (negative) to 1 (positive)
    emotion_intensity: float | None = None
    emotion_tag: str | None = None
    reinforcement_count: int = 0
    recall_difficulty: float = 0.5
    context_relevance: float = 0.5
    access_count: int = 0
    created_at: float = field(default_factory=time.time)
    last_accessed_at: float = field(default_factory=time.time)
    source: str = ""

    def __post_init__(self) -> None:
        self.importance = max(0.0, min(1.0, self.importance))
        self.confidence = max(0.0, min(1.0, self.confidence))
        self.access_count = max(0, self.access_count)
        self.tags = set(self.tags)
        self.related_entities = set(self.related_entities)
        if not isinstance(self.category, MemoryCategory):
            self.category = MemoryCategory(self.category)

    @property
    def is_long_term(self) -> bool:
        return self.category == MemoryCategory.LONG_TERM

    def age_days(self, now: float | None = None) -> float:
        """Days elapsed since creation."""
        now = time.time() if now is None else now
        return (now - self.created_at) / SECONDS_PER_DAY

    def fingerprint(self) -> int:
        """Hash of the fields that similarity and conflict results depend on."""
        return hash((
            self.content,
            frozenset(self.tags),
            frozenset(self.related_entities),
            self.created_at,
            self.importance,
            self.emotional_valence,
        ))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for storage."""
        return {
            "id": self.id,
            "content": self.content,
            "character_id": self.character_id,
            "category": self.category.value,
            "tags": sorted(self.tags),
            "related_entities": sorted(self.related_entities),
            "importance": self.importance,
            "confidence": self.confidence,
            "emotional_valence": self.emotional_valence,
            "emotion_intensity": self.emotion_intensity,
            "emotion_tag": self.emotion_tag,
            "reinforcement_count": self.reinforcement_count,
            "recall_difficulty": self.recall_difficulty,
            "context_relevance": self.context_relevance,
            "access_count": self.access_count,
            "created_at": self.created_at,
            "last_accessed_at": self.last_accessed_at,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Memory:
        """Deserialize from dictionary."""
        now = time.time()
        created_at = data.get("created_at", now)
        return cls(
            id=data["id"],
            content=data.get("content", ""),
            character_id=data.get("character_id", ""),
            category=MemoryCategory(data.get("category", MemoryCategory.SHORT_TERM.value)),
            tags=set(data.get("tags", [])),
            related_entities=set(data.get("related_entities", [])),
            importance=data.get("importance", 0.5),
            confidence=data.get("confidence", 1.0),
            emotional_valence=data.get("emotional_valence", 0.0),
            emotion_intensity=data.get("emotion_intensity"),
            emotion_tag=data.get("emotion_tag"),
            reinforcement_count=data.get("reinforcement_count", 0),
            recall_difficulty=data.get("recall_difficulty", 0.5),
            context_relevance=data.get("context_relevance", 0.5),
            access_count=data.get("access_count", 0),
            created_at=created_at,
            last_accessed_at=data.get("last_accessed_at", created_at),
            source=data.get("source", ""),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> Memory:
        return cls.from_dict(json.loads(json_str))

    def summarize(self, max_length: int = 50) -> str:
        """Get a short preview of this memory for display and logs."""
        preview = self.content[:max_length]
        if len(self.content) > max_length:
            preview += "..."
        return preview


# ==================== Reconstruction ====================

class ReconstructionType(str, Enum):
    """Kind of mutation applied to a memory."""
    APPEND = "append"                      # Add information without touching the original text
    UPDATE = "update"                      # Refresh the content in place
    REPLACE = "replace"                    # Content is obsolete, swap it wholesale
    CORRECTION = "correction"              # Fix a factual error
    REINTERPRETATION = "reinterpretation"  # Same facts, new understanding
    MERGE = "merge"                        # Fold a similar memory into this one


@dataclass(frozen=True)
class ReconstructionRecord:
    """Immutable audit entry describing one mutation of a memory."""
    source_id: str
    target_id: str
    type: ReconstructionType
    reason: str
    old_content: str
    new_content: str
    similarity: float
    confidence: float
    metadata: Mapping[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @classmethod
    def create(
        cls,
        source_id: str,
        target_id: str,
        type: ReconstructionType,
        reason: str,
        old_content: str,
        new_content: str,
        similarity: float,
        confidence: float,
        metadata: Mapping[str, Any] | None = None,
    ) -> ReconstructionRecord:
        return cls(
            source_id=source_id,
            target_id=target_id,
            type=type,
            reason=reason,
            old_content=old_content,
            new_content=new_content,
            similarity=similarity,
            confidence=max(0.0, min(1.0, confidence)),
            metadata=metadata or {},
        )

    def summary(self) -> str:
        return f"{self.type.name}: {self.reason} (confidence: {self.confidence:.2f})"

    def is_high_confidence(self) -> bool:
        return self.confidence >= 0.8

    def is_high_similarity(self) -> bool:
        return self.similarity >= 0.7

    def impact_level(self) -> str:
        if self.is_high_confidence() and self.is_high_similarity():
            return "high"
        if self.confidence >= 0.6 or self.similarity >= 0.5:
            return "medium"
        return "low"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "type": self.type.value,
            "reason": self.reason,
            "old_content": self.old_content,
            "new_content": self.new_content,
            "similarity": self.similarity,
            "confidence": self.confidence,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp,
        }


# ==================== Conflicts ====================

class ConflictType(str, Enum):
    """Ways two memories can disagree."""
    CONTENT = "content"
    EMOTION = "emotion"
    TIME = "time"
    ENTITY = "entity"
    IMPORTANCE = "importance"
    TAG = "tag"

    @property
    def severity(self) -> int:
        """1-5, higher is more serious."""
        return _CONFLICT_SEVERITY[self]


_CONFLICT_SEVERITY = {
    ConflictType.CONTENT: 5,
    ConflictType.EMOTION: 4,
    ConflictType.TIME: 3,
    ConflictType.ENTITY: 3,
    ConflictType.IMPORTANCE: 2,
    ConflictType.TAG: 1,
}


class ResolveStrategy(str, Enum):
    """How a conflict was settled."""
    KEEP_PRIMARY = "keep_primary"
    KEEP_SECONDARY = "keep_secondary"
    MERGE_SMART = "merge_smart"
    CREATE_COMBINED = "create_combined"
    REQUIRES_HUMAN = "requires_human"
    KEEP_LATEST = "keep_latest"
    KEEP_MORE_IMPORTANT = "keep_more_important"


@dataclass(frozen=True)
class ConflictResolution:
    """Outcome of resolving one conflict between two memories."""
    strategy: ResolveStrategy
    resolved_memory: Memory
    explanation: str
    confidence: float  # 0-1


# ==================== Consolidation ====================

class ConsolidationDecision(str, Enum):
    CONSOLIDATED = "consolidated"
    DEFERRED = "deferred"
    REJECTED = "rejected"


@dataclass
class CharacterProfile:
    """Read-only character summary used as scorer context."""
    character_id: str
    name: str = ""
    description: str = ""


@dataclass
class ConsolidationDecisionRecord:
    """One consolidation decision, kept for the adaptive feedback loop."""
    character_id: str
    memory_id: str
    was_consolidated: bool
    score: float
    confidence: float
    memory_importance: float
    memory_access_count: int
    memory_age_days: float
    reasoning: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ConsolidationStatistics:
    """Running per-character consolidation totals."""
    character_id: str
    total_decisions: int = 0
    total_consolidated: int = 0
    avg_score: float = 0.0
    avg_confidence: float = 0.0
    last_updated: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
