"""Adaptive memory lifecycle for long-lived characters.

Components:
- Strength: forgetting-curve retention from memory attributes
- Reconstruction: rewrites, merges and conflict resolution with an audit trail
- Consolidation: five-stage promotion of short-term memories to long-term
- Procedural: skills and habits that improve with practice and decay with disuse

Usage:
    from memlife.memory import MemoryLifecycleEngine, Memory

    engine = MemoryLifecycleEngine()
    await engine.store.store(Memory(content="Met Alice at the market", character_id="npc-1"))

    result = await engine.consolidate("npc-1")
    print(result.summary())
"""

from memlife.memory.models import (
    Memory,
    MemoryCategory,
    ReconstructionType,
    ReconstructionRecord,
    ConflictType,
    ResolveStrategy,
    ConflictResolution,
    ConsolidationDecision,
    ConsolidationDecisionRecord,
    ConsolidationStatistics,
    CharacterProfile,
)
from memlife.memory.errors import (
    MemoryLifecycleError,
    MemoryNotFoundError,
    ProceduralMemoryNotFoundError,
    ScorerError,
    NoConflictError,
    UnsupportedReconstructionError,
)
from memlife.memory.cache import BoundedCache, LoadingCache, CacheStats
from memlife.memory.procedural.manager import ProceduralMemoryManager, ProceduralConfig
from memlife.memory.reconstruction import ReconstructionService
from memlife.memory.scorer import Scorer, ScorerClient, ScorerConfig, create_llm_scorer
from memlife.memory.consolidation import ConsolidationPipeline, ConsolidationConfig, ConsolidationResult
from memlife.memory.engine import MemoryLifecycleEngine, EngineConfig, MaintenanceReport

__all__ = [
    # Models
    "Memory",
    "MemoryCategory",
    "ReconstructionType",
    "ReconstructionRecord",
    "ConflictType",
    "ResolveStrategy",
    "ConflictResolution",
    "ConsolidationDecision",
    "ConsolidationDecisionRecord",
    "ConsolidationStatistics",
    "CharacterProfile",
    # Errors
    "MemoryLifecycleError",
    "MemoryNotFoundError",
    "ProceduralMemoryNotFoundError",
    "ScorerError",
    "NoConflictError",
    "UnsupportedReconstructionError",
    # Cache
    "BoundedCache",
    "LoadingCache",
    "CacheStats",
    # Services
    "ProceduralMemoryManager",
    "ProceduralConfig",
    "ReconstructionService",
    "Scorer",
    "ScorerClient",
    "ScorerConfig",
    "create_llm_scorer",
    "ConsolidationPipeline",
    "ConsolidationConfig",
    "ConsolidationResult",
    # Main API
    "MemoryLifecycleEngine",
    "EngineConfig",
    "MaintenanceReport",
]
