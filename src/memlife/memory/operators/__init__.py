"""Core operators for the memory lifecycle engine."""

from memlife.memory.operators.strength import (
    StrengthModel,
    StrengthConfig,
    effective_strength,
    retention,
    estimate_recall_difficulty,
)
from memlife.memory.operators.merge import (
    MergeStrategy,
    SmartMergeStrategy,
    SimpleMergeStrategy,
    MergeConfig,
    MergeResult,
    create_merge_strategy,
)
from memlife.memory.operators.conflict import (
    ConflictDetector,
    ConflictResolver,
    SmartConflictResolver,
    SimpleConflictResolver,
    ConflictConfig,
    dominant_conflict,
    create_conflict_resolver,
)

__all__ = [
    "StrengthModel",
    "StrengthConfig",
    "effective_strength",
    "retention",
    "estimate_recall_difficulty",
    "MergeStrategy",
    "SmartMergeStrategy",
    "SimpleMergeStrategy",
    "MergeConfig",
    "MergeResult",
    "create_merge_strategy",
    "ConflictDetector",
    "ConflictResolver",
    "SmartConflictResolver",
    "SimpleConflictResolver",
    "ConflictConfig",
    "dominant_conflict",
    "create_conflict_resolver",
]
