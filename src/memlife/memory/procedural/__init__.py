"""Procedural memory models.

The manager lives in ``memlife.memory.procedural.manager``; it is not
re-exported here because storage interfaces depend on these models.
"""

from memlife.memory.procedural.models import (
    ProceduralMemory,
    ProceduralType,
    Condition,
    ConditionType,
    Operator,
    Action,
    ActionType,
    ExecutionRecord,
    LearningProgress,
    ProceduralStatistics,
)

__all__ = [
    "ProceduralMemory",
    "ProceduralType",
    "Condition",
    "ConditionType",
    "Operator",
    "Action",
    "ActionType",
    "ExecutionRecord",
    "LearningProgress",
    "ProceduralStatistics",
]
