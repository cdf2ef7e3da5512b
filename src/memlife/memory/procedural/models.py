"""Data models for procedural ("how-to") memories."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProceduralType(str, Enum):
    SKILL = "skill"                             # How to use a feature
    HABIT = "habit"                             # Repeated behaviour pattern
    RULE = "rule"                               # IF-THEN rule
    WORKFLOW = "workflow"                       # Multi-step sequence
    PREFERENCE_PATTERN = "preference_pattern"   # The way the user likes things done


class ConditionType(str, Enum):
    TIME = "time"
    CONTEXT = "context"
    USER_STATE = "user_state"
    EMOTION = "emotion"
    INTENT = "intent"
    CUSTOM = "custom"


class Operator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN_LIST = "in_list"


def _to_float(value: Any) -> float | None:
    try:
        return float(str(value))
    except ValueError:
        return None


@dataclass(frozen=True)
class Condition:
    """Trigger predicate evaluated against a context map."""
    type: ConditionType
    parameter: str
    operator: Operator
    value: str

    def evaluate(self, context: dict[str, Any]) -> bool:
        """True when the context satisfies this condition.

        A missing parameter never matches. Numeric operators fail closed
        when either side is not a number.
        """
        actual = context.get(self.parameter)
        if actual is None:
            return False
        actual_str = str(actual)

        if self.operator == Operator.EQUALS:
            return actual_str == self.value
        if self.operator == Operator.NOT_EQUALS:
            return actual_str != self.value
        if self.operator == Operator.CONTAINS:
            return self.value.lower() in actual_str.lower()
        if self.operator in (Operator.GREATER_THAN, Operator.LESS_THAN):
            actual_num = _to_float(actual)
            expected_num = _to_float(self.value)
            if actual_num is None or expected_num is None:
                return False
            if self.operator == Operator.GREATER_THAN:
                return actual_num > expected_num
            return actual_num < expected_num
        if self.operator == Operator.IN_LIST:
            return any(item.strip() == actual_str for item in self.value.split(","))
        return False

    def __str__(self) -> str:
        return f"{self.parameter} {self.operator.name} {self.value}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "parameter": self.parameter,
            "operator": self.operator.value,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        return cls(
            type=ConditionType(data["type"]),
            parameter=data["parameter"],
            operator=Operator(data["operator"]),
            value=str(data["value"]),
        )


class ActionType(str, Enum):
    SUGGEST = "suggest"
    EXECUTE = "execute"
    REMEMBER = "remember"
    NOTIFY = "notify"
    QUERY = "query"
    ADJUST = "adjust"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Action:
    type: ActionType
    description: str
    parameters: dict[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"[{self.type.name}] {self.description}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "description": self.description,
            "parameters": dict(self.parameters),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Action:
        return cls(
            type=ActionType(data["type"]),
            description=data.get("description", ""),
            parameters=dict(data.get("parameters", {})),
        )


@dataclass
class ProceduralMemory:
    """A learned skill, habit, rule, workflow or preference pattern."""
    name: str
    type: ProceduralType
    pattern: str = ""
    conditions: list[Condition] = field(default_factory=list)
    actions: list[Action] = field(default_factory=list)
    proficiency: float = 0.0                # 0 = novice, 1 = expert
    execution_count: int = 0
    success_rate: float = 1.0
    average_execution_time: float = 0.0     # milliseconds
    last_executed_at: float | None = None
    created_at: float = field(default_factory=time.time)
    tags: set[str] = field(default_factory=set)
    related_memory_ids: list[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: f"proc_{uuid.uuid4()}")

    def is_proficient(self, threshold: float = 0.7) -> bool:
        return self.proficiency >= threshold

    def is_reliable(self, threshold: float = 0.8) -> bool:
        return self.success_rate >= threshold and self.execution_count >= 3

    def is_automated(self) -> bool:
        """Executable without deliberation."""
        return self.proficiency >= 0.9 and self.execution_count >= 10

    def summary(self) -> str:
        return (
            f"[{self.type.name}] {self.name}"
            f" | proficiency: {self.proficiency * 100:.1f}%"
            f" | executed {self.execution_count}x"
            f" | success rate: {self.success_rate * 100:.1f}%"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "pattern": self.pattern,
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": [a.to_dict() for a in self.actions],
            "proficiency": self.proficiency,
            "execution_count": self.execution_count,
            "success_rate": self.success_rate,
            "average_execution_time": self.average_execution_time,
            "last_executed_at": self.last_executed_at,
            "created_at": self.created_at,
            "tags": sorted(self.tags),
            "related_memory_ids": list(self.related_memory_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProceduralMemory:
        return cls(
            id=data["id"],
            name=data["name"],
            type=ProceduralType(data["type"]),
            pattern=data.get("pattern", ""),
            conditions=[Condition.from_dict(c) for c in data.get("conditions", [])],
            actions=[Action.from_dict(a) for a in data.get("actions", [])],
            proficiency=data.get("proficiency", 0.0),
            execution_count=data.get("execution_count", 0),
            success_rate=data.get("success_rate", 1.0),
            average_execution_time=data.get("average_execution_time", 0.0),
            last_executed_at=data.get("last_executed_at"),
            created_at=data.get("created_at", time.time()),
            tags=set(data.get("tags", [])),
            related_memory_ids=list(data.get("related_memory_ids", [])),
        )


@dataclass(frozen=True)
class ExecutionRecord:
    procedural_memory_id: str
    success: bool
    execution_time_ms: float
    context: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class LearningProgress:
    procedural_memory_id: str
    initial_proficiency: float
    current_proficiency: float
    execution_history: list[ExecutionRecord]
    improvement_rate: float         # Average proficiency gain per execution
    recent_success_rate: float      # Over the last 10 executions

    @property
    def total_improvement(self) -> float:
        return self.current_proficiency - self.initial_proficiency


@dataclass
class ProceduralStatistics:
    total_count: int
    by_type: dict[ProceduralType, int]
    automated_count: int
    proficient_count: int
    avg_proficiency: float
    avg_success_rate: float
    total_executions: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_count": self.total_count,
            "by_type": {t.value: n for t, n in self.by_type.items()},
            "automated_count": self.automated_count,
            "proficient_count": self.proficient_count,
            "avg_proficiency": self.avg_proficiency,
            "avg_success_rate": self.avg_success_rate,
            "total_executions": self.total_executions,
        }
