"""StrengthModel - Memory retention under exponential forgetting.

retention = e^(-Δt / S) * (w_base + confidence * w_conf)

where Δt is elapsed days and S is the effective strength built from
reinforcement, emotion, importance, recall difficulty and context.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass

from memlife.memory.models import Memory, SECONDS_PER_DAY


@dataclass
class StrengthConfig:
    """Weights of the retention model.

    Presets differ only in the five multipliers.
    """
    base_strength_multiplier: float = 10.0
    emotion_bonus_multiplier: float = 5.0
    importance_bonus_multiplier: float = 3.0
    difficulty_penalty_multiplier: float = 2.0
    context_bonus_multiplier: float = 2.0

    confidence_base_weight: float = 0.5
    confidence_multiplier: float = 0.5
    min_effective_strength: float = 1.0  # Floor on S, keeps division safe

    # Classification thresholds
    strong_memory_threshold: float = 0.7
    weak_memory_threshold: float = 0.3

    @classmethod
    def default(cls) -> StrengthConfig:
        return cls()

    @classmethod
    def conservative(cls) -> StrengthConfig:
        """Memories last longer."""
        return cls(
            base_strength_multiplier=15.0,
            emotion_bonus_multiplier=7.0,
            importance_bonus_multiplier=5.0,
            difficulty_penalty_multiplier=1.0,
            context_bonus_multiplier=3.0,
        )

    @classmethod
    def aggressive(cls) -> StrengthConfig:
        """Memories fade faster."""
        return cls(
            base_strength_multiplier=7.0,
            emotion_bonus_multiplier=3.0,
            importance_bonus_multiplier=2.0,
            difficulty_penalty_multiplier=3.0,
            context_bonus_multiplier=1.0,
        )

    @classmethod
    def preset(cls, name: str) -> StrengthConfig:
        presets = {
            "default": cls.default,
            "conservative": cls.conservative,
            "aggressive": cls.aggressive,
        }
        try:
            return presets[name.lower()]()
        except KeyError:
            raise ValueError(
                f"Unknown strength preset '{name}', expected one of {sorted(presets)}"
            ) from None


def effective_strength(memory: Memory, config: StrengthConfig | None = None) -> float:
    """Strength S of a memory in days, floored at ``min_effective_strength``."""
    config = config or StrengthConfig()

    base = math.log1p(memory.reinforcement_count) * config.base_strength_multiplier
    emotion_bonus = (memory.emotion_intensity or 0.0) * config.emotion_bonus_multiplier
    importance_bonus = memory.importance * config.importance_bonus_multiplier
    difficulty_penalty = memory.recall_difficulty * config.difficulty_penalty_multiplier
    context_bonus = memory.context_relevance * config.context_bonus_multiplier

    strength = base + emotion_bonus + importance_bonus - difficulty_penalty + context_bonus
    return max(config.min_effective_strength, strength)


def retention(
    memory: Memory,
    elapsed_days: float,
    confidence: float | None = None,
    config: StrengthConfig | None = None,
) -> float:
    """Retention after ``elapsed_days``. Not clamped.

    At zero elapsed days this is exactly
    ``confidence_base_weight + confidence * confidence_multiplier``.
    """
    config = config or StrengthConfig()
    if confidence is None:
        confidence = memory.confidence

    strength = effective_strength(memory, config)
    decay = math.exp(-max(0.0, elapsed_days) / strength)
    return decay * (config.confidence_base_weight + confidence * config.confidence_multiplier)


def estimate_recall_difficulty(content: str) -> float:
    """Heuristic difficulty of recalling a text (0-1).

    Longer texts, digit-heavy texts and texts with many long words are
    harder to remember verbatim.
    """
    if not content:
        return 0.0

    length_score = min(1.0, len(content) / 500)
    digit_ratio = sum(ch.isdigit() for ch in content) / len(content)
    words = content.split()
    long_word_ratio = (
        sum(1 for w in words if len(w) > 8) / len(words) if words else 0.0
    )

    difficulty = length_score * 0.5 + digit_ratio * 0.3 + long_word_ratio * 0.2
    return max(0.0, min(1.0, difficulty))


class StrengthModel:
    """Computes current strength of memories from their access history."""

    def __init__(self, config: StrengthConfig | None = None):
        self.config = config or StrengthConfig()

    def effective_strength(self, memory: Memory) -> float:
        return effective_strength(memory, self.config)

    def half_life_days(self, memory: Memory) -> float:
        """Days until retention halves: S * ln 2."""
        return self.effective_strength(memory) * math.log(2)

    def retention(self, memory: Memory, elapsed_days: float, confidence: float | None = None) -> float:
        return retention(memory, elapsed_days, confidence, self.config)

    def calculate_strength(self, memory: Memory, now: float | None = None) -> float:
        """Current strength in [0, 1], measured from the last access.

        Args:
            memory: Memory to evaluate
            now: Current timestamp (defaults to time.time())
        """
        if now is None:
            now = time.time()
        elapsed_days = max(0.0, now - memory.last_accessed_at) / SECONDS_PER_DAY
        return max(0.0, min(1.0, self.retention(memory, elapsed_days)))

    def calculate_batch(self, memories: list[Memory], now: float | None = None) -> dict[str, float]:
        """Calculate strength for many memories at one timestamp.

        Returns:
            Dict of {memory_id: strength}
        """
        if now is None:
            now = time.time()
        return {m.id: self.calculate_strength(m, now) for m in memories}

    def classify(self, memory: Memory, now: float | None = None) -> str:
        strength = self.calculate_strength(memory, now)
        if strength >= self.config.strong_memory_threshold:
            return "strong"
        if strength < self.config.weak_memory_threshold:
            return "weak"
        return "normal"
