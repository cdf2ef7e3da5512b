"""External scorer contract for consolidation.

A scorer is any ``async (prompt: str) -> str``. Its reply is expected to
embed ``{"evaluations": [...]}``; anything that cannot be parsed falls
back to a conservative rule so every candidate still gets a decision.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from memlife.memory.errors import ScorerError
from memlife.memory.models import CharacterProfile, Memory

logger = logging.getLogger(__name__)

Scorer = Callable[[str], Awaitable[str]]

# Rubric dimensions and their weight in the overall score
SCORING_WEIGHTS = {
    "semanticValue": 0.3,
    "emotionalDepth": 0.25,
    "associationValue": 0.2,
    "characterDevelopment": 0.15,
    "practicalValue": 0.1,
}

FALLBACK_REASONING = "fallback"

EVALUATION_PROMPT = """You manage the memories of {character_name}. Decide which of the short-term memories below should be promoted to long-term memory.

## Character
- Name: {character_name}
{character_description}- Memory stats: {total} total, {long_term} long-term, {short_term} short-term
- Average importance: {avg_importance:.2f}
{relationships}
## Short-term memories to evaluate
{candidates}

## Related long-term memories (reference)
{related}

## Rubric
Score each memory from 0 to 1 on:
1. semanticValue: important information, unique insight or key facts
2. emotionalDepth: strong, lasting and meaningful emotional experience
3. associationValue: how well it connects to and complements existing memories
4. characterDevelopment: contribution to growth, personality or relationships
5. practicalValue: likely future reference or guidance value

Overall >= 0.7 strongly suggests consolidation, 0.5-0.7 suggests it, < 0.5 does not.

## Output
Respond in JSON format:
```json
{{
    "evaluations": [
        {{
            "id": "<memory id>",
            "shouldConsolidate": true,
            "confidence": 0.8,
            "semanticValue": 0.7,
            "emotionalDepth": 0.6,
            "associationValue": 0.8,
            "characterDevelopment": 0.5,
            "practicalValue": 0.4,
            "reasoning": "Short explanation"
        }}
    ]
}}
```"""


@dataclass
class ScorerConfig:
    timeout_seconds: float = 30.0
    max_retries: int = 2            # Retries after the first attempt
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 8.0


@dataclass
class MemoryStats:
    total: int = 0
    long_term: int = 0
    short_term: int = 0
    avg_importance: float = 0.0

    @classmethod
    def from_memories(cls, memories: list[Memory]) -> MemoryStats:
        if not memories:
            return cls()
        long_term = sum(1 for m in memories if m.is_long_term)
        return cls(
            total=len(memories),
            long_term=long_term,
            short_term=len(memories) - long_term,
            avg_importance=sum(m.importance for m in memories) / len(memories),
        )


@dataclass
class EvaluationContext:
    """Everything the scorer sees besides the candidates themselves."""
    character_name: str = "Unknown character"
    profile: CharacterProfile | None = None
    related_long_term: list[Memory] = field(default_factory=list)
    relationships: list[str] = field(default_factory=list)
    stats: MemoryStats = field(default_factory=MemoryStats)


@dataclass
class MemoryEvaluation:
    """Scorer (or fallback) verdict for one candidate memory."""
    memory: Memory
    should_consolidate: bool
    confidence: float
    reasoning: str
    score: float | None = None
    dimensions: dict[str, float] = field(default_factory=dict)
    is_fallback: bool = False


def fallback_evaluation(memory: Memory, reasoning: str = FALLBACK_REASONING) -> MemoryEvaluation:
    """Conservative rule used whenever the scorer cannot be trusted."""
    return MemoryEvaluation(
        memory=memory,
        should_consolidate=memory.importance > 0.7 and memory.access_count > 2,
        confidence=0.3,
        reasoning=reasoning,
        score=None,
        is_fallback=True,
    )


def _clamp(value: Any, default: float = 0.0) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return default


def build_prompt(group: list[Memory], context: EvaluationContext, now: float | None = None) -> str:
    """Render the evaluation prompt for one group of candidates."""
    now = time.time() if now is None else now

    candidates = [
        {
            "id": m.id,
            "content": m.content,
            "importance": m.importance,
            "emotionIntensity": m.emotion_intensity or 0.0,
            "accessCount": m.access_count,
            "tags": sorted(m.tags),
            "createdAt": m.created_at,
            "daysSinceCreation": int(m.age_days(now)),
        }
        for m in group
    ]
    related = [
        {"content": m.content, "importance": m.importance, "tags": sorted(m.tags)}
        for m in context.related_long_term
    ]

    description = ""
    if context.profile is not None and context.profile.description:
        description = f"- Profile: {context.profile.description}\n"

    relationships = ""
    if context.relationships:
        relationships = "- Relationships:\n" + "".join(f"  - {r}\n" for r in context.relationships)

    return EVALUATION_PROMPT.format(
        character_name=context.character_name,
        character_description=description,
        total=context.stats.total,
        long_term=context.stats.long_term,
        short_term=context.stats.short_term,
        avg_importance=context.stats.avg_importance,
        relationships=relationships,
        candidates=json.dumps(candidates, ensure_ascii=False, indent=2),
        related=json.dumps(related, ensure_ascii=False, indent=2),
    )


def _extract_json(text: str) -> dict:
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0]
    elif "```" in text:
        text = text.split("```")[1].split("```")[0]

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ScorerError("No JSON object in scorer response")

    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise ScorerError(f"Unparsable scorer response: {e}") from e
    if not isinstance(data, dict):
        raise ScorerError("Scorer response is not a JSON object")
    return data


def _parse_flag(value: Any) -> bool | None:
    """JSON bool, or the strings "true"/"false"; anything else is unusable."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def _match_memory(raw_id: Any, group: list[Memory]) -> int | None:
    """Index of the memory an evaluation refers to, by memory id or position."""
    if raw_id is None:
        return None
    for i, memory in enumerate(group):
        if str(raw_id) == memory.id:
            return i
    try:
        index = int(raw_id)
    except (TypeError, ValueError):
        return None
    return index if 0 <= index < len(group) else None


def parse_evaluations(text: str, group: list[Memory]) -> dict[int, MemoryEvaluation]:
    """Parse a scorer reply into evaluations keyed by group index.

    Malformed entries are skipped.

    Raises:
        ScorerError: if the reply holds no usable JSON object
    """
    data = _extract_json(text)
    entries = data.get("evaluations")
    if not isinstance(entries, list):
        raise ScorerError("Scorer response has no 'evaluations' list")

    results: dict[int, MemoryEvaluation] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        index = _match_memory(entry.get("id"), group)
        if index is None:
            logger.debug("[Scorer] Discarding evaluation with unknown id %r", entry.get("id"))
            continue

        should_consolidate = _parse_flag(entry.get("shouldConsolidate"))
        if should_consolidate is None:
            logger.debug(
                "[Scorer] Discarding evaluation with unusable shouldConsolidate %r",
                entry.get("shouldConsolidate"),
            )
            continue

        dimensions = {name: _clamp(entry.get(name)) for name in SCORING_WEIGHTS}
        score = sum(dimensions[name] * weight for name, weight in SCORING_WEIGHTS.items())
        results[index] = MemoryEvaluation(
            memory=group[index],
            should_consolidate=should_consolidate,
            confidence=_clamp(entry.get("confidence")),
            reasoning=str(entry.get("reasoning", "")),
            score=score,
            dimensions=dimensions,
        )
    return results


class ScorerClient:
    """Calls a scorer with timeout, bounded retries and exponential backoff.

    ``evaluate`` never raises for scorer problems: it returns exactly one
    evaluation per candidate, falling back where needed.
    """

    def __init__(self, scorer: Scorer | None = None, config: ScorerConfig | None = None):
        self.scorer = scorer
        self.config = config or ScorerConfig()

    @property
    def available(self) -> bool:
        return self.scorer is not None

    async def _call(self, prompt: str) -> str:
        cfg = self.config
        last_error: Exception | None = None

        for attempt in range(cfg.max_retries + 1):
            try:
                return await asyncio.wait_for(self.scorer(prompt), timeout=cfg.timeout_seconds)
            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning(
                    "[Scorer] Timed out after %.1fs (attempt %d/%d)",
                    cfg.timeout_seconds, attempt + 1, cfg.max_retries + 1,
                )
            except Exception as e:
                last_error = e
                logger.warning(
                    "[Scorer] Call failed (attempt %d/%d): %s",
                    attempt + 1, cfg.max_retries + 1, e,
                )

            if attempt < cfg.max_retries:
                delay = min(cfg.backoff_max_seconds, cfg.backoff_base_seconds * (2 ** attempt))
                await asyncio.sleep(delay)

        raise ScorerError(f"Scorer unavailable: {last_error}") from last_error

    async def evaluate(
        self,
        group: list[Memory],
        context: EvaluationContext,
        now: float | None = None,
    ) -> list[MemoryEvaluation]:
        if self.scorer is None:
            return [fallback_evaluation(m) for m in group]

        try:
            reply = await self._call(build_prompt(group, context, now))
            parsed = parse_evaluations(reply, group)
        except ScorerError as e:
            logger.warning("[Scorer] Falling back for %d memories: %s", len(group), e)
            return [fallback_evaluation(m) for m in group]

        missing = len(group) - len(parsed)
        if missing:
            logger.debug("[Scorer] %d memories omitted by scorer, using fallback", missing)
        return [parsed.get(i) or fallback_evaluation(m) for i, m in enumerate(group)]


def create_llm_scorer(llm_complete: Callable[[list[dict]], Awaitable[Any]]) -> Scorer:
    """Create a scorer backed by an LLM completion function.

    Args:
        llm_complete: Async function that takes messages and returns an LLM
                      response with a ``.content`` attribute (or a dict/str).

    Example:
        from memlife.llm.provider import LLMProvider, LLMConfig

        llm = LLMProvider(LLMConfig(model="gpt-4o-mini"))
        scorer = create_llm_scorer(llm.complete)
    """

    async def score(prompt: str) -> str:
        messages = [{"role": "user", "content": prompt}]
        response = await llm_complete(messages)

        if hasattr(response, "content"):
            text = response.content
        elif isinstance(response, dict):
            text = response.get("content", "")
        else:
            text = str(response)
        return text or ""

    return score
