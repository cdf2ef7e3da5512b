"""MemoryLifecycleEngine - Main entry point for the memory lifecycle system.

Wires strength estimation, reconstruction, consolidation and procedural
memory over a single store, and runs periodic maintenance.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field

from dotenv import load_dotenv

from memlife.memory.cache import CacheStats
from memlife.memory.consolidation import ConsolidationConfig, ConsolidationPipeline, ConsolidationResult
from memlife.memory.models import Memory
from memlife.memory.operators import (
    StrengthModel,
    StrengthConfig,
    MergeConfig,
    ConflictConfig,
    ConflictDetector,
    create_merge_strategy,
    create_conflict_resolver,
)
from memlife.memory.procedural.manager import ProceduralConfig, ProceduralMemoryManager
from memlife.memory.reconstruction import ReconstructionService
from memlife.memory.scorer import Scorer, create_llm_scorer
from memlife.memory.storage import (
    CharacterProfileSource,
    InMemoryMemoryStore,
    MemoryStore,
    ProceduralMemoryStorage,
    ThresholdStore,
)

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    if raw.strip().lower() in ("none", "off"):
        return None
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw and raw.strip() else default


@dataclass
class EngineConfig:
    """Master configuration for the lifecycle engine."""
    strength_config: StrengthConfig | None = None
    merge_config: MergeConfig | None = None
    conflict_config: ConflictConfig | None = None
    consolidation_config: ConsolidationConfig | None = None
    procedural_config: ProceduralConfig | None = None

    # Operator variants: "smart" or "simple"
    merge_strategy: str = "smart"
    conflict_resolver: str = "smart"

    # Scorer model, None disables the LLM scorer
    model: str | None = None

    # Maintenance
    maintenance_interval: float = 3600.0  # Seconds between maintenance passes
    procedural_decay_days: int = 1

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Build a config from the environment (and a .env file if present)."""
        load_dotenv()

        cache_size = _env_int("MEMLIFE_CACHE_SIZE", 1000)
        cache_ttl = _env_float("MEMLIFE_CACHE_TTL", 3600.0)

        consolidation = ConsolidationConfig(
            batch_delay_seconds=_env_float("MEMLIFE_BATCH_DELAY", 0.1) or 0.0,
            use_adaptive_threshold=os.getenv("MEMLIFE_ADAPTIVE_THRESHOLD", "").strip().lower() in _TRUE_VALUES,
        )
        consolidation.scorer.timeout_seconds = _env_float("MEMLIFE_SCORER_TIMEOUT", 30.0) or 30.0
        consolidation.scorer.max_retries = _env_int("MEMLIFE_SCORER_RETRIES", 2)

        return cls(
            strength_config=StrengthConfig.preset(os.getenv("MEMLIFE_STRENGTH_PRESET", "default")),
            merge_config=MergeConfig(cache_size=cache_size, cache_ttl_seconds=cache_ttl),
            conflict_config=ConflictConfig(cache_size=cache_size, cache_ttl_seconds=cache_ttl),
            consolidation_config=consolidation,
            model=os.getenv("MODEL") or None,
        )


@dataclass
class MaintenanceReport:
    """Outcome of one maintenance pass."""
    started_at: float
    finished_at: float = 0.0
    results: dict[str, ConsolidationResult] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    expired_cache_entries: int = 0
    procedural_decayed: int = 0

    @property
    def succeeded(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        consolidated = sum(r.consolidated for r in self.results.values())
        return (
            f"characters={len(self.results)} failed={len(self.failures)} "
            f"consolidated={consolidated} expired={self.expired_cache_entries} "
            f"decayed={self.procedural_decayed}"
        )


class MemoryLifecycleEngine:
    """Main entry point for the memory lifecycle system.

    Provides:
    - Strength and retention estimates (``strength``)
    - Rewrites, merges and conflict resolution (``reconstruction``)
    - Short-term to long-term consolidation (``consolidation``)
    - Skill and habit tracking (``procedural``)
    - Periodic maintenance combining the above
    """

    def __init__(
        self,
        store: MemoryStore | None = None,
        config: EngineConfig | None = None,
        scorer: Scorer | None = None,
        profiles: CharacterProfileSource | None = None,
        thresholds: ThresholdStore | None = None,
        procedural_storage: ProceduralMemoryStorage | None = None,
    ):
        self.config = config or EngineConfig()
        self.store = store or InMemoryMemoryStore()

        # Operators
        self.strength = StrengthModel(self.config.strength_config or StrengthConfig())
        merge_strategy = create_merge_strategy(
            self.config.merge_strategy, self.config.merge_config or MergeConfig()
        )
        conflict_config = self.config.conflict_config or ConflictConfig()
        conflict_resolver = create_conflict_resolver(self.config.conflict_resolver, conflict_config)

        # Services
        self.reconstruction = ReconstructionService(
            self.store,
            merge_strategy,
            conflict_resolver,
            ConflictDetector(conflict_config),
        )
        self.consolidation = ConsolidationPipeline(
            self.store,
            scorer=scorer,
            profiles=profiles,
            thresholds=thresholds,
            config=self.config.consolidation_config or ConsolidationConfig(),
        )
        self.procedural = ProceduralMemoryManager(
            procedural_storage, self.config.procedural_config or ProceduralConfig()
        )

        self._running = False
        self._maintenance_task: asyncio.Task | None = None
        self.last_report: MaintenanceReport | None = None

    @classmethod
    def from_env(cls, store: MemoryStore | None = None, **kwargs) -> MemoryLifecycleEngine:
        """Build an engine from the environment.

        An LLM scorer is attached when ``MODEL`` is set and the matching
        provider credentials are available; otherwise the rule fallback is used.
        """
        config = EngineConfig.from_env()
        scorer = kwargs.pop("scorer", None)

        if scorer is None and config.model:
            from memlife.llm.provider import LLMProvider, LLMConfig

            llm = LLMProvider(LLMConfig(model=config.model))
            if llm.has_credentials:
                scorer = create_llm_scorer(llm.complete)
                logger.info("[Engine] Using LLM scorer %s", llm.get_provider_info())
            else:
                logger.warning("[Engine] MODEL=%s set but no API key found, using rule fallback", config.model)

        return cls(store=store, config=config, scorer=scorer, **kwargs)

    # ==================== Core API ====================

    async def consolidate(self, character_id: str) -> ConsolidationResult:
        return await self.consolidation.consolidate(character_id)

    async def memory_strengths(self, now: float | None = None) -> dict[str, float]:
        """Current strength of every stored memory."""
        return self.strength.calculate_batch(await self.store.get_all(), now)

    async def weak_memories(self, now: float | None = None) -> list[Memory]:
        memories = await self.store.get_all()
        return [m for m in memories if self.strength.classify(m, now) == "weak"]

    def cache_stats(self) -> dict[str, CacheStats]:
        """Stats of every internal cache, keyed by cache name."""
        stats = {}
        for component in (self.reconstruction.merge_strategy, self.reconstruction.conflict_resolver):
            component_stats = component.cache_stats()
            if component_stats is not None:
                stats[component_stats.name] = component_stats
        return stats

    # ==================== Maintenance ====================

    async def run_maintenance(self, character_ids: list[str]) -> MaintenanceReport:
        """Consolidate each character, purge expired cache entries, decay skills.

        A failing character is logged and recorded in the report; the
        remaining characters are still processed.
        """
        report = MaintenanceReport(started_at=time.time())

        for character_id in character_ids:
            try:
                report.results[character_id] = await self.consolidation.consolidate(character_id)
            except Exception as e:
                logger.warning("[Engine] Consolidation failed for %s: %s", character_id, e)
                report.failures[character_id] = str(e)

        report.expired_cache_entries = self.reconstruction.cleanup_expired()
        report.procedural_decayed = await self.procedural.apply_decay(self.config.procedural_decay_days)

        report.finished_at = time.time()
        self.last_report = report
        logger.info("[Engine] Maintenance: %s", report.summary())
        return report

    @property
    def maintenance_running(self) -> bool:
        return self._running

    async def start_maintenance(self, character_ids: list[str], interval: float | None = None) -> None:
        """Start the background maintenance loop."""
        if self._running:
            return
        self._running = True
        self._maintenance_task = asyncio.create_task(
            self._maintenance_loop(list(character_ids), interval or self.config.maintenance_interval)
        )

    async def stop_maintenance(self) -> None:
        """Stop the background maintenance loop."""
        self._running = False

        if self._maintenance_task:
            self._maintenance_task.cancel()
            try:
                await self._maintenance_task
            except asyncio.CancelledError:
                pass
            self._maintenance_task = None

    async def _maintenance_loop(self, character_ids: list[str], interval: float) -> None:
        while self._running:
            try:
                await self.run_maintenance(character_ids)
            except Exception:
                logger.exception("[Engine] Maintenance pass failed")

            await asyncio.sleep(interval)
