"""JSON-file-backed MemoryStore.

The whole file is loaded on first use and rewritten atomically
(temp file + rename) on every upsert.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path

import aiofiles

from memlife.memory.models import Memory
from memlife.memory.storage.base import MemoryStore

logger = logging.getLogger(__name__)


class JsonFileMemoryStore(MemoryStore):
    """Stores memories as ``{"memories": [...]}`` in a single JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._memories: dict[str, Memory] | None = None
        self._lock = asyncio.Lock()

    async def _load(self) -> dict[str, Memory]:
        if self._memories is not None:
            return self._memories

        memories: dict[str, Memory] = {}
        if self.path.exists():
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
            if raw.strip():
                data = json.loads(raw)
                items = data.get("memories", []) if isinstance(data, dict) else data
                for item in items:
                    memory = Memory.from_dict(item)
                    memories[memory.id] = memory
            logger.debug("[JsonStore] Loaded %d memories from %s", len(memories), self.path)

        self._memories = memories
        return memories

    async def _write_atomic(self, memories: dict[str, Memory]) -> None:
        content = json.dumps(
            {"memories": [m.to_dict() for m in memories.values()]},
            ensure_ascii=False,
            indent=2,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")

        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(content)

        temp_path.replace(self.path)

    async def get(self, memory_id: str) -> Memory | None:
        async with self._lock:
            memory = (await self._load()).get(memory_id)
        return replace(memory) if memory is not None else None

    async def get_all(self) -> list[Memory]:
        async with self._lock:
            memories = await self._load()
            return [replace(m) for m in memories.values()]

    async def store(self, memory: Memory) -> None:
        async with self._lock:
            memories = await self._load()
            memories[memory.id] = replace(memory)
            await self._write_atomic(memories)
