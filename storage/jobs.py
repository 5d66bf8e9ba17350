"""Job storage abstraction.

The production store is an external database; these implementations
cover tests, local runs and single-node deployments.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path

import structlog

from schemas.job import CanonicalJob

logger = structlog.get_logger()


class JobStore(ABC):
    """Abstract base for canonical job storage, keyed by ``(source, external_id)``."""

    @abstractmethod
    async def get_existing(self) -> list[CanonicalJob]:
        """All currently stored records."""

    @abstractmethod
    async def create_many(self, jobs: list[CanonicalJob]) -> int:
        """Insert records; returns how many were written."""

    @abstractmethod
    async def update_many(self, jobs: list[CanonicalJob]) -> int:
        """Update records by key; returns how many were written."""


class InMemoryJobStore(JobStore):
    """Dict-backed store. Upsert-safe: create and update both overwrite by key."""

    def __init__(self, jobs: list[CanonicalJob] | None = None):
        self._jobs: dict[tuple[str, str], CanonicalJob] = {
            job.key: job for job in jobs or []
        }

    def __len__(self) -> int:
        return len(self._jobs)

    def get(self, source: str, external_id: str) -> CanonicalJob | None:
        return self._jobs.get((source, external_id))

    async def get_existing(self) -> list[CanonicalJob]:
        return list(self._jobs.values())

    async def create_many(self, jobs: list[CanonicalJob]) -> int:
        for job in jobs:
            self._jobs[job.key] = job
        return len(jobs)

    async def update_many(self, jobs: list[CanonicalJob]) -> int:
        for job in jobs:
            self._jobs[job.key] = job
        return len(jobs)


class FileJobStore(InMemoryJobStore):
    """JSON-file-backed store.

    Structure:
        path  (list of CanonicalJob dicts)
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        super().__init__(self._load())

    def _load(self) -> list[CanonicalJob]:
        if not self.path.exists():
            return []
        with open(self.path) as f:
            data = json.load(f)
        return [CanonicalJob.model_validate(item) for item in data]

    def _flush(self) -> None:
        data = [job.model_dump(mode="json") for job in self._jobs.values()]
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, "w") as f:
            json.dump(data, f, indent=2, default=str)
        tmp.replace(self.path)
        logger.debug("Job store flushed", path=str(self.path), jobs=len(data))

    async def create_many(self, jobs: list[CanonicalJob]) -> int:
        async with self._lock:
            count = await super().create_many(jobs)
            self._flush()
        return count

    async def update_many(self, jobs: list[CanonicalJob]) -> int:
        async with self._lock:
            count = await super().update_many(jobs)
            self._flush()
        return count
