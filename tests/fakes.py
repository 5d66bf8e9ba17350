"""Hand-written collaborators shared by the test modules."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

from collectors.base import SourceAdapter
from evidence.result_log import ResultLog
from lifecycle.service import UserLifecycleStore
from orchestration.notifier import NotificationSink
from schemas.changes import ChangeDetectionResult, StructuralChange
from schemas.config import ApiSettings, ApiSourceConfig, SourceKind
from schemas.job import CanonicalJob
from schemas.result import CollectionResult
from storage.jobs import InMemoryJobStore

DESCRIPTION = (
    "Join our platform team and help us build internal tools used by "
    "thousands of colleagues every day."
)


def make_job(**overrides: Any) -> CanonicalJob:
    """A record that passes validation unless overridden."""
    data: dict[str, Any] = {
        "external_id": "job-1",
        "source": "jobtech",
        "source_url": "https://example.com/jobs/1",
        "title": "Python Developer",
        "description": DESCRIPTION,
        "company": {"name": "Acme AB"},
        "location": {"city": "Stockholm"},
        "publication_date": datetime(2024, 1, 10, tzinfo=UTC),
    }
    data.update(overrides)
    return CanonicalJob.model_validate(data)


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeAdapter(SourceAdapter):
    kind = SourceKind.API

    def __init__(
        self,
        source_id: str = "fake",
        *,
        jobs: list[CanonicalJob] | None = None,
        priority: int = 0,
        enabled: bool = True,
        error: Exception | None = None,
        init_error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ):
        self.config = ApiSourceConfig(
            id=source_id,
            name=source_id.title(),
            priority=priority,
            enabled=enabled,
            api=ApiSettings(base_url="https://api.example.com"),
        )
        self.jobs = jobs or []
        self.error = error
        self.init_error = init_error
        self.gate = gate
        self.init_calls = 0
        self.collect_calls = 0
        self.closed = False

    async def initialize(self) -> None:
        self.init_calls += 1
        if self.init_error is not None:
            raise self.init_error

    async def test_connection(self) -> bool:
        return True

    async def collect(self) -> CollectionResult:
        self.collect_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        result = CollectionResult(
            source_id=self.source_id,
            jobs_collected=len(self.jobs),
            jobs=[job.model_copy(deep=True) for job in self.jobs],
        )
        result.settle_status()
        return result

    async def detect_structural_changes(self) -> ChangeDetectionResult:
        return ChangeDetectionResult(source_id=self.source_id)

    async def close(self) -> None:
        self.closed = True


class InMemoryResultLog(ResultLog):
    def __init__(self) -> None:
        self.results: list[CollectionResult] = []

    def append(self, result: CollectionResult) -> str:
        self.results.append(result.model_copy(deep=True))
        return str(len(self.results))

    def list_results(self, source_id: str, limit: int = 20) -> list[dict[str, Any]]:
        matching = [r for r in reversed(self.results) if r.source_id == source_id]
        return [r.log_record() for r in matching[:limit]]


class FailingJobStore(InMemoryJobStore):
    """Store whose writes fail."""

    async def create_many(self, jobs: list[CanonicalJob]) -> int:
        raise OSError("disk full")

    async def update_many(self, jobs: list[CanonicalJob]) -> int:
        raise OSError("disk full")


class RecordingSink(NotificationSink):
    def __init__(self) -> None:
        self.calls: list[tuple[str, list[StructuralChange]]] = []

    async def notify(self, source_id: str, changes: list[StructuralChange]) -> None:
        self.calls.append((source_id, changes))


class FakeLifecycleStore(UserLifecycleStore):
    def __init__(self, results: dict[str, Any] | None = None, fail: set[str] | None = None):
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.results = results or {}
        self.fail = fail or set()

    async def call(self, procedure: str, *args: Any) -> Any:
        self.calls.append((procedure, args))
        if procedure in self.fail:
            raise RuntimeError(f"{procedure} failed")
        return self.results.get(procedure)
