"""Per-run stage tracking for a single source collection."""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, Field

from core.ids import generate_run_id

logger = structlog.get_logger()


class StageLog(BaseModel):
    """Log entry for a pipeline stage."""

    stage: str
    started_at: datetime
    completed_at: datetime | None = None
    status: str = "running"
    items_in: int = 0
    items_out: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_seconds: float | None = None


class RunContext(BaseModel):
    """Context for one collection run - travels through all stages."""

    run_id: str
    source_id: str
    started_at: datetime
    started_monotonic: float
    stage_logs: list[StageLog] = Field(default_factory=list)

    @classmethod
    def boot(cls, source_id: str, run_id: str | None = None) -> RunContext:
        """Start tracking a new run."""
        return cls(
            run_id=run_id or generate_run_id(),
            source_id=source_id,
            started_at=datetime.now(UTC),
            started_monotonic=time.monotonic(),
        )

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_monotonic) * 1000

    def start_stage(self, stage: str, items_in: int = 0) -> StageLog:
        """Record start of a stage."""
        log = StageLog(
            stage=stage,
            started_at=datetime.now(UTC),
            items_in=items_in,
        )
        self.stage_logs.append(log)
        return log

    def complete_stage(
        self,
        stage: str,
        items_out: int = 0,
        errors: list[str] | None = None,
        status: str = "completed",
    ) -> None:
        """Record completion of a stage."""
        for log in self.stage_logs:
            if log.stage == stage and log.completed_at is None:
                log.completed_at = datetime.now(UTC)
                log.items_out = items_out
                log.status = status
                if errors:
                    log.errors = errors
                log.duration_seconds = (
                    log.completed_at - log.started_at
                ).total_seconds()
                logger.debug(
                    "Stage complete",
                    source_id=self.source_id,
                    run_id=self.run_id,
                    stage=stage,
                    items_in=log.items_in,
                    items_out=items_out,
                    status=status,
                    duration_seconds=log.duration_seconds,
                )
                break

    def summary(self) -> dict[str, Any]:
        """Get a summary of the run for logging."""
        return {
            "run_id": self.run_id,
            "source_id": self.source_id,
            "started_at": self.started_at.isoformat(),
            "stages": [
                {
                    "stage": log.stage,
                    "status": log.status,
                    "items_in": log.items_in,
                    "items_out": log.items_out,
                    "duration": log.duration_seconds,
                    "errors": len(log.errors),
                }
                for log in self.stage_logs
            ],
        }
