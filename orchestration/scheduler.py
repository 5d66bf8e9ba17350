"""Cron scheduling of source collections and maintenance tasks."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from core.errors import ConfigurationError
from orchestration.orchestrator import CollectionOrchestrator
from schemas.config import ApiSourceConfig, ScheduleConfig, ScraperSourceConfig
from schemas.result import CollectionResult

logger = structlog.get_logger()

COLLECTION_JOB_PREFIX = "collect:"
MAINTENANCE_JOB_PREFIX = "maintenance:"


def collection_job_id(source_id: str) -> str:
    return f"{COLLECTION_JOB_PREFIX}{source_id}"


def build_trigger(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Parse a 5-field crontab expression.

    Raises:
        ConfigurationError: If the expression is not valid cron.
    """
    try:
        return CronTrigger.from_crontab(expression, timezone=timezone)
    except ValueError as e:
        raise ConfigurationError(f"Invalid cron expression '{expression}': {e}") from e


def validate_cron(expression: str) -> bool:
    try:
        build_trigger(expression)
    except ConfigurationError:
        return False
    return True


class CollectionScheduler:
    """Registers one cron job per enabled source on an AsyncIOScheduler.

    Overlapping fires for the same source are coalesced by the
    orchestrator; ``max_instances=1`` additionally keeps APScheduler from
    stacking missed runs.
    """

    def __init__(
        self,
        orchestrator: CollectionOrchestrator,
        timezone: str = "UTC",
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.orchestrator = orchestrator
        self.timezone = timezone
        self.scheduler = scheduler if scheduler is not None else AsyncIOScheduler(timezone=timezone)
        orchestrator.add_update_hook(self._on_source_update)

    # --- Collection jobs ---

    def schedule_source(self, config: ApiSourceConfig | ScraperSourceConfig) -> None:
        """Register (or replace) the cron job for an enabled source."""
        if not config.enabled:
            logger.info("Source disabled, not scheduled", source_id=config.id)
            return

        expression = config.schedule.expression
        trigger = build_trigger(expression, self.timezone)
        self.scheduler.add_job(
            self._run_collection,
            trigger=trigger,
            args=[config.id],
            id=collection_job_id(config.id),
            name=f"Collect {config.name}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Source scheduled", source_id=config.id, cron=expression)

    def unschedule_source(self, source_id: str) -> bool:
        job_id = collection_job_id(source_id)
        if self.scheduler.get_job(job_id) is None:
            return False
        self.scheduler.remove_job(job_id)
        logger.info("Source unscheduled", source_id=source_id)
        return True

    def scheduled_sources(self) -> list[str]:
        return sorted(
            job.id.removeprefix(COLLECTION_JOB_PREFIX)
            for job in self.scheduler.get_jobs()
            if job.id.startswith(COLLECTION_JOB_PREFIX)
        )

    def start_all(self) -> None:
        """Schedule every enabled source and start the scheduler."""
        for config in self.orchestrator.list_sources():
            try:
                self.schedule_source(config)
            except ConfigurationError as e:
                logger.error("Failed to schedule source", source_id=config.id, error=str(e))

        if not self.scheduler.running:
            self.scheduler.start()
        logger.info("Scheduler started", sources=self.scheduled_sources())

    def stop_all(self) -> None:
        """Remove every collection job; maintenance jobs stay."""
        for source_id in self.scheduled_sources():
            self.unschedule_source(source_id)
        logger.info("All collection jobs stopped")

    async def run_now(self, source_id: str) -> CollectionResult:
        """Trigger a collection immediately, outside the schedule."""
        logger.info("Manual collection triggered", source_id=source_id)
        return await self.orchestrator.collect_from_source(source_id)

    async def update_schedule(self, source_id: str, expression: str) -> None:
        """Replace a source's cron expression and reschedule it.

        Raises:
            ConfigurationError: Invalid expression or unknown source.
        """
        await self.orchestrator.update_source(
            source_id, schedule=ScheduleConfig(cron=expression)
        )

    def _on_source_update(
        self, config: ApiSourceConfig | ScraperSourceConfig, fields: set[str]
    ) -> None:
        """Keep the source's job in step with schedule and enabled changes."""
        if not fields & {"schedule", "enabled"}:
            return
        # Invalid cron rejects the update before the old job is touched
        build_trigger(config.schedule.expression, self.timezone)

        was_scheduled = self.unschedule_source(config.id)
        if was_scheduled or ("enabled" in fields and self.scheduler.running):
            self.schedule_source(config)

    async def _run_collection(self, source_id: str) -> None:
        try:
            result = await self.orchestrator.collect_from_source(source_id)
        except Exception as e:
            logger.error("Scheduled collection failed", source_id=source_id, error=str(e))
            return
        logger.info(
            "Scheduled collection finished",
            source_id=source_id,
            status=result.status.value,
            stored=result.jobs_stored,
        )

    # --- Maintenance jobs ---

    def add_maintenance_job(
        self,
        name: str,
        expression: str,
        func: Callable[[], Awaitable[object]],
    ) -> None:
        self.scheduler.add_job(
            func,
            trigger=build_trigger(expression, self.timezone),
            id=f"{MAINTENANCE_JOB_PREFIX}{name}",
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Maintenance job scheduled", name=name, cron=expression)

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")
