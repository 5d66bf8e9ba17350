"""User data lifecycle maintenance.

The retention and GDPR rules live in database procedures; this module
invokes them by name and wires the periodic ones onto the scheduler.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from orchestration.scheduler import CollectionScheduler

logger = structlog.get_logger()


class UserLifecycleStore(ABC):
    """External store exposing the lifecycle procedures."""

    @abstractmethod
    async def call(self, procedure: str, *args: Any) -> Any:
        """Invoke a stored procedure and return its result."""


@dataclass(frozen=True)
class MaintenanceTask:
    name: str
    cron: str
    method: str


# Times are in the scheduler's timezone
MAINTENANCE_SCHEDULE: tuple[MaintenanceTask, ...] = (
    MaintenanceTask("mark_expired_jobs", "0 1 * * *", "mark_expired_jobs"),
    MaintenanceTask("anonymize_activity_logs", "0 2 * * *", "anonymize_activity_logs"),
    MaintenanceTask("process_gdpr_requests", "0 3 * * *", "process_gdpr_requests"),
    MaintenanceTask("archive_old_jobs", "30 1 * * 0", "archive_old_jobs"),
    MaintenanceTask("archive_old_search_history", "0 2 1 * *", "archive_old_search_history"),
    MaintenanceTask("cleanup_orphaned_companies", "30 2 2 * *", "cleanup_orphaned_companies"),
    MaintenanceTask("anonymize_inactive_users", "0 3 3 * *", "anonymize_inactive_users"),
)


class UserLifecycleService:
    """Thin facade over the lifecycle procedures."""

    def __init__(self, store: UserLifecycleStore):
        self.store = store

    async def _call(self, procedure: str, *args: Any) -> Any:
        logger.info("Lifecycle procedure", procedure=procedure)
        return await self.store.call(procedure, *args)

    # --- Periodic maintenance ---

    async def mark_expired_jobs(self) -> Any:
        return await self._call("mark_expired_jobs")

    async def anonymize_activity_logs(self) -> Any:
        return await self._call("anonymize_user_activity_logs")

    async def process_gdpr_requests(self) -> Any:
        return await self._call("process_pending_gdpr_requests")

    async def archive_old_jobs(self) -> Any:
        return await self._call("archive_old_jobs")

    async def archive_old_search_history(self) -> Any:
        return await self._call("archive_old_search_history")

    async def cleanup_orphaned_companies(self) -> Any:
        return await self._call("cleanup_orphaned_companies")

    async def anonymize_inactive_users(self) -> Any:
        return await self._call("anonymize_inactive_users")

    # --- User rights requests ---

    async def export_user_data(self, user_id: str) -> Any:
        return await self._call("generate_user_data_export", user_id)

    async def process_deletion(self, user_id: str) -> bool:
        return bool(await self._call("process_gdpr_delete_request", user_id))

    async def update_consent(
        self,
        user_id: str,
        consent_to_processing: bool,
        marketing_consent: bool,
        privacy_policy_version: str,
    ) -> bool:
        result = await self._call(
            "update_user_consent",
            user_id,
            consent_to_processing,
            marketing_consent,
            privacy_policy_version,
        )
        return bool(result)

    # --- Scheduling ---

    def task(self, task: MaintenanceTask) -> Callable[[], Awaitable[None]]:
        """Wrap a maintenance method so failures are logged, not raised."""
        method = getattr(self, task.method)

        async def run() -> None:
            logger.info("Running maintenance task", task=task.name)
            try:
                await method()
            except Exception as e:
                logger.error("Maintenance task failed", task=task.name, error=str(e))

        return run

    def register(self, scheduler: CollectionScheduler) -> None:
        for task in MAINTENANCE_SCHEDULE:
            scheduler.add_maintenance_job(task.name, task.cron, self.task(task))
        logger.info("Maintenance jobs registered", count=len(MAINTENANCE_SCHEDULE))
