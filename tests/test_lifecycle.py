import asyncio

from lifecycle.service import MAINTENANCE_SCHEDULE, UserLifecycleService
from orchestration.scheduler import CollectionScheduler, validate_cron
from tests.fakes import FakeLifecycleStore


def test_maintenance_calls_named_procedures():
    store = FakeLifecycleStore()
    service = UserLifecycleService(store)

    async def run():
        await service.mark_expired_jobs()
        await service.anonymize_activity_logs()
        await service.process_gdpr_requests()
        await service.archive_old_jobs()
        await service.archive_old_search_history()
        await service.cleanup_orphaned_companies()
        await service.anonymize_inactive_users()

    asyncio.run(run())

    assert [name for name, _ in store.calls] == [
        "mark_expired_jobs",
        "anonymize_user_activity_logs",
        "process_pending_gdpr_requests",
        "archive_old_jobs",
        "archive_old_search_history",
        "cleanup_orphaned_companies",
        "anonymize_inactive_users",
    ]


def test_user_rights_requests_pass_arguments():
    store = FakeLifecycleStore(
        results={
            "generate_user_data_export": {"user": {"id": "u1"}},
            "process_gdpr_delete_request": True,
            "update_user_consent": True,
        }
    )
    service = UserLifecycleService(store)

    async def run():
        export = await service.export_user_data("u1")
        deleted = await service.process_deletion("u1")
        consent = await service.update_consent("u1", True, False, "2024-01")
        return export, deleted, consent

    export, deleted, consent = asyncio.run(run())

    assert export == {"user": {"id": "u1"}}
    assert deleted is True
    assert consent is True
    assert store.calls[-1] == ("update_user_consent", ("u1", True, False, "2024-01"))


def test_failing_task_is_logged_not_raised():
    store = FakeLifecycleStore(fail={"archive_old_jobs"})
    service = UserLifecycleService(store)
    task = next(t for t in MAINTENANCE_SCHEDULE if t.name == "archive_old_jobs")

    asyncio.run(service.task(task)())

    assert store.calls == [("archive_old_jobs", ())]


def test_schedule_registered_with_valid_crons(orchestrator):
    scheduler = CollectionScheduler(orchestrator, timezone="Europe/Stockholm")

    UserLifecycleService(FakeLifecycleStore()).register(scheduler)

    assert all(validate_cron(task.cron) for task in MAINTENANCE_SCHEDULE)
    assert sorted(job.id for job in scheduler.scheduler.get_jobs()) == sorted(
        f"maintenance:{task.name}" for task in MAINTENANCE_SCHEDULE
    )
    assert scheduler.scheduled_sources() == []
