import asyncio

import pytest

from collectors.adapters import AdapterDependencies, JobTechAdapter
from core.errors import ConfigurationError, ConfigValidationError
from evidence.snapshot import FileFingerprintStore
from orchestration.orchestrator import CollectionOrchestrator, CriticalCollectionError
from schemas.base import Severity
from schemas.result import CollectionStatus
from tests.fakes import FailingJobStore, FakeAdapter, InMemoryResultLog, make_job
from tests.test_api_adapter import api_config


def test_run_normalizes_validates_and_stores(orchestrator, job_store, result_log):
    adapter = FakeAdapter(
        jobs=[
            make_job(external_id="1", title="Hiring: junior developer"),
            make_job(external_id="2", title="Student assistant"),
        ]
    )
    orchestrator.register_source(adapter)

    result = asyncio.run(orchestrator.collect_from_source("fake"))

    assert result.status == CollectionStatus.SUCCESS
    assert result.jobs_processed == 2
    assert result.jobs_stored == 2
    assert len(job_store) == 2
    assert job_store.get("jobtech", "1").title == "Junior Developer"
    assert "student_relevance_score" in job_store.get("jobtech", "2").metadata
    assert result.duration_ms >= 0
    assert [r.source_id for r in result_log.results] == ["fake"]


def test_rerun_updates_instead_of_duplicating(orchestrator, job_store):
    orchestrator.register_source(FakeAdapter(jobs=[make_job(external_id="1")]))

    async def run():
        await orchestrator.collect_from_source("fake")
        return await orchestrator.collect_from_source("fake")

    second = asyncio.run(run())

    assert second.jobs_stored == 1
    assert len(job_store) == 1


def test_invalid_record_kept_in_result_but_not_stored(orchestrator, job_store):
    orchestrator.register_source(
        FakeAdapter(
            jobs=[
                make_job(external_id="1"),
                make_job(external_id="2", company={"name": ""}),
            ]
        )
    )

    result = asyncio.run(orchestrator.collect_from_source("fake"))

    assert result.validation_failures == 1
    assert result.jobs_stored == 1
    assert len(result.jobs) == 2
    invalid = next(j for j in result.jobs if j.external_id == "2")
    assert [i.field for i in invalid.collecting_metadata.validation_issues] == ["company.name"]
    assert job_store.get("jobtech", "2") is None


def test_concurrent_triggers_share_one_run(orchestrator):
    async def run():
        gate = asyncio.Event()
        adapter = FakeAdapter(jobs=[make_job()], gate=gate)
        orchestrator.register_source(adapter)

        first = asyncio.create_task(orchestrator.collect_from_source("fake"))
        second = asyncio.create_task(orchestrator.collect_from_source("fake"))
        await asyncio.sleep(0)
        assert orchestrator.is_collecting("fake")

        gate.set()
        results = await asyncio.gather(first, second)
        assert not orchestrator.is_collecting("fake")

        again = await orchestrator.collect_from_source("fake")
        return adapter, results, again

    adapter, (a, b), again = asyncio.run(run())

    assert a is b
    assert again is not a
    assert adapter.collect_calls == 2


def test_cancelled_caller_does_not_cancel_shared_run(orchestrator):
    async def run():
        gate = asyncio.Event()
        adapter = FakeAdapter(jobs=[make_job()], gate=gate)
        orchestrator.register_source(adapter)

        first = asyncio.create_task(orchestrator.collect_from_source("fake"))
        second = asyncio.create_task(orchestrator.collect_from_source("fake"))
        await asyncio.sleep(0)
        first.cancel()
        gate.set()
        return await second

    result = asyncio.run(run())

    assert result.status == CollectionStatus.SUCCESS


def test_unknown_and_disabled_sources_rejected(orchestrator):
    orchestrator.register_source(FakeAdapter("off", enabled=False))

    with pytest.raises(ConfigurationError):
        asyncio.run(orchestrator.collect_from_source("missing"))
    with pytest.raises(ConfigurationError):
        asyncio.run(orchestrator.collect_from_source("off"))


def test_initialization_error_raised_to_caller(orchestrator):
    adapter = FakeAdapter(init_error=ConfigurationError("missing credentials"))
    orchestrator.register_source(adapter)

    asyncio.run(orchestrator.initialize())
    with pytest.raises(ConfigurationError, match="missing credentials"):
        asyncio.run(orchestrator.collect_from_source("fake"))

    assert adapter.init_calls == 2
    assert not orchestrator.is_collecting("fake")


def test_unexpected_exception_recorded_then_raised(orchestrator, result_log):
    orchestrator.register_source(FakeAdapter(error=RuntimeError("boom")))

    with pytest.raises(CriticalCollectionError) as exc:
        asyncio.run(orchestrator.collect_from_source("fake"))

    assert exc.value.result.status == CollectionStatus.FAILURE
    logged = result_log.results[-1]
    assert logged.status == CollectionStatus.FAILURE
    assert [(e.code, e.severity) for e in logged.errors] == [("critical_error", Severity.CRITICAL)]


def test_batch_continues_past_failing_source(orchestrator, result_log):
    orchestrator.register_source(FakeAdapter("low", priority=1, jobs=[make_job(external_id="3")]))
    orchestrator.register_source(FakeAdapter("high", priority=3, jobs=[make_job(external_id="1")]))
    orchestrator.register_source(FakeAdapter("mid", priority=2, error=RuntimeError("boom")))
    orchestrator.register_source(FakeAdapter("off", priority=9, enabled=False))

    results = asyncio.run(orchestrator.collect_from_all_sources())

    assert [r.source_id for r in results] == ["high", "low"]
    assert [e.context["source_id"] for e in orchestrator.last_batch_errors] == ["mid"]
    assert orchestrator.last_batch_errors[0].code == "collection_error"
    assert [r.source_id for r in result_log.results] == ["high", "mid", "low"]


def test_save_failure_downgrades_to_partial(result_log):
    orchestrator = CollectionOrchestrator(FailingJobStore(), result_log)
    orchestrator.register_source(FakeAdapter(jobs=[make_job()]))

    result = asyncio.run(orchestrator.collect_from_source("fake"))

    assert result.status == CollectionStatus.PARTIAL
    assert result.jobs_stored == 0
    assert [e.code for e in result.errors] == ["save_error"]


def test_result_log_failure_does_not_fail_run(job_store):
    class BrokenLog(InMemoryResultLog):
        def append(self, result):
            raise OSError("read-only filesystem")

    orchestrator = CollectionOrchestrator(job_store, BrokenLog())
    orchestrator.register_source(FakeAdapter(jobs=[make_job()]))

    result = asyncio.run(orchestrator.collect_from_source("fake"))

    assert result.status == CollectionStatus.SUCCESS


def test_source_registry(orchestrator):
    orchestrator.register_source(FakeAdapter("a"))

    with pytest.raises(ConfigurationError):
        orchestrator.register_source(FakeAdapter("a"))
    with pytest.raises(ConfigurationError):
        orchestrator.get_source("b")
    with pytest.raises(ConfigurationError):
        orchestrator.add_source(FakeAdapter("b").config)

    assert [c.id for c in orchestrator.list_sources()] == ["a"]


def test_update_source_revalidates(orchestrator):
    orchestrator.register_source(FakeAdapter("a"))

    updated = asyncio.run(orchestrator.update_source("a", priority=7, enabled=False))
    assert updated.priority == 7
    assert orchestrator.get_source("a").enabled is False

    with pytest.raises(ConfigValidationError):
        asyncio.run(orchestrator.update_source("a", concurrency_limit=0))
    with pytest.raises(ConfigurationError):
        asyncio.run(orchestrator.update_source("a", id="b"))

    assert orchestrator.get_source("a").concurrency_limit == 5


def test_detect_source_changes_never_raises(orchestrator):
    class Exploding(FakeAdapter):
        async def detect_structural_changes(self):
            raise RuntimeError("parser crashed")

    orchestrator.register_source(Exploding())

    assert asyncio.run(orchestrator.detect_source_changes("fake")) is None


def test_close_releases_adapters(orchestrator):
    adapter = FakeAdapter()
    orchestrator.register_source(adapter)

    asyncio.run(orchestrator.close())

    assert adapter.closed


def test_update_source_reconfigures_live_http_client(orchestrator):
    adapter = JobTechAdapter(api_config())
    orchestrator.register_source(adapter)

    async def run():
        await orchestrator.initialize()
        await orchestrator.update_source(
            "jobtech",
            rate_limit_per_minute=1,
            retry={"max_retries": 0, "initial_delay_ms": 100, "backoff_factor": 2},
            timeout_seconds=5,
        )
        timeout = adapter.client._client.timeout.read
        await orchestrator.close()
        return timeout

    assert asyncio.run(run()) == 5
    assert orchestrator.get_adapter("jobtech") is adapter
    assert adapter.client.rate_limiter.requests_per_minute == 1
    assert adapter.client.retry_policy.max_retries == 0
    assert adapter.client.timeout == 5


def test_update_source_rebuilds_only_for_construction_settings(job_store, result_log, tmp_path):
    orchestrator = CollectionOrchestrator(
        job_store,
        result_log,
        adapter_deps=AdapterDependencies(fingerprint_store=FileFingerprintStore(tmp_path)),
    )
    original = orchestrator.add_source(api_config())

    asyncio.run(orchestrator.update_source("jobtech", rate_limit_per_minute=6))
    assert orchestrator.get_adapter("jobtech") is original
    assert original.client.rate_limiter.requests_per_minute == 6

    asyncio.run(
        orchestrator.update_source("jobtech", api={"base_url": "https://other.test"})
    )
    rebuilt = orchestrator.get_adapter("jobtech")
    assert rebuilt is not original
    assert rebuilt.search_url == "https://other.test/search"
    assert rebuilt.client.rate_limiter.requests_per_minute == 6


def test_update_hook_failure_aborts_update(orchestrator):
    orchestrator.register_source(FakeAdapter("a"))
    seen = []

    def reject(config, fields):
        seen.append(fields)
        raise ConfigurationError("rejected")

    orchestrator.add_update_hook(reject)

    with pytest.raises(ConfigurationError, match="rejected"):
        asyncio.run(orchestrator.update_source("a", priority=4))

    assert seen == [{"priority"}]
    assert orchestrator.get_source("a").priority == 0


def test_initialize_failure_during_run_is_recorded(orchestrator, result_log):
    adapter = FakeAdapter(init_error=RuntimeError("socket closed"))
    orchestrator.register_source(adapter)

    with pytest.raises(CriticalCollectionError):
        asyncio.run(orchestrator.collect_from_source("fake"))

    logged = result_log.results[-1]
    assert logged.status == CollectionStatus.FAILURE
    assert logged.errors[0].code == "critical_error"
    assert "socket closed" in logged.errors[0].message
    assert adapter.collect_calls == 0
    assert not orchestrator.is_collecting("fake")
