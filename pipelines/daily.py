"""One-shot batch collection across all configured sources."""

from __future__ import annotations

import asyncio
import sys

import httpx
import structlog

from collectors.adapters import AdapterDependencies
from core.config import Settings, load_config
from core.errors import ConfigurationError, ConfigValidationError
from core.log import configure_logging
from evidence.result_log import FileResultLog
from evidence.snapshot import FileFingerprintStore
from orchestration.notifier import (
    FileNotificationSink,
    NotificationSink,
    WebhookNotificationSink,
)
from orchestration.orchestrator import CollectionOrchestrator
from parsing.normalizers import TaxonomyNormalizer
from schemas.config import SourcesFile
from schemas.result import CollectionResult
from storage.jobs import FileJobStore, JobStore

logger = structlog.get_logger()


def build_notifier(settings: Settings) -> NotificationSink:
    if settings.notification_webhook_url:
        return WebhookNotificationSink(settings.notification_webhook_url)
    return FileNotificationSink(settings.notifications_dir)


def build_orchestrator(
    settings: Settings,
    sources: SourcesFile,
    *,
    job_store: JobStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> CollectionOrchestrator:
    """Wire stores, notifier and adapters for every configured source.

    Args:
        settings: Runtime settings (paths, user agent, webhook)
        sources: Parsed sources.yaml
        job_store: Override for the file-backed job store
        transport: httpx transport shared by all adapters (tests)

    Raises:
        ConfigurationError: A source names an unknown adapter or repeats an id.
    """
    deps = AdapterDependencies(
        fingerprint_store=FileFingerprintStore(settings.snapshots_dir),
        notifier=build_notifier(settings),
        user_agent=settings.user_agent,
        transport=transport,
    )
    orchestrator = CollectionOrchestrator(
        job_store=job_store if job_store is not None else FileJobStore(settings.jobs_path),
        result_log=FileResultLog(settings.results_dir),
        normalizer=TaxonomyNormalizer(sources.scoring),
        adapter_deps=deps,
    )
    for config in sources.sources:
        orchestrator.add_source(config)
    return orchestrator


async def run_collection(orchestrator: CollectionOrchestrator) -> list[CollectionResult]:
    """Initialize, collect every enabled source once, and close."""
    await orchestrator.initialize()
    try:
        results = await orchestrator.collect_from_all_sources()
    finally:
        await orchestrator.close()

    for result in results:
        logger.info(
            "Source result",
            source_id=result.source_id,
            status=result.status.value,
            collected=result.jobs_collected,
            stored=result.jobs_stored,
            validation_failures=result.validation_failures,
            errors=len(result.errors),
        )
    for error in orchestrator.last_batch_errors:
        logger.error("Source failed", **error.context, error=error.message)
    return results


def main() -> None:
    """Entry point for the batch collection."""
    settings = Settings()
    configure_logging(settings.log_level, json=settings.log_json)

    try:
        settings, sources = load_config(settings=settings)
        orchestrator = build_orchestrator(settings, sources)
    except ConfigValidationError as e:
        logger.error("Configuration error", error=str(e), errors=e.errors)
        sys.exit(1)
    except ConfigurationError as e:
        logger.error("Configuration error", error=str(e))
        sys.exit(1)

    logger.info("Starting batch collection", sources=len(sources.sources))
    results = asyncio.run(run_collection(orchestrator))
    logger.info("Batch collection finished", results=len(results))

    if orchestrator.last_batch_errors:
        sys.exit(2)


if __name__ == "__main__":
    main()
