"""Collection orchestrator: source registry and the per-source pipeline.

Per run: change detection (scrapers) → fetch → normalize → validate →
dedupe → persist → result log. At most one run per source is in flight;
concurrent triggers for the same source join the running one.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from typing import Any

import structlog
from pydantic import ValidationError

from collectors.adapters import AdapterDependencies, build_adapter
from collectors.base import SourceAdapter
from collectors.scraper import ScraperSourceAdapter
from core.context import RunContext
from core.errors import CollectionError, ConfigurationError, ConfigValidationError
from evidence.result_log import ResultLog
from parsing.normalizers import TaxonomyNormalizer
from parsing.validator import SchemaValidator
from pipelines.dedupe import Deduplicator
from schemas.base import Severity
from schemas.changes import ChangeDetectionResult, ChangeStatus
from schemas.config import ApiSourceConfig, ScraperSourceConfig, SourceKind
from schemas.job import CanonicalJob
from schemas.result import CollectionResult, CollectionStatus, ErrorDetails
from storage.jobs import JobStore

logger = structlog.get_logger()

# Settings baked into an adapter at construction
REBUILD_FIELDS = {"api", "scraper", "adapter"}

UpdateHook = Callable[[ApiSourceConfig | ScraperSourceConfig, set[str]], None]


class CriticalCollectionError(CollectionError):
    """An unexpected exception escaped a source's pipeline.

    The failure result has already been written to the result log.
    """

    def __init__(self, source_id: str, result: CollectionResult):
        super().__init__(f"Collection for '{source_id}' failed critically")
        self.source_id = source_id
        self.result = result


class CollectionOrchestrator:
    """Owns configured sources and drives their collection runs."""

    def __init__(
        self,
        job_store: JobStore,
        result_log: ResultLog,
        *,
        normalizer: TaxonomyNormalizer | None = None,
        validator: SchemaValidator | None = None,
        deduplicator: Deduplicator | None = None,
        adapter_deps: AdapterDependencies | None = None,
        store_warning_records: bool = True,
    ):
        self.job_store = job_store
        self.result_log = result_log
        self.normalizer = normalizer if normalizer is not None else TaxonomyNormalizer()
        self.validator = validator if validator is not None else SchemaValidator()
        self.deduplicator = deduplicator if deduplicator is not None else Deduplicator()
        self.adapter_deps = adapter_deps
        self.store_warning_records = store_warning_records

        self._adapters: dict[str, SourceAdapter] = {}
        self._initialized: set[str] = set()
        self._in_flight: dict[str, asyncio.Task[CollectionResult]] = {}
        self.last_batch_errors: list[ErrorDetails] = []
        self._update_hooks: list[UpdateHook] = []

    # --- Registry ---

    def register_source(self, adapter: SourceAdapter) -> None:
        """Add a ready-built adapter.

        Raises:
            ConfigurationError: If the source id is already registered.
        """
        if adapter.source_id in self._adapters:
            raise ConfigurationError(f"Source '{adapter.source_id}' is already registered")
        self._adapters[adapter.source_id] = adapter
        if isinstance(adapter, ScraperSourceAdapter):
            self.normalizer.register_base_url(
                adapter.source_id, adapter.config.scraper.base_url
            )
        logger.info(
            "Source registered",
            source_id=adapter.source_id,
            kind=adapter.kind.value,
            enabled=adapter.enabled,
        )

    def add_source(self, config: ApiSourceConfig | ScraperSourceConfig) -> SourceAdapter:
        """Build the adapter for config and register it."""
        if self.adapter_deps is None:
            raise ConfigurationError("Orchestrator has no adapter dependencies to build sources")
        if config.id in self._adapters:
            raise ConfigurationError(f"Source '{config.id}' is already registered")
        adapter = build_adapter(config, self.adapter_deps)
        self.register_source(adapter)
        return adapter

    def get_adapter(self, source_id: str) -> SourceAdapter:
        adapter = self._adapters.get(source_id)
        if adapter is None:
            raise ConfigurationError(f"Source not found: '{source_id}'")
        return adapter

    def get_source(self, source_id: str) -> ApiSourceConfig | ScraperSourceConfig:
        return self.get_adapter(source_id).config

    def list_sources(self) -> list[ApiSourceConfig | ScraperSourceConfig]:
        return [adapter.config for adapter in self._adapters.values()]

    def add_update_hook(self, hook: UpdateHook) -> None:
        """Run hook(config, changed_fields) before each source update is committed.

        A hook that raises aborts the update.
        """
        self._update_hooks.append(hook)

    async def update_source(
        self, source_id: str, **changes: Any
    ) -> ApiSourceConfig | ScraperSourceConfig:
        """Apply changes to a source config, revalidating it.

        Kind-specific settings rebuild the adapter when dependencies are
        available and the source is idle; otherwise the running adapter
        takes the new config and its HTTP limits in place. Update hooks
        (the scheduler's, for schedule changes) run before anything is
        committed.

        Raises:
            ConfigurationError: Unknown source, id/kind change, invalid
                values, or a hook rejecting the update.
        """
        adapter = self.get_adapter(source_id)
        if changes.get("id", source_id) != source_id or "kind" in changes:
            raise ConfigurationError("Source id and kind cannot be changed")

        current = adapter.config
        try:
            updated = type(current).model_validate({**current.model_dump(), **changes})
        except ValidationError as e:
            raise ConfigValidationError(
                f"Invalid update for source '{source_id}'",
                errors=[dict(err) for err in e.errors(include_url=False)],
            ) from e

        fields = set(changes)
        rebuild = (
            self.adapter_deps is not None
            and bool(fields & REBUILD_FIELDS)
            and source_id not in self._in_flight
        )
        new_adapter = build_adapter(updated, self.adapter_deps) if rebuild else None

        for hook in self._update_hooks:
            hook(updated, fields)

        if new_adapter is not None:
            await adapter.close()
            self._adapters[source_id] = new_adapter
            self._initialized.discard(source_id)
        else:
            adapter.apply_config(updated)
        if isinstance(updated, ScraperSourceConfig):
            self.normalizer.register_base_url(source_id, updated.scraper.base_url)

        logger.info("Source updated", source_id=source_id, fields=sorted(fields))
        return updated

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Initialize every enabled adapter; failures are logged and retried on trigger."""
        for adapter in self._adapters.values():
            if not adapter.enabled:
                continue
            try:
                await self._ensure_initialized(adapter)
            except Exception as e:
                logger.error(
                    "Source initialization failed",
                    source_id=adapter.source_id,
                    error=str(e),
                )

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()
        self._initialized.clear()

    async def _ensure_initialized(self, adapter: SourceAdapter) -> None:
        if adapter.source_id not in self._initialized:
            await adapter.initialize()
            self._initialized.add(adapter.source_id)

    # --- Triggers ---

    def is_collecting(self, source_id: str) -> bool:
        return source_id in self._in_flight

    async def collect_from_source(self, source_id: str) -> CollectionResult:
        """Run (or join) the collection for one source.

        Raises:
            ConfigurationError: Unknown or disabled source, missing credentials.
            CriticalCollectionError: An unexpected exception escaped the pipeline.
        """
        adapter = self.get_adapter(source_id)
        if not adapter.enabled:
            raise ConfigurationError(f"Source '{source_id}' is disabled")

        task = self._in_flight.get(source_id)
        if task is not None:
            logger.info("Collection already in progress, joining", source_id=source_id)
        else:
            # Marker is set before the first await so concurrent triggers see it
            task = asyncio.create_task(self._run(adapter))
            self._in_flight[source_id] = task
            task.add_done_callback(functools.partial(self._release, source_id))

        return await asyncio.shield(task)

    async def collect_from_all_sources(self) -> list[CollectionResult]:
        """Collect every enabled source by descending priority.

        A failing source is logged in ``last_batch_errors`` and skipped.
        """
        adapters = sorted(
            (a for a in self._adapters.values() if a.enabled),
            key=lambda a: a.config.priority,
            reverse=True,
        )
        results: list[CollectionResult] = []
        errors: list[ErrorDetails] = []

        for adapter in adapters:
            try:
                results.append(await self.collect_from_source(adapter.source_id))
            except Exception as e:
                errors.append(
                    ErrorDetails(
                        code="collection_error",
                        message=f"Collection failed for '{adapter.source_id}': {e}",
                        severity=Severity.CRITICAL,
                        context={"source_id": adapter.source_id},
                    )
                )
                logger.error(
                    "Source collection failed",
                    source_id=adapter.source_id,
                    error=str(e),
                )

        self.last_batch_errors = errors
        logger.info(
            "Batch collection complete",
            sources=len(adapters),
            succeeded=len(results),
            failed=len(errors),
        )
        return results

    async def detect_source_changes(self, source_id: str) -> ChangeDetectionResult | None:
        """Run structural change detection; never raises."""
        adapter = self.get_adapter(source_id)
        try:
            result = await adapter.detect_structural_changes()
        except Exception as e:
            logger.error("Change detection failed", source_id=source_id, error=str(e))
            return None

        if result.status != ChangeStatus.UNCHANGED:
            for change in result.changes:
                logger.warning(
                    "Structural change",
                    source_id=source_id,
                    element_type=change.element_type,
                    path=change.path,
                    impact=change.impact.value,
                    detail=change.message,
                )
        return result

    # --- Pipeline ---

    def _release(self, source_id: str, task: asyncio.Task[CollectionResult]) -> None:
        if self._in_flight.get(source_id) is task:
            del self._in_flight[source_id]

    async def _run(self, adapter: SourceAdapter) -> CollectionResult:
        try:
            return await self._pipeline(adapter)
        finally:
            current = asyncio.current_task()
            if self._in_flight.get(adapter.source_id) is current:
                del self._in_flight[adapter.source_id]

    async def _pipeline(self, adapter: SourceAdapter) -> CollectionResult:
        source_id = adapter.source_id
        ctx = RunContext.boot(source_id)
        result: CollectionResult | None = None

        try:
            await self._ensure_initialized(adapter)

            if adapter.kind == SourceKind.SCRAPER:
                ctx.start_stage("detect_changes")
                changes = await self.detect_source_changes(source_id)
                ctx.complete_stage(
                    "detect_changes",
                    items_out=len(changes.changes) if changes else 0,
                    status=changes.status.value if changes else "error",
                )

            ctx.start_stage("fetch")
            result = await adapter.collect()
            result.timestamp = ctx.started_at
            ctx.complete_stage(
                "fetch",
                items_out=len(result.jobs),
                errors=[e.message for e in result.errors],
            )

            ctx.start_stage("normalize", items_in=len(result.jobs))
            normalized = self._normalize(result)
            ctx.complete_stage("normalize", items_out=len(normalized))

            ctx.start_stage("validate", items_in=len(normalized))
            storable = self._validate(result, normalized)
            ctx.complete_stage("validate", items_out=len(storable))

            ctx.start_stage("persist", items_in=len(storable))
            await self._persist(result, storable)
            ctx.complete_stage("persist", items_out=result.jobs_stored)

        except ConfigurationError:
            raise
        except Exception as e:
            failure = result or CollectionResult(source_id=source_id, timestamp=ctx.started_at)
            failure.add_error(
                "critical_error",
                f"Unhandled error during collection: {e}",
                Severity.CRITICAL,
                exception=type(e).__name__,
            )
            failure.status = CollectionStatus.FAILURE
            failure.duration_ms = ctx.elapsed_ms
            if ctx.stage_logs:
                ctx.stage_logs[-1].errors.append(str(e))
            self._record(failure)
            logger.exception("Collection failed critically", source_id=source_id)
            raise CriticalCollectionError(source_id, failure) from e

        result.duration_ms = ctx.elapsed_ms
        self._record(result)
        logger.info(
            "Collection run complete",
            status=result.status.value,
            collected=result.jobs_collected,
            processed=result.jobs_processed,
            stored=result.jobs_stored,
            validation_failures=result.validation_failures,
            errors=len(result.errors),
            **ctx.summary(),
        )
        return result

    def _normalize(self, result: CollectionResult) -> list[CanonicalJob]:
        normalized: list[CanonicalJob] = []
        for job in result.jobs:
            try:
                normalized.append(self.normalizer.transform(job))
            except Exception as e:
                result.add_error(
                    "normalization_error",
                    f"Failed to normalize record: {e}",
                    external_id=job.external_id,
                )
        result.jobs = normalized
        result.jobs_processed = len(normalized)
        return normalized

    def _validate(
        self, result: CollectionResult, jobs: list[CanonicalJob]
    ) -> list[CanonicalJob]:
        """Attach issues to every record; return the ones eligible for storage."""
        storable: list[CanonicalJob] = []
        for job in jobs:
            validation = self.validator.validate(job)
            job.collecting_metadata.validation_issues = validation.issues
            if not validation.valid:
                result.validation_failures += 1
                continue
            if validation.warnings and not self.store_warning_records:
                continue
            storable.append(job)

        if result.validation_failures:
            logger.warning(
                "Invalid records found",
                source_id=result.source_id,
                invalid=result.validation_failures,
                total=len(jobs),
            )
        return storable

    async def _persist(self, result: CollectionResult, jobs: list[CanonicalJob]) -> None:
        try:
            existing = await self.job_store.get_existing()
            partition = self.deduplicator.partition(jobs, existing)
        except Exception as e:
            result.add_error("dedupe_error", f"Failed to deduplicate: {e}")
            if result.status == CollectionStatus.SUCCESS:
                result.status = CollectionStatus.PARTIAL
            logger.error("Deduplication failed", source_id=result.source_id, error=str(e))
            return

        stored = 0
        save_failed = False
        operations = (
            ("create", self.job_store.create_many, partition.to_create),
            ("update", self.job_store.update_many, partition.to_update),
        )
        for operation, save, batch in operations:
            if not batch:
                continue
            try:
                stored += await save(batch)
            except Exception as e:
                save_failed = True
                result.add_error(
                    "save_error",
                    f"Failed to {operation} {len(batch)} jobs: {e}",
                    operation=operation,
                    count=len(batch),
                )
                logger.error(
                    "Persist failed",
                    source_id=result.source_id,
                    operation=operation,
                    error=str(e),
                )

        result.jobs_stored = stored
        if save_failed and stored == 0 and result.status == CollectionStatus.SUCCESS:
            result.status = CollectionStatus.PARTIAL

    def _record(self, result: CollectionResult) -> None:
        try:
            self.result_log.append(result)
        except Exception as e:
            logger.error("Failed to write result log", source_id=result.source_id, error=str(e))
