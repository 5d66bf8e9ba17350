"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from core.config import Settings, load_config
from core.errors import ConfigurationError
from core.log import configure_logging
from lifecycle.service import UserLifecycleService, UserLifecycleStore
from orchestration.orchestrator import CollectionOrchestrator, CriticalCollectionError
from orchestration.scheduler import CollectionScheduler
from pipelines.daily import build_orchestrator
from schemas.config import SourcesFile
from schemas.result import CollectionResult
from storage.jobs import JobStore

logger = structlog.get_logger()

SECRET_KEYS = {"client_secret"}
MASK = "***"


class ScheduleUpdate(BaseModel):
    cron: str


def mask_secrets(data: Any) -> Any:
    """Replace secret values in a dumped config."""
    if isinstance(data, dict):
        return {
            key: MASK if key in SECRET_KEYS and value else mask_secrets(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [mask_secrets(item) for item in data]
    return data


def result_payload(result: CollectionResult) -> dict[str, Any]:
    return result.log_record()


def create_app(
    settings: Settings | None = None,
    sources: SourcesFile | None = None,
    *,
    job_store: JobStore | None = None,
    lifecycle_store: UserLifecycleStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the app; collaborators are created in the lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal settings, sources
        settings = settings or Settings()
        configure_logging(settings.log_level, json=settings.log_json)
        if sources is None:
            settings, sources = load_config(settings=settings)

        orchestrator = build_orchestrator(
            settings, sources, job_store=job_store, transport=transport
        )
        await orchestrator.initialize()

        scheduler = CollectionScheduler(orchestrator, timezone=settings.timezone)
        if settings.enable_lifecycle_jobs:
            if lifecycle_store is None:
                logger.warning("Lifecycle jobs enabled but no lifecycle store configured")
            else:
                UserLifecycleService(lifecycle_store).register(scheduler)
        scheduler.start_all()

        app.state.orchestrator = orchestrator
        app.state.scheduler = scheduler

        initial: asyncio.Task | None = None
        if settings.run_initial_collection:
            initial = asyncio.create_task(orchestrator.collect_from_all_sources())

        logger.info("Collection service started", sources=len(sources.sources))
        try:
            yield
        finally:
            scheduler.shutdown()
            if initial is not None and not initial.done():
                initial.cancel()
            await orchestrator.close()
            logger.info("Collection service stopped")

    app = FastAPI(
        title="Job Collection API",
        description="Aggregates job listings from APIs and scraped career sites",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        scheduler: CollectionScheduler = request.app.state.scheduler
        return {"status": "healthy", "scheduled_sources": scheduler.scheduled_sources()}

    @app.get("/sources")
    async def list_sources(request: Request):
        orchestrator: CollectionOrchestrator = request.app.state.orchestrator
        return [
            mask_secrets(config.model_dump(mode="json"))
            for config in orchestrator.list_sources()
        ]

    @app.post("/collections")
    async def collect_all(request: Request):
        orchestrator: CollectionOrchestrator = request.app.state.orchestrator
        results = await orchestrator.collect_from_all_sources()
        return {
            "results": [result_payload(r) for r in results],
            "errors": [e.model_dump(mode="json") for e in orchestrator.last_batch_errors],
        }

    @app.post("/collections/{source_id}")
    async def collect_source(source_id: str, request: Request):
        orchestrator: CollectionOrchestrator = request.app.state.orchestrator
        _require_source(orchestrator, source_id)
        try:
            result = await orchestrator.collect_from_source(source_id)
        except CriticalCollectionError as e:
            raise HTTPException(status_code=500, detail=result_payload(e.result)) from e
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        return result_payload(result)

    @app.get("/collections/{source_id}/results")
    async def collection_results(source_id: str, request: Request, limit: int = 20):
        orchestrator: CollectionOrchestrator = request.app.state.orchestrator
        _require_source(orchestrator, source_id)
        return orchestrator.result_log.list_results(source_id, limit=limit)

    @app.put("/sources/{source_id}/schedule")
    async def update_schedule(source_id: str, body: ScheduleUpdate, request: Request):
        scheduler: CollectionScheduler = request.app.state.scheduler
        _require_source(scheduler.orchestrator, source_id)
        try:
            await scheduler.update_schedule(source_id, body.cron)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        return {"source_id": source_id, "cron": body.cron}

    return app


def _require_source(orchestrator: CollectionOrchestrator, source_id: str) -> None:
    try:
        orchestrator.get_source(source_id)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


app = create_app()
