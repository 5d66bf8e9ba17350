"""Adapter registry for configured sources.

Every source config names an adapter key (or gets its kind's default);
the key must map to an adapter of the same kind.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx

from collectors.adapters.academic_work import AcademicWorkScraper
from collectors.adapters.jobtech import JobTechAdapter
from collectors.api import ApiSourceAdapter
from collectors.base import SourceAdapter
from collectors.http_client import DEFAULT_USER_AGENT, Sleep
from collectors.scraper import ScraperSourceAdapter
from core.errors import ConfigurationError
from evidence.snapshot import FingerprintStore
from orchestration.notifier import NotificationSink
from schemas.config import ApiSourceConfig, ScraperSourceConfig, SourceKind

ADAPTER_REGISTRY: dict[str, type[SourceAdapter]] = {
    "jobtech": JobTechAdapter,
    "html": ScraperSourceAdapter,
    "academic_work": AcademicWorkScraper,
}

DEFAULT_ADAPTERS: dict[SourceKind, str] = {
    SourceKind.API: "jobtech",
    SourceKind.SCRAPER: "html",
}


@dataclass
class AdapterDependencies:
    """Shared collaborators handed to every adapter."""

    fingerprint_store: FingerprintStore
    notifier: NotificationSink | None = None
    user_agent: str | None = DEFAULT_USER_AGENT
    transport: httpx.AsyncBaseTransport | None = None
    sleep: Sleep = asyncio.sleep


def build_adapter(
    config: ApiSourceConfig | ScraperSourceConfig,
    deps: AdapterDependencies,
) -> SourceAdapter:
    """Instantiate the adapter a source config asks for.

    Raises:
        ConfigurationError: Unknown adapter key or kind mismatch.
    """
    key = config.adapter or DEFAULT_ADAPTERS[SourceKind(config.kind)]
    adapter_cls = ADAPTER_REGISTRY.get(key)
    if adapter_cls is None:
        raise ConfigurationError(f"Unknown adapter '{key}' for source '{config.id}'")
    if adapter_cls.kind != config.kind:
        raise ConfigurationError(
            f"Adapter '{key}' handles {adapter_cls.kind} sources, "
            f"but source '{config.id}' is {config.kind}"
        )

    if isinstance(config, ApiSourceConfig):
        assert issubclass(adapter_cls, ApiSourceAdapter)
        return adapter_cls(
            config,
            user_agent=deps.user_agent,
            transport=deps.transport,
            sleep=deps.sleep,
        )

    assert issubclass(adapter_cls, ScraperSourceAdapter)
    return adapter_cls(
        config,
        fingerprint_store=deps.fingerprint_store,
        notifier=deps.notifier,
        user_agent=deps.user_agent,
        transport=deps.transport,
        sleep=deps.sleep,
    )


__all__ = [
    "ADAPTER_REGISTRY",
    "AcademicWorkScraper",
    "AdapterDependencies",
    "DEFAULT_ADAPTERS",
    "JobTechAdapter",
    "build_adapter",
]
