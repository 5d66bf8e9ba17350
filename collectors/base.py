"""Source adapter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from schemas.changes import ChangeDetectionResult
from schemas.config import ApiSourceConfig, ScraperSourceConfig, SourceKind
from schemas.result import CollectionResult


class SourceAdapter(ABC):
    """Abstract base class for all source adapters.

    Subclasses fall into exactly two families, ``ApiSourceAdapter`` and
    ``ScraperSourceAdapter``, distinguished by ``kind``.
    """

    kind: ClassVar[SourceKind]
    version: ClassVar[str] = "1.0"

    config: ApiSourceConfig | ScraperSourceConfig

    @property
    def source_id(self) -> str:
        return self.config.id

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def apply_config(self, config: ApiSourceConfig | ScraperSourceConfig) -> None:
        """Swap in an updated config for the same source."""
        self.config = config

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare session and auth state.

        Raises:
            ConfigurationError: If required credentials are missing.
        """

    @abstractmethod
    async def test_connection(self) -> bool:
        """Liveness check. Never raises."""

    @abstractmethod
    async def collect(self) -> CollectionResult:
        """Fetch and map every listing for one run.

        Per-item failures are recorded on the result, not raised.
        """

    @abstractmethod
    async def detect_structural_changes(self) -> ChangeDetectionResult:
        """Compare the source's current shape with the last known one."""

    async def close(self) -> None:
        """Release network resources."""
