"""Append-only log of collection results."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import structlog

from core.ids import generate_run_id
from schemas.result import CollectionResult

logger = structlog.get_logger()


class ResultLog(ABC):
    """Abstract base for the result log. Entries are never rewritten."""

    @abstractmethod
    def append(self, result: CollectionResult) -> str:
        """Record a finished run; returns the entry id."""

    @abstractmethod
    def list_results(self, source_id: str, limit: int = 20) -> list[dict[str, Any]]:
        """Most recent entries for a source, newest first."""


class FileResultLog(ResultLog):
    """File-based result log.

    Structure:
        base_dir/
            {source_id}/
                {run_id}.json   (one run; job payload truncated)
    """

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _source_dir(self, source_id: str) -> Path:
        path = self.base_dir / source_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def append(self, result: CollectionResult) -> str:
        entry_id = generate_run_id(result.timestamp)
        path = self._source_dir(result.source_id) / f"{entry_id}.json"
        # "x" mode: an existing entry is never overwritten
        with open(path, "x") as f:
            json.dump(result.log_record(), f, indent=2, default=str)
        logger.debug("Result logged", source_id=result.source_id, path=str(path))
        return entry_id

    def list_results(self, source_id: str, limit: int = 20) -> list[dict[str, Any]]:
        source_dir = self.base_dir / source_id
        if not source_dir.exists():
            return []

        entries = []
        for path in sorted(source_dir.glob("*.json"), reverse=True)[:limit]:
            with open(path) as f:
                entry = json.load(f)
            entry["entry_id"] = path.stem
            entries.append(entry)
        return entries
