"""Structural fingerprints and raw page snapshots for scraped sources."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from schemas.base import utcnow

logger = structlog.get_logger()


class StructuralFingerprint(BaseModel):
    """Hash of a page's DOM shape for one source and page role."""

    source_id: str
    role: str
    hash: str
    computed_at: datetime = Field(default_factory=utcnow)


class FingerprintStore(ABC):
    """Abstract base for fingerprint and snapshot storage.

    One fingerprint and one raw snapshot per ``(source_id, role)``;
    both are overwritten on change.
    """

    @abstractmethod
    def get_fingerprint(self, source_id: str, role: str) -> StructuralFingerprint | None:
        """Last stored fingerprint, if any."""

    @abstractmethod
    def save_fingerprint(self, fingerprint: StructuralFingerprint) -> None:
        """Store (overwrite) a fingerprint."""

    @abstractmethod
    def get_snapshot(self, source_id: str, role: str) -> str | None:
        """Raw HTML stored alongside the fingerprint."""

    @abstractmethod
    def save_snapshot(self, source_id: str, role: str, html: str) -> None:
        """Store (overwrite) the raw HTML for a page role."""


class FileFingerprintStore(FingerprintStore):
    """File-based fingerprint storage.

    Structure:
        base_dir/
            {source_id}/
                fingerprints.json   (role -> {hash, computed_at})
                {role}.html         (raw snapshot)
    """

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _source_dir(self, source_id: str) -> Path:
        path = self.base_dir / source_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _index_path(self, source_id: str) -> Path:
        return self._source_dir(source_id) / "fingerprints.json"

    def _load_index(self, source_id: str) -> dict[str, dict]:
        path = self._index_path(source_id)
        if not path.exists():
            return {}
        with open(path) as f:
            return json.load(f)

    def get_fingerprint(self, source_id: str, role: str) -> StructuralFingerprint | None:
        entry = self._load_index(source_id).get(role)
        if entry is None:
            return None
        return StructuralFingerprint(source_id=source_id, role=role, **entry)

    def save_fingerprint(self, fingerprint: StructuralFingerprint) -> None:
        index = self._load_index(fingerprint.source_id)
        index[fingerprint.role] = fingerprint.model_dump(
            mode="json", include={"hash", "computed_at"}
        )
        with open(self._index_path(fingerprint.source_id), "w") as f:
            json.dump(index, f, indent=2)
        logger.debug(
            "Fingerprint saved",
            source_id=fingerprint.source_id,
            role=fingerprint.role,
            hash=fingerprint.hash[:12],
        )

    def get_snapshot(self, source_id: str, role: str) -> str | None:
        path = self._source_dir(source_id) / f"{role}.html"
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def save_snapshot(self, source_id: str, role: str, html: str) -> None:
        path = self._source_dir(source_id) / f"{role}.html"
        path.write_text(html, encoding="utf-8")
