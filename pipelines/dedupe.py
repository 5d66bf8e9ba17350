"""Partition incoming records into creates and updates."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from core.ids import matching_key
from schemas.job import CanonicalJob

logger = structlog.get_logger()


@dataclass
class DuplicateCandidate:
    """Possible cross-source duplicate; informational only."""

    job_key: tuple[str, str]
    matched_key: tuple[str, str]
    fuzzy_key: str


@dataclass
class DedupeResult:
    """Output of Deduplicator.partition."""

    to_create: list[CanonicalJob] = field(default_factory=list)
    to_update: list[CanonicalJob] = field(default_factory=list)
    candidates: list[DuplicateCandidate] = field(default_factory=list)
    skipped: int = 0


def fuzzy_key(job: CanonicalJob) -> str:
    """Lowercased title+company with whitespace and punctuation removed."""
    return matching_key(job.title, job.company.name)


class Deduplicator:
    """Exact matching on ``(source, external_id)``; fuzzy title+company matching.

    Fuzzy matches across sources are logged and the record is still
    created. Records earlier in the same batch count as known for fuzzy
    matching, so two new copies of a listing from different sources yield
    one candidate.
    """

    def partition(
        self,
        incoming: list[CanonicalJob],
        existing: list[CanonicalJob],
    ) -> DedupeResult:
        result = DedupeResult()

        exact = {job.key for job in existing}
        fuzzy: dict[str, list[CanonicalJob]] = {}
        for job in existing:
            fuzzy.setdefault(fuzzy_key(job), []).append(job)

        seen: set[tuple[str, str]] = set()
        for job in incoming:
            if job.key in seen:
                result.skipped += 1
                logger.debug("Duplicate key within batch", source=job.source, external_id=job.external_id)
                continue
            seen.add(job.key)

            if job.key in exact:
                result.to_update.append(job)
                continue

            key = fuzzy_key(job)
            match = next(
                (other for other in fuzzy.get(key, []) if other.source != job.source),
                None,
            )
            if match is not None:
                candidate = DuplicateCandidate(
                    job_key=job.key, matched_key=match.key, fuzzy_key=key
                )
                result.candidates.append(candidate)
                logger.info(
                    "cross_source_duplicate_candidate",
                    source=job.source,
                    external_id=job.external_id,
                    matched_source=match.source,
                    matched_external_id=match.external_id,
                    title=job.title,
                )

            result.to_create.append(job)
            fuzzy.setdefault(key, []).append(job)

        logger.info(
            "Deduplication complete",
            incoming=len(incoming),
            create=len(result.to_create),
            update=len(result.to_update),
            candidates=len(result.candidates),
        )
        return result
