"""Structural change detection for scraped sources.

A fingerprint of the listing page's DOM shape is compared with the last
stored one. When it differs, the configured selectors are evaluated against
both the previous snapshot and the current page to find out whether
scraping is likely to break.
"""

from __future__ import annotations

import structlog
from bs4 import BeautifulSoup

from evidence.snapshot import FingerprintStore, StructuralFingerprint
from orchestration.notifier import NotificationSink
from parsing.structure import (
    count_matches,
    count_scoped_matches,
    parse_html,
    structural_fingerprint,
)
from schemas.changes import (
    ChangeDetectionResult,
    ChangeStatus,
    Impact,
    StructuralChange,
)
from schemas.config import ScraperSettings

logger = structlog.get_logger()

LISTING_ROLE = "listing"

# Relative count change above which a still-matching selector is reported
COUNT_CHANGE_THRESHOLD = 0.5


def classify_selector(
    before: int, after: int, critical: bool
) -> tuple[Impact, str] | None:
    """Impact of a selector's match count moving from before to after."""
    if before > 0 and after == 0:
        return Impact.HIGH, "Selector no longer matches any element"
    if before == 0 and after > 0:
        return Impact.LOW, "Selector now matches elements it did not match before"
    if before == 0 and after == 0:
        impact = Impact.HIGH if critical else Impact.MEDIUM
        return impact, "Selector matches nothing in either version of the page"
    if abs(after - before) / before > COUNT_CHANGE_THRESHOLD:
        return Impact.MEDIUM, f"Match count changed from {before} to {after}"
    return None


class ChangeDetector:
    """Fingerprints a source's pages and classifies structural drift."""

    def __init__(
        self,
        source_id: str,
        settings: ScraperSettings,
        store: FingerprintStore,
        notifier: NotificationSink | None = None,
    ):
        self.source_id = source_id
        self.settings = settings
        self.store = store
        self.notifier = notifier

    def selector_checks(self) -> list[tuple[str, str, str | None, bool]]:
        """(element_type, selector, scope, critical) for every selector to verify.

        Scoped selectors are counted per ``scope`` element, so selector
        lists stay confined to listing items.
        """
        listing = self.settings.listing_selector
        checks: list[tuple[str, str, str | None, bool]] = [
            ("listing", listing, None, True),
            ("detail_link", self.settings.detail_link_selector, listing, True),
        ]
        for name, selector in self.settings.fields.configured().items():
            checks.append((f"field:{name}", selector, None, False))
        return checks

    @staticmethod
    def _count(soup: BeautifulSoup, selector: str, scope: str | None) -> int:
        if scope is None:
            return count_matches(soup, selector)
        return count_scoped_matches(soup, scope, selector)

    def compare(self, previous_html: str | None, current_html: str) -> list[StructuralChange]:
        """Evaluate every selector against both page versions."""
        if previous_html is None:
            return [
                StructuralChange(
                    element_type="page",
                    path=LISTING_ROLE,
                    impact=Impact.MEDIUM,
                    message="No previous snapshot available for comparison",
                )
            ]

        before_soup: BeautifulSoup = parse_html(previous_html)
        after_soup: BeautifulSoup = parse_html(current_html)

        changes: list[StructuralChange] = []
        for element_type, selector, scope, critical in self.selector_checks():
            before = self._count(before_soup, selector, scope)
            after = self._count(after_soup, selector, scope)
            verdict = classify_selector(before, after, critical)
            if verdict is None:
                continue
            impact, message = verdict
            changes.append(
                StructuralChange(
                    element_type=element_type,
                    path=selector,
                    previous_value=str(before),
                    current_value=str(after),
                    impact=impact,
                    message=message,
                )
            )
        return changes

    async def detect(self, html: str, role: str = LISTING_ROLE) -> ChangeDetectionResult:
        """Compare the page against the stored fingerprint for ``role``.

        Never raises; failures are reported as an ``error`` result.
        """
        try:
            result = self._detect(html, role)
        except Exception as e:
            logger.error(
                "Change detection failed", source_id=self.source_id, error=str(e)
            )
            result = ChangeDetectionResult(
                source_id=self.source_id,
                status=ChangeStatus.ERROR,
                can_adapt_automatically=False,
                changes=[
                    StructuralChange(
                        element_type="detector",
                        path=role,
                        impact=Impact.HIGH,
                        message=f"Change detection failed: {e}",
                    )
                ],
            )

        if result.high_impact_changes:
            await self._notify(result.high_impact_changes)
        return result

    def _detect(self, html: str, role: str) -> ChangeDetectionResult:
        fingerprint = structural_fingerprint(html)
        previous = self.store.get_fingerprint(self.source_id, role)
        current = StructuralFingerprint(
            source_id=self.source_id, role=role, hash=fingerprint
        )

        if previous is None:
            self.store.save_fingerprint(current)
            self.store.save_snapshot(self.source_id, role, html)
            logger.info("Initial fingerprint stored", source_id=self.source_id, role=role)
            return ChangeDetectionResult(source_id=self.source_id, fingerprint=fingerprint)

        if previous.hash == fingerprint:
            return ChangeDetectionResult(source_id=self.source_id, fingerprint=fingerprint)

        changes = self.compare(self.store.get_snapshot(self.source_id, role), html)

        self.store.save_fingerprint(current)
        self.store.save_snapshot(self.source_id, role, html)

        major = any(c.impact == Impact.HIGH for c in changes)
        result = ChangeDetectionResult(
            source_id=self.source_id,
            status=ChangeStatus.MAJOR_CHANGES if major else ChangeStatus.MINOR_CHANGES,
            changes=changes,
            can_adapt_automatically=not major,
            fingerprint=fingerprint,
        )
        logger.warning(
            "Structural changes detected",
            source_id=self.source_id,
            role=role,
            status=result.status.value,
            changes=len(changes),
            previous_hash=previous.hash[:12],
            current_hash=fingerprint[:12],
        )
        return result

    async def _notify(self, changes: list[StructuralChange]) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(self.source_id, changes)
        except Exception as e:
            logger.error("Notification failed", source_id=self.source_id, error=str(e))
