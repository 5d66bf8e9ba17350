"""Out-of-band notifications for high-impact structural changes."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path

import httpx
import structlog

from core.ids import generate_run_id
from schemas.changes import StructuralChange

logger = structlog.get_logger()


class NotificationSink(ABC):
    """Fire-and-forget notification target. Implementations must not raise."""

    @abstractmethod
    async def notify(self, source_id: str, changes: list[StructuralChange]) -> None:
        """Deliver a notification about changes for a source."""


class FileNotificationSink(NotificationSink):
    """Writes each notification as a JSON file.

    Structure:
        base_dir/
            {source_id}_{run_id}.json
    """

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    async def notify(self, source_id: str, changes: list[StructuralChange]) -> None:
        path = self.base_dir / f"{source_id}_{generate_run_id()}.json"
        payload = {
            "source_id": source_id,
            "changes": [c.model_dump(mode="json") for c in changes],
        }
        try:
            with open(path, "w") as f:
                json.dump(payload, f, indent=2)
        except OSError as e:
            logger.error("Notification write failed", source_id=source_id, error=str(e))
            return
        logger.warning(
            "Structural change notification",
            source_id=source_id,
            changes=len(changes),
            path=str(path),
        )


class WebhookNotificationSink(NotificationSink):
    """Posts a chat-style message to a webhook (Slack/Discord compatible)."""

    MAX_LINES = 20

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 20,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport

    @staticmethod
    def build_payload(source_id: str, changes: list[StructuralChange]) -> dict:
        lines = [
            f"- [{c.impact.value.upper()}] {c.element_type} `{c.path}`: {c.message}"
            for c in changes[: WebhookNotificationSink.MAX_LINES]
        ]
        if len(changes) > WebhookNotificationSink.MAX_LINES:
            lines.append(f"... and {len(changes) - WebhookNotificationSink.MAX_LINES} more")
        text = f"Structural changes detected for source '{source_id}'\n" + "\n".join(lines)
        return {"text": text, "content": text}

    async def notify(self, source_id: str, changes: list[StructuralChange]) -> None:
        payload = self.build_payload(source_id, changes)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(self.webhook_url, json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Webhook notification failed", source_id=source_id, error=str(e))
            return
        logger.info("Webhook notification sent", source_id=source_id, changes=len(changes))
