import asyncio
import json

import httpx

from orchestration.notifier import FileNotificationSink, WebhookNotificationSink
from schemas.changes import Impact, StructuralChange


def change(path: str = "listing") -> StructuralChange:
    return StructuralChange(
        element_type="structure",
        path=path,
        previous_value="abc",
        current_value="def",
        impact=Impact.HIGH,
        message="Page structure changed",
    )


def test_webhook_posts_chat_message():
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200)

    sink = WebhookNotificationSink(
        "https://hooks.test/abc", transport=httpx.MockTransport(handler)
    )
    asyncio.run(sink.notify("academic-work", [change()]))

    payload = json.loads(captured[0].content)
    assert "academic-work" in payload["text"]
    assert "[HIGH] structure `listing`" in payload["text"]
    assert payload["content"] == payload["text"]


def test_webhook_truncates_long_change_lists():
    payload = WebhookNotificationSink.build_payload(
        "s", [change(f"p{i}") for i in range(25)]
    )
    assert payload["text"].endswith("... and 5 more")


def test_webhook_failure_is_logged_not_raised():
    sink = WebhookNotificationSink(
        "https://hooks.test/abc",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    asyncio.run(sink.notify("s", [change()]))


def test_file_sink_writes_notification(tmp_path):
    sink = FileNotificationSink(tmp_path)
    asyncio.run(sink.notify("academic-work", [change()]))

    files = list(tmp_path.glob("academic-work_*.json"))
    assert len(files) == 1
    data = json.loads(files[0].read_text())
    assert data["changes"][0]["impact"] == "high"
