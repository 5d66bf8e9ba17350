import asyncio

import pytest

from evidence.snapshot import FileFingerprintStore, FingerprintStore
from parsing.change_detector import ChangeDetector, classify_selector
from parsing.structure import structural_fingerprint
from schemas.changes import ChangeStatus, Impact
from schemas.config import ScraperSettings


def listing(items: int, with_links: bool = True, text: str = "Job") -> str:
    link = '<a class="job-link" href="/jobs/{i}">{text} {i}</a>'
    rows = "".join(
        f'<li class="job-item">{link.format(i=i, text=text) if with_links else f"<span>{text} {i}</span>"}</li>'
        for i in range(items)
    )
    return f"<html><head><script>var t = {items};</script></head><body><ul>{rows}</ul></body></html>"


SETTINGS = ScraperSettings(
    base_url="https://jobs.example.com",
    listing_selector=".job-item",
    detail_link_selector="a.job-link",
    fields={"title": "h1.title"},
)


def detector(tmp_path, sink=None) -> ChangeDetector:
    return ChangeDetector("example", SETTINGS, FileFingerprintStore(tmp_path), sink)


def test_fingerprint_ignores_text_and_scripts():
    a = "<html><head><script>1</script></head><body><div class='x'><p>Hello</p></div></body></html>"
    b = "<html><head><script>2</script><style>p{}</style></head><body><div class='x'><p>Bye</p></div></body></html>"
    c = "<html><body><div class='y'><p>Hello</p></div></body></html>"

    assert structural_fingerprint(a) == structural_fingerprint(b)
    assert structural_fingerprint(a) != structural_fingerprint(c)


def test_first_pass_stores_baseline(tmp_path):
    store = FileFingerprintStore(tmp_path)
    result = asyncio.run(ChangeDetector("example", SETTINGS, store).detect(listing(3)))

    assert result.status == ChangeStatus.UNCHANGED
    assert store.get_fingerprint("example", "listing").hash == result.fingerprint
    assert store.get_snapshot("example", "listing") == listing(3)


def test_text_only_changes_are_unchanged(tmp_path):
    d = detector(tmp_path)

    async def run():
        await d.detect(listing(3, text="Job"))
        return await d.detect(listing(3, text="Role"))

    assert asyncio.run(run()).status == ChangeStatus.UNCHANGED


def test_dropped_detail_links_are_major_and_notify(tmp_path, sink):
    d = detector(tmp_path, sink)

    async def run():
        await d.detect(listing(3))
        return await d.detect(listing(3, with_links=False))

    result = asyncio.run(run())

    assert result.status == ChangeStatus.MAJOR_CHANGES
    assert result.can_adapt_automatically is False
    detail = [c for c in result.changes if c.element_type == "detail_link"]
    assert detail and detail[0].impact == Impact.HIGH
    assert detail[0].previous_value == "3"
    assert detail[0].current_value == "0"
    assert len(sink.calls) == 1
    source_id, changes = sink.calls[0]
    assert source_id == "example"
    assert all(c.impact == Impact.HIGH for c in changes)


def test_large_count_change_is_minor(tmp_path, sink):
    d = detector(tmp_path, sink)

    async def run():
        await d.detect(listing(2))
        return await d.detect(listing(5))

    result = asyncio.run(run())

    assert result.status == ChangeStatus.MINOR_CHANGES
    assert result.can_adapt_automatically is True
    assert {c.element_type: c.impact for c in result.changes} == {
        "listing": Impact.MEDIUM,
        "detail_link": Impact.MEDIUM,
        "field:title": Impact.MEDIUM,
    }
    assert sink.calls == []


def test_missing_snapshot_reported_as_medium(tmp_path):
    store = FileFingerprintStore(tmp_path)
    d = ChangeDetector("example", SETTINGS, store)
    asyncio.run(d.detect(listing(3)))
    (tmp_path / "example" / "listing.html").unlink()

    result = asyncio.run(d.detect(listing(3, with_links=False)))

    assert result.status == ChangeStatus.MINOR_CHANGES
    assert [(c.element_type, c.impact) for c in result.changes] == [("page", Impact.MEDIUM)]


class BrokenStore(FingerprintStore):
    def get_fingerprint(self, source_id, role):
        raise OSError("store offline")

    def save_fingerprint(self, fingerprint):
        raise OSError("store offline")

    def get_snapshot(self, source_id, role):
        raise OSError("store offline")

    def save_snapshot(self, source_id, role, html):
        raise OSError("store offline")


def test_detector_never_raises(sink):
    d = ChangeDetector("example", SETTINGS, BrokenStore(), sink)

    result = asyncio.run(d.detect(listing(1)))

    assert result.status == ChangeStatus.ERROR
    assert [c.impact for c in result.changes] == [Impact.HIGH]
    assert len(sink.calls) == 1


@pytest.mark.parametrize(
    ("before", "after", "critical", "expected"),
    [
        (3, 0, False, Impact.HIGH),
        (0, 2, True, Impact.LOW),
        (0, 0, True, Impact.HIGH),
        (0, 0, False, Impact.MEDIUM),
        (4, 1, True, Impact.MEDIUM),
    ],
)
def test_classify_selector(before, after, critical, expected):
    impact, _ = classify_selector(before, after, critical)
    assert impact == expected


def test_small_count_change_not_reported():
    assert classify_selector(10, 12, True) is None


def test_detail_link_selector_list_stays_inside_listing_items(tmp_path, sink):
    settings = SETTINGS.model_copy(update={"detail_link_selector": "a.job-link, a.apply"})
    d = ChangeDetector("example", settings, FileFingerprintStore(tmp_path), sink)
    footer = '<footer><a class="apply" href="/apply">Apply</a></footer></body>'

    async def run():
        await d.detect(listing(3).replace("</body>", footer))
        return await d.detect(listing(3, with_links=False).replace("</body>", footer))

    result = asyncio.run(run())

    detail = [c for c in result.changes if c.element_type == "detail_link"]
    assert detail[0].impact == Impact.HIGH
    assert (detail[0].previous_value, detail[0].current_value) == ("3", "0")
    assert result.status == ChangeStatus.MAJOR_CHANGES
