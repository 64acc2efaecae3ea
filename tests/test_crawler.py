import asyncio
from contextlib import asynccontextmanager

import pytest
from playwright.async_api import Error as PlaywrightError
from tenacity import wait_none

from fakes import FakePage, MemorySink, card, results_page
from jiomart_scraper import crawler
from jiomart_scraper.config import CrawlSettings
from jiomart_scraper.crawler import (
    CrawlRequest,
    RunContext,
    build_requests,
    build_search_url,
    handle_request,
    navigate,
    run_crawl,
)
from jiomart_scraper.errors import NoProductsError, PageLoadError

ATTA_URL = "https://www.jiomart.com/search?q=atta"


def _context(**overrides) -> RunContext:
    settings = CrawlSettings.model_validate(overrides)
    return RunContext(settings=settings, sink=MemorySink(), retry_wait=wait_none())


def _page_factory(*pages: FakePage):
    """Hand out *pages* in order; the last one is reused once the rest are used up."""

    queue = list(pages)
    opened: list[FakePage] = []

    @asynccontextmanager
    async def open_page():
        page = queue.pop(0) if len(queue) > 1 else queue[0]
        opened.append(page)
        try:
            yield page
        finally:
            await page.close()

    return open_page, opened


class _RecordingSetter:
    def __init__(self, result: bool, calls: list[str]) -> None:
        self.result = result
        self.calls = calls

    def __call__(self, pincode, sink=None):
        self.pincode = pincode
        self.history = []
        return self

    async def run(self, page) -> bool:
        self.calls.append(self.pincode)
        self.history.append("ran")
        return self.result


def test_build_search_url() -> None:
    assert build_search_url("atta") == ATTA_URL
    assert build_search_url("basmati rice") == "https://www.jiomart.com/search?q=basmati+rice"


def test_build_requests_puts_literal_urls_first() -> None:
    requests = build_requests(["https://www.jiomart.com/c/groceries/2"], ["atta", "dal"])

    assert [r.url for r in requests] == [
        "https://www.jiomart.com/c/groceries/2",
        ATTA_URL,
        "https://www.jiomart.com/search?q=dal",
    ]
    assert [r.is_first for r in requests] == [True, False, False]
    assert build_requests([], []) == []


def test_first_search_without_header_control_still_extracts() -> None:
    cards = [card(i) for i in range(12)]
    cards[5] = card(5, price=None)
    page = results_page(cards)
    ctx = _context()
    request = CrawlRequest(url=ATTA_URL, is_first=True)

    saved = asyncio.run(handle_request(ctx, page, request))

    assert len(saved) == 11
    assert ctx.records_saved == 11
    assert ctx.location_attempts == 1
    assert ctx.location_applied is False
    assert page.scrolls == 5
    items = [record.to_item() for record in ctx.sink.records]
    assert all(item["pincode"] == "411001" for item in items)
    assert all(item["searchQuery"] == "atta" for item in items)
    assert all(item["searchUrl"] == ATTA_URL for item in items)
    assert all(item["platform"] == "JioMart" for item in items)


def test_records_truncated_to_max_products() -> None:
    page = results_page([card(i) for i in range(10)])
    ctx = _context(maxProductsPerSearch=3)

    saved = asyncio.run(handle_request(ctx, page, CrawlRequest(url=ATTA_URL)))

    assert [r.product_id for r in saved] == ["590000", "590001", "590002"]


def test_location_attempted_once_across_requests(monkeypatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(crawler, "LocationSetter", _RecordingSetter(False, calls))
    ctx = _context(pincode="560001")

    async def scenario():
        # A retried first request is marked first again but must not re-run the setter.
        for _ in range(3):
            await handle_request(ctx, results_page([card(0)]), CrawlRequest(url=ATTA_URL, is_first=True))

    asyncio.run(scenario())

    assert calls == ["560001"]
    assert ctx.location_attempts == 1
    assert ctx.records_saved == 3


def test_retried_first_request_waits_for_page_load(monkeypatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(crawler, "LocationSetter", _RecordingSetter(False, calls))
    ctx = _context()
    first_page = results_page([card(0)])
    retry_page = results_page([card(0)])

    async def scenario():
        await handle_request(ctx, first_page, CrawlRequest(url=ATTA_URL, is_first=True))
        await handle_request(ctx, retry_page, CrawlRequest(url=ATTA_URL, is_first=True))

    asyncio.run(scenario())

    assert calls == ["411001"]
    assert "domcontentloaded" not in first_page.load_states
    assert "domcontentloaded" in retry_page.load_states


def test_concurrent_location_attempts_are_serialised() -> None:
    ctx = _context()
    calls = 0

    async def setup() -> bool:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return True

    async def scenario():
        return await asyncio.gather(*(ctx.apply_location_once(setup) for _ in range(5)))

    results = asyncio.run(scenario())

    assert calls == 1
    assert results.count(True) == 1
    assert ctx.location_applied is True


def test_reload_after_location_when_enabled(monkeypatch) -> None:
    monkeypatch.setattr(crawler, "LocationSetter", _RecordingSetter(True, []))
    page = results_page([card(0)])
    ctx = _context(reloadAfterLocation=True)

    asyncio.run(handle_request(ctx, page, CrawlRequest(url=ATTA_URL, is_first=True)))

    assert ctx.location_applied is True
    assert page.reloads == 1


def test_no_reload_by_default(monkeypatch) -> None:
    monkeypatch.setattr(crawler, "LocationSetter", _RecordingSetter(True, []))
    page = results_page([card(0)])
    ctx = _context()

    asyncio.run(handle_request(ctx, page, CrawlRequest(url=ATTA_URL, is_first=True)))

    assert page.reloads == 0


def test_empty_results_are_not_an_error_by_default() -> None:
    page = FakePage(body="No results found")
    ctx = _context(debugMode=True)

    assert asyncio.run(handle_request(ctx, page, CrawlRequest(url=ATTA_URL))) == []
    assert ctx.sink.batches == []
    assert any(key.startswith("no-products-") for key in ctx.sink.artifacts)
    assert any(key.startswith("no-results-") for key in ctx.sink.artifacts)


def test_empty_results_raise_when_requested_and_screenshot_saved() -> None:
    page = FakePage()
    ctx = _context(failOnEmptyResults=True)

    with pytest.raises(NoProductsError):
        asyncio.run(handle_request(ctx, page, CrawlRequest(url=ATTA_URL)))

    assert [key for key in ctx.sink.artifacts if key.startswith("error-")]


def test_no_error_screenshot_when_disabled() -> None:
    ctx = _context(failOnEmptyResults=True, screenshotOnError=False)

    with pytest.raises(NoProductsError):
        asyncio.run(handle_request(ctx, FakePage(), CrawlRequest(url=ATTA_URL)))

    assert ctx.sink.artifacts == {}


def test_debug_mode_captures_first_page_state(monkeypatch) -> None:
    monkeypatch.setattr(crawler, "LocationSetter", _RecordingSetter(True, []))
    ctx = _context(debugMode=True)

    asyncio.run(handle_request(ctx, results_page([card(0)]), CrawlRequest(url=ATTA_URL, is_first=True)))

    labels = {key.rsplit("-", 1)[0] for key in ctx.sink.artifacts}
    assert labels == {"initial", "after-scroll"}


def test_navigate_rejects_error_status() -> None:
    page = FakePage(status=404)
    settings = CrawlSettings()

    with pytest.raises(PageLoadError) as excinfo:
        asyncio.run(navigate(page, CrawlRequest(url=ATTA_URL), settings))

    assert "HTTP 404" in str(excinfo.value)
    assert excinfo.value.url == ATTA_URL


def test_run_crawl_retries_then_records_failure() -> None:
    broken = FakePage(goto_error=PlaywrightError("net::ERR_TIMED_OUT"))
    open_page, opened = _page_factory(broken)
    ctx = _context(maxRequestRetries=2)
    request = CrawlRequest(url=ATTA_URL, is_first=True)

    asyncio.run(run_crawl(ctx, [request], open_page))

    assert len(broken.visited) == 3
    assert len(opened) == 3
    assert broken.closed is True
    assert request.retry_count == 3
    assert ctx.failed_urls == [ATTA_URL]
    [entry] = ctx.sink.failures
    assert entry.url == ATTA_URL
    assert entry.error.count("net::ERR_TIMED_OUT") == 3


def test_run_crawl_continues_after_a_failed_url() -> None:
    broken = FakePage(goto_error=PlaywrightError("net::ERR_CONNECTION_RESET"))
    good = results_page([card(i) for i in range(4)])
    open_page, _ = _page_factory(broken, good)
    ctx = _context(maxRequestRetries=0, maxConcurrency=2)
    requests = build_requests([], ["atta", "dal"])

    asyncio.run(run_crawl(ctx, requests, open_page))

    assert ctx.failed_urls == [ATTA_URL]
    assert ctx.records_saved == 4
    assert {record.search_query for record in ctx.sink.records} == {"dal"}
