"""Per-request orchestration and the bounded-concurrency crawl loop."""

from __future__ import annotations

import asyncio
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable
from urllib.parse import urlencode

from playwright.async_api import Error as PlaywrightError
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_random_exponential
from tenacity.wait import wait_base

from jiomart_scraper.config import CrawlSettings
from jiomart_scraper.errors import NoProductsError, PageLoadError
from jiomart_scraper.extractors.dom_utils import auto_scroll, settle
from jiomart_scraper.extractors.products import extract_products
from jiomart_scraper.extractors.schemas import (
    BASE_URL,
    FailureLogEntry,
    ProductRecord,
    search_query_from_url,
)
from jiomart_scraper.logging_config import get_logger
from jiomart_scraper.retailers.jiomart import (
    LocationSetter,
    close_lingering_modals,
    dismiss_location_popup,
    wait_for_search_results,
)
from jiomart_scraper.storage.artifacts import capture_page_state, save_screenshot
from jiomart_scraper.storage.sink import RecordSink

LOGGER = get_logger(__name__)

SEARCH_PATH = "/search"

PageFactory = Callable[[], AbstractAsyncContextManager[Any]]


def build_search_url(query: str) -> str:
    return f"{BASE_URL}{SEARCH_PATH}?{urlencode({'q': query})}"


@dataclass
class CrawlRequest:
    url: str
    is_first: bool = False
    retry_count: int = 0
    error_messages: list[str] = field(default_factory=list)


def build_requests(search_urls: list[str], search_queries: list[str]) -> list[CrawlRequest]:
    """Literal URLs first, then one search URL per query; only the first is marked."""

    urls = list(search_urls) + [build_search_url(query) for query in search_queries]
    return [CrawlRequest(url=url, is_first=index == 0) for index, url in enumerate(urls)]


@dataclass
class RunContext:
    """State shared by every request of one crawl run."""

    settings: CrawlSettings
    sink: RecordSink
    location_applied: bool = False
    location_attempts: int = 0
    records_saved: int = 0
    failed_urls: list[str] = field(default_factory=list)
    retry_wait: wait_base = field(default_factory=lambda: wait_random_exponential(multiplier=0.5, max=5))
    _location_gate: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def apply_location_once(self, setup: Callable[[], Awaitable[bool]]) -> bool:
        """Run *setup* at most once per run; returns True if this call applied it.

        The gate is held for the whole setup so a concurrent caller waits and
        then sees the attempt already made.
        """

        async with self._location_gate:
            if self.location_applied or self.location_attempts:
                return False
            self.location_attempts += 1
            applied = await setup()
            if applied:
                self.location_applied = True
            return applied

    async def debug_capture(self, page: Any, label: str) -> None:
        if self.settings.debug_mode:
            await capture_page_state(page, self.sink, label)


async def _bootstrap_location(ctx: RunContext, page: Any) -> bool:
    """Run the pincode setter on *page* if no attempt was made yet; True if it ran."""

    settings = ctx.settings
    LOGGER.info("First request - setting pincode location")
    setter = LocationSetter(pincode=settings.pincode, sink=ctx.sink)
    applied = await ctx.apply_location_once(lambda: setter.run(page))
    if not setter.history:
        LOGGER.info("Location already attempted this run, skipping")
        return False
    if not applied:
        LOGGER.warning("Failed to set location, continuing anyway")
        return True

    LOGGER.info("Location set successfully - continuing with current page")
    if settings.reload_after_location:
        await page.reload(wait_until="networkidle")
        await settle(3000)
    else:
        await settle(2000)
    return True


def _with_provenance(records: list[ProductRecord], url: str, settings: CrawlSettings) -> list[ProductRecord]:
    search_query = search_query_from_url(url)
    return [
        record.with_provenance(search_query=search_query, search_url=url, pincode=settings.pincode)
        for record in records[: settings.max_products_per_search]
    ]


async def handle_request(ctx: RunContext, page: Any, request: CrawlRequest) -> list[ProductRecord]:
    """Process one loaded search page and push its records; re-raises on failure."""

    settings = ctx.settings
    url = request.url
    LOGGER.info("Processing: %s", url)

    try:
        if request.is_first:
            await dismiss_location_popup(page)
            await settle(1000)

        bootstrapped = False
        if request.is_first and not ctx.location_applied:
            bootstrapped = await _bootstrap_location(ctx, page)
        if not bootstrapped:
            await page.wait_for_load_state("domcontentloaded")
            await settle(2000)

        if request.is_first:
            await ctx.debug_capture(page, "initial")

        await close_lingering_modals(page)

        if not await wait_for_search_results(page):
            await ctx.debug_capture(page, "no-results")

        await auto_scroll(page, settings.scroll_count)
        if request.is_first:
            await ctx.debug_capture(page, "after-scroll")

        records = await extract_products(page, debug=settings.debug_mode)
        if not records:
            LOGGER.error("No products extracted from %s", url)
            await ctx.debug_capture(page, "no-products")
            if settings.fail_on_empty_results:
                raise NoProductsError(url=url, pincode=settings.pincode)
            return []

        to_save = _with_provenance(records, url, settings)
        await ctx.sink.push_records(to_save)
        ctx.records_saved += len(to_save)
        LOGGER.info(
            'Saved %s products for "%s" (pincode: %s)',
            len(to_save),
            to_save[0].search_query,
            settings.pincode,
        )
        return to_save
    except Exception as exc:
        LOGGER.error("Error processing %s: %s", url, exc)
        if settings.screenshot_on_error:
            await save_screenshot(page, ctx.sink, "error")
        raise


async def navigate(page: Any, request: CrawlRequest, settings: CrawlSettings) -> None:
    try:
        response = await page.goto(
            request.url,
            wait_until="domcontentloaded",
            timeout=settings.navigation_timeout,
        )
    except PlaywrightError as exc:
        raise PageLoadError(f"Navigation failed: {exc}", url=request.url) from exc
    if response is not None and response.status >= 400:
        raise PageLoadError(f"HTTP {response.status}", url=request.url)


async def process_request(ctx: RunContext, request: CrawlRequest, open_page: PageFactory) -> list[ProductRecord]:
    """Navigate and handle *request*, retrying up to ``maxRequestRetries`` times."""

    def _note_failure(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        request.retry_count = retry_state.attempt_number
        request.error_messages.append(str(exc))
        LOGGER.warning(
            "Attempt %s failed for %s: %s",
            retry_state.attempt_number,
            request.url,
            exc,
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(ctx.settings.max_request_retries + 1),
        wait=ctx.retry_wait,
        after=_note_failure,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            async with open_page() as page:
                await navigate(page, request, ctx.settings)
                return await handle_request(ctx, page, request)
    return []


async def _record_failure(ctx: RunContext, request: CrawlRequest) -> None:
    LOGGER.error("Request failed: %s", request.url)
    ctx.failed_urls.append(request.url)
    entry = FailureLogEntry(url=request.url, error=", ".join(request.error_messages) or None)
    try:
        await ctx.sink.record_failure(entry)
    except Exception as exc:
        LOGGER.error("Could not persist failure for %s: %s", request.url, exc)


async def run_crawl(
    ctx: RunContext,
    requests: list[CrawlRequest],
    open_page: PageFactory,
) -> RunContext:
    """Process every request with bounded concurrency; one bad page never aborts the run."""

    semaphore = asyncio.Semaphore(ctx.settings.max_concurrency)

    async def _worker(request: CrawlRequest) -> None:
        async with semaphore:
            try:
                await process_request(ctx, request, open_page)
            except Exception:
                await _record_failure(ctx, request)

    # The first request bootstraps the location, so it runs before the rest.
    if requests and requests[0].is_first:
        await _worker(requests[0])
        requests = requests[1:]
    await asyncio.gather(*(_worker(request) for request in requests))

    LOGGER.info(
        "Crawl finished: %s records saved, %s failed URLs",
        ctx.records_saved,
        len(ctx.failed_urls),
    )
    return ctx
