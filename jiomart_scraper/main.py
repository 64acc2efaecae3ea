"""Actor entry point: read input, launch Chromium, crawl every search URL."""

from __future__ import annotations

import argparse
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from apify import Actor
from playwright.async_api import Page, async_playwright

from jiomart_scraper.config import CrawlSettings, load_settings
from jiomart_scraper.crawler import RunContext, build_requests, run_crawl
from jiomart_scraper.logging_config import get_logger
from jiomart_scraper.playwright_env import (
    close_context,
    launch_browser,
    new_browser_context,
    new_request_page,
    parse_proxy_url,
)
from jiomart_scraper.storage.sink import ActorSink

LOGGER = get_logger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="jiomart-scraper")
    parser.add_argument(
        "--config",
        default=None,
        help="YAML file whose keys override the actor input (local runs)",
    )
    return parser.parse_args(argv)


async def resolve_proxy(settings: CrawlSettings) -> dict[str, str] | None:
    """Return a Playwright proxy mapping from Apify Proxy or a custom proxy URL."""

    proxy_input = settings.proxy_configuration
    if proxy_input.use_apify_proxy:
        proxy_configuration = await Actor.create_proxy_configuration(
            actor_proxy_input=proxy_input.model_dump(by_alias=True, exclude_none=True),
        )
        if proxy_configuration is None:
            LOGGER.warning("Apify Proxy requested but not available; running without proxy")
            return None
        return parse_proxy_url(await proxy_configuration.new_url())
    return parse_proxy_url(proxy_input.custom_url)


def _log_banner(settings: CrawlSettings, urls: list[str]) -> None:
    LOGGER.info("=" * 60)
    LOGGER.info("JIOMART SCRAPER STARTED")
    LOGGER.info("Pincode: %s", settings.pincode)
    LOGGER.info("Search URLs: %s", len(urls))
    LOGGER.info("Max products per search: %s", settings.max_products_per_search)
    LOGGER.info("Scroll iterations: %s", settings.scroll_count)
    LOGGER.info("Debug mode: %s", settings.debug_mode)
    LOGGER.info("Headless: %s", settings.effective_headless)
    LOGGER.info("=" * 60)
    for idx, url in enumerate(urls, start=1):
        LOGGER.info("  %s. %s%s", idx, url, " (will set location)" if idx == 1 else "")


async def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)

    async with Actor:
        settings = load_settings(await Actor.get_input(), args.config)
        requests = build_requests(settings.search_urls, settings.search_queries)
        if not requests:
            LOGGER.error('No search URLs provided. Supply "searchUrls" or "searchQueries" in the input.')
            return

        _log_banner(settings, [request.url for request in requests])
        proxy = await resolve_proxy(settings)
        ctx = RunContext(settings=settings, sink=ActorSink())

        async with async_playwright() as playwright:
            browser = await launch_browser(playwright, settings, proxy)
            context = await new_browser_context(browser)

            @asynccontextmanager
            async def open_page() -> AsyncIterator[Page]:
                page = await new_request_page(context)
                try:
                    yield page
                finally:
                    await page.close()

            try:
                await run_crawl(ctx, requests, open_page)
            finally:
                await close_context(context)
                await browser.close()

        LOGGER.info("=" * 60)
        LOGGER.info("SCRAPING COMPLETED: %s products saved", ctx.records_saved)
        if ctx.failed_urls:
            LOGGER.info("Failed URLs (%s): %s", len(ctx.failed_urls), ", ".join(ctx.failed_urls))
        LOGGER.info("=" * 60)
