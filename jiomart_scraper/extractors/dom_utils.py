"""Helper utilities for safely interacting with storefront DOM content."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

from playwright.async_api import Error as PlaywrightError

from jiomart_scraper.config import wait_multiplier
from jiomart_scraper.logging_config import get_logger

LOGGER = get_logger(__name__)


async def settle(ms: int) -> None:
    """Pause after an action that has no observable completion signal."""

    delay = max(ms, 0) * wait_multiplier() / 1000
    if delay > 0:
        await asyncio.sleep(delay)


async def is_present(locator: Any) -> bool:
    """Return True when *locator* matches at least one element."""

    try:
        return await locator.count() > 0
    except PlaywrightError:
        return False


async def is_visible_within(locator: Any, timeout: int) -> bool:
    """Return True when *locator* becomes visible before *timeout* ms elapse."""

    try:
        await locator.wait_for(state="visible", timeout=timeout)
    except PlaywrightError:
        return False
    return True


async def first_match(
    root: Any,
    candidates: Iterable[str],
    *,
    visible: bool = True,
    timeout: int = 3000,
) -> tuple[str, Any] | tuple[None, None]:
    """Return ``(selector, locator)`` for the first candidate that matches.

    Candidates are tried strictly in order. With ``visible=True`` a candidate
    must become visible within *timeout* ms, otherwise it only has to exist.
    Absence is a normal outcome and yields ``(None, None)``.
    """

    for selector in candidates:
        try:
            locator = root.locator(selector).first
        except PlaywrightError:
            continue
        if visible:
            matched = await is_visible_within(locator, timeout)
        else:
            matched = await is_present(locator)
        if matched:
            return selector, locator
    return None, None


async def text_content_safe(locator: Any, timeout: int = 3000) -> str | None:
    """Return the stripped text content for *locator* while ignoring DOM failures."""

    if locator is None:
        return None
    try:
        result = await locator.text_content(timeout=timeout)
    except PlaywrightError:
        return None
    if result is None:
        return None
    return result.strip()


async def body_text(page: Any) -> str:
    try:
        return await page.text_content("body", timeout=5000) or ""
    except PlaywrightError:
        return ""


async def auto_scroll(page: Any, iterations: int = 5, *, step_delay_ms: int = 1500) -> bool:
    """Scroll one viewport at a time to force lazy cards to render, then return to the top.

    Never raises; returns ``False`` when the page rejected a scroll.
    """

    LOGGER.info("Starting auto-scroll (%s iterations)", iterations)
    try:
        for _ in range(max(iterations, 0)):
            await page.evaluate("() => window.scrollBy(0, window.innerHeight)")
            await settle(step_delay_ms)
        await page.evaluate("() => window.scrollTo(0, 0)")
        await settle(500)
    except Exception as exc:
        LOGGER.warning("Auto-scroll failed: %s", exc)
        return False

    LOGGER.info("Auto-scroll completed")
    return True
