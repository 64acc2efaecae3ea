"""Diagnostic captures: full-page screenshots, serialized markup, page metrics."""

from __future__ import annotations

import json
import time
from typing import Any

import jiomart_scraper.selectors as selectors
from jiomart_scraper.logging_config import get_logger
from jiomart_scraper.storage.sink import RecordSink

LOGGER = get_logger(__name__)

METRICS_SCRIPT = """
(sel) => ({
    url: window.location.href,
    title: document.title,
    viewport: { width: window.innerWidth, height: window.innerHeight },
    elementCounts: {
        productCards: document.querySelectorAll(sel.card).length,
        productLinks: document.querySelectorAll(sel.link).length,
        images: document.querySelectorAll('img').length,
        prices: document.querySelectorAll(sel.price).length,
    },
})
"""


def artifact_key(label: str, timestamp_ms: int | None = None) -> str:
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"{label}-{stamp}"


async def save_screenshot(page: Any, sink: RecordSink, label: str) -> str | None:
    """Store a full-page PNG under ``<label>-<ms>.png``; failures are only logged."""

    key = f"{artifact_key(label)}.png"
    try:
        image = await page.screenshot(full_page=True)
        await sink.save_artifact(key, image, "image/png")
    except Exception as exc:
        LOGGER.error("Screenshot failed: %s", exc)
        return None
    LOGGER.info("Screenshot saved: %s", key)
    return key


async def capture_page_state(page: Any, sink: RecordSink, label: str = "debug") -> dict[str, Any] | None:
    """Save screenshot + HTML and log a small metrics summary of *page*."""

    key = artifact_key(label)
    try:
        image = await page.screenshot(full_page=True)
        await sink.save_artifact(f"{key}.png", image, "image/png")

        html = await page.content()
        await sink.save_artifact(f"{key}.html", html, "text/html")

        metrics = await page.evaluate(
            METRICS_SCRIPT,
            {"card": selectors.CARD, "link": selectors.CARD_LINK, "price": selectors.CARD_PRICE},
        )
    except Exception as exc:
        LOGGER.error("Debug capture failed: %s", exc)
        return None

    LOGGER.info("Page state [%s]: %s", label, json.dumps(metrics, indent=2))
    return metrics
