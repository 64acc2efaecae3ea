"""Turn a rendered JioMart search page into ProductRecord objects."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import ValidationError

import jiomart_scraper.selectors as selectors
from jiomart_scraper.extractors.schemas import (
    ProductRecord,
    absolute_url,
    compute_discount_pct,
    parse_discount_badge,
    parse_plain_price,
    parse_price,
    parse_weight,
    utc_now,
)
from jiomart_scraper.logging_config import get_logger

LOGGER = get_logger(__name__)

# Read-only snapshot of every result card. Values stay raw strings; all
# parsing happens in build_record so it can be tested without a browser.
SNAPSHOT_SCRIPT = """
(sel) => Array.from(document.querySelectorAll(sel.card)).map((item) => {
    try {
        const link = item.querySelector(sel.link);
        if (!link) {
            return { missingLink: true };
        }
        const gtm = item.querySelector(sel.gtm);
        const attr = (el, name) => (el ? el.getAttribute(name) : null);
        const text = (el) => (el && el.textContent ? el.textContent.trim() : null);
        const img = item.querySelector(sel.image);
        const addButton = item.querySelector(sel.addButton);
        return {
            href: link.href || attr(link, 'href'),
            objectId: attr(link, 'data-objid'),
            linkTitle: attr(link, 'title'),
            name: text(item.querySelector(sel.name)),
            gtmName: attr(gtm, 'data-name'),
            gtmPrice: attr(gtm, 'data-price'),
            gtmBrand: attr(gtm, 'data-manu'),
            imageSrc: img ? (img.getAttribute('src') || null) : null,
            imageDataSrc: attr(img, 'data-src'),
            priceText: text(item.querySelector(sel.price)),
            wasPriceText: text(item.querySelector(sel.wasPrice)),
            badgeText: text(item.querySelector(sel.badge)),
            isVegetarian: item.querySelector(sel.vegIcon) !== null,
            addDisabled: addButton ? addButton.hasAttribute('disabled') : false,
        };
    } catch (error) {
        return { error: String(error) };
    }
})
"""

SNAPSHOT_SELECTORS = {
    "card": selectors.CARD,
    "link": selectors.CARD_LINK,
    "gtm": selectors.CARD_GTM,
    "name": selectors.CARD_NAME,
    "image": selectors.CARD_IMAGE,
    "price": selectors.CARD_PRICE,
    "wasPrice": selectors.CARD_WAS_PRICE,
    "badge": selectors.CARD_BADGE,
    "vegIcon": selectors.CARD_VEG_ICON,
    "addButton": selectors.CARD_ADD_BUTTON,
}


class CardSkipped(ValueError):
    """A result card that cannot produce a valid record."""


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def build_record(raw: dict[str, Any], index: int, scraped_at: datetime | None = None) -> ProductRecord:
    """Build one record from a card snapshot.

    Raises ``CardSkipped`` when the card lacks a link, a name, or a price.
    """

    if raw.get("error"):
        raise CardSkipped(f"card script error: {raw['error']}")
    if raw.get("missingLink"):
        raise CardSkipped("card has no product link")

    name = _clean(raw.get("name")) or _clean(raw.get("gtmName")) or _clean(raw.get("linkTitle"))
    if not name:
        raise CardSkipped("card has no product name")

    current = parse_price(raw.get("priceText"))
    if current is None:
        current = parse_plain_price(_clean(raw.get("gtmPrice")))
    if current is None or current <= 0:
        raise CardSkipped(f"card has no price: {name}")

    original = parse_price(raw.get("wasPriceText"))
    if original is None or original < current:
        original = current

    discount = parse_discount_badge(raw.get("badgeText"))
    # A "0%" badge counts as no badge.
    if not discount:
        discount = compute_discount_pct(current, original)

    try:
        return ProductRecord(
            product_id=_clean(raw.get("objectId")) or f"jiomart-{index}",
            product_name=name,
            product_image=absolute_url(_clean(raw.get("imageSrc")) or _clean(raw.get("imageDataSrc"))),
            current_price=current,
            original_price=original,
            discount_percentage=discount,
            product_weight=parse_weight(name),
            brand=_clean(raw.get("gtmBrand")),
            is_vegetarian=bool(raw.get("isVegetarian")),
            is_out_of_stock=bool(raw.get("addDisabled")),
            product_url=absolute_url(_clean(raw.get("href"))),
            scraped_at=scraped_at or utc_now(),
        )
    except ValidationError as exc:
        raise CardSkipped(f"invalid record for {name}: {exc}") from exc


def records_from_snapshot(
    snapshot: list[dict[str, Any]],
    scraped_at: datetime | None = None,
) -> list[ProductRecord]:
    """Build records card by card; a bad card is skipped, never fatal."""

    captured = scraped_at or utc_now()
    records: list[ProductRecord] = []
    for index, raw in enumerate(snapshot):
        try:
            records.append(build_record(raw, index, captured))
        except CardSkipped as exc:
            LOGGER.debug("Skipping card %s: %s", index, exc)
        except Exception as exc:
            LOGGER.warning("Error extracting product %s: %s", index, exc)
    return records


async def snapshot_cards(page: Any) -> list[dict[str, Any]]:
    result = await page.evaluate(SNAPSHOT_SCRIPT, SNAPSHOT_SELECTORS)
    if not isinstance(result, list):
        return []
    return [entry if isinstance(entry, dict) else {"error": "non-object card"} for entry in result]


async def extract_products(page: Any, *, debug: bool = False) -> list[ProductRecord]:
    """Extract every valid product card currently rendered on *page*."""

    LOGGER.info("Extracting products...")
    try:
        snapshot = await snapshot_cards(page)
    except Exception as exc:
        LOGGER.error("Error extracting products: %s", exc)
        return []

    records = records_from_snapshot(snapshot)
    LOGGER.info("Extracted %s products from %s cards", len(records), len(snapshot))
    if debug and records:
        LOGGER.info("Sample product: %s", records[0].to_item())
    return records
