"""Data validation schemas and field parsers for extracted records."""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qs, urljoin, urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_serializer,
    field_validator,
)

BASE_URL = "https://www.jiomart.com"
PLATFORM = "JioMart"

_RUPEE_PRICE_PATTERN = re.compile(r"₹\s*(?P<number>\d+(?:,\d+)*(?:\.\d+)?)")
_PLAIN_NUMBER_PATTERN = re.compile(r"(?P<number>\d+(?:,\d+)*(?:\.\d+)?)")
_DISCOUNT_PATTERN = re.compile(r"(\d+)\s*%")
_WEIGHT_PATTERN = re.compile(r"(\d+\s*(?:g|kg|ml|l|gm|pack|pcs|piece))", re.I)


def _to_float(number: str) -> float | None:
    try:
        return float(number.replace(",", ""))
    except (TypeError, ValueError):
        return None


def parse_price(text: str | None) -> float | None:
    """Parse the first rupee-prefixed amount in *text*.

    Thousands separators are stripped, so ``"₹1,299.50"`` becomes ``1299.5``.
    Text without a ``₹`` amount (``"Free"``, ``""``) yields ``None``.
    """

    if not text:
        return None
    match = _RUPEE_PRICE_PATTERN.search(text)
    if not match:
        return None
    return _to_float(match.group("number"))


def parse_plain_price(text: str | None) -> float | None:
    """Parse a bare numeric attribute such as GTM ``data-price``."""

    if not text:
        return None
    match = _PLAIN_NUMBER_PATTERN.search(text)
    if not match:
        return None
    value = _to_float(match.group("number"))
    if value is None or value <= 0:
        return None
    return value


def parse_discount_badge(text: str | None) -> int | None:
    if not text:
        return None
    match = _DISCOUNT_PATTERN.search(text)
    if not match:
        return None
    return min(int(match.group(1)), 100)


def compute_discount_pct(current: float | None, original: float | None) -> int:
    """Return the whole-number percentage off, rounding halves up; 0 when not discounted."""

    if current is None or original is None:
        return 0
    if original <= 0 or original <= current:
        return 0
    pct = (original - current) / original * 100
    return max(0, min(100, int(math.floor(pct + 0.5))))


def parse_weight(name: str | None) -> str | None:
    """Return the first ``<number><unit>`` token in a product name, e.g. ``"52g"``."""

    if not name:
        return None
    match = _WEIGHT_PATTERN.search(name)
    return match.group(1) if match else None


def absolute_url(value: str | None, base: str = BASE_URL) -> str | None:
    """Rebase site-relative paths onto the storefront origin."""

    if not value:
        return None
    text = value.strip()
    if not text:
        return None
    if text.startswith("http"):
        return text
    return urljoin(base + "/", text)


def search_query_from_url(url: str) -> str:
    """Return the ``q``/``query`` parameter of a search URL or ``direct_url``."""

    params = parse_qs(urlparse(url).query)
    for key in ("q", "query"):
        values = params.get(key)
        if values and values[0]:
            return values[0]
    return "direct_url"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProductRecord(BaseModel):
    """One product card as rendered on a search results page."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    product_id: str = Field(alias="productId")
    product_name: str = Field(alias="productName", min_length=1)
    product_image: str | None = Field(default=None, alias="productImage")
    current_price: float = Field(alias="currentPrice", gt=0)
    original_price: float = Field(alias="originalPrice", gt=0)
    discount_percentage: int = Field(default=0, alias="discountPercentage", ge=0, le=100)
    product_weight: str | None = Field(default=None, alias="productWeight")
    brand: str | None = None
    is_vegetarian: bool = Field(default=False, alias="isVegetarian")
    is_out_of_stock: bool = Field(default=False, alias="isOutOfStock")
    product_url: str | None = Field(default=None, alias="productUrl")
    scraped_at: datetime = Field(default_factory=utc_now, alias="scrapedAt")

    search_query: str | None = Field(default=None, alias="searchQuery")
    search_url: str | None = Field(default=None, alias="searchUrl")
    platform: str | None = None
    pincode: str | None = None

    @field_validator("original_price")
    @classmethod
    def _not_below_current(cls, value: float, info: ValidationInfo) -> float:
        current = info.data.get("current_price")
        if current is not None and value < current:
            return current
        return value

    @field_serializer("scraped_at")
    def _serialize_scraped_at(self, value: datetime) -> str:
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")

    def with_provenance(
        self,
        *,
        search_query: str,
        search_url: str,
        pincode: str,
        platform: str = PLATFORM,
    ) -> "ProductRecord":
        return self.model_copy(
            update={
                "search_query": search_query,
                "search_url": search_url,
                "pincode": pincode,
                "platform": platform,
            }
        )

    def to_item(self) -> dict[str, Any]:
        """Return the camelCase dataset item."""

        return self.model_dump(by_alias=True, mode="json")


class FailureLogEntry(BaseModel):
    """A request that exhausted its retry budget."""

    model_config = ConfigDict(frozen=True)

    url: str
    timestamp: datetime = Field(default_factory=utc_now)
    error: str | None = None

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
