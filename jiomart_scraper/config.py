"""Actor input validation and environment overrides."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from jiomart_scraper.errors import ConfigError

_FALSE_VALUES = {"0", "false", "no", "off"}

DEFAULT_PINCODE = "411001"


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in _FALSE_VALUES


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def wait_multiplier() -> float:
    """Scale factor applied to every settle delay; ``0`` disables them."""

    return max(_env_float("JIOMART_WAIT_MULTIPLIER", 1.0), 0.0)


def stealth_enabled() -> bool:
    """Return True when playwright-stealth evasions should be applied to new pages."""

    return _as_bool(os.getenv("JIOMART_STEALTH"), True)


def headless_override() -> bool | None:
    raw = os.getenv("JIOMART_HEADLESS")
    if raw is None or not raw.strip():
        return None
    return _as_bool(raw, True)


class ProxyInput(BaseModel):
    """The ``proxyConfiguration`` block of the actor input."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    use_apify_proxy: bool = Field(default=False, alias="useApifyProxy")
    custom_proxy_url: str | None = Field(default=None, alias="customProxyUrl")
    proxy_url: str | None = Field(default=None, alias="proxyUrl")
    proxy: str | None = None

    @property
    def custom_url(self) -> str | None:
        return self.custom_proxy_url or self.proxy_url or self.proxy


class CrawlSettings(BaseModel):
    """Validated actor input. Field aliases match the Apify input schema."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    pincode: str = DEFAULT_PINCODE
    search_urls: list[str] = Field(default_factory=list, alias="searchUrls")
    search_queries: list[str] = Field(default_factory=list, alias="searchQueries")
    max_products_per_search: int = Field(default=100, alias="maxProductsPerSearch", ge=1)
    proxy_configuration: ProxyInput = Field(default_factory=ProxyInput, alias="proxyConfiguration")
    max_request_retries: int = Field(default=3, alias="maxRequestRetries", ge=0)
    navigation_timeout: int = Field(default=90_000, alias="navigationTimeout", gt=0)
    headless: bool = False
    screenshot_on_error: bool = Field(default=True, alias="screenshotOnError")
    debug_mode: bool = Field(default=False, alias="debugMode")
    scroll_count: int = Field(default=5, alias="scrollCount", ge=0)
    max_concurrency: int = Field(default=1, alias="maxConcurrency", ge=1)
    reload_after_location: bool = Field(default=False, alias="reloadAfterLocation")
    fail_on_empty_results: bool = Field(default=False, alias="failOnEmptyResults")

    @field_validator("pincode", mode="before")
    @classmethod
    def _clean_pincode(cls, value: Any) -> str:
        text = str(value if value is not None else "").strip()
        if not text.isdigit():
            raise ValueError(f"pincode must be numeric, got {value!r}")
        return text

    @field_validator("search_urls", "search_queries", mode="before")
    @classmethod
    def _drop_blank_entries(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        cleaned: list[str] = []
        for entry in value:
            # Apify request-list editors send {"url": ...} objects.
            if isinstance(entry, dict):
                entry = entry.get("url")
            if entry is None:
                continue
            text = str(entry).strip()
            if text:
                cleaned.append(text)
        return cleaned

    @property
    def effective_headless(self) -> bool:
        override = headless_override()
        return self.headless if override is None else override


def load_overrides(path: str | Path) -> dict[str, Any]:
    """Read a YAML file of actor-input overrides for local runs."""

    target = Path(path)
    try:
        with target.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Unable to read overrides file {target}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Overrides file {target} must contain a mapping")
    return data


def load_settings(
    actor_input: dict[str, Any] | None,
    overrides_path: str | Path | None = None,
) -> CrawlSettings:
    """Merge the actor input with optional YAML overrides and validate the result."""

    payload: dict[str, Any] = dict(actor_input or {})
    if overrides_path:
        payload.update(load_overrides(overrides_path))
    try:
        return CrawlSettings.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid actor input: {exc}") from exc
