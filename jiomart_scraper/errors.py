"""Custom exception types for the JioMart scraper."""

from __future__ import annotations

from typing import Optional


class ScraperError(Exception):
    """Base error carrying the page and pincode the failure happened on."""

    default_message = "Scraper failure."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        url: Optional[str] = None,
        pincode: Optional[str] = None,
    ) -> None:
        self.message = message or self.default_message
        self.url = url
        self.pincode = pincode
        super().__init__(self.message)

    def __str__(self) -> str:
        context_parts: list[str] = []
        if self.url:
            context_parts.append(f"url={self.url}")
        if self.pincode:
            context_parts.append(f"pincode={self.pincode}")
        context = ", ".join(context_parts)
        return f"{self.message} ({context})" if context else self.message


class ConfigError(ScraperError):
    """Raised when the actor input cannot be turned into crawl settings."""

    default_message = "Invalid scraper configuration."


class LocationSetupError(ScraperError):
    """Raised when the delivery pincode cannot be applied."""

    default_message = "Unable to set delivery location."


class PageLoadError(ScraperError):
    """Raised when a search page fails to load or render correctly."""

    default_message = "Failed to load page."


class NoProductsError(ScraperError):
    """Raised when a rendered search page yields no extractable products."""

    default_message = "No products extracted."
