"""Apify actor that scrapes JioMart search results for a delivery pincode."""

__version__ = "0.1.0"
