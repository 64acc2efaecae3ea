"""Dataset and key-value store access for crawl output."""
