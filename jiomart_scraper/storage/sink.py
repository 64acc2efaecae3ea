"""Output sinks backed by the Apify dataset and key-value store."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from apify import Actor

from jiomart_scraper.extractors.schemas import FailureLogEntry, ProductRecord
from jiomart_scraper.logging_config import get_logger

LOGGER = get_logger(__name__)

FAILED_URLS_KEY = "FAILED_URLS"


class RecordSink(Protocol):
    async def push_records(self, records: list[ProductRecord]) -> None: ...

    async def record_failure(self, entry: FailureLogEntry) -> None: ...

    async def save_artifact(self, key: str, value: Any, content_type: str) -> None: ...


class ActorSink:
    """Writes records to the default dataset and artifacts to the default store."""

    def __init__(self) -> None:
        self._failure_lock = asyncio.Lock()

    async def push_records(self, records: list[ProductRecord]) -> None:
        if not records:
            return
        await Actor.push_data([record.to_item() for record in records])

    async def record_failure(self, entry: FailureLogEntry) -> None:
        # Read-modify-write of a shared list; serialise concurrent failures.
        async with self._failure_lock:
            failed = await Actor.get_value(FAILED_URLS_KEY) or []
            failed.append(entry.model_dump(mode="json"))
            await Actor.set_value(FAILED_URLS_KEY, failed)
        LOGGER.info("Recorded failed URL %s (%s total)", entry.url, len(failed))

    async def save_artifact(self, key: str, value: Any, content_type: str) -> None:
        await Actor.set_value(key, value, content_type=content_type)
