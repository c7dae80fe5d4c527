"""Fetcher boundary: the per-source clients live outside this package."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from sentirag.schemas.ingest import FetchResult, Source

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    source: Source

    async def fetch(self, ticker: str) -> FetchResult:
        ...


class JsonFileFetcher:
    """Replays previously captured fetch results for one source from a JSON file.

    The file holds a list of ``{"ticker": ..., "items": [...]}`` objects; items
    of other sources are ignored. The file is read once, on the first fetch.
    """

    def __init__(self, path: str | Path, source: Source) -> None:
        self.path = Path(path)
        self.source = source
        self._results: list[FetchResult] | None = None

    def _load(self) -> list[FetchResult]:
        if self._results is not None:
            return self._results
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        if isinstance(raw, dict):
            raw = [raw]
        self._results = [FetchResult.model_validate(entry) for entry in raw]
        return self._results

    async def fetch(self, ticker: str) -> FetchResult:
        items = [
            item
            for result in self._load()
            if result.ticker.upper() == ticker.upper()
            for item in result.items
            if item.source == self.source
        ]
        logger.debug("Loaded %d %s items for %s from %s", len(items), self.source.value, ticker, self.path)
        return FetchResult(ticker=ticker, items=items)


def file_fetchers(path: str | Path) -> list[JsonFileFetcher]:
    return [JsonFileFetcher(path, source) for source in Source]
