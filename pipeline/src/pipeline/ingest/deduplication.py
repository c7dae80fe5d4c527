"""Content-fingerprint deduplication of raw items."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable

from sentirag.schemas.ingest import FetchResult, RawItem, Source

logger = logging.getLogger(__name__)

FINGERPRINT_TEXT_CHARS = 200


def fingerprint(title: str, url: str, text: str) -> str:
    content = f"{title}|{url}|{text[:FINGERPRINT_TEXT_CHARS]}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def item_fingerprint(item: RawItem) -> str:
    return fingerprint(item.title, item.url, item.text)


def deduplicate_items(items: Iterable[RawItem]) -> list[RawItem]:
    """Keep the first item seen for each fingerprint, preserving input order."""
    seen: set[str] = set()
    unique: list[RawItem] = []
    for item in items:
        key = item_fingerprint(item)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def group_by_source(items: Iterable[RawItem]) -> dict[Source, list[RawItem]]:
    """Group items by source, in first-seen source order."""
    by_source: dict[Source, list[RawItem]] = {}
    for item in items:
        by_source.setdefault(item.source, []).append(item)
    return by_source


def deduplicate_results(results: Iterable[FetchResult]) -> dict[Source, list[RawItem]]:
    """Deduplicate across several fetch results, then regroup by source."""
    all_items: list[RawItem] = []
    for result in results:
        all_items.extend(result.items)
    unique = deduplicate_items(all_items)
    if len(unique) != len(all_items):
        logger.debug("Dropped %d duplicate items", len(all_items) - len(unique))
    return group_by_source(unique)
