"""Ingestion orchestrator - fetch, dedup, score, embed, aggregate and store per ticker."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sentirag.schemas.ingest import FetchResult, RawItem, Source

from pipeline.ingest.aggregation import aggregate_snapshot, describe_snapshot
from pipeline.ingest.deduplication import deduplicate_results
from pipeline.ingest.embedding import Embedder
from pipeline.ingest.fetchers import Fetcher
from pipeline.ingest.sentiment import SentimentScorer
from pipeline.ingest.snapshot_store import RetentionResult, SavedSnapshot, SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class SourceStatus:
    success: bool
    item_count: int = 0
    error: str | None = None


@dataclass
class TickerReport:
    ticker: str
    sources: dict[str, SourceStatus] = field(default_factory=dict)
    items: int = 0
    saved: list[SavedSnapshot] = field(default_factory=list)
    failed_units: list[str] = field(default_factory=list)


@dataclass
class IngestionSummary:
    tier: str
    tickers_processed: int = 0
    items: int = 0
    snapshots_upserted: int = 0
    snapshots_created: int = 0
    reports: list[TickerReport] = field(default_factory=list)


def _item_text(item: RawItem) -> str:
    return item.text.strip() or item.title


class IngestionService:
    """Runs the ingestion flow for tickers; every failure is isolated to its unit.

    A failing fetch contributes zero items, a failing (ticker, source) unit is
    logged without touching its siblings, and replays are harmless because the
    store is idempotent.
    """

    def __init__(
        self,
        fetchers: Sequence[Fetcher],
        scorer: SentimentScorer,
        embedder: Embedder,
        store: SnapshotStore,
        *,
        concurrency: int = 4,
    ) -> None:
        self.fetchers = list(fetchers)
        self.scorer = scorer
        self.embedder = embedder
        self.store = store
        self.concurrency = max(1, concurrency)

    async def _fetch(self, fetcher: Fetcher, ticker: str) -> tuple[str, FetchResult | None, str | None]:
        source = fetcher.source.value
        try:
            result = await fetcher.fetch(ticker)
        except Exception as e:
            logger.warning("Fetch failed ticker=%s source=%s: %s", ticker, source, e)
            return source, None, str(e) or type(e).__name__
        return source, result, None

    async def ingest_ticker(self, ticker: str) -> TickerReport:
        ticker = ticker.strip().upper()
        report = TickerReport(ticker=ticker)
        outcomes = await asyncio.gather(*(self._fetch(f, ticker) for f in self.fetchers))

        results: list[FetchResult] = []
        for source, result, error in outcomes:
            if result is None:
                report.sources[source] = SourceStatus(success=False, error=error)
                continue
            report.sources[source] = SourceStatus(success=True, item_count=len(result.items))
            results.append(result)
        logger.info("Ticker source status ticker=%s %s", ticker, {
            name: status.item_count if status.success else "failed"
            for name, status in report.sources.items()
        })

        by_source = deduplicate_results(results)
        report.items = sum(len(items) for items in by_source.values())
        if report.items == 0:
            logger.debug("No items fetched for %s, skipping", ticker)
            return report

        for source, items in by_source.items():
            try:
                saved = await self.process_source(ticker, source, items)
            except Exception:
                logger.exception("Failed to process ticker=%s source=%s", ticker, source.value)
                report.failed_units.append(source.value)
                continue
            report.saved.append(saved)
        return report

    async def process_source(self, ticker: str, source: Source, items: Sequence[RawItem]) -> SavedSnapshot:
        """Score, embed, aggregate and persist one non-empty (ticker, source) batch."""
        texts = [_item_text(item) for item in items]
        sentiments = await self.scorer.score(texts)
        # aggregate_snapshot checks one vector per item; this is a single batched request
        vectors = await self.embedder.embed_batch(texts)

        snapshot = aggregate_snapshot(ticker, source, items, sentiments, vectors)
        description = describe_snapshot(snapshot)
        representative = await self.embedder.embed(description)

        saved = await self.store.save(snapshot, description, representative)
        logger.debug(
            "Snapshot saved ticker=%s source=%s ts=%s volume=%d",
            ticker, source.value, snapshot.ts.isoformat(), snapshot.volume,
        )
        return saved

    async def ingest_tickers(self, tickers: Sequence[str], *, tier: str = "") -> IngestionSummary:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _run(ticker: str) -> TickerReport:
            async with semaphore:
                try:
                    return await self.ingest_ticker(ticker)
                except Exception:
                    logger.exception("Failed to process ticker %s", ticker)
                    return TickerReport(ticker=ticker, failed_units=["*"])

        reports = await asyncio.gather(*(_run(t) for t in tickers))
        summary = IngestionSummary(tier=tier, tickers_processed=len(tickers), reports=list(reports))
        for report in reports:
            summary.items += report.items
            summary.snapshots_upserted += len(report.saved)
            summary.snapshots_created += sum(1 for s in report.saved if s.created)

        logger.info(
            "Ingestion completed tier=%s tickers=%d items=%d snapshots=%d (new=%d)",
            tier, summary.tickers_processed, summary.items,
            summary.snapshots_upserted, summary.snapshots_created,
        )
        return summary

    async def ingest_tier(self, tier: str, tiers: Mapping[str, Sequence[str]]) -> IngestionSummary:
        if tier not in tiers:
            raise ValueError(f"Invalid tier '{tier}'. Must be one of {sorted(tiers)}")
        tickers = list(tiers[tier])
        if not tickers:
            raise ValueError(f"No tickers configured for tier {tier}")
        logger.info("Starting ingestion tier=%s tickers=%d", tier, len(tickers))
        return await self.ingest_tickers(tickers, tier=tier)


async def run_retention(
    store: SnapshotStore,
    retention_hours: int,
    *,
    now: datetime | None = None,
) -> RetentionResult:
    """Delete everything older than the retention horizon."""
    if retention_hours <= 0:
        raise ValueError("retention_hours must be positive")
    cutoff = (now or datetime.now(UTC)) - timedelta(hours=retention_hours)
    logger.info("Starting retention cleanup retention_hours=%d cutoff=%s", retention_hours, cutoff.isoformat())
    return await store.purge_older_than(cutoff)
