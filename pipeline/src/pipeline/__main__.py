"""Admin entry point: python -m pipeline {init-db,ingest,retention,sentiment,ask}."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import UTC, datetime, timedelta

from sentirag.config import get_settings

from pipeline.ingest.fetchers import file_fetchers
from pipeline.orchestrator import run_retention
from pipeline.services import PipelineServices

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    stream=sys.stdout,
)

logger = logging.getLogger("pipeline")

DEFAULT_TIMELINE_MINUTES = 1440


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Ingest one ticker tier from captured fetch results")
    ingest.add_argument("--tier", required=True)
    ingest.add_argument("--items", required=True, help="JSON file of fetch results")

    sub.add_parser("retention", help="Delete snapshots older than RETENTION_HOURS")
    sub.add_parser("init-db", help="Create the vector extension and tables")

    timeline = sub.add_parser("sentiment", help="Print the snapshot timeline for one ticker")
    timeline.add_argument("ticker")
    timeline.add_argument("--minutes", type=int, default=DEFAULT_TIMELINE_MINUTES)

    ask = sub.add_parser("ask", help="Answer a question from stored snapshots")
    ask.add_argument("query")
    ask.add_argument("--tickers", nargs="+", required=True)
    ask.add_argument("--k", type=int, default=None)
    ask.add_argument("--hours", type=float, default=None)
    return parser


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    services = PipelineServices.from_settings(settings)
    try:
        if args.command == "init-db":
            await services.database.create_schema()
        elif args.command == "ingest":
            service = services.ingestion(file_fetchers(args.items))
            summary = await service.ingest_tier(args.tier, settings.ticker_tiers)
            logger.info(
                "tier=%s tickers=%d items=%d snapshots=%d",
                summary.tier, summary.tickers_processed, summary.items, summary.snapshots_upserted,
            )
        elif args.command == "retention":
            result = await run_retention(services.store, settings.retention_hours)
            logger.info("Deleted %d snapshots and %d embeddings", result.snapshots, result.embeddings)
        elif args.command == "sentiment":
            if args.minutes <= 0:
                raise ValueError("--minutes must be positive")
            since = datetime.now(UTC) - timedelta(minutes=args.minutes)
            snapshots = await services.store.list_snapshots(args.ticker.strip().upper(), since)
            for snap in snapshots:
                print(
                    f"{snap.ts.isoformat()} {snap.source:<10} mean={snap.mean_score:+.3f} "
                    f"pos={snap.pos_ratio:.2f} neg={snap.neg_ratio:.2f} neu={snap.neu_ratio:.2f} "
                    f"volume={snap.volume}"
                )
            logger.info("ticker=%s snapshots=%d since=%s", args.ticker.upper(), len(snapshots), since.isoformat())
        elif args.command == "ask":
            result = await services.qa.ask(args.query, args.tickers, k=args.k, window_hours=args.hours)
            print(result.answer)
            for i, citation in enumerate(result.citations, 1):
                print(f"[#{i}] {citation.ticker} {citation.source} {citation.ts.isoformat()} {citation.url}")
    except Exception as exc:
        logger.error("Command %s failed: %s", args.command, exc)
        return 1
    finally:
        await services.close()
    return 0


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
