"""Fold one (ticker, source) batch into a snapshot and its descriptive text."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime

from sentirag.models import EMBEDDING_DIM
from sentirag.schemas.ingest import (
    RawItem,
    SentimentLabel,
    SentimentScore,
    SnapshotData,
    Source,
    TopMention,
)

TOP_MENTIONS = 3
MENTION_TEXT_CHARS = 200


class EmptyBatchError(ValueError):
    """Aggregation was asked to summarise zero items."""


def truncate_to_minute(ts: datetime) -> datetime:
    """Zero seconds and microseconds; naive timestamps are taken as UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).replace(second=0, microsecond=0)


def _mention_text(item: RawItem) -> str:
    text = item.title.strip() or item.text.strip()
    return text[:MENTION_TEXT_CHARS]


def aggregate_snapshot(
    ticker: str,
    source: Source | str,
    items: Sequence[RawItem],
    sentiments: Sequence[SentimentScore],
    embeddings: Sequence[Sequence[float]],
) -> SnapshotData:
    """Aggregate index-aligned items, scores and vectors into one snapshot.

    Raises:
        EmptyBatchError: if ``items`` is empty.
        ValueError: if the three sequences differ in length or a vector has
            the wrong dimension.
    """
    if not items:
        raise EmptyBatchError("Cannot aggregate an empty batch")
    if len(sentiments) != len(items) or len(embeddings) != len(items):
        raise ValueError(
            f"Misaligned batch: {len(items)} items, {len(sentiments)} sentiments, "
            f"{len(embeddings)} embeddings"
        )
    for vector in embeddings:
        if len(vector) != EMBEDDING_DIM:
            raise ValueError(f"Embedding has dimension {len(vector)}, expected {EMBEDDING_DIM}")

    total = len(items)
    mean_score = sum(s.score for s in sentiments) / total

    pos = sum(1 for s in sentiments if s.label == SentimentLabel.POSITIVE)
    neg = sum(1 for s in sentiments if s.label == SentimentLabel.NEGATIVE)
    neu = sum(1 for s in sentiments if s.label == SentimentLabel.NEUTRAL)

    # sorted() is stable, so equal scores keep input order
    ranked = sorted(range(total), key=lambda i: -abs(sentiments[i].score))
    top_mentions = [
        TopMention(
            text=_mention_text(items[i]),
            url=items[i].url,
            score=abs(sentiments[i].score),
        )
        for i in ranked[:TOP_MENTIONS]
    ]

    return SnapshotData(
        ticker=ticker.strip().upper(),
        source=Source(source),
        ts=truncate_to_minute(items[0].timestamp),
        mean_score=mean_score,
        pos_ratio=pos / total,
        neg_ratio=neg / total,
        neu_ratio=neu / total,
        volume=total,
        top_mentions=top_mentions,
    )


def describe_snapshot(snapshot: SnapshotData) -> str:
    """Human-readable summary that is embedded and stored with the snapshot."""
    headlines = "; ".join(m.text for m in snapshot.top_mentions)
    return (
        f"{snapshot.ticker} {snapshot.source.value} sentiment: "
        f"mean={snapshot.mean_score:.3f} "
        f"pos={snapshot.pos_ratio * 100:.1f}% "
        f"neg={snapshot.neg_ratio * 100:.1f}% "
        f"neu={snapshot.neu_ratio * 100:.1f}%, "
        f"volume={snapshot.volume}; headlines: {headlines}"
    )
