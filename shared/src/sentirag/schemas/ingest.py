"""Pydantic schemas for ingestion."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Source(str, Enum):
    """Closed set of upstream sources."""

    FINNHUB = "finnhub"
    REDDIT = "reddit"
    NEWSAPI = "newsapi"
    STOCKTWITS = "stocktwits"


class SentimentLabel(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class RawItem(BaseModel):
    """A raw item produced by an upstream fetcher."""

    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    text: str
    source: Source
    timestamp: datetime


class FetchResult(BaseModel):
    """All items one fetcher returned for a ticker."""

    ticker: str
    items: list[RawItem] = Field(default_factory=list)


class SentimentScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: SentimentLabel
    score: float = Field(ge=-1.0, le=1.0)


class TopMention(BaseModel):
    text: str = Field(max_length=200)
    url: str
    score: float


class SnapshotData(BaseModel):
    """Aggregated statistics for one (ticker, source) batch, before persistence."""

    ticker: str
    source: Source
    ts: datetime
    mean_score: float
    pos_ratio: float
    neg_ratio: float
    neu_ratio: float
    volume: int = Field(gt=0)
    top_mentions: list[TopMention] = Field(default_factory=list, max_length=3)
