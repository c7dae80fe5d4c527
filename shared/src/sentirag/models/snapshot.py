"""Snapshot model - one aggregated sentiment summary per (ticker, source, minute)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Float,
    Identity,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from sentirag.models.base import Base


class Snapshot(Base):
    __tablename__ = "snapshots"

    id: Mapped[int] = mapped_column(BigInteger, Identity(), primary_key=True)
    ticker: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(Text, nullable=False)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    mean_score: Mapped[float] = mapped_column(Float, nullable=False)
    pos_ratio: Mapped[float] = mapped_column(Float, nullable=False)
    neg_ratio: Mapped[float] = mapped_column(Float, nullable=False)
    neu_ratio: Mapped[float] = mapped_column(Float, nullable=False)
    volume: Mapped[int] = mapped_column(Integer, nullable=False)
    top_mentions: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("NOW()")
    )

    __table_args__ = (
        UniqueConstraint("ticker", "source", "ts", name="uq_snapshots_ticker_source_ts"),
        CheckConstraint(
            "source IN ('finnhub','reddit','newsapi','stocktwits')",
            name="ck_snapshot_source",
        ),
        CheckConstraint("volume > 0", name="ck_snapshot_volume"),
        Index("idx_snapshots_ticker_ts", "ticker", "ts", postgresql_using="btree"),
    )
