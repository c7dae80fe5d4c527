"""Vector similarity search over stored embedding records."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import select

from sentirag.database import Database
from sentirag.models import EmbeddingRecord, Snapshot
from sentirag.schemas.answers import Citation

from pipeline.ingest.embedding import Embedder, EmbeddingBackendError

logger = logging.getLogger(__name__)

DEFAULT_K = 12
DEFAULT_WINDOW_HOURS = 24
SNIPPET_CHARS = 200

SEARCH_MODES = ("index", "exact")


@dataclass(frozen=True)
class SearchHit:
    record: EmbeddingRecord
    similarity: float


def cosine_similarity(a: Iterable[float], b: Iterable[float]) -> float:
    a = [float(x) for x in a]
    b = [float(x) for x in b]
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(x * x for x in b))
    if na == 0 or nb == 0:
        return 0.0
    return dot / (na * nb)


def rank_by_similarity(
    query_vector: Sequence[float],
    candidates: Iterable[EmbeddingRecord],
    k: int,
) -> list[SearchHit]:
    """Exact top-k by descending cosine similarity, ties by ascending id."""
    if k <= 0:
        return []
    hits = [SearchHit(record=c, similarity=cosine_similarity(query_vector, c.embedding)) for c in candidates]
    hits.sort(key=lambda h: (-h.similarity, h.record.id))
    return hits[:k]


class VectorRetriever:
    """Embeds a question with the ingestion embedder and finds the nearest snapshots.

    ``index`` mode lets pgvector order by cosine distance (HNSW-backed, so
    approximate on large tables); ``exact`` mode filters in SQL and ranks the
    candidates in process.
    """

    def __init__(
        self,
        database: Database,
        embedder: Embedder,
        *,
        mode: str = "index",
        default_k: int = DEFAULT_K,
        default_window_hours: int = DEFAULT_WINDOW_HOURS,
    ) -> None:
        if mode not in SEARCH_MODES:
            raise ValueError(f"Unknown search mode '{mode}', expected one of {SEARCH_MODES}")
        self._database = database
        self.embedder = embedder
        self.mode = mode
        self.default_k = default_k
        self.default_window_hours = default_window_hours

    async def search(
        self,
        query_text: str,
        tickers: Sequence[str] = (),
        k: int | None = None,
        window_hours: float | None = None,
        *,
        now: datetime | None = None,
    ) -> list[SearchHit]:
        k = self.default_k if k is None else k
        window_hours = self.default_window_hours if window_hours is None else window_hours
        if k <= 0:
            return []

        try:
            query_vector = await self.embedder.embed(query_text)
        except EmbeddingBackendError as e:
            logger.error("Query embedding failed, returning no results: %s", e)
            return []
        cutoff = (now or datetime.now(UTC)) - timedelta(hours=window_hours)
        ticker_filter = sorted({t.strip().upper() for t in tickers if t.strip()})

        if self.mode == "index":
            hits = await self._search_index(query_vector, ticker_filter, k, cutoff)
        else:
            hits = await self._search_exact(query_vector, ticker_filter, k, cutoff)

        logger.debug(
            "Vector search mode=%s tickers=%s k=%d window=%sh results=%d",
            self.mode, ticker_filter, k, window_hours, len(hits),
        )
        return hits

    async def _search_index(
        self, query_vector: list[float], tickers: list[str], k: int, cutoff: datetime
    ) -> list[SearchHit]:
        distance = EmbeddingRecord.embedding.cosine_distance(query_vector)
        stmt = select(EmbeddingRecord, (1 - distance).label("similarity")).where(
            EmbeddingRecord.ts > cutoff
        )
        if tickers:
            stmt = stmt.where(EmbeddingRecord.ticker.in_(tickers))
        stmt = stmt.order_by(distance, EmbeddingRecord.id).limit(k)

        async with self._database.session() as session:
            rows = (await session.execute(stmt)).all()
        return [SearchHit(record=row[0], similarity=float(row[1])) for row in rows]

    async def _search_exact(
        self, query_vector: list[float], tickers: list[str], k: int, cutoff: datetime
    ) -> list[SearchHit]:
        stmt = select(EmbeddingRecord).where(EmbeddingRecord.ts > cutoff)
        if tickers:
            stmt = stmt.where(EmbeddingRecord.ticker.in_(tickers))
        stmt = stmt.order_by(EmbeddingRecord.id)

        async with self._database.session() as session:
            candidates = list((await session.execute(stmt)).scalars().all())
        return rank_by_similarity(query_vector, candidates, k)


def build_citations(hits: Sequence[SearchHit], snapshots: Mapping[int, Snapshot]) -> list[Citation]:
    """One citation per hit; source and url come from the owning snapshot."""
    citations: list[Citation] = []
    for hit in hits:
        record = hit.record
        snapshot = snapshots.get(record.snapshot_id)
        url = ""
        if snapshot is not None and snapshot.top_mentions:
            first = snapshot.top_mentions[0]
            if isinstance(first, dict):
                url = str(first.get("url") or "")
        citations.append(
            Citation(
                embedding_id=record.id,
                snapshot_id=record.snapshot_id,
                ticker=record.ticker,
                ts=record.ts,
                source=snapshot.source if snapshot is not None else "unknown",
                url=url,
                snippet=record.text[:SNIPPET_CHARS],
            )
        )
    return citations
