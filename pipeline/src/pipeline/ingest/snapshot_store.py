"""Idempotent persistence of snapshots and their embedding records."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from sentirag.database import Database
from sentirag.models import EmbeddingRecord, Snapshot
from sentirag.schemas.ingest import SnapshotData

from pipeline.ingest.embedding import check_dimension

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SavedSnapshot:
    snapshot_id: int
    embedding_id: int
    created: bool


@dataclass(frozen=True)
class RetentionResult:
    snapshots: int
    embeddings: int
    cutoff: datetime


class SnapshotStore:
    """Append-only store keyed by (ticker, source, minute).

    Concurrent writers for the same key are safe: the unique constraint plus
    ``ON CONFLICT DO NOTHING`` decides the winner and everybody else reads the
    winner's ids back.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    async def save(
        self,
        snapshot: SnapshotData,
        embedding_text: str,
        embedding_vector: Sequence[float],
    ) -> SavedSnapshot:
        check_dimension(embedding_vector)
        async with self._database.session() as session:
            snapshot_id, created = await self._insert_snapshot(session, snapshot)
            embedding_id = await self._insert_embedding(
                session, snapshot_id, snapshot, embedding_text, list(embedding_vector)
            )

        logger.debug(
            "Saved snapshot %s (embedding %s) ticker=%s source=%s created=%s",
            snapshot_id, embedding_id, snapshot.ticker, snapshot.source.value, created,
        )
        return SavedSnapshot(snapshot_id=snapshot_id, embedding_id=embedding_id, created=created)

    async def _insert_snapshot(self, session: AsyncSession, snapshot: SnapshotData) -> tuple[int, bool]:
        stmt = (
            pg_insert(Snapshot)
            .values(
                ticker=snapshot.ticker,
                source=snapshot.source.value,
                ts=snapshot.ts,
                mean_score=snapshot.mean_score,
                pos_ratio=snapshot.pos_ratio,
                neg_ratio=snapshot.neg_ratio,
                neu_ratio=snapshot.neu_ratio,
                volume=snapshot.volume,
                top_mentions=[m.model_dump() for m in snapshot.top_mentions],
            )
            .on_conflict_do_nothing(index_elements=["ticker", "source", "ts"])
            .returning(Snapshot.id)
        )
        inserted = (await session.execute(stmt)).scalar_one_or_none()
        if inserted is not None:
            return int(inserted), True

        existing = await session.execute(
            select(Snapshot.id).where(
                Snapshot.ticker == snapshot.ticker,
                Snapshot.source == snapshot.source.value,
                Snapshot.ts == snapshot.ts,
            )
        )
        logger.debug(
            "Snapshot already exists for %s/%s at %s",
            snapshot.ticker, snapshot.source.value, snapshot.ts.isoformat(),
        )
        return int(existing.scalar_one()), False

    async def _insert_embedding(
        self,
        session: AsyncSession,
        snapshot_id: int,
        snapshot: SnapshotData,
        text: str,
        vector: list[float],
    ) -> int:
        stmt = (
            pg_insert(EmbeddingRecord)
            .values(
                snapshot_id=snapshot_id,
                ticker=snapshot.ticker,
                ts=snapshot.ts,
                text=text,
                embedding=vector,
            )
            .on_conflict_do_nothing(index_elements=["snapshot_id"])
            .returning(EmbeddingRecord.id)
        )
        inserted = (await session.execute(stmt)).scalar_one_or_none()
        if inserted is not None:
            return int(inserted)

        existing = await session.execute(
            select(EmbeddingRecord.id).where(EmbeddingRecord.snapshot_id == snapshot_id)
        )
        return int(existing.scalar_one())

    async def purge_older_than(self, cutoff: datetime) -> RetentionResult:
        """Delete snapshots older than ``cutoff`` together with their embeddings."""
        async with self._database.session() as session:
            stale_ids = select(Snapshot.id).where(Snapshot.ts < cutoff)
            embeddings_deleted = (
                await session.execute(
                    delete(EmbeddingRecord).where(EmbeddingRecord.snapshot_id.in_(stale_ids))
                )
            ).rowcount or 0
            snapshots_deleted = (
                await session.execute(delete(Snapshot).where(Snapshot.ts < cutoff))
            ).rowcount or 0

        logger.info(
            "Retention cleanup removed %d snapshots and %d embeddings older than %s",
            snapshots_deleted, embeddings_deleted, cutoff.isoformat(),
        )
        return RetentionResult(
            snapshots=int(snapshots_deleted),
            embeddings=int(embeddings_deleted),
            cutoff=cutoff,
        )

    async def list_snapshots(self, ticker: str, since: datetime) -> list[Snapshot]:
        """Snapshot timeline for one ticker, newest first."""
        async with self._database.session() as session:
            result = await session.execute(
                select(Snapshot)
                .where(Snapshot.ticker == ticker, Snapshot.ts >= since)
                .order_by(Snapshot.ts.desc(), Snapshot.source)
            )
            return list(result.scalars().all())

    async def get_snapshots(self, ids: Sequence[int]) -> dict[int, Snapshot]:
        if not ids:
            return {}
        async with self._database.session() as session:
            result = await session.execute(select(Snapshot).where(Snapshot.id.in_(set(ids))))
            return {row.id: row for row in result.scalars().all()}
