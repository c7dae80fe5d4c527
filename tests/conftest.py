"""Integration test configuration: in-memory stand-ins for Postgres and Redis."""

from contextlib import asynccontextmanager
from datetime import UTC, datetime

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.sql.dml import Delete, Insert

from sentirag.models import EmbeddingRecord, Snapshot
from sentirag.schemas.ingest import RawItem, Source


class _Result:
    def __init__(self, scalar=None, rows=None):
        self._scalar = scalar
        self._rows = list(rows or [])
        self.rowcount = 0

    def scalar_one_or_none(self):
        return self._scalar

    def scalar_one(self):
        return self._scalar

    def scalars(self):
        return self

    def all(self):
        return list(self._rows)


class InMemoryDatabase:
    """Enough of sentirag.database.Database for the store and exact-mode retrieval.

    Inserts honour the unique keys used by ON CONFLICT DO NOTHING. Entity
    selects apply the filters the store and retriever emit: the time window,
    the ticker filter and id lookups.
    """

    def __init__(self):
        self.snapshots: dict[int, Snapshot] = {}
        self.embeddings: dict[int, EmbeddingRecord] = {}
        self._existing_id: int | None = None

    @asynccontextmanager
    async def session(self):
        yield self

    async def execute(self, stmt):
        if isinstance(stmt, Insert):
            return self._insert(stmt)
        if isinstance(stmt, Delete):
            raise NotImplementedError("deletes are not modelled")
        desc = stmt.column_descriptions[0]
        if desc["expr"] is not desc["entity"]:
            return _Result(scalar=self._existing_id)
        params = stmt.compile(dialect=postgresql.dialect()).params
        if desc["entity"] is Snapshot:
            return _Result(rows=self._select_snapshots(params))
        return _Result(rows=self._select_embeddings(params))

    def _select_snapshots(self, params):
        rows = sorted(self.snapshots.values(), key=lambda r: r.id)
        if "id_1" in params:
            rows = [r for r in rows if r.id in params["id_1"]]
        if "ticker_1" in params:
            rows = [r for r in rows if r.ticker == params["ticker_1"]]
        if "ts_1" in params:
            rows = [r for r in rows if r.ts >= params["ts_1"]]
            rows.sort(key=lambda r: r.source)
            rows.sort(key=lambda r: r.ts, reverse=True)
        return rows

    def _select_embeddings(self, params):
        rows = sorted(self.embeddings.values(), key=lambda r: r.id)
        if "ts_1" in params:
            rows = [r for r in rows if r.ts > params["ts_1"]]
        if "ticker_1" in params:
            rows = [r for r in rows if r.ticker in params["ticker_1"]]
        return rows

    def _insert(self, stmt):
        params = dict(stmt.compile(dialect=postgresql.dialect()).params)
        if stmt.table.name == "snapshots":
            for row in self.snapshots.values():
                if (row.ticker, row.source, row.ts) == (params["ticker"], params["source"], params["ts"]):
                    self._existing_id = row.id
                    return _Result()
            row = Snapshot(id=len(self.snapshots) + 1, **params)
            self.snapshots[row.id] = row
        else:
            for row in self.embeddings.values():
                if row.snapshot_id == params["snapshot_id"]:
                    self._existing_id = row.id
                    return _Result()
            row = EmbeddingRecord(id=len(self.embeddings) + 1, **params)
            self.embeddings[row.id] = row
        return _Result(scalar=row.id)


class FakeRedis:
    def __init__(self):
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ex=None):
        self.values[key] = value
        self.ttls[key] = ex

    async def incr(self, key):
        self.values[key] = str(int(self.values.get(key, 0)) + 1)
        return int(self.values[key])

    async def aclose(self):
        pass


@pytest.fixture
def database():
    return InMemoryDatabase()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def news_item():
    def _make(text: str, n: int, source: Source = Source.FINNHUB) -> RawItem:
        return RawItem(
            title=text,
            url=f"https://news.example.com/{source.value}/{n}",
            text=text,
            source=source,
            timestamp=datetime(2026, 3, 2, 14, 31, 45, tzinfo=UTC),
        )

    return _make
