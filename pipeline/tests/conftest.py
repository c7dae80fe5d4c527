"""Pipeline test configuration."""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from sentirag.schemas.ingest import RawItem, Source


class FakeDatabase:
    """Stand-in for sentirag.database.Database that always yields the same session."""

    def __init__(self, session):
        self._session = session
        self.sessions_opened = 0

    @asynccontextmanager
    async def session(self):
        self.sessions_opened += 1
        yield self._session


def _result(*, scalar=None, scalars=None, rows=None, rowcount=0):
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalar_one.return_value = scalar
    result.scalars.return_value.all.return_value = list(scalars or [])
    result.all.return_value = list(rows or [])
    result.rowcount = rowcount
    return result


@pytest.fixture
def make_result():
    return _result


@pytest.fixture
def mock_session():
    session = AsyncMock()
    session.add = MagicMock()
    session.execute.return_value = _result()
    return session


@pytest.fixture
def fake_database(mock_session):
    return FakeDatabase(mock_session)


@pytest.fixture
def database_for():
    """Wrap an arbitrary session object in a FakeDatabase."""
    return FakeDatabase


@pytest.fixture
def make_item():
    def _make(
        text: str,
        *,
        title: str | None = None,
        url: str | None = None,
        source: Source = Source.FINNHUB,
        timestamp: datetime | None = None,
    ) -> RawItem:
        return RawItem(
            title=title if title is not None else text[:40],
            url=url if url is not None else f"https://example.com/{abs(hash(text)) % 10_000}",
            text=text,
            source=source,
            timestamp=timestamp or datetime(2026, 3, 2, 14, 31, 45, 120000, tzinfo=UTC),
        )

    return _make
