"""Tests for the admin command line."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from sentirag.config import Settings

import pipeline.__main__ as cli


@pytest.fixture
def services(monkeypatch):
    services = MagicMock()
    services.close = AsyncMock()
    services.store.list_snapshots = AsyncMock(return_value=[])
    factory = MagicMock()
    factory.from_settings.return_value = services
    monkeypatch.setattr(cli, "PipelineServices", factory)
    monkeypatch.setattr(cli, "get_settings", lambda: Settings(_env_file=None))
    return services


def _exit_code(argv):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(argv)
    return exc_info.value.code


def test_sentiment_lists_timeline_since_window(services, capsys):
    snap = MagicMock(
        ts=datetime(2026, 3, 2, 14, 31, tzinfo=UTC), source="finnhub", mean_score=0.2,
        pos_ratio=0.6, neg_ratio=0.4, neu_ratio=0.0, volume=10,
    )
    services.store.list_snapshots.return_value = [snap]
    before = datetime.now(UTC)

    assert _exit_code(["sentiment", "aapl", "--minutes", "60"]) == 0

    ticker, since = services.store.list_snapshots.await_args.args
    assert ticker == "AAPL"
    assert before - timedelta(minutes=61) < since <= datetime.now(UTC) - timedelta(minutes=60)
    assert "volume=10" in capsys.readouterr().out
    services.close.assert_awaited_once()


def test_sentiment_defaults_to_one_day(services):
    before = datetime.now(UTC)

    assert _exit_code(["sentiment", "MSFT"]) == 0

    _, since = services.store.list_snapshots.await_args.args
    assert since <= before - timedelta(minutes=1439)
    assert since > before - timedelta(minutes=1441)


def test_sentiment_rejects_non_positive_window(services):
    assert _exit_code(["sentiment", "AAPL", "--minutes", "0"]) == 1
    services.store.list_snapshots.assert_not_awaited()
    services.close.assert_awaited_once()
