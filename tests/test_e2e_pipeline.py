"""End-to-end pipeline tests (in-memory store, mocked LLM)."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from sentirag.schemas.ingest import FetchResult, Source
from sentirag.services.cache import AnswerCache

from pipeline.answer.generator import HIT_COUNTER_KEY, MISS_COUNTER_KEY, NOT_ENOUGH_INFORMATION, AnswerGenerator
from pipeline.ingest.embedding import Embedder, HashEmbeddingBackend
from pipeline.ingest.sentiment import LexiconSentimentBackend, SentimentScorer
from pipeline.ingest.snapshot_store import SnapshotStore
from pipeline.orchestrator import IngestionService
from pipeline.qa import QuestionAnswerer
from pipeline.retrieval.search import VectorRetriever

NOW = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)

POSITIVE = [
    "Apple shares rise after record iPhone sales",
    "Analysts upgrade Apple on strong services growth",
    "Apple stock gains as profit beats estimates",
    "Bullish options flow lifts Apple",
    "Apple rally continues into the close",
    "Apple soared on buyback news",
]
NEGATIVE = [
    "Apple shares fall on weak China demand",
    "Regulators open investigation into Apple App Store",
    "Apple stock drops after supplier cut",
    "Bearish note sends Apple lower, analyst says sell",
]


class _ListFetcher:
    source = Source.FINNHUB

    def __init__(self, items):
        self._items = items

    async def fetch(self, ticker):
        return FetchResult(ticker=ticker, items=self._items if ticker == "AAPL" else [])


@pytest.fixture
def aapl_items(news_item):
    return [news_item(text, i) for i, text in enumerate(POSITIVE + NEGATIVE)]


@pytest.fixture
def embedder():
    return Embedder(HashEmbeddingBackend())


@pytest.fixture
def llm_client():
    client = MagicMock()
    client.is_configured.return_value = True
    client.generate = AsyncMock(return_value="AAPL sentiment leans positive [#1]. Confidence: 0.6")
    return client


async def _ingest(database, embedder, items):
    service = IngestionService(
        [_ListFetcher(items)],
        SentimentScorer(LexiconSentimentBackend()),
        embedder,
        SnapshotStore(database),
    )
    return await service.ingest_tier("T0", {"T0": ["AAPL"]})


@pytest.mark.asyncio
async def test_ingesting_ten_items_yields_one_snapshot_and_embedding(database, embedder, aapl_items):
    summary = await _ingest(database, embedder, aapl_items)

    assert summary.items == 10
    assert summary.snapshots_created == 1
    assert len(database.snapshots) == 1
    assert len(database.embeddings) == 1

    snapshot = next(iter(database.snapshots.values()))
    assert (snapshot.ticker, snapshot.source) == ("AAPL", "finnhub")
    assert snapshot.volume == 10
    assert snapshot.pos_ratio == pytest.approx(0.6)
    assert snapshot.neg_ratio == pytest.approx(0.4)
    assert snapshot.neu_ratio == pytest.approx(0.0)
    assert snapshot.ts == datetime(2026, 3, 2, 14, 31, tzinfo=UTC)
    assert len(snapshot.top_mentions) == 3


@pytest.mark.asyncio
async def test_replaying_ingestion_is_idempotent(database, embedder, aapl_items):
    first = await _ingest(database, embedder, aapl_items)
    second = await _ingest(database, embedder, aapl_items)

    assert second.snapshots_created == 0
    assert second.reports[0].saved[0].snapshot_id == first.reports[0].saved[0].snapshot_id
    assert len(database.snapshots) == 1
    assert len(database.embeddings) == 1


@pytest.mark.asyncio
async def test_description_query_retrieves_its_own_snapshot(database, embedder, aapl_items):
    await _ingest(database, embedder, aapl_items)
    stored = next(iter(database.embeddings.values()))
    retriever = VectorRetriever(database, embedder, mode="exact")

    hits = await retriever.search(stored.text, ["AAPL"], k=1, now=NOW)

    assert len(hits) == 1
    assert hits[0].record.id == stored.id
    assert hits[0].similarity == pytest.approx(1.0, abs=1e-6)


@pytest.mark.asyncio
async def test_snapshot_outside_window_or_ticker_filter_is_not_retrieved(database, embedder, aapl_items):
    await _ingest(database, embedder, aapl_items)
    stored = next(iter(database.embeddings.values()))
    retriever = VectorRetriever(database, embedder, mode="exact")

    assert await retriever.search(stored.text, ["AAPL"], window_hours=24, now=NOW + timedelta(days=2)) == []
    assert await retriever.search(stored.text, ["MSFT"], now=NOW) == []
    assert len(await retriever.search(stored.text, [], now=NOW)) == 1


@pytest.mark.asyncio
async def test_zero_citations_short_circuits_backend_and_cache(llm_client):
    cache = MagicMock()
    cache.get = AsyncMock()
    cache.set = AsyncMock()
    cache.incr = AsyncMock()

    answer = await AnswerGenerator(llm_client, cache).answer("How is AAPL doing?", ["AAPL"], [])

    assert answer == NOT_ENOUGH_INFORMATION
    llm_client.generate.assert_not_awaited()
    cache.get.assert_not_awaited()
    cache.set.assert_not_awaited()


@pytest.mark.asyncio
async def test_ask_twice_serves_second_answer_from_cache(database, embedder, aapl_items, llm_client, fake_redis):
    await _ingest(database, embedder, aapl_items)
    retriever = VectorRetriever(database, embedder, mode="exact", default_window_hours=24 * 365 * 10)
    generator = AnswerGenerator(llm_client, AnswerCache(fake_redis), ttl_seconds=1800)
    qa = QuestionAnswerer(retriever, SnapshotStore(database), generator)

    first = await qa.ask("How is AAPL sentiment?", ["AAPL"])
    second = await qa.ask("how is   aapl sentiment?", ["aapl"])

    assert first.answer == second.answer == llm_client.generate.return_value
    assert first.citations[0].source == "finnhub"
    assert first.citations[0].url.startswith("https://news.example.com/finnhub/")
    llm_client.generate.assert_awaited_once()
    assert fake_redis.values[MISS_COUNTER_KEY] == "1"
    assert fake_redis.values[HIT_COUNTER_KEY] == "1"
    assert 1800 in fake_redis.ttls.values()

