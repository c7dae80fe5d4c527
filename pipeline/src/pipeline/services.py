"""Construct-once wiring of the pipeline's long-lived services."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sentirag.config import Settings
from sentirag.database import Database
from sentirag.services.cache import AnswerCache
from sentirag.services.llm_client import LLMClient, build_llm_client

from pipeline.answer.generator import AnswerGenerator
from pipeline.ingest.embedding import Embedder, build_embedding_backend
from pipeline.ingest.fetchers import Fetcher
from pipeline.ingest.sentiment import SentimentScorer, build_sentiment_backend
from pipeline.ingest.snapshot_store import SnapshotStore
from pipeline.orchestrator import IngestionService
from pipeline.qa import QuestionAnswerer
from pipeline.retrieval.search import VectorRetriever

logger = logging.getLogger(__name__)


@dataclass
class PipelineServices:
    """Everything both flows need, sharing one Embedder so query and corpus vectors match."""

    settings: Settings
    database: Database
    cache: AnswerCache
    llm_client: LLMClient
    embedder: Embedder
    scorer: SentimentScorer
    store: SnapshotStore
    retriever: VectorRetriever
    generator: AnswerGenerator
    qa: QuestionAnswerer

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelineServices:
        database = Database.from_settings(settings)
        cache = AnswerCache.from_settings(settings)
        llm_client = build_llm_client(settings)
        embedder = Embedder(build_embedding_backend(settings, llm_client))
        scorer = SentimentScorer(build_sentiment_backend(settings), batch_size=settings.sentiment_batch_size)
        store = SnapshotStore(database)
        retriever = VectorRetriever(
            database,
            embedder,
            mode=settings.retrieval_mode,
            default_k=settings.retrieval_k,
            default_window_hours=settings.retrieval_window_hours,
        )
        generator = AnswerGenerator(llm_client, cache, ttl_seconds=settings.answer_cache_ttl_sec)
        qa = QuestionAnswerer(retriever, store, generator)
        logger.info(
            "Pipeline services ready sentiment=%s embedding=%s retrieval=%s cache=%s",
            scorer.backend.name, embedder.backend.name, retriever.mode, cache.enabled,
        )
        return cls(
            settings=settings,
            database=database,
            cache=cache,
            llm_client=llm_client,
            embedder=embedder,
            scorer=scorer,
            store=store,
            retriever=retriever,
            generator=generator,
            qa=qa,
        )

    def ingestion(self, fetchers: Sequence[Fetcher]) -> IngestionService:
        return IngestionService(
            fetchers,
            self.scorer,
            self.embedder,
            self.store,
            concurrency=self.settings.ingest_concurrency,
        )

    async def close(self) -> None:
        await self.llm_client.close()
        await self.cache.close()
        await self.database.dispose()
