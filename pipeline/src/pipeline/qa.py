"""Question answering: retrieve snapshots, cite them, generate a grounded answer."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from sentirag.schemas.answers import AskResult

from pipeline.answer.generator import AnswerGenerator
from pipeline.ingest.snapshot_store import SnapshotStore
from pipeline.retrieval.search import VectorRetriever, build_citations

logger = logging.getLogger(__name__)

NO_RESULTS_ANSWER = (
    "I could not find any relevant information about the requested tickers in the recent window."
)


class QuestionAnswerer:
    def __init__(
        self,
        retriever: VectorRetriever,
        store: SnapshotStore,
        generator: AnswerGenerator,
    ) -> None:
        self.retriever = retriever
        self.store = store
        self.generator = generator

    async def ask(
        self,
        query: str,
        tickers: Sequence[str],
        k: int | None = None,
        window_hours: float | None = None,
    ) -> AskResult:
        started = time.monotonic()
        hits = await self.retriever.search(query, tickers, k=k, window_hours=window_hours)
        if not hits:
            return AskResult(
                answer=NO_RESULTS_ANSWER,
                citations=[],
                retrieved=0,
                latency_ms=int((time.monotonic() - started) * 1000),
            )

        snapshots = await self.store.get_snapshots([h.record.snapshot_id for h in hits])
        citations = build_citations(hits, snapshots)
        answer = await self.generator.answer(query, tickers, citations)

        latency_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Answered query tickers=%s retrieved=%d latency_ms=%d",
            list(tickers), len(hits), latency_ms,
        )
        return AskResult(
            answer=answer,
            citations=citations,
            retrieved=len(hits),
            latency_ms=latency_ms,
        )
