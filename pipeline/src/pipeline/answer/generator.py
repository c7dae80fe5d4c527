"""Grounded answer generation with a content-addressed answer cache."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterable, Sequence

from sentirag.schemas.answers import Citation
from sentirag.services.cache import AnswerCache
from sentirag.services.llm_client import ANSWER_SLOT, LLMClient, LLMRequestError

from pipeline.prompts.answer import build_answer_messages

logger = logging.getLogger(__name__)

CACHE_PREFIX = "ans:"
HIT_COUNTER_KEY = "ans:stats:hits"
MISS_COUNTER_KEY = "ans:stats:misses"
DEFAULT_TTL_SECONDS = 1800

NOT_ENOUGH_INFORMATION = (
    "I don't have enough information to answer that question from the available sentiment data."
)
LLM_UNCONFIGURED_NOTICE = (
    "The AI answer service is not currently configured. "
    "Set LLM_API_KEY to enable generated answers."
)
LLM_FAILURE_NOTICE = (
    "The AI answer service is temporarily unavailable, so no summary could be generated. "
    "The cited snapshots are still listed below. Confidence: 0"
)


def normalize_query(query: str) -> str:
    return " ".join(query.split()).lower()


def answer_cache_key(query: str, tickers: Iterable[str], embedding_ids: Iterable[int]) -> str:
    """Cache key that ignores ticker and citation order."""
    payload = {
        "query": normalize_query(query),
        "tickers": sorted({t.strip().upper() for t in tickers if t.strip()}),
        "ids": sorted({int(i) for i in embedding_ids}),
    }
    digest = hashlib.sha256(json.dumps(payload, sort_keys=True).encode()).hexdigest()
    return f"{CACHE_PREFIX}{digest}"


class AnswerGenerator:
    """Answers a question from citations, caching successful generations.

    Two concurrent misses for the same key may both call the backend; the
    later ``set`` overwrites the earlier one with an equivalent answer.
    Degraded answers (backend unconfigured or failing) are never cached.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        cache: AnswerCache,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        slot: str = ANSWER_SLOT,
    ) -> None:
        self.llm_client = llm_client
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.slot = slot

    async def answer(self, query: str, tickers: Sequence[str], citations: Sequence[Citation]) -> str:
        if not citations:
            return NOT_ENOUGH_INFORMATION

        key = answer_cache_key(query, tickers, [c.embedding_id for c in citations])
        cached = await self.cache.get(key)
        if cached:
            logger.debug("Answer cache hit for %r", query[:50])
            await self.cache.incr(HIT_COUNTER_KEY)
            return cached
        await self.cache.incr(MISS_COUNTER_KEY)

        if not self.llm_client.is_configured(self.slot):
            logger.warning("LLM slot '%s' not configured, returning fallback answer", self.slot)
            return LLM_UNCONFIGURED_NOTICE

        messages = build_answer_messages(query, citations)
        try:
            answer = await self.llm_client.generate(self.slot, messages)
        except LLMRequestError as e:
            logger.error("Answer generation failed for %r: %s", query[:50], e)
            return LLM_FAILURE_NOTICE

        await self.cache.set(key, answer, self.ttl_seconds)
        return answer
