"""Sentiment scoring with a pluggable backend and a deterministic lexicon fallback."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Sequence
from typing import Any, Protocol

from sentirag.config import Settings
from sentirag.schemas.ingest import SentimentLabel, SentimentScore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 64

POSITIVE_WORDS = frozenset({
    "up", "rise", "rises", "rising", "rose", "gain", "gains", "gained",
    "bullish", "buy", "growth", "profit", "profits", "strong", "beat", "beats",
    "surge", "surged", "soar", "soared", "record", "upgrade", "outperform", "rally",
})
NEGATIVE_WORDS = frozenset({
    "down", "fall", "falls", "fell", "falling", "drop", "drops", "dropped",
    "bearish", "sell", "loss", "losses", "weak", "crash", "miss", "misses",
    "plunge", "plunged", "slump", "downgrade", "lawsuit", "investigation", "fraud", "cut",
})

_TOKEN = re.compile(r"[a-z]+")


class SentimentBackend(Protocol):
    name: str

    def score_batch(self, texts: Sequence[str]) -> list[SentimentScore]:
        ...


class LexiconSentimentBackend:
    """Counts distinct marker words; labels by sign with a margin so near-ties are neutral."""

    name = "lexicon"

    def __init__(self, margin: int = 1) -> None:
        if margin < 1:
            raise ValueError("margin must be at least 1")
        self.margin = margin

    def score_text(self, text: str) -> SentimentScore:
        tokens = set(_TOKEN.findall(text.lower()))
        pos = len(tokens & POSITIVE_WORDS)
        neg = len(tokens & NEGATIVE_WORDS)
        if pos == 0 and neg == 0:
            return SentimentScore(label=SentimentLabel.NEUTRAL, score=0.0)
        score = max(-1.0, min(1.0, (pos - neg) / (pos + neg)))
        if pos - neg >= self.margin:
            label = SentimentLabel.POSITIVE
        elif neg - pos >= self.margin:
            label = SentimentLabel.NEGATIVE
        else:
            label = SentimentLabel.NEUTRAL
        return SentimentScore(label=label, score=score)

    def score_batch(self, texts: Sequence[str]) -> list[SentimentScore]:
        return [self.score_text(t) for t in texts]


class FinBertSentimentBackend:
    """HuggingFace FinBERT text-classification pipeline, loaded at construction."""

    name = "finbert"

    def __init__(self, model_name: str, *, max_length: int = 256) -> None:
        from transformers import pipeline as hf_pipeline

        self.model_name = model_name
        self._pipeline = hf_pipeline(
            "text-classification",
            model=model_name,
            top_k=None,
            truncation=True,
            max_length=max_length,
        )
        logger.info("FinBERT model loaded: %s", model_name)

    @staticmethod
    def _to_score(entries: list[dict[str, Any]]) -> SentimentScore:
        probs = {str(e["label"]).lower(): float(e["score"]) for e in entries}
        pos = probs.get("positive", 0.0)
        neg = probs.get("negative", 0.0)
        neu = probs.get("neutral", 0.0)
        if pos > neg and pos > neu:
            label = SentimentLabel.POSITIVE
        elif neg > pos and neg > neu:
            label = SentimentLabel.NEGATIVE
        else:
            label = SentimentLabel.NEUTRAL
        return SentimentScore(label=label, score=max(-1.0, min(1.0, pos - neg)))

    def score_batch(self, texts: Sequence[str]) -> list[SentimentScore]:
        outputs = self._pipeline(list(texts))
        if len(outputs) != len(texts):
            raise RuntimeError(
                f"FinBERT returned {len(outputs)} results for {len(texts)} texts"
            )
        return [self._to_score(entries) for entries in outputs]


def build_sentiment_backend(settings: Settings) -> SentimentBackend:
    """Pick the backend named in settings; fall back to the lexicon if FinBERT cannot load."""
    choice = settings.sentiment_backend.strip().lower()
    if choice == "finbert":
        try:
            return FinBertSentimentBackend(settings.finbert_model)
        except Exception as e:
            logger.warning("FinBERT model unavailable, using lexicon sentiment: %s", e)
    elif choice != "lexicon":
        logger.warning("Unknown SENTIMENT_BACKEND '%s', using lexicon", settings.sentiment_backend)
    return LexiconSentimentBackend()


class SentimentScorer:
    """Scores texts in order-preserving batches; never lets one bad text sink a batch."""

    def __init__(self, backend: SentimentBackend, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.backend = backend
        self.batch_size = batch_size
        self._fallback = (
            backend if isinstance(backend, LexiconSentimentBackend) else LexiconSentimentBackend()
        )

    async def score(self, texts: Sequence[str]) -> list[SentimentScore]:
        results: list[SentimentScore] = []
        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            results.extend(await self._score_batch(batch))
        return results

    async def _score_batch(self, batch: list[str]) -> list[SentimentScore]:
        try:
            scores = await asyncio.to_thread(self.backend.score_batch, batch)
            if len(scores) == len(batch):
                return scores
            logger.warning(
                "Sentiment backend %s returned %d scores for %d texts",
                self.backend.name, len(scores), len(batch),
            )
        except Exception as e:
            logger.warning("Sentiment batch failed on %s, scoring items one by one: %s", self.backend.name, e)
        return [await self._score_one(text) for text in batch]

    async def _score_one(self, text: str) -> SentimentScore:
        if self.backend is not self._fallback:
            try:
                scores = await asyncio.to_thread(self.backend.score_batch, [text])
                if len(scores) == 1:
                    return scores[0]
            except Exception as e:
                logger.warning("Sentiment scoring failed, using lexicon for %r: %s", text[:50], e)
        return self._fallback.score_text(text)
