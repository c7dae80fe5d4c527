"""Pydantic schemas for question answering."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class Citation(BaseModel):
    """A retrieved snapshot as presented to the language model and the caller."""

    embedding_id: int
    snapshot_id: int
    ticker: str
    ts: datetime
    source: str
    url: str = ""
    snippet: str = Field(max_length=200)


class AskResult(BaseModel):
    answer: str
    citations: list[Citation] = Field(default_factory=list)
    retrieved: int = 0
    latency_ms: int = 0
