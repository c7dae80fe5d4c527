"""Grounded answer prompt builder."""

from __future__ import annotations

from collections.abc import Sequence

from sentirag.schemas.answers import Citation

SYSTEM_PROMPT = (
    "You are a financial assistant that answers questions about stock market sentiment. "
    "Use only the numbered snippets supplied by the user, cite them with [#n] markers, "
    "and say so plainly when they are not enough to answer."
)


def format_citation(index: int, citation: Citation) -> str:
    return (
        f"[#{index}] {citation.snippet} "
        f"(ticker: {citation.ticker}, source: {citation.source}, ts: {citation.ts.isoformat()})"
    )


def build_answer_prompt(query: str, citations: Sequence[Citation]) -> str:
    context = "\n".join(format_citation(i, c) for i, c in enumerate(citations, 1))
    return f"""Only use the provided snippets to answer the question. If they do not contain enough information, say you don't know.
Always cite your sources using the [#n] markers below.

USER QUERY: {query}

CONTEXT:
{context}

TASK:
- Summarize the recent sentiment (Positive/Neutral/Negative) for the mentioned tickers
- Identify key drivers and factors
- Include any caveats or limitations
- Include a "Citations:" line with [#n] references
- End with a "Confidence:" score from 0 to 1

Format your response clearly with sections."""


def build_answer_messages(query: str, citations: Sequence[Citation]) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_answer_prompt(query, citations)},
    ]
