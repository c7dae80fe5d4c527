"""OpenAI-compatible LLM client with slot-based configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from sentirag.config import Settings

logger = logging.getLogger(__name__)

ANSWER_SLOT = "answer"
EMBEDDING_SLOT = "embedding"


class LLMRequestError(RuntimeError):
    """An LLM backend call failed at the HTTP level or returned an unusable body."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class LLMSlotConfig:
    """Configuration for a single LLM slot."""

    slot: str
    api_endpoint: str
    model_id: str
    api_key: str = ""
    max_tokens: int | None = None
    temperature: float = 0.3
    extra_params: dict[str, Any] = field(default_factory=dict)


class LLMClient:
    """Vendor-agnostic LLM client using the OpenAI-compatible API."""

    def __init__(self, timeout: float = 60.0, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._slots: dict[str, LLMSlotConfig] = {}

    def configure_slot(self, config: LLMSlotConfig) -> None:
        """Register a slot configuration."""
        self._slots[config.slot] = config

    def get_slot(self, slot: str) -> LLMSlotConfig:
        """Get configuration for a slot."""
        if slot not in self._slots:
            raise ValueError(f"LLM slot '{slot}' not configured")
        return self._slots[slot]

    def is_configured(self, slot: str) -> bool:
        """True when the slot exists and carries an API key."""
        config = self._slots.get(slot)
        return bool(config and config.api_key)

    @staticmethod
    def _raise_for_status_with_context(response: httpx.Response) -> None:
        try:
            response.raise_for_status()
            return
        except httpx.HTTPStatusError as exc:
            detail = response.text.strip()
            try:
                body = response.json()
                if isinstance(body, dict):
                    if isinstance(body.get("error"), dict):
                        detail = body["error"].get("message") or body["error"].get("code") or detail
                    elif body.get("error"):
                        detail = str(body["error"])
                    elif body.get("message"):
                        detail = str(body["message"])
            except ValueError:
                pass
            if len(detail) > 400:
                detail = detail[:400]
            raise LLMRequestError(
                f"LLM API request failed ({response.status_code}) at {response.request.url}: {detail}",
                status_code=response.status_code,
            ) from exc

    def _headers(self, config: LLMSlotConfig) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, url: str, payload: dict[str, Any], config: LLMSlotConfig) -> dict[str, Any]:
        try:
            response = await self._client.post(url, json=payload, headers=self._headers(config))
        except httpx.HTTPError as exc:
            raise LLMRequestError(f"LLM API request to {url} failed: {exc}") from exc
        self._raise_for_status_with_context(response)
        try:
            return response.json()
        except ValueError as exc:
            raise LLMRequestError(f"LLM API at {url} returned invalid JSON") from exc

    async def generate(
        self,
        slot: str,
        messages: list[dict[str, str]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Generate a completion using the specified slot.

        Returns the assistant message content.
        """
        config = self.get_slot(slot)

        payload: dict[str, Any] = {
            "model": config.model_id,
            "messages": messages,
            "temperature": temperature if temperature is not None else config.temperature,
        }

        tokens = max_tokens or config.max_tokens
        if tokens:
            payload["max_tokens"] = tokens

        # Merge extra params
        payload.update(config.extra_params)

        endpoint = config.api_endpoint.rstrip("/")
        url = f"{endpoint}/chat/completions"

        logger.info("LLM request to %s slot=%s model=%s", url, slot, config.model_id)

        data = await self._post(url, payload, config)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMRequestError("Invalid response from LLM API: missing message content") from exc
        if not content:
            raise LLMRequestError("Invalid response from LLM API: empty message content")

        logger.info("LLM response slot=%s tokens=%s", slot, data.get("usage", {}))
        return content

    async def generate_embeddings(
        self,
        slot: str,
        texts: list[str],
        *,
        dimensions: int | None = None,
    ) -> list[list[float]]:
        """Generate embeddings using the specified slot.

        Returns a list of embedding vectors in input order.
        """
        config = self.get_slot(slot)

        payload: dict[str, Any] = {
            "model": config.model_id,
            "input": texts,
        }
        if dimensions:
            payload["dimensions"] = dimensions

        endpoint = config.api_endpoint.rstrip("/")
        url = f"{endpoint}/embeddings"

        data = await self._post(url, payload, config)
        try:
            items = sorted(data["data"], key=lambda item: item.get("index", 0))
            return [list(item["embedding"]) for item in items]
        except (KeyError, TypeError) as exc:
            raise LLMRequestError("Invalid embeddings response from LLM API") from exc

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


def build_llm_client(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> LLMClient:
    """Create a client with the answer and embedding slots taken from settings."""
    client = LLMClient(timeout=settings.llm_timeout, transport=transport)
    client.configure_slot(
        LLMSlotConfig(
            slot=ANSWER_SLOT,
            api_endpoint=settings.llm_api_endpoint,
            model_id=settings.llm_model,
            api_key=settings.llm_api_key,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        )
    )
    client.configure_slot(
        LLMSlotConfig(
            slot=EMBEDDING_SLOT,
            api_endpoint=settings.embedding_api_endpoint,
            model_id=settings.embedding_model,
            api_key=settings.embedding_api_key,
        )
    )
    return client
