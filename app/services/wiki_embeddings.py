"""OpenAI embeddings and the embed-then-upsert step of the wiki sync."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Protocol

import openai
from openai import AsyncOpenAI

from app.config.logger import app_logger
from app.config.settings import settings
from app.services.sync_errors import EmbeddingUnavailable, ErrorKind, StoreWriteFailed, kind_for_status
from app.services.wiki_store import WikiRecord, WikiStore


class Embedder(Protocol):
    async def embed(self, text: str) -> List[float]:
        ...


def _kind_for_openai_error(exc: openai.APIError) -> ErrorKind:
    if isinstance(exc, openai.APIConnectionError):
        return ErrorKind.NETWORK
    message = str(exc).lower()
    if "quota" in message or "billing" in message:
        return ErrorKind.QUOTA
    if isinstance(exc, openai.APIStatusError):
        return kind_for_status(exc.status_code)
    return ErrorKind.OTHER


class OpenAIEmbedder:
    """Single-text embeddings through the OpenAI API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = settings.OPENAI_EMBEDDING_MODEL,
        client: Optional[AsyncOpenAI] = None,
    ):
        if client is None:
            api_key = api_key or settings.OPENAI_API_KEY
            if not api_key:
                raise ValueError("OPENAI_API_KEY must be configured")
            client = AsyncOpenAI(api_key=api_key, timeout=settings.OPENAI_TIMEOUT_SECONDS)
        self.client = client
        self.model = model

    async def embed(self, text: str) -> List[float]:
        """Return the embedding vector for ``text``.

        Raises:
            EmbeddingUnavailable: the API answered non-2xx or could not be reached
        """
        app_logger.debug(f"Generating embedding for {len(text)} characters")
        try:
            response = await self.client.embeddings.create(model=self.model, input=text)
        except openai.APIError as exc:
            status_code = getattr(exc, "status_code", None)
            app_logger.error(f"OpenAI embedding error: {exc}")
            raise EmbeddingUnavailable(
                f"Embedding API error{f' {status_code}' if status_code else ''}: {exc}",
                kind=_kind_for_openai_error(exc),
                status_code=status_code,
            ) from exc
        return response.data[0].embedding


class EmbeddingUpserter:
    """Embeds normalized text and stores it under a stable URL."""

    def __init__(self, embedder: Embedder, store: WikiStore, max_chars: int = settings.SYNC_MAX_CONTENT_CHARS):
        self.embedder = embedder
        self.store = store
        self.max_chars = max_chars

    async def embed(self, text: str) -> List[float]:
        return await self.embedder.embed(text)

    async def upsert(
        self,
        url: str,
        title: str,
        content: str,
        content_hash: str,
        embedding: List[float],
        updated_at: Optional[datetime] = None,
    ) -> WikiRecord:
        """Write or overwrite the record for ``url``; safe to repeat."""
        record = WikiRecord(
            url=url,
            title=title,
            content=content[: self.max_chars],
            content_hash=content_hash,
            embedding=embedding,
            updated_at=updated_at or datetime.now(timezone.utc),
        )
        try:
            await self.store.upsert(record)
        except Exception as exc:
            app_logger.error(f"Database error upserting {url}: {exc}")
            raise StoreWriteFailed(f"Store write failed for {url}: {exc}") from exc
        return record

    async def ingest(self, url: str, title: str, content: str, content_hash: str) -> WikiRecord:
        """Embed the capped content and upsert it, so stored text matches what was embedded."""
        capped = content[: self.max_chars]
        embedding = await self.embed(capped)
        return await self.upsert(url, title, capped, content_hash, embedding)
