"""Persistence backends for ingested wiki documents."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select as sa_select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select

from app.config.logger import app_logger
from app.config.settings import settings
from app.db import supabase_db
from app.models.wiki_document import WikiDocument
from app.services.wiki_index import KnownDocument


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass
class WikiRecord:
    url: str
    title: str
    content: str
    content_hash: str
    embedding: List[float]
    updated_at: datetime

    def to_row(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "content_hash": self.content_hash,
            "embedding": self.embedding,
            "updated_at": self.updated_at.isoformat(),
        }


class WikiStore(ABC):
    """Where the sync job reads known documents from and upserts into."""

    @abstractmethod
    async def load_known(self) -> List[KnownDocument]:
        ...

    @abstractmethod
    async def upsert(self, record: WikiRecord) -> None:
        """Insert or overwrite the document stored under ``record.url``."""

    @abstractmethod
    async def stats(self) -> Dict[str, Any]:
        ...


class SupabaseWikiStore(WikiStore):
    """wiki_content through the Supabase REST API."""

    def __init__(self, table: str = settings.WIKI_TABLE_NAME):
        self.table = table

    async def load_known(self) -> List[KnownDocument]:
        rows = await supabase_db.get_wiki_index_rows(self.table)
        return [
            KnownDocument(
                url=row["url"],
                content_hash=row.get("content_hash") or "",
                updated_at=_parse_timestamp(row.get("updated_at")),
            )
            for row in rows
        ]

    async def upsert(self, record: WikiRecord) -> None:
        await supabase_db.upsert_wiki_document(record.to_row(), self.table)

    async def stats(self) -> Dict[str, Any]:
        result = await supabase_db.get_wiki_stats(self.table)
        result["last_updated_at"] = _parse_timestamp(result.get("last_updated_at"))
        return result


class SQLWikiStore(WikiStore):
    """wiki_content through SQLModel (Postgres or SQLite)."""

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def load_known(self) -> List[KnownDocument]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(WikiDocument.url, WikiDocument.content_hash, WikiDocument.updated_at)
            )
            return [
                KnownDocument(url=url, content_hash=content_hash, updated_at=updated_at)
                for url, content_hash, updated_at in result.all()
            ]

    async def upsert(self, record: WikiRecord) -> None:
        async with self.session_maker() as session:
            result = await session.execute(select(WikiDocument).where(WikiDocument.url == record.url))
            doc = result.scalars().first()
            if doc is None:
                doc = WikiDocument(
                    url=record.url,
                    title=record.title,
                    content=record.content,
                    content_hash=record.content_hash,
                    embedding=record.embedding,
                    updated_at=record.updated_at,
                )
                session.add(doc)
            else:
                doc.title = record.title
                doc.content = record.content
                doc.content_hash = record.content_hash
                doc.embedding = record.embedding
                doc.updated_at = record.updated_at
            try:
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def stats(self) -> Dict[str, Any]:
        async with self.session_maker() as session:
            result = await session.execute(
                sa_select(func.count(WikiDocument.id), func.max(WikiDocument.updated_at))
            )
            total, last_updated = result.one()
            return {"total_documents": total or 0, "last_updated_at": last_updated}


def build_wiki_store(backend: str = settings.WIKI_STORE_BACKEND) -> WikiStore:
    """Return the configured store backend."""
    if backend == "sql":
        from app.db.db import get_session_maker

        return SQLWikiStore(get_session_maker())
    if backend != "supabase":
        app_logger.warning(f"Unknown WIKI_STORE_BACKEND '{backend}', using supabase")
    return SupabaseWikiStore()
