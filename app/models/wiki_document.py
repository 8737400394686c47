"""Model for one ingested wiki document (the wiki_content table)."""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, Text
from sqlmodel import Field, SQLModel


class WikiDocument(SQLModel, table=True):
    """A Drive markdown file after normalization and embedding."""

    __tablename__ = "wiki_content"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    url: str = Field(max_length=1024, unique=True, index=True)
    title: str = Field(max_length=512)
    content: str = Field(sa_column=Column(Text, nullable=False))
    content_hash: str = Field(max_length=128, index=True)
    # pgvector on Supabase; a JSON list of floats in the SQL backend
    embedding: Optional[List[float]] = Field(default=None, sa_column=Column(JSON))
    scraped_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
