"""Models module - imports all models for SQLModel registration."""

from app.models.wiki_document import WikiDocument

__all__ = [
    "WikiDocument",
]
