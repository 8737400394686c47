"""Supabase REST API operations on the wiki_content table.

Uses Supabase's REST API (HTTPS port 443), which works on hosts without
direct Postgres access.
"""

from typing import Any, Dict, List, Optional

from app.config.settings import settings
from app.utils.supabase_client import get_supabase_admin_client
from app.config.logger import app_logger

# PostgREST caps responses at 1000 rows by default
PAGE_SIZE = 1000


async def get_wiki_index_rows(table: str = settings.WIKI_TABLE_NAME) -> List[Dict[str, Any]]:
    """Fetch url/content_hash/updated_at for every stored document."""
    try:
        client = get_supabase_admin_client()
        rows: List[Dict[str, Any]] = []
        start = 0
        while True:
            response = (
                client.table(table)
                .select("url, content_hash, updated_at")
                .order("url")
                .range(start, start + PAGE_SIZE - 1)
                .execute()
            )
            page = response.data or []
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            start += PAGE_SIZE
    except Exception as e:
        app_logger.error(f"Failed to load {table} index: {e}")
        raise


async def upsert_wiki_document(data: Dict[str, Any], table: str = settings.WIKI_TABLE_NAME) -> Dict[str, Any]:
    """Insert or update a document keyed by url."""
    try:
        client = get_supabase_admin_client()
        response = client.table(table).upsert(data, on_conflict="url").execute()

        if response.data and len(response.data) > 0:
            return response.data[0]
        raise Exception(f"Failed to upsert into {table} - no data returned")
    except Exception as e:
        app_logger.error(f"Failed to upsert into {table}: {e}")
        raise


async def get_wiki_stats(table: str = settings.WIKI_TABLE_NAME) -> Dict[str, Optional[Any]]:
    """Return document count and newest updated_at."""
    try:
        client = get_supabase_admin_client()
        count_response = client.table(table).select("id", count="exact").limit(1).execute()
        latest = (
            client.table(table)
            .select("updated_at")
            .order("updated_at", desc=True)
            .limit(1)
            .execute()
        )
        return {
            "total_documents": count_response.count or 0,
            "last_updated_at": latest.data[0]["updated_at"] if latest.data else None,
        }
    except Exception as e:
        app_logger.error(f"Failed to read {table} stats: {e}")
        raise


async def ping_supabase(table: str = settings.WIKI_TABLE_NAME) -> tuple[bool, str]:
    """Check if Supabase connection is healthy."""
    try:
        client = get_supabase_admin_client()
        client.table(table).select("id").limit(1).execute()
        return True, "Supabase REST API connection healthy"
    except Exception as e:
        return False, f"Supabase connection failed: {str(e)}"
