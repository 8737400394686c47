"""Service-role Supabase client used by the wiki store."""

from functools import lru_cache

from supabase import Client, create_client

from app.config.logger import app_logger
from app.config.settings import settings


@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    """Return the process-wide Supabase client.

    The sync job writes wiki_content, so it authenticates with the service
    role key rather than the anon key.

    Raises:
        ValueError: SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY is empty
    """
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set to use the supabase wiki store")

    client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    app_logger.info(f"Supabase client ready for {settings.SUPABASE_URL}")
    return client
