"""
Database connections: Supabase client setup.
"""

from functools import lru_cache
from supabase import create_client, Client

from pdftutor.config import get_settings


@lru_cache
def get_supabase_client() -> Client:
    """Get the Supabase client (singleton).

    Uses the anon key for standard operations.
    """
    settings = get_settings()
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)


@lru_cache
def get_supabase_admin_client() -> Client:
    """Get the Supabase admin client (service_role key, bypasses RLS).

    The ingestion pipeline writes chunks and flips document status with it,
    so it must not depend on the caller's row-level permissions.
    Falls back to the anon client when no service key is configured.
    """
    settings = get_settings()
    if not settings.SUPABASE_SERVICE_KEY:
        return get_supabase_client()
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
