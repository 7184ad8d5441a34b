"""Supabase clients for auth lookups and date request storage."""

from functools import lru_cache

from supabase import create_client, Client
from velvethold.config import get_settings


def _connect(key: str) -> Client:
    settings = get_settings()
    if not settings.supabase_url or not key:
        raise RuntimeError("Supabase is not configured; set SUPABASE_URL and its keys")
    return create_client(settings.supabase_url, key)


@lru_cache
def get_supabase() -> Client:
    """Anon-key client, used to verify user access tokens."""
    return _connect(get_settings().supabase_key)


@lru_cache
def get_supabase_admin() -> Client:
    """
    Service-role client for the date_requests, payments and chats tables.

    Row writes bypass row level security, so this client never leaves the
    server-side services.
    """
    return _connect(get_settings().supabase_service_key)
