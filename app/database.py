from supabase import create_client, Client
from app.config import get_settings

_client: Client | None = None


def get_supabase() -> Client:
    """Shared Supabase client for the record store, directory and storage.

    Uses the service role key, so row-level security is bypassed; callers
    are responsible for scoping queries to the caller's company.
    """
    global _client
    if _client is None:
        settings = get_settings()
        _client = create_client(settings.supabase_url, settings.supabase_service_key)
    return _client


def reset_supabase() -> None:
    """Drop the cached client (used after settings change and in tests)."""
    global _client
    _client = None
