"""
Nality - Supabase Client.

Low-level database access. Server-side routes use the service-role client;
bearer tokens are validated through the anon client.
"""

from supabase import Client, create_client

from nality.config import settings

# Singleton client instances
_client: Client | None = None
_service_client: Client | None = None


def get_client() -> Client:
    """
    Get the Supabase client (anon key).

    Uses singleton pattern to reuse connection.
    """
    global _client

    if _client is None:
        _client = create_client(
            settings.supabase_url,
            settings.supabase_anon_key,
        )

    return _client


def get_service_client() -> Client:
    """
    Get the service-role Supabase client.

    Bypasses row level security - only for server-side writes that are not
    tied to a signed-in user (pending registrations, finalization).
    """
    global _service_client

    if _service_client is None:
        _service_client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )

    return _service_client

