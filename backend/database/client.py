"""
Supabase Client Configuration

Provides the service-role client used by the hosted job record store.
"""

from functools import lru_cache

from supabase import create_client, Client

from backend.config import config
from backend.jobs.errors import JobStoreError


class SupabaseClientError(JobStoreError):
    """Raised when Supabase client cannot be initialized."""
    pass


@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    """
    Get Supabase client with service role key (admin access).

    Workers, the sweeper and the API all write job records server-side, so
    this client bypasses Row Level Security. Tenant scoping is enforced by
    the status endpoint instead.
    """
    if not config.SUPABASE_URL:
        raise SupabaseClientError(
            "SUPABASE_URL is not configured. "
            "Set it in your .env file or environment variables."
        )

    if not config.SUPABASE_SERVICE_KEY:
        raise SupabaseClientError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set it in your .env file or environment variables."
        )

    return create_client(
        config.SUPABASE_URL,
        config.SUPABASE_SERVICE_KEY
    )


def verify_supabase_connection(table: str = config.SUPABASE_JOBS_TABLE) -> bool:
    """
    Verify that Supabase is properly configured and the jobs table is reachable.

    Returns:
        True if connection successful, False otherwise.
    """
    try:
        client = get_supabase_admin_client()
        client.table(table).select("job_id").limit(1).execute()
        return True
    except Exception as e:
        print(f"Supabase connection failed: {e}")
        return False
