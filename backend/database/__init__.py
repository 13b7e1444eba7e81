"""
Supabase-backed job record storage.

Used when JOB_STORE_BACKEND=supabase; the default SQLite store lives in
backend.jobs.database.
"""

from .client import get_supabase_admin_client, verify_supabase_connection, SupabaseClientError
from .jobs import SupabaseJobRecordStore

__all__ = [
    "get_supabase_admin_client",
    "verify_supabase_connection",
    "SupabaseClientError",
    "SupabaseJobRecordStore",
]
