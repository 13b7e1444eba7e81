#!/usr/bin/env python3
"""
Supabase Setup Helper for the generation job store

Verifies the Supabase connection, checks that the job records table exists
and prints the SQL to create it if it does not.

Usage:
    python scripts/setup_supabase.py

Requirements:
    - Set SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables
    - Or create a .env file with these values
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.config import config


JOBS_TABLE_SQL = f"""
CREATE TABLE IF NOT EXISTS {config.SUPABASE_JOBS_TABLE} (
    id BIGSERIAL PRIMARY KEY,
    job_id TEXT UNIQUE NOT NULL,
    tenant_id TEXT NOT NULL,
    user_id TEXT,
    job_type TEXT NOT NULL,
    provider TEXT,
    model_name TEXT,
    status TEXT NOT NULL DEFAULT 'queued'
        CHECK (status IN ('queued', 'processing', 'completed', 'failed')),
    attempts INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL DEFAULT 3,
    idempotency_key TEXT,
    payload JSONB NOT NULL,
    current_step TEXT,
    progress_percent INTEGER DEFAULT 0,
    result JSONB,
    result_snippet TEXT,
    error_message TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    started_at TIMESTAMPTZ,
    heartbeat_at TIMESTAMPTZ,
    completed_at TIMESTAMPTZ,
    updated_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_{config.SUPABASE_JOBS_TABLE}_status
    ON {config.SUPABASE_JOBS_TABLE} (status, created_at);
CREATE INDEX IF NOT EXISTS idx_{config.SUPABASE_JOBS_TABLE}_tenant
    ON {config.SUPABASE_JOBS_TABLE} (tenant_id, created_at);
"""


def check_supabase_connection():
    """Test the Supabase connection and look for the jobs table."""
    from backend.database.client import get_supabase_admin_client, SupabaseClientError

    if not config.supabase_configured:
        print("\n❌ Missing Supabase credentials!")
        print("\nSet these environment variables:")
        print("  SUPABASE_URL=https://your-project.supabase.co")
        print("  SUPABASE_SERVICE_KEY=eyJhbGci...")
        return None

    print(f"\n🔗 Connecting to: {config.SUPABASE_URL}")

    try:
        client = get_supabase_admin_client()
        client.table(config.SUPABASE_JOBS_TABLE).select("job_id").limit(1).execute()
        print("✅ Connected to Supabase successfully!")
        print(f"   {config.SUPABASE_JOBS_TABLE} table exists: Yes")
        return True
    except SupabaseClientError as e:
        print(f"❌ {e}")
        return None
    except Exception as e:
        error_msg = str(e)
        if "does not exist" in error_msg or "Could not find" in error_msg:
            print("✅ Connected to Supabase successfully!")
            print(f"   ⚠️  {config.SUPABASE_JOBS_TABLE} table not created yet")
            return False
        print(f"❌ Connection failed: {e}")
        return None


def print_migration_instructions():
    """Print the SQL for the job records table."""
    print("\n" + "=" * 60)
    print("📚 MIGRATION")
    print("=" * 60)
    print("Run this in the Supabase SQL Editor, then run this script again:")
    print(JOBS_TABLE_SQL)


def main():
    print("=" * 60)
    print("🚀 Generation Jobs - Supabase Setup Helper")
    print("=" * 60)

    table_ready = check_supabase_connection()

    if table_ready is None:
        return 1

    if not table_ready:
        print_migration_instructions()
        return 1

    print("\n✅ Job records table is ready.")
    print("   Set JOB_STORE_BACKEND=supabase to use it.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
