#!/usr/bin/env python3
"""
Enable row level security on every public table and add a read policy.
"""

import sys

from app_config import configure_logging, load_config
from rls_policies import RlsManager
from schema_setup import build_executor
from supabase_rest import SupabaseRestClient


def main():
    """Main RLS setup function"""
    config = load_config()
    configure_logging(config)

    print("=" * 50)
    print("🔒 SUPABASE RLS POLICY SETUP")
    print("=" * 50)

    missing = config.missing()
    if missing:
        print(f"❌ Missing settings in config.env: {', '.join(missing)}")
        sys.exit(1)

    client = SupabaseRestClient.from_config(config, use_service_key=True)
    manager = RlsManager(client, build_executor(client, config))
    results = manager.setup_rls_policies()

    if not results:
        print("❌ Could not list tables. Create the helper functions with setup_schema.py first.")
        sys.exit(1)

    print("\n" + "=" * 50)
    print("🔍 RLS POLICY SETUP SUMMARY")
    print("=" * 50)
    failed = []
    for table, ok in results.items():
        if ok:
            print(f"✅ {table}: RLS and policies set up successfully")
        else:
            print(f"❌ {table}: Failed to set up RLS or policies")
            failed.append(table)

    print(f"\nTotal: {len(results) - len(failed)} succeeded, {len(failed)} failed")

    if failed:
        print("\nFor tables that failed, run this in the Supabase SQL Editor:")
        for table in failed:
            print(f'   ALTER TABLE public."{table}" ENABLE ROW LEVEL SECURITY;')
            print(f'   CREATE POLICY "{table}_anon_select" ON public."{table}" FOR SELECT TO authenticated, anon USING (true);')
        sys.exit(1)

    print("\n✅ RLS policies have been set up successfully!")
    print("Next: run verify_data.py to confirm the dashboard can read its tables.")
    sys.exit(0)


if __name__ == "__main__":
    main()
