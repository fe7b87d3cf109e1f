#!/usr/bin/env python3
"""
Drop and recreate the core tables, then repopulate them from the seed files.
Use when a table was created with the wrong columns.
"""

import sys

from app_config import configure_logging, load_config
from data_loader import DataLoader, DataLoadError
from schema_setup import CORE_TABLES, build_executor, drop_and_recreate
from seed_data import SeedData
from supabase_rest import SupabaseError, SupabaseRestClient


def main():
    """Main fix function"""
    config = load_config()
    configure_logging(config)

    missing = config.missing()
    if missing:
        print(f"❌ Missing settings in config.env: {', '.join(missing)}")
        sys.exit(1)

    print("⚠️ This drops and recreates these tables, deleting their rows:")
    print(f"   {', '.join(CORE_TABLES)}")
    if input("Type 'yes' to continue: ").strip().lower() != 'yes':
        print("Cancelled")
        sys.exit(0)

    client = SupabaseRestClient.from_config(config, use_service_key=True)
    executor = build_executor(client, config)
    if executor.db_config is not None and not executor.db_config.test_connection():
        print("⚠️ Direct PostgreSQL is unreachable, relying on the SQL helper functions")
        executor.db_config = None
    loader = DataLoader(client, SeedData(config.data_dir))

    print("\n🔧 Recreating tables...")
    for table in CORE_TABLES:
        if not drop_and_recreate(executor, table):
            print(f"❌ Could not recreate {table}. Run the SQL in {executor.pending_dir}/ manually.")
            sys.exit(1)
        print(f"✅ Recreated {table}")

    print("\n📦 Inserting seed data...")
    for table in CORE_TABLES:
        try:
            written, failed = loader.load_table(table, mode='insert')
            print(f"✅ {table}: {written} inserted" + (f", {failed} failed" if failed else ""))
        except (DataLoadError, SupabaseError) as e:
            print(f"❌ {table}: {e}")
            sys.exit(1)

    print("\n📊 Verification:")
    for table in CORE_TABLES:
        try:
            print(f"   {table}: {client.count(table)} rows")
        except SupabaseError as e:
            print(f"   {table}: ❌ {e}")

    print("\n🎉 Direct SQL fix completed!")
    sys.exit(0)


if __name__ == "__main__":
    main()
