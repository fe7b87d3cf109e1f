#!/usr/bin/env python3
"""
Create any missing table and load any empty one. Tables that already hold
rows are left alone.
"""

import sys

from app_config import configure_logging, load_config
from data_loader import LOAD_ORDER, DataLoader, DataLoadError
from schema_setup import build_executor, ensure_table
from seed_data import SeedData
from supabase_rest import SupabaseError, SupabaseRestClient


def refresh_table(client, executor, loader: DataLoader, table: str) -> bool:
    print(f"\n🔍 {table}")
    if not ensure_table(client, executor, table):
        print(f"❌ {table} does not exist and could not be created")
        return False

    try:
        count = client.count(table)
        if count > 0:
            print(f"✅ {table} has {count} rows")
            return True
        written, failed = loader.load_table(table)
        print(f"✅ Loaded {written} rows into {table}" + (f" ({failed} failed)" if failed else ""))
        return True
    except (DataLoadError, SupabaseError) as e:
        print(f"❌ Error refreshing {table}: {e}")
        return False


def main():
    """Main refresh function"""
    config = load_config()
    configure_logging(config)

    missing = config.missing()
    if missing:
        print(f"❌ Missing settings in config.env: {', '.join(missing)}")
        sys.exit(1)

    client = SupabaseRestClient.from_config(config, use_service_key=True)
    executor = build_executor(client, config)
    loader = DataLoader(client, SeedData(config.data_dir))

    results = {table: refresh_table(client, executor, loader, table) for table in LOAD_ORDER}
    failed = [table for table, ok in results.items() if not ok]

    print(f"\n📊 {len(results) - len(failed)}/{len(results)} tables refreshed")
    if failed:
        print(f"❌ Failed: {', '.join(failed)}")
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
