#!/usr/bin/env python3
"""
Create the procedure tables and seed a handful of procedures, enough for the
dashboard to render while the full load has not been run.
"""

import sys

from app_config import configure_logging, load_config
from data_loader import DataLoader, DataLoadError, ON_CONFLICT
from schema_setup import build_executor, ensure_table, table_exists
from seed_data import SeedData
from supabase_rest import SupabaseError, SupabaseRestClient

SAMPLE_SIZE = 5

# table -> rpc that some projects ship for creating it
CREATE_RPCS = {
    'dental_procedures': 'create_dental_table',
    'aesthetic_procedures': 'create_aesthetic_table',
}


def create_with_rpc(client, table: str) -> bool:
    """Try the project's own create function for a table."""
    rpc_name = CREATE_RPCS.get(table)
    if rpc_name is None:
        return False
    try:
        client.rpc(rpc_name)
        return table_exists(client, table)
    except SupabaseError as e:
        print(f"⚠️ {rpc_name} not usable: {e}")
        return False


def main():
    """Main setup function"""
    config = load_config()
    configure_logging(config)

    missing = config.missing()
    if missing:
        print(f"❌ Missing settings in config.env: {', '.join(missing)}")
        sys.exit(1)

    client = SupabaseRestClient.from_config(config, use_service_key=True)

    print("🔍 Testing Supabase connection...")
    if not client.ping():
        print(f"❌ Could not reach {client.rest_url}")
        sys.exit(1)
    print("✅ Connection successful")

    executor = build_executor(client, config)
    for table in ['categories', 'dental_procedures', 'aesthetic_procedures']:
        try:
            exists = table_exists(client, table)
        except SupabaseError as e:
            print(f"❌ Error checking {table}: {e}")
            sys.exit(1)
        if exists:
            print(f"✅ {table} table already exists")
            continue
        if create_with_rpc(client, table) or ensure_table(client, executor, table):
            print(f"✅ Created {table} table")
        else:
            print(f"❌ Could not create {table}. See {executor.pending_dir}/ for the SQL to run manually.")
            sys.exit(1)

    loader = DataLoader(client, SeedData(config.data_dir))
    try:
        print("\n📦 Loading categories...")
        loader.load_table('categories')
        for table in ['dental_procedures', 'aesthetic_procedures']:
            print(f"\n📦 Loading sample rows into {table}...")
            rows = loader.rows_for(table)[:SAMPLE_SIZE]
            written, failed = loader.write_rows(table, rows, ON_CONFLICT[table])
            print(f"✅ {written} rows written, {failed} failed")
    except (DataLoadError, SupabaseError) as e:
        print(f"❌ Error loading sample data: {e}")
        sys.exit(1)

    print("\n🎉 Basic tables are ready!")
    sys.exit(0)


if __name__ == "__main__":
    main()
