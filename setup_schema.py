#!/usr/bin/env python3
"""
Create the SQL helper functions and every market insights table.
Also writes the full script to sql/market_insights_schema.sql for the SQL Editor.
"""

import sys

from app_config import configure_logging, load_config
from schema_setup import build_executor, create_sql_functions, setup_schema, write_schema_file
from supabase_rest import SupabaseRestClient

SCHEMA_FILE = 'sql/market_insights_schema.sql'


def main():
    """Main setup function"""
    config = load_config()
    configure_logging(config)

    print("🚀 Setting up market insights schema...")
    path = write_schema_file(SCHEMA_FILE)
    print(f"📄 Full schema script written to {path}")

    missing = config.missing()
    if missing:
        print(f"❌ Missing settings in config.env: {', '.join(missing)}")
        sys.exit(1)

    client = SupabaseRestClient.from_config(config, use_service_key=True)
    executor = build_executor(client, config)

    print("\n🔧 Creating SQL helper functions...")
    functions = create_sql_functions(executor)
    for name, ok in functions.items():
        print(f"{'✅' if ok else '⚠️'} {name}")

    print("\n📦 Creating tables...")
    tables = setup_schema(client, executor)
    failed = [table for table, ok in tables.items() if not ok]

    print(f"\n📊 {len(tables) - len(failed)}/{len(tables)} tables ready")
    if failed:
        print(f"❌ Failed tables: {', '.join(failed)}")
        print(f"   Pending SQL was written to {executor.pending_dir}/ - run it in the Supabase SQL Editor,")
        print(f"   or run {path} in full.")
        sys.exit(1)

    print("🎉 Schema setup completed successfully!")
    sys.exit(0)


if __name__ == "__main__":
    main()
