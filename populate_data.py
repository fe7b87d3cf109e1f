#!/usr/bin/env python3
"""
Load all seed data into Supabase and report row counts.
"""

import sys

from app_config import configure_logging, load_config
from data_loader import LOAD_ORDER, DataLoader
from seed_data import SeedData
from supabase_rest import SupabaseError, SupabaseRestClient


def main():
    """Main import function"""
    config = load_config()
    configure_logging(config)

    missing = config.missing()
    if missing:
        print(f"❌ Missing settings in config.env: {', '.join(missing)}")
        sys.exit(1)

    print("🚀 Starting data import to Supabase...")
    client = SupabaseRestClient.from_config(config, use_service_key=True)
    result = DataLoader(client, SeedData(config.data_dir)).load_all()

    print("\n📊 Row counts:")
    for table in LOAD_ORDER:
        try:
            print(f"   {table}: {client.count(table)}")
        except SupabaseError as e:
            print(f"   {table}: ❌ {e}")

    if not result['success']:
        print(f"\n❌ {result['error']}")
        sys.exit(1)

    print("\n🎉 Data import completed successfully!")
    sys.exit(0)


if __name__ == "__main__":
    main()
