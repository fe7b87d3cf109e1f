#!/usr/bin/env python3
"""
Create the read-only dashboard views (procedures with category labels,
companies per industry and market growth series).
Run after setup_schema.py so the base tables exist.
"""

import sys

from app_config import configure_logging, load_config
from schema_setup import build_executor, setup_views
from supabase_rest import SupabaseRestClient


def main():
    """Main view setup function"""
    config = load_config()
    configure_logging(config)

    missing = config.missing()
    if missing:
        print(f"❌ Missing settings in config.env: {', '.join(missing)}")
        sys.exit(1)

    print("=" * 60)
    print("SETTING UP DATABASE VIEWS FOR MARKET INSIGHTS")
    print("=" * 60)

    client = SupabaseRestClient.from_config(config, use_service_key=True)
    executor = build_executor(client, config)

    results = setup_views(client, executor)
    for view, ok in results.items():
        print(f"{'✅' if ok else '❌'} {view}")

    failed = [view for view, ok in results.items() if not ok]
    print(f"\n📊 {len(results) - len(failed)}/{len(results)} views ready")
    if failed:
        print(f"   Pending SQL is in {executor.pending_dir}/ - run it in the Supabase SQL Editor.")
        sys.exit(1)

    print("🎉 View setup completed successfully!")
    sys.exit(0)


if __name__ == "__main__":
    main()
