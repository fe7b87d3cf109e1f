#!/usr/bin/env python3
"""
Verify Supabase Data
Checks connection, authentication, essential tables and their row counts.
Run directly: python verify_data.py
"""

import sys
import logging
from typing import Dict, Optional

from app_config import AppConfig, configure_logging, load_config
from supabase_rest import SupabaseError, SupabaseRestClient

logger = logging.getLogger(__name__)

# Minimum row counts; zero means the table only has to exist
ESSENTIAL_TABLES = {
    'dental_procedures': {'min_rows': 5},
    'aesthetic_procedures': {'min_rows': 5},
    'categories': {'min_rows': 2},
    'companies': {'min_rows': 0},
    'news_articles': {'min_rows': 0},
}


class DataVerifier:
    """Health checks for the market insights database."""

    def __init__(self, client, config: Optional[AppConfig] = None):
        self.client = client
        self.config = config

    def check_connection(self) -> Dict:
        logger.info("🔌 Testing Supabase connection...")
        try:
            self.client.count('dental_procedures')
        except SupabaseError as e:
            if not e.is_missing_table:
                logger.error(f"❌ Connection failed: {e}")
                return {'success': False, 'error': str(e)}
        logger.info("✅ Connection successful")
        return {'success': True}

    def check_authentication(self) -> Dict:
        logger.info("🔑 Testing Supabase authentication...")
        if self.client.authenticated:
            return {'success': True}

        if self.config is None or not self.config.has_credentials:
            logger.warning("⚠️ No login credentials found in config.env")
            return {'success': False, 'error': 'No auth session or credentials'}

        try:
            self.client.sign_in_with_password(self.config.supabase_user, self.config.supabase_password)
        except SupabaseError as e:
            logger.error(f"❌ Login failed: {e}")
            return {'success': False, 'error': str(e)}

        logger.info("✅ Login successful")
        return {'success': True}

    def check_tables(self) -> Dict:
        logger.info("📋 Checking required tables...")
        tables = {}
        missing = 0
        for table in ESSENTIAL_TABLES:
            try:
                count = self.client.count(table)
                tables[table] = {'exists': True, 'row_count': count}
                logger.info(f"✅ Found table: {table} ({count} rows)")
            except SupabaseError as e:
                missing += 1
                if e.is_missing_table:
                    logger.warning(f"⚠️ Missing table: {table}")
                    tables[table] = {'exists': False}
                else:
                    logger.error(f"❌ Error checking table {table}: {e}")
                    tables[table] = {'exists': False, 'error': str(e)}

        if missing:
            logger.warning(f"⚠️ Missing {missing} required tables")
        return {'success': missing == 0, 'tables': tables}

    def check_data(self, table_results: Optional[Dict] = None) -> Dict:
        logger.info("🔢 Checking required data...")
        data = {}
        issues = 0
        for table, requirements in ESSENTIAL_TABLES.items():
            known = (table_results or {}).get(table)
            if known is not None and not known.get('exists'):
                data[table] = {'valid': False, 'error': 'Table does not exist'}
                issues += 1
                continue

            try:
                count = self.client.count(table)
            except SupabaseError as e:
                logger.error(f"❌ Error checking data for {table}: {e}")
                data[table] = {'valid': False, 'error': str(e)}
                issues += 1
                continue

            valid = count >= requirements['min_rows']
            data[table] = {'valid': valid, 'row_count': count, 'min_rows': requirements['min_rows']}
            if valid:
                logger.info(f"✅ {table}: {count} rows")
            else:
                issues += 1
                logger.warning(f"⚠️ {table} has {count} rows, expected at least {requirements['min_rows']}")

        return {'success': issues == 0, 'data': data}

    def run_full_verification(self) -> Dict:
        """Run every check. Overall success needs connection, tables and data."""
        connection = self.check_connection()
        authentication = self.check_authentication()
        tables = self.check_tables() if connection['success'] else {'success': False, 'tables': {}}
        data = self.check_data(tables.get('tables')) if tables['success'] else {'success': False, 'data': {}}

        return {
            'success': connection['success'] and tables['success'] and data['success'],
            'connection': connection,
            'authentication': authentication,
            'tables': tables,
            'data': data,
        }


def main():
    """Main function."""
    config = load_config()
    configure_logging(config)

    missing = config.missing()
    if missing:
        print(f"❌ Missing settings in config.env: {', '.join(missing)}")
        sys.exit(1)

    print("🔍 VERIFYING SUPABASE DATA")
    print("=" * 60)

    verifier = DataVerifier(SupabaseRestClient.from_config(config), config)
    result = verifier.run_full_verification()

    print("\n📊 VERIFICATION SUMMARY")
    print("=" * 60)
    for name in ('connection', 'authentication', 'tables', 'data'):
        icon = "✅" if result[name]['success'] else "❌"
        print(f"{icon} {name.capitalize()}")

    for table, info in result['tables'].get('tables', {}).items():
        if not info.get('exists'):
            print(f"   ⚠️ Missing table: {table}")
    for table, info in result['data'].get('data', {}).items():
        if not info.get('valid') and 'row_count' in info:
            print(f"   ⚠️ {table}: {info['row_count']} rows (need {info['min_rows']})")

    if result['success']:
        print("\n✅ Database verification passed")
        sys.exit(0)
    print("\n❌ Database verification failed. Run populate_data.py to seed missing data.")
    sys.exit(1)


if __name__ == "__main__":
    main()
