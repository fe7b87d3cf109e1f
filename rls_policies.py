"""
Row Level Security Module
Enables RLS on public tables and attaches a public read policy to each.
"""

import logging
from typing import Dict, List, Optional

from schema_setup import SQL_FUNCTIONS, SqlExecutor, enable_rls_sql, policy_name, select_policy_sql
from supabase_rest import SupabaseError

logger = logging.getLogger(__name__)

DEFAULT_RLS_TABLES = [
    'dental_procedures',
    'aesthetic_procedures',
    'companies',
    'categories',
    'dental_market_growth',
    'aesthetic_market_growth',
    'news_articles',
]

# rpc probe parameters for each helper function
FUNCTION_PROBES = {
    'execute_sql': {'sql_query': 'SELECT 1'},
    'execute_sql_with_results': {'sql_query': 'SELECT 1 AS test'},
    'list_all_tables': {},
}


def _literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def is_system_table(table: str) -> bool:
    return table.startswith('_') or table.startswith('pg_')


class RlsManager:
    """Sets up RLS and select policies through the SQL helper functions."""

    def __init__(self, client, executor: SqlExecutor):
        self.client = client
        self.executor = executor

    def ensure_sql_functions(self) -> Dict[str, bool]:
        """Probe each helper function and create the missing ones."""
        results = {}
        for name, params in FUNCTION_PROBES.items():
            logger.info(f"Checking for {name} function...")
            try:
                self.client.rpc(name, params)
                logger.info(f"✅ {name} function already exists")
                results[name] = True
                continue
            except SupabaseError as e:
                logger.warning(f"⚠️ {name} function not available ({e}), creating it...")

            applied, _ = self.executor.execute(SQL_FUNCTIONS[name], f"function_{name}")
            results[name] = applied
        return results

    def _query(self, sql: str) -> Optional[List[Dict]]:
        try:
            rows = self.client.rpc('execute_sql_with_results', {'sql_query': sql})
        except SupabaseError as e:
            logger.warning(f"⚠️ Query failed: {e}")
            return None
        return rows if isinstance(rows, list) else []

    def get_existing_tables(self) -> Optional[List[str]]:
        """Table names in the public schema, or None when they cannot be listed."""
        try:
            rows = self.client.rpc('list_all_tables') or []
            return [row['tablename'] for row in rows]
        except SupabaseError as e:
            logger.warning(f"⚠️ list_all_tables failed ({e}), querying information_schema")

        rows = self._query(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_type = 'BASE TABLE'"
        )
        if rows is None:
            logger.error("❌ Could not list tables")
            return None
        return [row['table_name'] for row in rows]

    def has_rls_enabled(self, table: str) -> Optional[bool]:
        rows = self._query(
            "SELECT relrowsecurity FROM pg_class "
            f"WHERE relname = {_literal(table)} "
            "AND relnamespace = (SELECT oid FROM pg_namespace WHERE nspname = 'public')"
        )
        if not rows:
            return None
        return bool(rows[0].get('relrowsecurity'))

    def enable_rls(self, table: str) -> bool:
        logger.info(f"Enabling RLS for table '{table}'...")
        if self.has_rls_enabled(table):
            logger.info(f"✅ RLS is already enabled for table '{table}'")
            return True
        applied, _ = self.executor.execute(enable_rls_sql(table), f"enable_rls_{table}")
        return applied

    def has_policy(self, table: str, name: str) -> bool:
        rows = self._query(
            "SELECT policyname FROM pg_policies "
            f"WHERE schemaname = 'public' AND tablename = {_literal(table)} AND policyname = {_literal(name)}"
        )
        return bool(rows)

    def create_select_policy(self, table: str) -> bool:
        name = policy_name(table)
        logger.info(f"Creating SELECT policy '{name}' for table '{table}'...")
        if self.has_policy(table, name):
            logger.info(f"✅ Policy '{name}' already exists for table '{table}'")
            return True
        applied, _ = self.executor.execute(select_policy_sql(table), f"policy_{table}")
        return applied

    def setup_rls_policies(self) -> Dict[str, bool]:
        """Enable RLS and add the select policy on every known table."""
        self.ensure_sql_functions()

        existing = self.get_existing_tables()
        if existing is None:
            logger.error("❌ Failed to get table list, cannot proceed")
            return {}

        logger.info(f"Found tables: {', '.join(existing)}")
        tables = list(dict.fromkeys(DEFAULT_RLS_TABLES + existing))

        results = {}
        for table in tables:
            if is_system_table(table):
                continue
            results[table] = self.enable_rls(table) and self.create_select_policy(table)
        return results
