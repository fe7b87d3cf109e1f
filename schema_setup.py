"""
Schema Setup Module
Table definitions for the market insights database and the fallback chain
used to run DDL against a hosted Supabase project.
"""

import os
import re
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError

from database_config import DatabaseConnectionError, get_db_config
from supabase_rest import SupabaseError

logger = logging.getLogger(__name__)

_TIMESTAMPS = """
  created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
  updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()"""

TABLE_DEFINITIONS = OrderedDict([
    ('categories', f"""
CREATE TABLE IF NOT EXISTS public.categories (
  id SERIAL PRIMARY KEY,
  industry TEXT NOT NULL,
  category_label TEXT NOT NULL,
  position INTEGER DEFAULT 0,{_TIMESTAMPS},
  UNIQUE (industry, category_label)
);"""),
    ('dental_procedures', f"""
CREATE TABLE IF NOT EXISTS public.dental_procedures (
  id SERIAL PRIMARY KEY,
  procedure_name TEXT NOT NULL UNIQUE,
  category_id INTEGER REFERENCES public.categories(id) ON DELETE SET NULL,
  category TEXT,
  yearly_growth_percentage NUMERIC(5,2) NOT NULL,
  market_size_2025_usd_millions NUMERIC(7,2) NOT NULL,
  age_range TEXT,
  recent_trends TEXT,
  future_outlook TEXT,{_TIMESTAMPS}
);"""),
    ('aesthetic_procedures', f"""
CREATE TABLE IF NOT EXISTS public.aesthetic_procedures (
  id SERIAL PRIMARY KEY,
  name TEXT NOT NULL UNIQUE,
  category_id INTEGER REFERENCES public.categories(id) ON DELETE SET NULL,
  category TEXT,
  yearly_growth_percentage NUMERIC(5,2) NOT NULL,
  market_size_2025_usd_millions NUMERIC(7,2) NOT NULL,
  primary_age_group TEXT,
  trends TEXT,
  future_outlook TEXT,{_TIMESTAMPS}
);"""),
    ('dental_market_growth', f"""
CREATE TABLE IF NOT EXISTS public.dental_market_growth (
  id SERIAL PRIMARY KEY,
  year INTEGER NOT NULL UNIQUE,
  size NUMERIC(7,2) NOT NULL,
  is_projected BOOLEAN DEFAULT FALSE,{_TIMESTAMPS}
);"""),
    ('aesthetic_market_growth', f"""
CREATE TABLE IF NOT EXISTS public.aesthetic_market_growth (
  id SERIAL PRIMARY KEY,
  year INTEGER NOT NULL UNIQUE,
  size NUMERIC(7,2) NOT NULL,
  is_projected BOOLEAN DEFAULT FALSE,{_TIMESTAMPS}
);"""),
    ('dental_demographics', f"""
CREATE TABLE IF NOT EXISTS public.dental_demographics (
  id SERIAL PRIMARY KEY,
  age_group TEXT NOT NULL UNIQUE,
  percentage INTEGER NOT NULL,{_TIMESTAMPS}
);"""),
    ('aesthetic_demographics', f"""
CREATE TABLE IF NOT EXISTS public.aesthetic_demographics (
  id SERIAL PRIMARY KEY,
  age_group TEXT NOT NULL UNIQUE,
  percentage INTEGER NOT NULL,{_TIMESTAMPS}
);"""),
    ('dental_gender_distribution', f"""
CREATE TABLE IF NOT EXISTS public.dental_gender_distribution (
  id SERIAL PRIMARY KEY,
  name TEXT NOT NULL UNIQUE,
  value INTEGER NOT NULL,{_TIMESTAMPS}
);"""),
    ('aesthetic_gender_distribution', f"""
CREATE TABLE IF NOT EXISTS public.aesthetic_gender_distribution (
  id SERIAL PRIMARY KEY,
  name TEXT NOT NULL UNIQUE,
  value INTEGER NOT NULL,{_TIMESTAMPS}
);"""),
    ('metropolitan_markets', f"""
CREATE TABLE IF NOT EXISTS public.metropolitan_markets (
  id SERIAL PRIMARY KEY,
  rank INTEGER NOT NULL,
  metro TEXT NOT NULL UNIQUE,
  market_size_2023 NUMERIC(6,2) NOT NULL,
  market_size_2030 NUMERIC(6,2) NOT NULL,
  growth_rate NUMERIC(5,2) NOT NULL,
  key_procedures TEXT[] NOT NULL DEFAULT '{{}}',
  provider_density NUMERIC(5,2),
  insurance_coverage INTEGER,
  disposable_income TEXT,{_TIMESTAMPS}
);"""),
    ('market_size_by_state', f"""
CREATE TABLE IF NOT EXISTS public.market_size_by_state (
  id SERIAL PRIMARY KEY,
  state TEXT NOT NULL UNIQUE,
  value NUMERIC(5,2) NOT NULL,
  label TEXT NOT NULL,{_TIMESTAMPS}
);"""),
    ('growth_rates_by_region', f"""
CREATE TABLE IF NOT EXISTS public.growth_rates_by_region (
  id SERIAL PRIMARY KEY,
  region TEXT NOT NULL UNIQUE,
  growth NUMERIC(5,2) NOT NULL,{_TIMESTAMPS}
);"""),
    ('regions', f"""
CREATE TABLE IF NOT EXISTS public.regions (
  id SERIAL PRIMARY KEY,
  name TEXT NOT NULL UNIQUE,{_TIMESTAMPS}
);"""),
    ('procedures_by_region', f"""
CREATE TABLE IF NOT EXISTS public.procedures_by_region (
  id SERIAL PRIMARY KEY,
  region_id INTEGER REFERENCES public.regions(id) ON DELETE CASCADE,
  name TEXT NOT NULL,
  percentage INTEGER NOT NULL,{_TIMESTAMPS},
  UNIQUE (region_id, name)
);"""),
    ('demographics_by_region', f"""
CREATE TABLE IF NOT EXISTS public.demographics_by_region (
  id SERIAL PRIMARY KEY,
  region_id INTEGER REFERENCES public.regions(id) ON DELETE CASCADE,
  age_group TEXT NOT NULL,
  percentage INTEGER NOT NULL,{_TIMESTAMPS},
  UNIQUE (region_id, age_group)
);"""),
    ('gender_split_by_region', f"""
CREATE TABLE IF NOT EXISTS public.gender_split_by_region (
  id SERIAL PRIMARY KEY,
  region_id INTEGER UNIQUE REFERENCES public.regions(id) ON DELETE CASCADE,
  male INTEGER NOT NULL,
  female INTEGER NOT NULL,
  income_level TEXT NOT NULL,{_TIMESTAMPS}
);"""),
    ('top_providers', f"""
CREATE TABLE IF NOT EXISTS public.top_providers (
  id SERIAL PRIMARY KEY,
  market TEXT NOT NULL,
  provider_name TEXT NOT NULL,
  provider_type TEXT NOT NULL,
  market_share NUMERIC(5,2) NOT NULL,{_TIMESTAMPS},
  UNIQUE (market, provider_name)
);"""),
    ('companies', f"""
CREATE TABLE IF NOT EXISTS public.companies (
  id SERIAL PRIMARY KEY,
  name TEXT NOT NULL UNIQUE,
  industry TEXT NOT NULL,
  description TEXT,
  logo_url TEXT,
  website TEXT,
  headquarters TEXT,
  founded INTEGER,
  time_in_market INTEGER,
  parent_company TEXT,
  employee_count TEXT,
  revenue TEXT,
  market_cap TEXT,
  market_share NUMERIC(5,2),
  growth_rate NUMERIC(5,2),
  key_offerings TEXT[],
  top_products TEXT[],
  stock_symbol TEXT,
  stock_exchange TEXT,{_TIMESTAMPS}
);"""),
    ('news_articles', f"""
CREATE TABLE IF NOT EXISTS public.news_articles (
  id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  title TEXT NOT NULL,
  content TEXT,
  source TEXT,
  url TEXT,
  image_url TEXT,
  published_date TIMESTAMP WITH TIME ZONE,
  industry TEXT NOT NULL,
  category TEXT,
  featured BOOLEAN DEFAULT FALSE,{_TIMESTAMPS},
  UNIQUE (url, industry)
);
CREATE INDEX IF NOT EXISTS idx_news_articles_industry ON public.news_articles(industry);
CREATE INDEX IF NOT EXISTS idx_news_articles_published_date ON public.news_articles(published_date DESC);"""),
    ('news_categories', """
CREATE TABLE IF NOT EXISTS public.news_categories (
  id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  name TEXT NOT NULL UNIQUE,
  description TEXT,
  industry TEXT NOT NULL,
  created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);"""),
    ('news_sources', """
CREATE TABLE IF NOT EXISTS public.news_sources (
  id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  name TEXT NOT NULL UNIQUE,
  url TEXT,
  industry TEXT NOT NULL,
  created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);"""),
    ('trending_topics', f"""
CREATE TABLE IF NOT EXISTS public.trending_topics (
  id SERIAL PRIMARY KEY,
  industry TEXT NOT NULL,
  topic TEXT NOT NULL,
  popularity INTEGER DEFAULT 0,{_TIMESTAMPS}
);"""),
    ('industry_events', f"""
CREATE TABLE IF NOT EXISTS public.industry_events (
  id SERIAL PRIMARY KEY,
  industry TEXT NOT NULL,
  name TEXT NOT NULL,
  location TEXT,
  url TEXT,
  start_date DATE NOT NULL,
  end_date DATE,{_TIMESTAMPS}
);"""),
])

CORE_TABLES = [
    'categories',
    'dental_procedures',
    'aesthetic_procedures',
    'dental_market_growth',
    'aesthetic_market_growth',
    'dental_demographics',
    'aesthetic_demographics',
    'dental_gender_distribution',
    'aesthetic_gender_distribution',
    'companies',
]

# Read-only dashboard views over the canonical tables, each with its base tables
VIEW_DEFINITIONS = OrderedDict([
    ('v_dental_procedures', (['dental_procedures', 'categories'], """
SELECT
  dp.id,
  dp.procedure_name AS name,
  dp.category_id,
  COALESCE(c.category_label, dp.category) AS category_label,
  dp.yearly_growth_percentage,
  dp.market_size_2025_usd_millions,
  dp.age_range AS primary_age_group,
  dp.recent_trends AS trends,
  dp.future_outlook
FROM public.dental_procedures dp
LEFT JOIN public.categories c ON dp.category_id = c.id
ORDER BY dp.procedure_name ASC""")),
    ('v_aesthetic_procedures', (['aesthetic_procedures', 'categories'], """
SELECT
  ap.id,
  ap.name,
  ap.category_id,
  COALESCE(c.category_label, ap.category) AS category_label,
  ap.yearly_growth_percentage,
  ap.market_size_2025_usd_millions,
  ap.primary_age_group,
  ap.trends,
  ap.future_outlook
FROM public.aesthetic_procedures ap
LEFT JOIN public.categories c ON ap.category_id = c.id
ORDER BY ap.name ASC""")),
    ('v_dental_companies', (['companies'], """
SELECT id, name, headquarters, website, market_share, growth_rate, key_offerings, top_products
FROM public.companies
WHERE industry = 'dental'
ORDER BY name ASC""")),
    ('v_aesthetic_companies', (['companies'], """
SELECT id, name, headquarters, website, market_share, growth_rate, key_offerings, top_products
FROM public.companies
WHERE industry = 'aesthetic'
ORDER BY name ASC""")),
    ('v_dental_market_growth', (['dental_market_growth'], """
SELECT year::text AS year, size::float AS size, is_projected
FROM public.dental_market_growth
ORDER BY year ASC""")),
    ('v_aesthetic_market_growth', (['aesthetic_market_growth'], """
SELECT year::text AS year, size::float AS size, is_projected
FROM public.aesthetic_market_growth
ORDER BY year ASC""")),
])

SQL_FUNCTIONS = OrderedDict([
    ('execute_sql', """
CREATE OR REPLACE FUNCTION public.execute_sql(sql_query TEXT)
RETURNS json
LANGUAGE plpgsql
SECURITY DEFINER
AS $$
BEGIN
  EXECUTE sql_query;
  RETURN json_build_object('success', true);
EXCEPTION
  WHEN OTHERS THEN
    RETURN json_build_object('success', false, 'error', SQLERRM, 'detail', SQLSTATE);
END;
$$;
GRANT EXECUTE ON FUNCTION public.execute_sql(TEXT) TO authenticated, anon;"""),
    ('execute_sql_with_results', """
CREATE OR REPLACE FUNCTION public.execute_sql_with_results(sql_query TEXT)
RETURNS SETOF json
LANGUAGE plpgsql
SECURITY DEFINER
AS $$
BEGIN
  RETURN QUERY EXECUTE format('SELECT row_to_json(t) FROM (%s) t', sql_query);
END;
$$;
GRANT EXECUTE ON FUNCTION public.execute_sql_with_results(TEXT) TO authenticated, anon;"""),
    ('list_all_tables', """
CREATE OR REPLACE FUNCTION public.list_all_tables()
RETURNS TABLE (tablename text)
LANGUAGE plpgsql
SECURITY DEFINER
AS $$
BEGIN
  RETURN QUERY
  SELECT table_name::text
  FROM information_schema.tables
  WHERE table_schema = 'public'
  AND table_type = 'BASE TABLE'
  ORDER BY table_name;
END;
$$;
GRANT EXECUTE ON FUNCTION public.list_all_tables() TO authenticated, anon;"""),
])

# (function name, parameter name) pairs tried in order
SQL_RPC_CANDIDATES = (
    ('execute_sql', 'sql_query'),
    ('exec_sql', 'sql'),
    ('pg_query', 'query'),
)


def policy_name(table: str) -> str:
    return f"{table}_anon_select"


def select_policy_sql(table: str) -> str:
    """Idempotent public read policy for a table."""
    name = policy_name(table)
    return f"""
DO $$
BEGIN
  IF NOT EXISTS (
    SELECT 1 FROM pg_policies
    WHERE schemaname = 'public' AND tablename = '{table}' AND policyname = '{name}'
  ) THEN
    CREATE POLICY "{name}" ON public."{table}" FOR SELECT TO authenticated, anon USING (true);
  END IF;
END $$;"""


def enable_rls_sql(table: str) -> str:
    return f'ALTER TABLE public."{table}" ENABLE ROW LEVEL SECURITY;'


def table_sql(table: str) -> str:
    """CREATE TABLE statement plus RLS and read policy."""
    if table not in TABLE_DEFINITIONS:
        raise KeyError(f"No definition for table: {table}")
    return '\n'.join([TABLE_DEFINITIONS[table].strip(), enable_rls_sql(table), select_policy_sql(table).strip()])


class SqlExecutor:
    """Runs SQL through the first strategy the project supports."""

    def __init__(self, client, db_config=None, pending_dir: str = 'sql_pending'):
        self.client = client
        self.db_config = db_config
        self.pending_dir = pending_dir
        self.missing_functions = set()
        self.last_errors: List[str] = []

    def execute(self, sql: str, label: str) -> Tuple[bool, str]:
        """Execute SQL. Returns (applied, method)."""
        self.last_errors = []

        for function, param in SQL_RPC_CANDIDATES:
            if function in self.missing_functions:
                continue
            try:
                result = self.client.rpc(function, {param: sql})
            except SupabaseError as e:
                if e.is_missing_function:
                    logger.warning(f"⚠️ RPC {function} not available, trying next method")
                    self.missing_functions.add(function)
                else:
                    self.last_errors.append(f"{function}: {e}")
                continue

            if isinstance(result, dict) and result.get('success') is False:
                self.last_errors.append(f"{function}: {result.get('error')}")
                continue

            logger.info(f"✅ {label} applied via rpc {function}")
            return True, function

        if self.db_config is not None:
            try:
                self.db_config.execute_script(sql)
                logger.info(f"✅ {label} applied via direct PostgreSQL")
                return True, 'direct_sql'
            except SQLAlchemyError as e:
                self.last_errors.append(f"direct_sql: {e}")

        path = self.write_pending(sql, label)
        for error in self.last_errors:
            logger.error(f"❌ {label}: {error}")
        logger.error(f"❌ Could not apply {label}. Run {path} in the Supabase SQL Editor.")
        return False, 'sql_file'

    def write_pending(self, sql: str, label: str) -> str:
        os.makedirs(self.pending_dir, exist_ok=True)
        filename = re.sub(r'[^A-Za-z0-9_.-]+', '_', label) + '.sql'
        path = os.path.join(self.pending_dir, filename)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(sql.strip() + '\n')
        return path


def table_exists(client, table: str) -> bool:
    """True when the table answers a count query."""
    try:
        client.count(table)
        return True
    except SupabaseError as e:
        if e.is_missing_table:
            return False
        raise


def ensure_table(client, executor: SqlExecutor, table: str) -> bool:
    """Create a table when it is missing. True when it exists afterwards."""
    try:
        if table_exists(client, table):
            logger.info(f"✅ {table} table already exists")
            return True
    except SupabaseError as e:
        logger.error(f"❌ Error checking {table} table: {e}")
        return False

    logger.info(f"Creating {table} table...")
    applied, _ = executor.execute(table_sql(table), f"create_{table}")
    return applied


def setup_schema(client, executor: SqlExecutor, tables: Optional[Iterable[str]] = None) -> Dict[str, bool]:
    """Ensure every table exists, in dependency order."""
    return {table: ensure_table(client, executor, table) for table in (tables or TABLE_DEFINITIONS)}


def create_sql_functions(executor: SqlExecutor, names: Optional[Iterable[str]] = None) -> Dict[str, bool]:
    results = {}
    for name in (names or SQL_FUNCTIONS):
        applied, _ = executor.execute(SQL_FUNCTIONS[name], f"function_{name}")
        results[name] = applied
    return results


def drop_and_recreate(executor: SqlExecutor, table: str) -> bool:
    sql = f'DROP TABLE IF EXISTS public."{table}" CASCADE;\n' + table_sql(table)
    applied, _ = executor.execute(sql, f"recreate_{table}")
    return applied


def create_view_sql(view: str) -> str:
    """CREATE VIEW statement readable by the dashboard roles."""
    if view not in VIEW_DEFINITIONS:
        raise KeyError(f"No definition for view: {view}")
    _, query = VIEW_DEFINITIONS[view]
    return (f'CREATE VIEW public."{view}" AS{query};\n'
            f'GRANT SELECT ON public."{view}" TO authenticated, anon;')


def create_view(client, executor: SqlExecutor, view: str) -> bool:
    """Drop and recreate a view, then confirm it answers a count query."""
    logger.info(f"Creating view {view}...")
    applied, _ = executor.execute(f'DROP VIEW IF EXISTS public."{view}" CASCADE;', f"drop_{view}")
    if not applied:
        return False
    applied, _ = executor.execute(create_view_sql(view), f"create_{view}")
    if not applied:
        return False

    try:
        rows = client.count(view)
    except SupabaseError as e:
        logger.error(f"❌ View {view} was created but cannot be read: {e}")
        return False
    logger.info(f"✅ View {view} ready ({rows} rows)")
    return True


def setup_views(client, executor: SqlExecutor, views: Optional[Iterable[str]] = None) -> Dict[str, bool]:
    """Create the dashboard views. A view whose base table is missing is skipped."""
    results = {}
    for view in (views or VIEW_DEFINITIONS):
        base_tables, _ = VIEW_DEFINITIONS[view]
        try:
            missing = [table for table in base_tables if not table_exists(client, table)]
        except SupabaseError as e:
            logger.error(f"❌ Error checking base tables for {view}: {e}")
            results[view] = False
            continue
        if missing:
            logger.warning(f"⚠️ Skipping {view}, missing tables: {', '.join(missing)}")
            results[view] = False
            continue
        results[view] = create_view(client, executor, view)
    return results


def build_schema_script(tables: Optional[Iterable[str]] = None) -> str:
    """Full SQL script: helper functions, tables, then views when every table is included."""
    parts = ['-- Market insights schema', '-- Run in the Supabase SQL Editor', '']
    parts.append('CREATE EXTENSION IF NOT EXISTS pgcrypto;')
    for sql in SQL_FUNCTIONS.values():
        parts.append(sql.strip())
        parts.append('')
    for table in (tables or TABLE_DEFINITIONS):
        parts.append(table_sql(table))
        parts.append('')
    if tables is None:
        for view in VIEW_DEFINITIONS:
            parts.append(f'DROP VIEW IF EXISTS public."{view}" CASCADE;')
            parts.append(create_view_sql(view))
            parts.append('')
    return '\n'.join(parts)


def write_schema_file(path: str, tables: Optional[Iterable[str]] = None) -> str:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(build_schema_script(tables))
    return path


def build_executor(client, config, pending_dir: str = 'sql_pending') -> SqlExecutor:
    """SqlExecutor with the direct PostgreSQL fallback when it is configured."""
    try:
        db_config = get_db_config(config)
    except DatabaseConnectionError as e:
        logger.warning(f"⚠️ Direct PostgreSQL unavailable: {e}")
        db_config = None
    return SqlExecutor(client, db_config, pending_dir)
