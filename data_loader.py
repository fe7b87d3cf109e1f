"""
Data Loader Module
Seeds the market insights tables from the reference files in data/.
"""

import logging
from typing import Dict, List, Optional, Tuple

from seed_data import INDUSTRIES, SeedData
from supabase_rest import SupabaseError, eq

logger = logging.getLogger(__name__)

# Tables in load order. Categories come before procedures and regions before
# the per-region tables because their ids are looked up from the store.
LOAD_ORDER = [
    'categories',
    'dental_procedures',
    'aesthetic_procedures',
    'dental_market_growth',
    'aesthetic_market_growth',
    'dental_demographics',
    'aesthetic_demographics',
    'dental_gender_distribution',
    'aesthetic_gender_distribution',
    'metropolitan_markets',
    'market_size_by_state',
    'regions',
    'growth_rates_by_region',
    'procedures_by_region',
    'demographics_by_region',
    'gender_split_by_region',
    'top_providers',
    'companies',
    'news_categories',
    'news_sources',
    'news_articles',
]

ON_CONFLICT = {
    'categories': 'industry,category_label',
    'dental_procedures': 'procedure_name',
    'aesthetic_procedures': 'name',
    'dental_market_growth': 'year',
    'aesthetic_market_growth': 'year',
    'dental_demographics': 'age_group',
    'aesthetic_demographics': 'age_group',
    'dental_gender_distribution': 'name',
    'aesthetic_gender_distribution': 'name',
    'metropolitan_markets': 'metro',
    'market_size_by_state': 'state',
    'regions': 'name',
    'growth_rates_by_region': 'region',
    'procedures_by_region': 'region_id,name',
    'demographics_by_region': 'region_id,age_group',
    'gender_split_by_region': 'region_id',
    'top_providers': 'market,provider_name',
    'companies': 'name',
    'news_categories': 'name',
    'news_sources': 'name',
    'news_articles': 'url,industry',
}

COMPANY_COLUMNS = [
    'name', 'industry', 'description', 'website', 'headquarters', 'founded',
    'time_in_market', 'parent_company', 'employee_count', 'revenue',
    'market_cap', 'market_share', 'growth_rate', 'key_offerings', 'top_products',
]


class DataLoadError(Exception):
    """Raised when a table could not be loaded at all."""


class DataLoader:
    """Writes seed rows into the store in batches."""

    def __init__(self, client, seed: SeedData, batch_size: int = 10):
        self.client = client
        self.seed = seed
        self.batch_size = batch_size

    def _write(self, table: str, rows: List[Dict], on_conflict: Optional[str], mode: str):
        if mode == 'insert':
            return self.client.insert(table, rows)
        return self.client.upsert(table, rows, on_conflict=on_conflict)

    def write_rows(self, table: str, rows: List[Dict], on_conflict: Optional[str] = None,
                   mode: str = 'upsert') -> Tuple[int, int]:
        """
        Write rows in batches. A failed batch is retried one row at a time.

        Returns:
            (written, failed) row counts

        Raises:
            DataLoadError: every row of a non-empty table failed
        """
        if not rows:
            logger.info(f"No rows to load into {table}")
            return 0, 0

        written = 0
        failed = 0
        for start in range(0, len(rows), self.batch_size):
            batch = rows[start:start + self.batch_size]
            try:
                self._write(table, batch, on_conflict, mode)
                written += len(batch)
                continue
            except SupabaseError as e:
                logger.warning(f"⚠️ Batch {start // self.batch_size + 1} for {table} failed ({e}), retrying rows individually")

            for row in batch:
                try:
                    self._write(table, [row], on_conflict, mode)
                    written += 1
                except SupabaseError as e:
                    failed += 1
                    label = row.get('name') or row.get('procedure_name') or row.get('title') or row.get('category_label') or row
                    logger.error(f"❌ Failed to write {label} into {table}: {e}")

        if written == 0:
            raise DataLoadError(f"Failed to load any of {len(rows)} rows into {table}")

        logger.info(f"✅ Loaded {written}/{len(rows)} rows into {table}")
        return written, failed

    def _category_ids(self, industry: str) -> Dict[str, int]:
        rows = self.client.select('categories', 'id,category_label', filters={'industry': eq(industry)})
        return {row['category_label']: row['id'] for row in rows}

    def _region_ids(self) -> Dict[str, int]:
        rows = self.client.select('regions', 'id,name')
        ids = {row['name']: row['id'] for row in rows}
        if any(name not in ids for name in self.seed.region_names()):
            logger.info("Regions missing, loading them first")
            self.load_table('regions')
            ids = {row['name']: row['id'] for row in self.client.select('regions', 'id,name')}
        return ids

    def _procedure_rows(self, industry: str) -> List[Dict]:
        category_ids = self._category_ids(industry)
        rows = []
        for proc in self.seed.procedures(industry):
            row = {
                'category': proc['category'],
                'category_id': category_ids.get(proc['category']),
                'yearly_growth_percentage': proc['growth'],
                'market_size_2025_usd_millions': proc['market_size_2025'],
                'future_outlook': proc['future_outlook'],
            }
            if industry == 'dental':
                row.update({
                    'procedure_name': proc['name'],
                    'age_range': proc['primary_age_group'],
                    'recent_trends': proc['trends'],
                })
            else:
                row.update({
                    'name': proc['name'],
                    'primary_age_group': proc['primary_age_group'],
                    'trends': proc['trends'],
                })
            rows.append(row)
        return rows

    def _region_rows(self, table: str) -> List[Dict]:
        regions = self.seed.regions()
        region_ids = self._region_ids()
        rows = []
        if table == 'procedures_by_region':
            for region in regions['procedures_by_region']:
                for proc in region['procedures']:
                    rows.append({'region_id': region_ids.get(region['region']),
                                 'name': proc['name'], 'percentage': proc['percentage']})
        elif table == 'demographics_by_region':
            for region in regions['demographics_by_region']:
                for group in region['age_groups']:
                    rows.append({'region_id': region_ids.get(region['region']),
                                 'age_group': group['group'], 'percentage': group['percentage']})
        else:
            for region in regions['demographics_by_region']:
                rows.append({
                    'region_id': region_ids.get(region['region']),
                    'male': region['gender_split']['male'],
                    'female': region['gender_split']['female'],
                    'income_level': region['income_level'],
                })
        return rows

    def rows_for(self, table: str) -> List[Dict]:
        """Seed rows for one table, shaped to its columns."""
        if table == 'categories':
            return [
                {'industry': industry, 'category_label': label, 'position': position}
                for industry in INDUSTRIES
                for position, label in enumerate(self.seed.categories(industry))
            ]

        for industry in INDUSTRIES:
            if table == f"{industry}_procedures":
                return self._procedure_rows(industry)
            if table == f"{industry}_market_growth":
                return self.seed.market_growth(industry)
            if table == f"{industry}_demographics":
                return self.seed.demographics(industry)
            if table == f"{industry}_gender_distribution":
                return self.seed.gender_distribution(industry)

        if table == 'metropolitan_markets':
            return self.seed.metropolitan_markets()
        if table == 'market_size_by_state':
            return self.seed.market_size_by_state()
        if table == 'growth_rates_by_region':
            return self.seed.growth_rates_by_region()
        if table == 'regions':
            return [{'name': name} for name in self.seed.region_names()]
        if table in ('procedures_by_region', 'demographics_by_region', 'gender_split_by_region'):
            return self._region_rows(table)
        if table == 'top_providers':
            return [
                {
                    'market': market['market'],
                    'provider_name': provider['name'],
                    'provider_type': provider['type'],
                    'market_share': provider['market_share'],
                }
                for market in self.seed.regions()['top_providers_by_market']
                for provider in market['providers']
            ]
        if table == 'companies':
            rows = []
            for industry in INDUSTRIES:
                for company in self.seed.companies(industry):
                    row = {column: company.get(column) for column in COMPANY_COLUMNS}
                    if row['employee_count'] is not None:
                        row['employee_count'] = str(row['employee_count'])
                    rows.append(row)
            return rows

        if table == 'news_categories':
            return self.seed.news_categories()
        if table == 'news_sources':
            return self.seed.news_sources()
        if table == 'news_articles':
            return self.seed.news_articles()

        raise KeyError(f"No seed data for table: {table}")

    def load_table(self, table: str, mode: str = 'upsert') -> Tuple[int, int]:
        """Load one table's seed rows. Unknown tables raise KeyError."""
        if table not in ON_CONFLICT:
            raise KeyError(f"No seed data for table: {table}")
        return self.write_rows(table, self.rows_for(table), ON_CONFLICT[table], mode=mode)

    def load_all(self) -> Dict:
        """Load every table in order, stopping at the first failure."""
        logger.info("🔄 Starting data load...")
        for table in LOAD_ORDER:
            try:
                logger.info(f"Loading {table}...")
                self.load_table(table)
            except (DataLoadError, SupabaseError, FileNotFoundError) as e:
                logger.error(f"❌ Error loading {table}: {e}")
                return {'success': False, 'error': f"Error loading {table}: {e}"}

        logger.info("✅ All data loaded successfully")
        return {'success': True, 'message': 'All data loaded successfully'}

    def check_data_loaded(self) -> bool:
        """True when dental_procedures holds at least one row."""
        try:
            return self.client.count('dental_procedures') > 0
        except SupabaseError as e:
            logger.error(f"❌ Error checking if data is loaded: {e}")
            return False
