"""
Market Data Service
Reads the market insights tables and shapes rows into dashboard view models.
Every read logs and returns an empty result when the store fails.
"""

import csv
import json
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional
import pandas as pd

from app_config import AppConfig, DEFAULT_DATA_DIR
from data_loader import DataLoader
from schema_setup import SqlExecutor, setup_schema
from seed_data import INDUSTRIES, PROJECTION_START_YEAR, SeedData
from supabase_rest import SupabaseError, eq
from verify_data import DataVerifier

logger = logging.getLogger(__name__)

PROCEDURE_TABLES = {
    'dental': 'dental_procedures',
    'aesthetic': 'aesthetic_procedures',
}


@dataclass
class Procedure:
    """A dental or aesthetic procedure with market metrics."""
    name: str
    category: str
    growth: float
    market_size_2025: float
    primary_age_group: str
    trends: str
    future_outlook: str


@dataclass
class GrowthPoint:
    year: int
    size: float
    is_projected: bool


@dataclass
class DemographicSlice:
    age_group: str
    percentage: float


@dataclass
class GenderSlice:
    name: str
    value: float


@dataclass
class MetroMarket:
    """A US metropolitan market ranked by size."""
    rank: int
    metro: str
    market_size_2023: float
    market_size_2030: float
    growth_rate: float
    key_procedures: List[str]
    provider_density: Optional[float]
    insurance_coverage: Optional[int]
    disposable_income: Optional[str]


@dataclass
class Company:
    """Company profile for the companies tab."""
    name: str
    industry: str
    description: Optional[str]
    website: Optional[str]
    headquarters: Optional[str]
    founded: Optional[int]
    time_in_market: int
    parent_company: Optional[str]
    employee_count: Optional[str]
    revenue: Optional[str]
    market_cap: Optional[str]
    market_share: float
    growth_rate: float
    key_offerings: List[str]
    top_products: List[str]


@dataclass
class RegionProcedures:
    region: str
    procedures: List[Dict[str, Any]]


@dataclass
class RegionDemographics:
    region: str
    age_groups: List[Dict[str, Any]]
    gender_split: Optional[Dict[str, Any]]
    income_level: Optional[str]


@dataclass
class MarketProviders:
    market: str
    providers: List[Dict[str, Any]]


def _check_industry(industry: str) -> str:
    if industry not in INDUSTRIES:
        raise ValueError(f"Unknown industry: {industry}")
    return industry


def _to_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_list_field(value) -> List[str]:
    """Parse a list column stored as an array, a JSON string or a Postgres array literal."""
    if not value:
        return []
    if isinstance(value, list):
        return value
    if not isinstance(value, str):
        logger.warning(f"⚠️ Expected list or string, got {type(value).__name__}")
        return []

    text = value.strip()
    if text.startswith('['):
        try:
            parsed = json.loads(text)
        except ValueError:
            logger.warning(f"⚠️ Could not parse list field: {text[:50]}")
            return []
        return parsed if isinstance(parsed, list) else []
    if text.startswith('{') and text.endswith('}'):
        inner = text[1:-1]
        if not inner:
            return []
        reader = csv.reader([inner], quotechar='"', escapechar='\\', skipinitialspace=True)
        return [item for item in next(reader)]
    return [text]


def summarize_procedures(procedures: List[Procedure]) -> Dict[str, Any]:
    """Overview figures for a list of procedures."""
    if not procedures:
        return {
            'count': 0,
            'total_market_size_2025': 0.0,
            'average_growth': 0.0,
            'fastest_growing': None,
            'by_category': [],
        }

    df = pd.DataFrame([asdict(p) for p in procedures])
    df['category'] = df['category'].fillna('Uncategorized')

    by_category = (
        df.groupby('category', sort=False)
        .agg(procedures=('name', 'count'), market_size_2025=('market_size_2025', 'sum'),
             average_growth=('growth', 'mean'))
        .reset_index()
        .sort_values('market_size_2025', ascending=False)
    )
    fastest = df.loc[df['growth'].idxmax()]

    return {
        'count': int(len(df)),
        'total_market_size_2025': round(float(df['market_size_2025'].sum()), 2),
        'average_growth': round(float(df['growth'].mean()), 2),
        'fastest_growing': {'name': fastest['name'], 'growth': float(fastest['growth'])},
        'by_category': [
            {
                'category': row.category,
                'procedures': int(row.procedures),
                'market_size_2025': round(float(row.market_size_2025), 2),
                'average_growth': round(float(row.average_growth), 2),
            }
            for row in by_category.itertuples(index=False)
        ],
    }


def growth_projection(points: List[GrowthPoint]) -> Dict[str, Any]:
    """Compound annual growth between the first and last point of a series."""
    result = {
        'start_year': None,
        'end_year': None,
        'cagr': None,
        'latest_actual': None,
        'final_projected': None,
    }
    if not points:
        return result

    df = pd.DataFrame([asdict(p) for p in points]).sort_values('year')
    first = df.iloc[0]
    last = df.iloc[-1]
    years = int(last['year'] - first['year'])

    result['start_year'] = int(first['year'])
    result['end_year'] = int(last['year'])
    if years > 0 and first['size'] > 0:
        result['cagr'] = round(((last['size'] / first['size']) ** (1 / years) - 1) * 100, 2)

    projected = df['is_projected'].astype(bool)
    actual = df[~projected]
    if not actual.empty:
        row = actual.iloc[-1]
        result['latest_actual'] = {'year': int(row['year']), 'size': float(row['size'])}
    if projected.any():
        row = df[projected].iloc[-1]
        result['final_projected'] = {'year': int(row['year']), 'size': float(row['size'])}
    return result


class MarketDataService:
    """Data-access layer for the market insights dashboard."""

    def __init__(self, client, loader: Optional[DataLoader] = None, verifier: Optional[DataVerifier] = None,
                 config: Optional[AppConfig] = None, executor: Optional[SqlExecutor] = None):
        self.client = client
        self.config = config
        self.loader = loader or DataLoader(client, SeedData(config.data_dir if config else DEFAULT_DATA_DIR))
        self.verifier = verifier or DataVerifier(client, config)
        self.executor = executor
        self.data_verified = False
        self.verification_result = None

    def ensure_authentication(self) -> bool:
        """Sign in with configured credentials when not yet authenticated."""
        if self.client.authenticated:
            return True

        if self.config is not None and self.config.has_credentials:
            try:
                self.client.sign_in_with_password(self.config.supabase_user, self.config.supabase_password)
                logger.info("✅ Auto-authenticated with Supabase")
                return True
            except SupabaseError as e:
                logger.warning(f"⚠️ Supabase sign-in failed: {e}")

        logger.warning("⚠️ Not authenticated with Supabase - some operations may fail")
        return False

    def initialize(self) -> Dict[str, Any]:
        """
        Authenticate, verify the store and seed it on first run.

        Production skips verification. Development verifies the connection and
        runs schema setup and the loader when no procedures are present.
        """
        production = self.config is not None and self.config.is_production
        logger.info(f"Initializing market data service in {'production' if production else 'development'}")

        self.ensure_authentication()

        if production:
            self.data_verified = True
            return {
                'success': True,
                'message': 'Market data service initialized for production',
                'verification': None,
            }

        try:
            verification = self.verifier.run_full_verification()
            self.verification_result = verification

            if not verification['connection']['success']:
                logger.error(f"❌ Supabase connection failed: {verification['connection'].get('error')}")
                return {
                    'success': False,
                    'error': 'Could not connect to Supabase database',
                    'verification': verification,
                }

            if not self.loader.check_data_loaded():
                logger.info("Data not loaded yet. Setting up schema and loading data...")
                if self.executor is not None:
                    setup_schema(self.client, self.executor)
                else:
                    logger.warning("⚠️ No SQL executor configured, skipping schema setup")

                load_result = self.loader.load_all()
                if not load_result['success']:
                    logger.warning(f"⚠️ Data load incomplete: {load_result['error']}")

                tables = self.verifier.check_tables()
                if not tables['success']:
                    logger.warning(f"⚠️ Some tables still missing after data load: {tables['tables']}")
            else:
                logger.info("✅ Data already loaded in Supabase")

            self.data_verified = True
            return {
                'success': True,
                'message': 'Market data service initialized successfully (development)',
                'verification': verification,
            }
        except SupabaseError as e:
            logger.error(f"❌ Error initializing market data service: {e}")
            return {'success': False, 'error': str(e), 'verification': self.verification_result}

    def _select(self, table: str, **kwargs) -> List[Dict]:
        return self.client.select(table, **kwargs)

    def _category_map(self, industry: str) -> Dict[Any, str]:
        rows = self._select('categories', columns='id,category_label', filters={'industry': eq(industry)})
        return {row['id']: row['category_label'] for row in rows}

    def get_procedures(self, industry: str) -> List[Procedure]:
        _check_industry(industry)
        try:
            rows = self._select(PROCEDURE_TABLES[industry])
            categories = self._category_map(industry)
        except SupabaseError as e:
            logger.error(f"❌ Error fetching {industry} procedures: {e}")
            return []

        procedures = []
        for row in rows:
            if industry == 'dental':
                name = row.get('procedure_name') or row.get('name')
                age_group = row.get('age_range')
                trends = row.get('recent_trends')
            else:
                name = row.get('name')
                age_group = row.get('primary_age_group')
                trends = row.get('trends')

            procedures.append(Procedure(
                name=name,
                category=row.get('category') or categories.get(row.get('category_id')) or 'Uncategorized',
                growth=_to_float(row.get('yearly_growth_percentage')),
                market_size_2025=_to_float(row.get('market_size_2025_usd_millions')),
                primary_age_group=age_group or 'All Ages',
                trends=trends or 'No trend data available',
                future_outlook=row.get('future_outlook') or 'Growth potential',
            ))
        return procedures

    def get_categories(self, industry: str) -> List[str]:
        _check_industry(industry)
        try:
            rows = self._select('categories', columns='category_label,position',
                                filters={'industry': eq(industry)}, order='position.asc')
        except SupabaseError as e:
            logger.error(f"❌ Error fetching {industry} categories: {e}")
            return []
        return [row['category_label'] for row in rows]

    def get_market_growth(self, industry: str) -> List[GrowthPoint]:
        _check_industry(industry)
        try:
            rows = self._select(f"{industry}_market_growth", columns='year,size,is_projected', order='year.asc')
        except SupabaseError as e:
            logger.error(f"❌ Error fetching {industry} market growth: {e}")
            return []

        points = []
        for row in rows:
            year = int(row['year'])
            projected = row.get('is_projected')
            points.append(GrowthPoint(
                year=year,
                size=_to_float(row.get('size')),
                is_projected=bool(projected) if projected is not None else year >= PROJECTION_START_YEAR,
            ))
        return points

    def get_demographics(self, industry: str) -> List[DemographicSlice]:
        _check_industry(industry)
        try:
            rows = self._select(f"{industry}_demographics", columns='age_group,percentage', order='id.asc')
        except SupabaseError as e:
            logger.error(f"❌ Error fetching {industry} demographics: {e}")
            return []
        return [DemographicSlice(row['age_group'], _to_float(row.get('percentage'))) for row in rows]

    def get_gender_distribution(self, industry: str) -> List[GenderSlice]:
        _check_industry(industry)
        try:
            rows = self._select(f"{industry}_gender_distribution", columns='name,value', order='id.asc')
        except SupabaseError as e:
            logger.error(f"❌ Error fetching {industry} gender distribution: {e}")
            return []
        return [GenderSlice(row['name'], _to_float(row.get('value'))) for row in rows]

    def get_metropolitan_markets(self) -> List[MetroMarket]:
        try:
            rows = self._select('metropolitan_markets', order='rank.asc')
        except SupabaseError as e:
            logger.error(f"❌ Error fetching metropolitan markets: {e}")
            return []

        return [
            MetroMarket(
                rank=row['rank'],
                metro=row['metro'],
                market_size_2023=_to_float(row.get('market_size_2023')),
                market_size_2030=_to_float(row.get('market_size_2030')),
                growth_rate=_to_float(row.get('growth_rate')),
                key_procedures=parse_list_field(row.get('key_procedures')),
                provider_density=row.get('provider_density'),
                insurance_coverage=row.get('insurance_coverage'),
                disposable_income=row.get('disposable_income'),
            )
            for row in rows
        ]

    def get_market_size_by_state(self) -> List[Dict]:
        try:
            return self._select('market_size_by_state', columns='state,value,label', order='value.desc')
        except SupabaseError as e:
            logger.error(f"❌ Error fetching market size by state: {e}")
            return []

    def get_growth_rates_by_region(self) -> List[Dict]:
        try:
            return self._select('growth_rates_by_region', columns='region,growth', order='id.asc')
        except SupabaseError as e:
            logger.error(f"❌ Error fetching growth rates by region: {e}")
            return []

    def _regions(self) -> List[Dict]:
        return self._select('regions', columns='id,name', order='id.asc')

    def get_procedures_by_region(self) -> List[RegionProcedures]:
        try:
            regions = self._regions()
            rows = self._select('procedures_by_region', columns='region_id,name,percentage', order='id.asc')
        except SupabaseError as e:
            logger.error(f"❌ Error fetching procedures by region: {e}")
            return []

        return [
            RegionProcedures(
                region=region['name'],
                procedures=[{'name': row['name'], 'percentage': row['percentage']}
                            for row in rows if row['region_id'] == region['id']],
            )
            for region in regions
        ]

    def get_demographics_by_region(self) -> List[RegionDemographics]:
        try:
            regions = self._regions()
            age_rows = self._select('demographics_by_region', columns='region_id,age_group,percentage', order='id.asc')
            gender_rows = self._select('gender_split_by_region', columns='region_id,male,female,income_level')
        except SupabaseError as e:
            logger.error(f"❌ Error fetching demographics by region: {e}")
            return []

        gender_by_region = {row['region_id']: row for row in gender_rows}
        result = []
        for region in regions:
            gender = gender_by_region.get(region['id'])
            result.append(RegionDemographics(
                region=region['name'],
                age_groups=[{'group': row['age_group'], 'percentage': row['percentage']}
                            for row in age_rows if row['region_id'] == region['id']],
                gender_split={'male': gender['male'], 'female': gender['female']} if gender else None,
                income_level=gender['income_level'] if gender else None,
            ))
        return result

    def get_top_providers_by_market(self) -> List[MarketProviders]:
        try:
            rows = self._select('top_providers', columns='market,provider_name,provider_type,market_share',
                                order='id.asc')
        except SupabaseError as e:
            logger.error(f"❌ Error fetching top providers: {e}")
            return []

        markets: Dict[str, List[Dict]] = {}
        for row in rows:
            markets.setdefault(row['market'], []).append({
                'name': row['provider_name'],
                'type': row['provider_type'],
                'market_share': _to_float(row.get('market_share')),
            })
        return [MarketProviders(market, providers) for market, providers in markets.items()]

    @staticmethod
    def _company(row: Dict) -> Company:
        return Company(
            name=row['name'],
            industry=row.get('industry'),
            description=row.get('description'),
            website=row.get('website'),
            headquarters=row.get('headquarters'),
            founded=row.get('founded'),
            time_in_market=row.get('time_in_market') or 0,
            parent_company=row.get('parent_company'),
            employee_count=row.get('employee_count'),
            revenue=row.get('revenue'),
            market_cap=row.get('market_cap'),
            market_share=_to_float(row.get('market_share')),
            growth_rate=_to_float(row.get('growth_rate')),
            key_offerings=parse_list_field(row.get('key_offerings')),
            top_products=parse_list_field(row.get('top_products')),
        )

    def get_companies(self, industry: Optional[str] = None) -> List[Company]:
        """Companies of one industry, or all of them ordered by industry then market share."""
        if industry is None:
            filters = None
            order = ['industry.asc', 'market_share.desc']
        else:
            filters = {'industry': eq(_check_industry(industry))}
            order = 'market_share.desc'

        try:
            rows = self._select('companies', filters=filters, order=order)
        except SupabaseError as e:
            logger.error(f"❌ Error fetching companies: {e}")
            return []
        return [self._company(row) for row in rows]

    def verify_and_reload_data_if_needed(self) -> bool:
        """Reload the seed data when verification fails."""
        logger.info("🔍 Verifying data integrity...")
        try:
            verification = self.verifier.run_full_verification()
            self.verification_result = verification
            if verification['success']:
                logger.info("✅ Data verification passed")
                return True

            logger.warning("⚠️ Data verification failed, attempting to reload data...")
            self.loader.load_all()

            verification = self.verifier.run_full_verification()
            self.verification_result = verification
            if not verification['success']:
                logger.error("❌ Data still invalid after reload attempt")
                return False

            logger.info("✅ Data successfully reloaded")
            return True
        except SupabaseError as e:
            logger.error(f"❌ Error during data verification and reload: {e}")
            return False
