"""
Seed Data Module
Reference rows for the market insights tables, read from the data/ directory.
"""

import os
import json
from typing import Dict, List
import pandas as pd

INDUSTRIES = ('dental', 'aesthetic')
PROJECTION_START_YEAR = 2025


def _records(df: pd.DataFrame) -> List[Dict]:
    """Convert a DataFrame to plain-Python records with None for blanks."""
    df = df.astype(object).where(df.notna(), None)
    return df.to_dict(orient='records')


def _check_industry(industry: str) -> str:
    if industry not in INDUSTRIES:
        raise ValueError(f"Unknown industry: {industry}")
    return industry


class SeedData:
    """Loads and caches the seed files."""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self._cache = {}

    def _path(self, filename: str) -> str:
        path = os.path.join(self.data_dir, filename)
        if not os.path.exists(path):
            raise FileNotFoundError(f"Seed data file not found: {path}")
        return path

    def _csv(self, name: str) -> List[Dict]:
        if name not in self._cache:
            df = pd.read_csv(self._path(f"{name}.csv"))
            self._cache[name] = _records(df)
        return [dict(row) for row in self._cache[name]]

    def _json(self, name: str):
        if name not in self._cache:
            with open(self._path(f"{name}.json"), 'r', encoding='utf-8') as f:
                self._cache[name] = json.load(f)
        return self._cache[name]

    def procedures(self, industry: str) -> List[Dict]:
        return self._csv(f"{_check_industry(industry)}_procedures")

    def categories(self, industry: str) -> List[str]:
        return [row['category_label'] for row in self._csv(f"{_check_industry(industry)}_categories")]

    def market_growth(self, industry: str) -> List[Dict]:
        rows = self._csv(f"{_check_industry(industry)}_market_growth")
        for row in rows:
            row['year'] = int(row['year'])
            row['is_projected'] = row['year'] >= PROJECTION_START_YEAR
        return rows

    def demographics(self, industry: str) -> List[Dict]:
        return self._csv(f"{_check_industry(industry)}_demographics")

    def gender_distribution(self, industry: str) -> List[Dict]:
        return self._csv(f"{_check_industry(industry)}_gender_distribution")

    def market_size_by_state(self) -> List[Dict]:
        return self._csv('market_size_by_state')

    def growth_rates_by_region(self) -> List[Dict]:
        return self._csv('growth_rates_by_region')

    def metropolitan_markets(self) -> List[Dict]:
        return [dict(row) for row in self._json('metropolitan_markets')]

    def companies(self, industry: str) -> List[Dict]:
        rows = self._json('companies').get(_check_industry(industry), [])
        return [dict(row, industry=industry) for row in rows]

    def regions(self) -> Dict[str, List[Dict]]:
        return self._json('regions')

    def region_names(self) -> List[str]:
        return [region['region'] for region in self.regions()['demographics_by_region']]

    def news_articles(self) -> List[Dict]:
        return [dict(row) for row in self._json('news_articles')]

    def news_categories(self) -> List[Dict]:
        return [dict(row) for row in self._json('news_categories')]

    def news_sources(self) -> List[Dict]:
        return [dict(row) for row in self._json('news_sources')]
