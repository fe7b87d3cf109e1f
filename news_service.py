"""
News Service
Read access to industry news, categories, sources, trending topics and events.
"""

import re
import logging
from datetime import date
from typing import Dict, List, Optional

from supabase_rest import SupabaseError, eq, gte

logger = logging.getLogger(__name__)


def search_filter(search_term: str) -> Optional[str]:
    """
    PostgREST disjunction matching the term in title or content.
    None when nothing searchable is left after removing reserved characters.
    """
    term = re.sub(r'[,()*]', ' ', search_term).strip()
    if not term:
        return None
    return f"(title.ilike.*{term}*,content.ilike.*{term}*)"


def industry_filter(industry: str) -> str:
    """Rows for one industry plus those shared by both."""
    return f"(industry.eq.{industry},industry.eq.both)"


class NewsService:
    """News queries for the dashboard news tab."""

    def __init__(self, client):
        self.client = client

    def _fetch(self, what: str, table: str, **kwargs) -> List[Dict]:
        try:
            return self.client.select(table, **kwargs)
        except SupabaseError as e:
            logger.error(f"❌ Error fetching {what}: {e}")
            return []

    def get_news_articles(self, industry: str, limit: int = 10, offset: int = 0,
                          category: Optional[str] = None, source: Optional[str] = None,
                          search_term: Optional[str] = None) -> List[Dict]:
        """Articles for an industry, newest first."""
        filters = {'industry': eq(industry)}
        if category:
            filters['category'] = eq(category)
        if source:
            filters['source'] = eq(source)
        search = search_filter(search_term) if search_term else None
        if search:
            filters['or'] = search

        return self._fetch('news articles', 'news_articles', filters=filters,
                           order='published_date.desc', limit=limit, offset=offset)

    def get_news_categories(self, industry: str) -> List[Dict]:
        return self._fetch('news categories', 'news_categories', filters={'or': industry_filter(industry)})

    def get_news_sources(self, industry: str) -> List[Dict]:
        return self._fetch('news sources', 'news_sources', filters={'industry': eq(industry)})

    def get_featured_news_articles(self, industry: str, limit: int = 3) -> List[Dict]:
        return self._fetch('featured news articles', 'news_articles',
                           filters={'industry': eq(industry), 'featured': eq(True)},
                           order='published_date.desc', limit=limit)

    def get_trending_topics(self, industry: str, limit: int = 5) -> List[Dict]:
        return self._fetch('trending topics', 'trending_topics', filters={'industry': eq(industry)},
                           order='popularity.desc', limit=limit)

    def get_upcoming_events(self, industry: str, limit: int = 5) -> List[Dict]:
        """Events starting today or later, soonest first."""
        today = date.today().isoformat()
        return self._fetch('upcoming events', 'industry_events',
                           filters={'industry': eq(industry), 'start_date': gte(today)},
                           order='start_date.asc', limit=limit)
