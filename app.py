"""
Main Flask Web Application
Serves the market insights dashboard tabs as JSON view models.
"""

import os
import logging
from dataclasses import asdict
from flask import Flask, jsonify, request
from flask_cors import CORS

from app_config import configure_logging, load_config
from market_data_service import MarketDataService, growth_projection, summarize_procedures
from news_service import NewsService
from schema_setup import build_executor
from seed_data import INDUSTRIES
from supabase_rest import SupabaseRestClient

logger = logging.getLogger(__name__)

TABS = ['overview', 'market-analysis', 'demographics', 'growth-predictions', 'companies', 'metropolitan', 'news']
MAX_PAGE_SIZE = 100


def _models(items):
    return [asdict(item) for item in items]


def _unknown_industry(industry):
    return jsonify({'error': f"Unknown industry '{industry}'. Expected one of: {', '.join(INDUSTRIES)}"}), 404


def create_app(service=None, news=None, config=None):
    """Build the Flask app around a data service and a news service."""
    if service is None or news is None:
        config = config or load_config()
        client = SupabaseRestClient.from_config(config)
        if service is None:
            executor = build_executor(client, config)
            service = MarketDataService(client, config=config, executor=executor)
        if news is None:
            news = NewsService(client)

    app = Flask(__name__)
    CORS(app, origins=['*'])
    app.config['DATA_INITIALIZED'] = False

    @app.before_request
    def initialize_data():
        if app.config['DATA_INITIALIZED']:
            return None
        try:
            result = service.initialize()
        except Exception as e:
            # Left unset so the next request tries again
            logger.exception("Market data service initialization raised")
            return jsonify({'error': f"Initialization failed: {e}"}), 500

        app.config['DATA_INITIALIZED'] = True
        if not result['success']:
            logger.error(f"❌ Market data service initialization failed: {result.get('error')}")
        return None

    @app.route('/')
    def index():
        return jsonify({
            'name': 'Market Insights API',
            'industries': list(INDUSTRIES),
            'tabs': TABS,
        })

    @app.route('/api/<industry>/overview')
    def overview(industry):
        if industry not in INDUSTRIES:
            return _unknown_industry(industry)
        try:
            procedures = service.get_procedures(industry)
            top = sorted(procedures, key=lambda p: p.market_size_2025, reverse=True)[:5]
            return jsonify({
                'industry': industry,
                'summary': summarize_procedures(procedures),
                'categories': service.get_categories(industry),
                'top_procedures': _models(top),
            })
        except Exception as e:
            logger.exception(f"Overview failed for {industry}")
            return jsonify({'error': str(e)}), 500

    @app.route('/api/<industry>/market-analysis')
    def market_analysis(industry):
        if industry not in INDUSTRIES:
            return _unknown_industry(industry)
        try:
            procedures = service.get_procedures(industry)
            ranked = sorted(procedures, key=lambda p: p.growth, reverse=True)
            return jsonify({
                'industry': industry,
                'procedures': _models(ranked),
                'by_category': summarize_procedures(procedures)['by_category'],
            })
        except Exception as e:
            logger.exception(f"Market analysis failed for {industry}")
            return jsonify({'error': str(e)}), 500

    @app.route('/api/<industry>/demographics')
    def demographics(industry):
        if industry not in INDUSTRIES:
            return _unknown_industry(industry)
        try:
            return jsonify({
                'industry': industry,
                'age_groups': _models(service.get_demographics(industry)),
                'gender': _models(service.get_gender_distribution(industry)),
                'regions': _models(service.get_demographics_by_region()),
            })
        except Exception as e:
            logger.exception(f"Demographics failed for {industry}")
            return jsonify({'error': str(e)}), 500

    @app.route('/api/<industry>/growth-predictions')
    def growth_predictions(industry):
        if industry not in INDUSTRIES:
            return _unknown_industry(industry)
        try:
            points = service.get_market_growth(industry)
            return jsonify({
                'industry': industry,
                'series': _models(points),
                'projection': growth_projection(points),
                'regional_growth': service.get_growth_rates_by_region(),
            })
        except Exception as e:
            logger.exception(f"Growth predictions failed for {industry}")
            return jsonify({'error': str(e)}), 500

    @app.route('/api/<industry>/companies')
    def industry_companies(industry):
        if industry not in INDUSTRIES:
            return _unknown_industry(industry)
        try:
            return jsonify({'industry': industry, 'companies': _models(service.get_companies(industry))})
        except Exception as e:
            logger.exception(f"Companies failed for {industry}")
            return jsonify({'error': str(e)}), 500

    @app.route('/api/companies')
    def all_companies():
        try:
            return jsonify({'companies': _models(service.get_companies())})
        except Exception as e:
            logger.exception("Companies failed")
            return jsonify({'error': str(e)}), 500

    @app.route('/api/metropolitan')
    def metropolitan():
        try:
            return jsonify({
                'markets': _models(service.get_metropolitan_markets()),
                'market_size_by_state': service.get_market_size_by_state(),
                'growth_rates_by_region': service.get_growth_rates_by_region(),
                'procedures_by_region': _models(service.get_procedures_by_region()),
                'top_providers': _models(service.get_top_providers_by_market()),
            })
        except Exception as e:
            logger.exception("Metropolitan markets failed")
            return jsonify({'error': str(e)}), 500

    @app.route('/api/<industry>/news')
    def industry_news(industry):
        if industry not in INDUSTRIES:
            return _unknown_industry(industry)
        limit = min(max(request.args.get('limit', 10, type=int), 1), MAX_PAGE_SIZE)
        offset = max(request.args.get('offset', 0, type=int), 0)
        try:
            return jsonify({
                'industry': industry,
                'articles': news.get_news_articles(
                    industry, limit=limit, offset=offset,
                    category=request.args.get('category'),
                    source=request.args.get('source'),
                    search_term=request.args.get('q'),
                ),
                'featured': news.get_featured_news_articles(industry),
                'categories': news.get_news_categories(industry),
                'sources': news.get_news_sources(industry),
                'trending_topics': news.get_trending_topics(industry),
                'upcoming_events': news.get_upcoming_events(industry),
                'limit': limit,
                'offset': offset,
            })
        except Exception as e:
            logger.exception(f"News failed for {industry}")
            return jsonify({'error': str(e)}), 500

    @app.route('/api/status')
    def status():
        try:
            return jsonify(service.verifier.run_full_verification())
        except Exception as e:
            logger.exception("Status check failed")
            return jsonify({'error': str(e)}), 500

    @app.route('/api/refresh', methods=['POST'])
    def refresh():
        try:
            if service.verify_and_reload_data_if_needed():
                return jsonify({'success': True, 'message': 'Data verified'})
            return jsonify({'success': False, 'error': 'Data still invalid after reload attempt'}), 500
        except Exception as e:
            logger.exception("Refresh failed")
            return jsonify({'success': False, 'error': str(e)}), 500

    return app


if __name__ == '__main__':
    config = load_config()
    configure_logging(config)
    app = create_app(config=config)

    port = int(os.environ.get('PORT', 5000))
    print("Starting Market Insights API...")
    print(f"Supabase project: {config.supabase_url or 'Not set'}")
    print(f"Access the app at: http://0.0.0.0:{port}")
    app.run(debug=not config.is_production, host='0.0.0.0', port=port)
