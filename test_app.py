"""Tests for the Flask dashboard API."""

import pytest

from app import create_app
from app_config import AppConfig
from market_data_service import MarketDataService
from news_service import NewsService


@pytest.fixture
def service(seeded_client):
    return MarketDataService(seeded_client, config=AppConfig(environment='production'))


@pytest.fixture
def client(seeded_client, service):
    seeded_client.tables['news_articles'].append({
        'id': 1, 'title': 'Implant demand rises', 'content': 'Zirconia gains share', 'industry': 'dental',
        'category': 'Implants', 'source': 'DentistryIQ', 'published_date': '2025-06-01T00:00:00Z',
        'featured': True,
    })
    app = create_app(service=service, news=NewsService(seeded_client))
    app.config['TESTING'] = True
    return app.test_client()


def test_index_lists_tabs(client):
    response = client.get('/')

    assert response.status_code == 200
    body = response.get_json()
    assert body['industries'] == ['dental', 'aesthetic']
    assert 'growth-predictions' in body['tabs']


def test_first_request_initializes_service(client, service):
    client.get('/')
    assert service.data_verified


def test_overview(client):
    body = client.get('/api/dental/overview').get_json()

    assert body['summary']['count'] == 34
    assert body['categories'][0] == 'Preventive'
    assert len(body['top_procedures']) == 5
    assert body['top_procedures'][0]['name'] == 'Dental Fillings'


def test_market_analysis_sorted_by_growth(client):
    body = client.get('/api/aesthetic/market-analysis').get_json()

    growth = [p['growth'] for p in body['procedures']]
    assert growth == sorted(growth, reverse=True)
    assert body['by_category']


def test_demographics(client):
    body = client.get('/api/dental/demographics').get_json()

    assert body['age_groups'][0] == {'age_group': '0-17', 'percentage': 22.0}
    assert len(body['gender']) == 2
    assert len(body['regions']) == 5


def test_growth_predictions(client):
    body = client.get('/api/dental/growth-predictions').get_json()

    assert len(body['series']) == 11
    assert body['projection']['start_year'] == 2020
    assert body['projection']['final_projected']['year'] == 2030


def test_companies(client):
    dental = client.get('/api/dental/companies').get_json()
    everything = client.get('/api/companies').get_json()

    assert len(dental['companies']) == 5
    assert len(everything['companies']) == 10


def test_metropolitan(client):
    body = client.get('/api/metropolitan').get_json()

    assert len(body['markets']) == 50
    assert body['market_size_by_state'][0]['state'] == 'CA'
    assert len(body['top_providers']) == 5


def test_news(client):
    body = client.get('/api/dental/news?limit=500&q=zirconia').get_json()

    assert body['limit'] == 100
    assert [a['id'] for a in body['articles']] == [1]
    assert body['featured'][0]['title'] == 'Implant demand rises'


def test_unknown_industry_is_404(client):
    response = client.get('/api/veterinary/overview')

    assert response.status_code == 404
    assert 'veterinary' in response.get_json()['error']


def test_status(client):
    body = client.get('/api/status').get_json()
    assert body['success'] is True


def test_refresh(client):
    response = client.post('/api/refresh')
    assert response.status_code == 200
    assert response.get_json()['success'] is True


def test_unexpected_error_is_500(client, service, monkeypatch):
    def broken(industry=None):
        raise RuntimeError('boom')

    monkeypatch.setattr(service, 'get_companies', broken)

    response = client.get('/api/companies')

    assert response.status_code == 500
    assert response.get_json() == {'error': 'boom'}


def test_initialization_error_is_json_and_retried(client, service, monkeypatch):
    attempts = []
    original = service.initialize

    def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise OSError('sql_pending is read-only')
        return original()

    monkeypatch.setattr(service, 'initialize', flaky)

    first = client.get('/api/dental/overview')
    second = client.get('/api/dental/overview')

    assert first.status_code == 500
    assert first.get_json() == {'error': 'Initialization failed: sql_pending is read-only'}
    assert second.status_code == 200
    assert len(attempts) == 2
    client.get('/')
    assert len(attempts) == 2
