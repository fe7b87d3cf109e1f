"""Tests for the backend diagnostics."""

import requests

from api_diagnostics import (
    ENDPOINTS, analyze_results, check_endpoint, check_status, check_supabase_project, diagnostics_passed,
    format_report, is_service_hibernating, run_diagnostics,
)
from app_config import AppConfig

BASE_URL = 'https://backend.example.com'


def result(endpoint='/health', ok=True, latency_ms=120, status=200, error=None, error_type=None, method='GET'):
    entry = {'endpoint': endpoint, 'url': BASE_URL + endpoint, 'method': method, 'ok': ok,
             'status': status, 'latency_ms': latency_ms}
    if error is not None:
        entry.update({'error': error, 'error_type': error_type or 'ConnectionError', 'status': None})
    return entry


def test_check_endpoint_success(fake_session, make_response):
    fake_session.add('GET', '/health', make_response(200, {'status': 'ok'}))

    entry = check_endpoint(fake_session, BASE_URL, '/health', timeout=5)

    assert entry['ok'] is True
    assert entry['status'] == 200
    assert entry['data'] == {'status': 'ok'}
    assert entry['latency_ms'] >= 0
    assert fake_session.calls[0]['timeout'] == 5


def test_check_endpoint_non_json_body(fake_session, make_response):
    fake_session.add('GET', '/health', make_response(502, text='<html>Bad gateway</html>'))

    entry = check_endpoint(fake_session, BASE_URL, '/health')

    assert entry['ok'] is False
    assert entry['data'] == {'error': 'Could not parse response as JSON'}


def test_check_endpoint_network_error(fake_session):
    fake_session.add('GET', '/health', error=requests.Timeout('Read timed out'))

    entry = check_endpoint(fake_session, BASE_URL, '/health')

    assert entry['ok'] is False
    assert entry['error_type'] == 'Timeout'
    assert 'timed out' in entry['error']


def test_hibernation_on_timeout():
    assert is_service_hibernating([result(ok=False, error='Read timed out', error_type='ReadTimeout')])


def test_hibernation_on_very_slow_response():
    assert is_service_hibernating([result(latency_ms=12000)])


def test_hibernation_on_slow_first_request():
    results = [result(latency_ms=8000), result(latency_ms=300), result(latency_ms=500)]
    assert is_service_hibernating(results)


def test_no_hibernation_when_uniformly_slow():
    results = [result(latency_ms=6000), result(latency_ms=5000), result(latency_ms=5500)]
    assert not is_service_hibernating(results)


def test_analyze_all_ok():
    findings = analyze_results([result(), result(ENDPOINTS['market_insights'])])
    assert findings[0] == '📊 Summary: 2 successful, 0 failed checks'
    assert 'All endpoints are working correctly' in findings[1]


def test_analyze_network_and_cors_errors():
    findings = analyze_results([
        result(ok=False, error='Failed to establish a new connection'),
        result(ENDPOINTS['market_insights'], ok=False, error='Blocked by CORS policy', error_type='HTTPError'),
    ])
    text = '\n'.join(findings)

    assert 'Network connectivity issues detected on 1 checks' in text
    assert 'CORS issues detected' in text


def test_module_access_400_is_expected():
    results = [result(), result(ENDPOINTS['module_access'], ok=False, status=400)]

    findings = analyze_results(results)

    assert any('Module access endpoint returns 400' in f for f in findings)
    assert diagnostics_passed(results)
    assert not diagnostics_passed([result(ok=False, status=500)])


def test_run_diagnostics_probes_all_endpoints(fake_session, make_response):
    fake_session.add('GET', '/health', make_response(200, {'status': 'ok'}))
    fake_session.add('GET', '/api/data/market_insights', make_response(200, {'data': {}}))
    fake_session.add('POST', '/api/data/market_insights', make_response(201, {'success': True}))
    fake_session.add('GET', '/api/modules/access', make_response(400, {'error': 'module required'}))

    results = run_diagnostics(BASE_URL, session=fake_session)

    assert [(r['method'], r['endpoint'], r['status']) for r in results] == [
        ('GET', '/health', 200),
        ('GET', '/api/data/market_insights', 200),
        ('POST', '/api/data/market_insights', 201),
        ('GET', '/api/modules/access', 400),
    ]
    assert fake_session.calls[1]['params'] == {'userId': 'test_user'}
    assert fake_session.calls[2]['json']['userId'].startswith('test_user_')
    assert diagnostics_passed(results)


def test_check_status(fake_session, make_response):
    fake_session.add('GET', '/health', make_response(200, {'status': 'healthy'}))

    status = check_status(BASE_URL, session=fake_session)

    assert status['online'] is True
    assert status['status'] == 200
    assert status['data'] == {'status': 'healthy'}


def test_check_status_offline(fake_session):
    fake_session.add('GET', '/health', error=requests.ConnectionError('Name or service not known'))

    status = check_status(BASE_URL, session=fake_session)

    assert status['online'] is False
    assert status['status'] is None
    assert 'Name or service not known' in status['error']


def test_check_supabase_project(fake_session, make_response):
    fake_session.add('GET', '/rest/v1/', make_response(200, {'swagger': '2.0'}))
    fake_session.add('POST', '/rest/v1/rpc/version', make_response(200, 'PostgreSQL 15.1'))
    config = AppConfig(supabase_url='https://abc.supabase.co', supabase_anon_key='anon')

    project = check_supabase_project(config, session=fake_session)

    assert project['accessible'] is True
    assert project['version'] == 'PostgreSQL 15.1'


def test_check_supabase_project_unavailable(fake_session, make_response):
    fake_session.add('GET', '/rest/v1/', make_response(503, {'message': 'Project paused'}))
    config = AppConfig(supabase_url='https://abc.supabase.co', supabase_anon_key='anon')

    project = check_supabase_project(config, session=fake_session)

    assert project['accessible'] is False
    assert project['status'] == 503


def test_format_report():
    results = [result(), result(ENDPOINTS['module_access'], ok=False, error='connect failed')]

    report = format_report(results, analyze_results(results))

    assert '✅ GET /health - 200 (120ms)' in report
    assert '❌ GET /api/modules/access - ConnectionError (120ms)' in report
    assert 'Error: connect failed' in report
    assert '===== Analysis and Solutions =====' in report
