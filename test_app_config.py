"""Tests for configuration loading and the direct database settings."""

import pytest

from app_config import AppConfig, load_config, supabase_url_from_db_host
from database_config import DatabaseConfig, get_db_config

ENV_KEYS = [
    'SUPABASE_URL', 'VITE_SUPABASE_URL', 'SUPABASE_ANON_KEY', 'VITE_SUPABASE_ANON_KEY', 'SUPABASE_SERVICE_KEY',
    'SUPABASE_SERVICE_ROLE_KEY', 'SUPABASE_USER', 'VITE_SUPABASE_USER', 'SUPABASE_PASSWORD',
    'VITE_SUPABASE_PASSWORD', 'DB_HOST', 'DB_PORT', 'DB_NAME', 'DB_USER', 'DB_PASSWORD', 'APP_ENV', 'FLASK_ENV',
    'RENDER_API_URL', 'REQUEST_TIMEOUT', 'DATA_DIR', 'LOG_FILE',
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so values written by load_dotenv are removed again on teardown
    for key in ENV_KEYS:
        monkeypatch.setenv(key, '')
        monkeypatch.delenv(key)


def test_url_derived_from_db_host():
    assert supabase_url_from_db_host('db.abcdefgh.supabase.co') == 'https://abcdefgh.supabase.co'
    assert supabase_url_from_db_host('aws-0-us-east-1.pooler.supabase.com') is None
    assert supabase_url_from_db_host(None) is None


def test_load_config_from_env_file(tmp_path):
    env_file = tmp_path / 'config.env'
    env_file.write_text(
        'VITE_SUPABASE_URL=https://abc.supabase.co/\n'
        'VITE_SUPABASE_ANON_KEY=anon\n'
        'SUPABASE_SERVICE_ROLE_KEY=service\n'
        'APP_ENV=production\n'
        'REQUEST_TIMEOUT=not-a-number\n'
    )

    config = load_config(str(env_file))

    assert config.supabase_url == 'https://abc.supabase.co'
    assert config.supabase_anon_key == 'anon'
    assert config.setup_key == 'service'
    assert config.is_production
    assert config.request_timeout == 30.0
    assert config.missing() == []


def test_load_config_derives_url(monkeypatch):
    monkeypatch.setenv('DB_HOST', 'db.xyz.supabase.co')
    monkeypatch.setenv('DB_PASSWORD', 'pw')

    config = load_config(env_file=None)

    assert config.supabase_url == 'https://xyz.supabase.co'
    assert config.has_direct_db
    assert config.missing() == ['SUPABASE_ANON_KEY']


def test_setup_key_falls_back_to_anon_key():
    config = AppConfig(supabase_anon_key='anon')
    assert config.setup_key == 'anon'
    assert not config.has_credentials


def test_no_direct_database_without_password():
    assert get_db_config(AppConfig(db_host='db.xyz.supabase.co')) is None


def test_database_config_builds_engine_url():
    config = AppConfig(db_host='db.xyz.supabase.co', db_password='p@ss:word', db_port='6543')

    database = DatabaseConfig(config)

    url = database.engine.url
    assert url.host == 'db.xyz.supabase.co'
    assert url.port == 6543
    assert url.password == 'p@ss:word'
    assert url.database == 'postgres'


def test_database_config_connection_failure_is_reported():
    config = AppConfig(db_host='127.0.0.1', db_port='1', db_password='pw')

    assert DatabaseConfig(config).test_connection() is False
