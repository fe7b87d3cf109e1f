"""
Application Configuration Module
Loads Supabase, direct PostgreSQL and diagnostics settings from config.env.
"""

import os
import logging
from dataclasses import dataclass
from typing import List, Optional
from dotenv import load_dotenv

DEFAULT_RENDER_API_URL = 'https://osbackend-zl1h.onrender.com'
DEFAULT_DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data')


def supabase_url_from_db_host(db_host: str) -> Optional[str]:
    """Derive the project REST URL from a db.<ref>.supabase.co host."""
    if not db_host or 'supabase.co' not in db_host or 'pooler' in db_host:
        return None
    project_ref = db_host.replace('db.', '', 1).replace('.supabase.co', '')
    return f"https://{project_ref}.supabase.co"


@dataclass
class AppConfig:
    """Runtime settings for the market insights services."""
    supabase_url: str = ''
    supabase_anon_key: str = ''
    supabase_service_key: Optional[str] = None
    supabase_user: Optional[str] = None
    supabase_password: Optional[str] = None

    db_host: Optional[str] = None
    db_port: str = '5432'
    db_name: str = 'postgres'
    db_user: str = 'postgres'
    db_password: Optional[str] = None

    environment: str = 'development'
    render_api_url: str = DEFAULT_RENDER_API_URL
    request_timeout: float = 30.0
    data_dir: str = DEFAULT_DATA_DIR
    log_file: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == 'production'

    @property
    def has_direct_db(self) -> bool:
        return bool(self.db_host and self.db_password)

    @property
    def setup_key(self) -> str:
        """Key used by setup scripts: service role when available."""
        return self.supabase_service_key or self.supabase_anon_key

    @property
    def has_credentials(self) -> bool:
        return bool(self.supabase_user and self.supabase_password)

    def missing(self) -> List[str]:
        """Names of required settings that are not set."""
        missing = []
        if not self.supabase_url:
            missing.append('SUPABASE_URL')
        if not self.supabase_anon_key:
            missing.append('SUPABASE_ANON_KEY')
        return missing


def _first_env(*names: str, default=None):
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


def load_config(env_file: str = 'config.env') -> AppConfig:
    """Load environment variables from config.env and build an AppConfig."""
    if env_file and os.path.exists(env_file):
        load_dotenv(env_file)

    db_host = os.environ.get('DB_HOST')
    supabase_url = _first_env('SUPABASE_URL', 'VITE_SUPABASE_URL') or supabase_url_from_db_host(db_host) or ''

    try:
        timeout = float(os.environ.get('REQUEST_TIMEOUT', '30'))
    except ValueError:
        timeout = 30.0

    return AppConfig(
        supabase_url=supabase_url.rstrip('/'),
        supabase_anon_key=_first_env('SUPABASE_ANON_KEY', 'VITE_SUPABASE_ANON_KEY', default=''),
        supabase_service_key=_first_env('SUPABASE_SERVICE_KEY', 'SUPABASE_SERVICE_ROLE_KEY'),
        supabase_user=_first_env('SUPABASE_USER', 'VITE_SUPABASE_USER'),
        supabase_password=_first_env('SUPABASE_PASSWORD', 'VITE_SUPABASE_PASSWORD'),
        db_host=db_host,
        db_port=os.environ.get('DB_PORT', '5432'),
        db_name=os.environ.get('DB_NAME', 'postgres'),
        db_user=os.environ.get('DB_USER', 'postgres'),
        db_password=os.environ.get('DB_PASSWORD'),
        environment=_first_env('APP_ENV', 'FLASK_ENV', default='development'),
        render_api_url=os.environ.get('RENDER_API_URL', DEFAULT_RENDER_API_URL).rstrip('/'),
        request_timeout=timeout,
        data_dir=os.environ.get('DATA_DIR', DEFAULT_DATA_DIR),
        log_file=os.environ.get('LOG_FILE'),
    )


def configure_logging(config: Optional[AppConfig] = None, level=logging.INFO) -> None:
    """Setup logging for scripts and the web app."""
    handlers = [logging.StreamHandler()]
    if config is not None and config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(
        level=level,
        format='[%(asctime)s] [%(levelname)s] %(message)s',
        handlers=handlers
    )
