"""
Shared test fixtures.

Provides:
- FakeSupabaseClient: in-memory stand-in for SupabaseRestClient
- FakeSession: requests.Session stand-in with canned responses
- Clients with every table created, empty or seeded from data/
- patch_script: runs a script's main() against a fake client
"""

import re
import json
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest

from app_config import DEFAULT_DATA_DIR, AppConfig
from data_loader import DataLoader
from schema_setup import TABLE_DEFINITIONS, SqlExecutor
from seed_data import SeedData
from supabase_rest import SupabaseError, _format_value


def _match_expression(row: Dict, column: str, expression: str) -> bool:
    op, _, value = expression.partition('.')
    actual = row.get(column)
    if op in ('eq', 'is'):
        return _format_value(actual) == value
    if op == 'gte':
        if actual is None:
            return False
        try:
            return float(actual) >= float(value)
        except (TypeError, ValueError):
            return str(actual) >= value
    if op == 'ilike':
        if actual is None:
            return False
        pattern = '^' + re.escape(value).replace(r'\*', '.*').replace('%', '.*') + '$'
        return re.match(pattern, str(actual), re.IGNORECASE | re.DOTALL) is not None
    raise ValueError(f"Unsupported filter operator: {op}")


def _matches(row: Dict, filters: Optional[Dict[str, str]]) -> bool:
    for column, expression in (filters or {}).items():
        if column == 'or':
            options = expression.strip('()').split(',')
            if not any(_match_expression(row, *option.split('.', 1)) for option in options):
                return False
        elif not _match_expression(row, column, expression):
            return False
    return True


def _sort_key(value):
    return (value is None, value if value is not None else 0)


class FakeSupabaseClient:
    """In-memory store with the SupabaseRestClient interface."""

    rest_url = 'https://test-project.supabase.co/rest/v1'

    def __init__(self, tables=None):
        self.tables: Dict[str, List[Dict]] = {name: [] for name in (tables or [])}
        self.functions: Dict[str, Callable[[Dict], Any]] = {}
        self.write_failures: Dict[str, Callable[[List[Dict]], bool]] = {}
        self.errors: Dict[str, SupabaseError] = {}
        self.users: Dict[str, str] = {}
        self.offline = False
        self.access_token = None
        self.calls = []
        self._next_id = 1

    @property
    def authenticated(self) -> bool:
        return self.access_token is not None

    def _table(self, table: str) -> List[Dict]:
        if self.offline:
            raise SupabaseError("Request failed: connection refused", code='network')
        if table in self.errors:
            raise self.errors[table]
        if table not in self.tables:
            raise SupabaseError(f'relation "public.{table}" does not exist', code='42P01', status=404)
        return self.tables[table]

    def _check_write(self, table: str, rows: List[Dict]):
        should_fail = self.write_failures.get(table)
        if should_fail is not None and should_fail(rows):
            raise SupabaseError("duplicate key value violates unique constraint", code='23505', status=409)

    def _add(self, table_rows: List[Dict], row: Dict) -> Dict:
        new_row = dict(row)
        if new_row.get('id') is None:
            new_row['id'] = self._next_id
            self._next_id += 1
        table_rows.append(new_row)
        return dict(new_row)

    def select(self, table, columns='*', filters=None, order=None, limit=None, offset=None):
        self.calls.append(('select', table, filters))
        rows = [row for row in self._table(table) if _matches(row, filters)]

        orders = [order] if isinstance(order, str) else list(order or [])
        for key in reversed(orders):
            column, _, direction = key.partition('.')
            rows.sort(key=lambda row: _sort_key(row.get(column)), reverse=direction == 'desc')

        rows = rows[offset or 0:]
        if limit is not None:
            rows = rows[:limit]
        if columns and columns != '*':
            names = [name.strip() for name in columns.split(',')]
            return [{name: row.get(name) for name in names} for row in rows]
        return [dict(row) for row in rows]

    def count(self, table, filters=None) -> int:
        self.calls.append(('count', table, filters))
        return sum(1 for row in self._table(table) if _matches(row, filters))

    def insert(self, table, rows):
        rows = rows if isinstance(rows, list) else [rows]
        self.calls.append(('insert', table, len(rows)))
        table_rows = self._table(table)
        self._check_write(table, rows)
        return [self._add(table_rows, row) for row in rows]

    def upsert(self, table, rows, on_conflict=None):
        rows = rows if isinstance(rows, list) else [rows]
        self.calls.append(('upsert', table, len(rows)))
        table_rows = self._table(table)
        self._check_write(table, rows)

        keys = on_conflict.split(',') if on_conflict else ['id']
        written = []
        for row in rows:
            existing = next((r for r in table_rows if all(r.get(k) == row.get(k) for k in keys)), None)
            if existing is not None:
                existing.update(row)
                written.append(dict(existing))
            else:
                written.append(self._add(table_rows, row))
        return written

    def delete(self, table, filters):
        if not filters:
            raise ValueError("Refusing to delete without a filter")
        self.calls.append(('delete', table, filters))
        table_rows = self._table(table)
        table_rows[:] = [row for row in table_rows if not _matches(row, filters)]

    def rpc(self, function, params=None):
        self.calls.append(('rpc', function, params))
        if self.offline:
            raise SupabaseError("Request failed: connection refused", code='network')
        if function not in self.functions:
            raise SupabaseError(f"Could not find the function public.{function} in the schema cache",
                                code='PGRST202', status=404)
        return self.functions[function](params or {})

    def install_execute_sql(self) -> List[str]:
        """Register an execute_sql function that applies CREATE/DROP TABLE and CREATE VIEW."""
        executed = []

        def execute_sql(params):
            sql = params['sql_query']
            executed.append(sql)
            for name in re.findall(r'DROP TABLE IF EXISTS public\."(\w+)"', sql):
                self.tables.pop(name, None)
            for name in re.findall(r'CREATE TABLE IF NOT EXISTS public\.(\w+)', sql):
                self.tables.setdefault(name, [])
            for name in re.findall(r'CREATE VIEW public\."(\w+)"', sql):
                self.tables.setdefault(name, [])
            return {'success': True}

        self.functions['execute_sql'] = execute_sql
        return executed

    def ping(self) -> bool:
        return not self.offline

    def sign_in_with_password(self, email, password):
        if self.users.get(email) != password:
            raise SupabaseError("Invalid login credentials", status=400)
        self.access_token = f"token-{email}"
        return {'access_token': self.access_token}

    def sign_out(self):
        self.access_token = None


class FakeResponse:
    """Minimal requests.Response stand-in."""

    def __init__(self, status_code=200, json_data=None, headers=None, text=None):
        self.status_code = status_code
        self._json = json_data
        self.headers = headers or {}
        if text is None:
            text = json.dumps(json_data) if json_data is not None else ''
        self.text = text
        self.content = text.encode('utf-8')

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json


class FakeSession:
    """Routes requests by (method, URL suffix) to canned responses or errors."""

    def __init__(self):
        self.routes = []
        self.calls = []

    def add(self, method: str, url_suffix: str, response=None, error: Exception = None):
        self.routes.append((method, url_suffix, error if error is not None else response))

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append({'method': method, 'url': url, 'params': params, 'json': json,
                           'headers': headers, 'timeout': timeout})
        for route_method, suffix, outcome in self.routes:
            if route_method == method and url.endswith(suffix):
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        return FakeResponse(404, {'message': 'Not found'})

    def get(self, url, **kwargs):
        return self.request('GET', url, **kwargs)


@pytest.fixture
def seed():
    return SeedData(DEFAULT_DATA_DIR)


@pytest.fixture
def fake_client():
    """Fake client with every table created and empty."""
    return FakeSupabaseClient(TABLE_DEFINITIONS.keys())


@pytest.fixture
def seeded_client(seed):
    """Fake client with every table loaded from the seed files."""
    client = FakeSupabaseClient(TABLE_DEFINITIONS.keys())
    result = DataLoader(client, seed).load_all()
    assert result['success'], result
    client.calls.clear()
    return client


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def script_config():
    return AppConfig(supabase_url='https://test-project.supabase.co', supabase_anon_key='anon-key')


@pytest.fixture
def patch_script(monkeypatch, tmp_path, script_config):
    """Point a script module at a fake client and a temporary pending SQL directory."""
    def patch(module, client):
        monkeypatch.setattr(module, 'load_config', lambda: script_config)
        monkeypatch.setattr(module, 'configure_logging', lambda config=None: None)
        monkeypatch.setattr(module, 'SupabaseRestClient',
                            SimpleNamespace(from_config=lambda config, use_service_key=False: client))
        executor = SqlExecutor(client, pending_dir=str(tmp_path / 'sql_pending'))
        if hasattr(module, 'build_executor'):
            monkeypatch.setattr(module, 'build_executor', lambda client, config: executor)
        return executor
    return patch
