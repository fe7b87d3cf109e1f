"""
Supabase REST Client
Thin wrapper over the Supabase PostgREST and auth endpoints using requests.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Union
import requests

logger = logging.getLogger(__name__)

MISSING_TABLE_CODES = {'42P01', 'PGRST205'}
MISSING_FUNCTION_CODES = {'PGRST202', '42883'}


class SupabaseError(Exception):
    """Error returned by the Supabase REST API."""

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.details = details

    @property
    def is_missing_table(self) -> bool:
        if self.code in MISSING_TABLE_CODES:
            return True
        msg = self.message.lower()
        return 'does not exist' in msg and ('relation' in msg or 'table' in msg)

    @property
    def is_missing_function(self) -> bool:
        if self.code in MISSING_FUNCTION_CODES:
            return True
        msg = self.message.lower()
        return 'function' in msg and ('does not exist' in msg or 'could not find' in msg)

    def __str__(self):
        return f"[{self.code}] {self.message}" if self.code else self.message


def eq(value) -> str:
    return f"eq.{_format_value(value)}"


def gte(value) -> str:
    return f"gte.{_format_value(value)}"


def ilike(pattern: str) -> str:
    return f"ilike.{pattern}"


def is_(value) -> str:
    return f"is.{_format_value(value)}"


def _format_value(value) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if value is None:
        return 'null'
    return str(value)


def parse_content_range(header: Optional[str]) -> int:
    """Total row count from a PostgREST Content-Range header ("0-9/42", "*/0")."""
    if not header or '/' not in header:
        return 0
    total = header.rsplit('/', 1)[1]
    return int(total) if total.isdigit() else 0


class SupabaseRestClient:
    """Client for the Supabase REST API (PostgREST + GoTrue)."""

    def __init__(self, url: str, api_key: str, timeout: float = 30, session: Optional[requests.Session] = None):
        self.supabase_url = url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.access_token = None

    @classmethod
    def from_config(cls, config, use_service_key: bool = False) -> 'SupabaseRestClient':
        key = config.setup_key if use_service_key else config.supabase_anon_key
        return cls(config.supabase_url, key, timeout=config.request_timeout)

    @property
    def rest_url(self) -> str:
        return f"{self.supabase_url}/rest/v1"

    @property
    def authenticated(self) -> bool:
        return self.access_token is not None

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            'apikey': self.api_key,
            'Authorization': f'Bearer {self.access_token or self.api_key}',
            'Content-Type': 'application/json'
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, url: str, params=None, json=None, headers=None,
                 table: Optional[str] = None) -> requests.Response:
        try:
            response = self.session.request(
                method, url, params=params, json=json,
                headers=self._headers(headers), timeout=self.timeout
            )
        except requests.RequestException as e:
            raise SupabaseError(f"Request to {url} failed: {e}", code='network') from e

        if response.status_code >= 400:
            raise self._error_from_response(response, table)
        return response

    @staticmethod
    def _error_from_response(response: requests.Response, table: Optional[str] = None) -> SupabaseError:
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            message = body.get('message') or body.get('error_description') or body.get('error') or response.text
            return SupabaseError(message, code=body.get('code'), status=response.status_code,
                                 details=body.get('details') or body.get('hint'))
        if table and response.status_code == 404:
            # PostgREST answers an unknown table with 404
            return SupabaseError(f"Could not find the table 'public.{table}'", code='PGRST205', status=404)
        return SupabaseError(response.text or f"HTTP {response.status_code}", status=response.status_code)

    @staticmethod
    def _json(response: requests.Response):
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _build_params(columns: Optional[str], filters: Optional[Dict[str, str]],
                      order: Union[str, Iterable[str], None], limit: Optional[int],
                      offset: Optional[int]) -> Dict[str, str]:
        params = {}
        if columns:
            params['select'] = columns
        for column, expression in (filters or {}).items():
            params[column] = expression
        if order:
            params['order'] = order if isinstance(order, str) else ','.join(order)
        if limit is not None:
            params['limit'] = str(limit)
        if offset:
            params['offset'] = str(offset)
        return params

    def select(self, table: str, columns: str = '*', filters: Optional[Dict[str, str]] = None,
               order: Union[str, Iterable[str], None] = None, limit: Optional[int] = None,
               offset: Optional[int] = None) -> List[Dict]:
        """Read rows from a table."""
        params = self._build_params(columns, filters, order, limit, offset)
        response = self._request('GET', f"{self.rest_url}/{table}", params=params, table=table)
        return self._json(response) or []

    def count(self, table: str, filters: Optional[Dict[str, str]] = None) -> int:
        """
        Exact row count of a table.

        Uses a one-row GET rather than HEAD so a missing table still comes
        back with its error body.
        """
        params = self._build_params('*', filters, None, 1, None)
        response = self._request('GET', f"{self.rest_url}/{table}", params=params,
                                 headers={'Prefer': 'count=exact'}, table=table)
        return parse_content_range(response.headers.get('Content-Range'))

    def insert(self, table: str, rows: Union[Dict, List[Dict]]) -> List[Dict]:
        """Insert one or more rows."""
        response = self._request('POST', f"{self.rest_url}/{table}", json=rows,
                                 headers={'Prefer': 'return=representation'})
        return self._json(response) or []

    def upsert(self, table: str, rows: Union[Dict, List[Dict]], on_conflict: Optional[str] = None) -> List[Dict]:
        """Insert rows, merging duplicates on the conflict columns."""
        params = {'on_conflict': on_conflict} if on_conflict else None
        response = self._request('POST', f"{self.rest_url}/{table}", params=params, json=rows,
                                 headers={'Prefer': 'resolution=merge-duplicates,return=representation'})
        return self._json(response) or []

    def delete(self, table: str, filters: Dict[str, str]) -> None:
        """Delete matching rows. An empty filter is refused."""
        if not filters:
            raise ValueError("Refusing to delete without a filter")
        self._request('DELETE', f"{self.rest_url}/{table}", params=dict(filters))

    def rpc(self, function: str, params: Optional[Dict] = None) -> Any:
        """Call a stored procedure."""
        response = self._request('POST', f"{self.rest_url}/rpc/{function}", json=params or {})
        return self._json(response)

    def ping(self) -> bool:
        """Check that the REST endpoint answers at all."""
        try:
            response = self.session.get(f"{self.rest_url}/", headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"⚠️ Supabase REST endpoint unreachable: {e}")
            return False
        return response.status_code in (200, 404)

    def sign_in_with_password(self, email: str, password: str) -> Dict:
        """Sign in and use the returned access token for later requests."""
        response = self._request(
            'POST', f"{self.supabase_url}/auth/v1/token",
            params={'grant_type': 'password'},
            json={'email': email, 'password': password}
        )
        data = self._json(response) or {}
        self.access_token = data.get('access_token')
        if not self.access_token:
            raise SupabaseError("Sign-in response did not include an access token", status=response.status_code)
        return data

    def sign_out(self) -> None:
        self.access_token = None
