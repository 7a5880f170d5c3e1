"""
Hosted backend client.

Thin wrapper over the Supabase REST (PostgREST) API used for
face registrations and chat history.
"""

import requests
from typing import Any, Dict, List, Optional
from .config import Config
from .errors import StoreError
from .logging_config import get_logger

logger = get_logger(__name__)


class SupabaseBackend:
    """Reads and writes rows of the hosted Supabase tables."""

    def __init__(self, config: Config):
        self.base_url = f'{config.supabase_url}/rest/v1'
        self.api_key = config.supabase_key
        self.timeout = config.request_timeout

        if not self.api_key:
            logger.warning('SUPABASE_KEY is not set, backend requests will be anonymous')

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        if self.api_key:
            headers['apikey'] = self.api_key
            headers['Authorization'] = f'Bearer {self.api_key}'
        return headers

    def select(
        self,
        table: str,
        columns: str = '*',
        order: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch all rows of a table.

        Args:
            table: Table name
            columns: PostgREST select list
            order: PostgREST order clause (e.g. 'created_at.desc')

        Returns:
            List of row dicts

        Raises:
            StoreError: If the request fails
        """
        url = f'{self.base_url}/{table}'
        params = {'select': columns}
        if order:
            params['order'] = order

        try:
            response = requests.get(url, params=params, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
            rows = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f'Failed to fetch {table}: {e}')
            raise StoreError(f'Failed to fetch {table}: {e}') from e
        except ValueError as e:
            raise StoreError(f'Invalid JSON from {table}: {e}') from e

        if not isinstance(rows, list):
            raise StoreError(f'Unexpected response for {table}: expected a list')

        logger.debug(f'Fetched {len(rows)} rows from {table}')
        return rows

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a single row.

        Args:
            table: Table name
            row: Column values

        Returns:
            Inserted row as returned by the backend (may be empty)

        Raises:
            StoreError: If the request fails
        """
        url = f'{self.base_url}/{table}'
        headers = self._headers()
        headers['Prefer'] = 'return=representation'

        try:
            response = requests.post(url, json=row, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.error(f'❌ Timeout inserting into {table}')
            raise StoreError(f'Timeout inserting into {table}') from e
        except requests.exceptions.RequestException as e:
            logger.error(f'❌ Connection error inserting into {table}: {e}')
            raise StoreError(f'Connection error inserting into {table}: {e}') from e

        if not response.ok:
            logger.error(f'❌ Failed to insert into {table}: {response.status_code} {response.text}')
            raise StoreError(f'Insert into {table} failed with status {response.status_code}')

        try:
            body = response.json()
        except ValueError:
            return {}

        if isinstance(body, list):
            return body[0] if body else {}
        return body if isinstance(body, dict) else {}
