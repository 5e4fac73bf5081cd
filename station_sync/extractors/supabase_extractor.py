"""Supabase (PostgREST) extractor."""

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import BaseExtractor
from ..config import SupabaseConfig
from ..errors import SourceConnectionError, SourceError, SourceTableNotFound
from ..models.record import SourceRow
from ..models.schema import ColumnDefinition

logger = logging.getLogger(__name__)

# PostgREST / Postgres codes for a relation that does not exist.
MISSING_TABLE_CODES = {"PGRST205", "PGRST200", "42P01"}


class SupabaseExtractor(BaseExtractor):
    """
    Reads tables through the Supabase REST API with the service role key.

    Rows are paged with limit/offset. Column metadata comes from the
    OpenAPI description PostgREST serves at the REST root.
    """

    def __init__(
        self,
        config: SupabaseConfig,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the Supabase extractor.

        Args:
            config: Source URL, key and paging settings
            session: Custom requests session
        """
        super().__init__("supabase", batch_size=config.page_size)
        self.config = config
        self._session = session or self._create_session()
        self._openapi: Optional[Dict[str, Any]] = None

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retries = Retry(
            total=self.config.max_retries,
            backoff_factor=self.config.backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        return session

    def _get_headers(self, accept: str = "application/json") -> Dict[str, str]:
        self.config.require_credentials()
        return {
            "apikey": self.config.service_role_key,
            "Authorization": f"Bearer {self.config.service_role_key}",
            "Accept": accept,
        }

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None,
             accept: str = "application/json", table: Optional[str] = None) -> Any:
        url = f"{self.config.rest_url}/{path}" if path else f"{self.config.rest_url}/"
        headers = self._get_headers(accept)

        try:
            response = self._session.get(url, headers=headers, params=params, timeout=self.config.timeout)
        except (requests.exceptions.ConnectionError,
                requests.exceptions.Timeout,
                requests.exceptions.RetryError) as e:
            raise SourceConnectionError(self.config.mask(f"Cannot reach Supabase at {url}: {e}")) from e

        if response.status_code >= 400:
            self._raise_for_response(response, table)

        try:
            return response.json()
        except ValueError as e:
            raise SourceError(f"Supabase returned invalid JSON for {url}: {e}",
                              response.status_code) from e

    def _raise_for_response(self, response: requests.Response, table: Optional[str]) -> None:
        code = None
        message = response.text
        try:
            body = response.json()
            if isinstance(body, dict):
                code = body.get("code")
                message = body.get("message") or message
        except ValueError:
            pass

        status = response.status_code
        if table and (status == 404 or code in MISSING_TABLE_CODES):
            raise SourceTableNotFound(table, status)
        if status in (401, 403):
            raise SourceConnectionError(
                self.config.mask(f"Supabase rejected the service credentials ({status}): {message}"),
                status,
            )
        raise SourceError(self.config.mask(f"Supabase error {status}: {message}"), status)

    def extract_batch(self, table: str, offset: int = 0, limit: int = 1000) -> List[SourceRow]:
        """Fetch one page of rows from a table."""
        params = {"select": "*", "offset": offset, "limit": limit}
        data = self._get(table, params=params, table=table)
        if not isinstance(data, list):
            raise SourceError(f"Unexpected response for {table}: expected a list of rows")
        return data

    def _load_openapi(self) -> Dict[str, Any]:
        if self._openapi is None:
            self._openapi = self._get("", accept="application/openapi+json") or {}
        return self._openapi

    def get_columns(self, table: str) -> Optional[List[ColumnDefinition]]:
        """
        Column metadata from the OpenAPI description.

        Returns None when the description is unavailable or does not
        describe the table.
        """
        try:
            spec = self._load_openapi()
        except SourceConnectionError:
            raise
        except SourceError as e:
            logger.warning(f"Column metadata unavailable, falling back to inference: {e}")
            return None

        definition = spec.get("definitions", {}).get(table)
        if not definition:
            return None

        required = definition.get("required", [])
        return [
            ColumnDefinition.from_openapi_property(name, prop, required)
            for name, prop in definition.get("properties", {}).items()
        ]
